import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketplace.api import offers, orders
from marketplace.config import settings
from marketplace.db_init import init_db
from marketplace.dependencies import get_timeout_reconciler
from marketplace.webhooks import payment_callback

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("marketplace.startup")


def _is_localhost(host: str | None) -> bool:
    return host in {"localhost", "127.0.0.1"}


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def _get_cors_origins(cors_raw: str) -> list[str]:
    return [origin.strip() for origin in cors_raw.split(",") if origin.strip()]


def _validate_database_url_for_runtime(database_url: str) -> None:
    parsed = urlparse(database_url)
    scheme = parsed.scheme
    postgres_schemes = {"postgres", "postgresql", "postgresql+psycopg"}

    if not scheme:
        raise RuntimeError("DATABASE_URL is missing URL scheme (expected postgresql:// or postgresql+psycopg://).")
    if scheme == "sqlite":
        return
    if scheme not in postgres_schemes:
        raise RuntimeError(
            f"DATABASE_URL has unsupported scheme '{scheme}' "
            "(expected postgresql:// or postgresql+psycopg://)."
        )
    if not parsed.hostname:
        raise RuntimeError("DATABASE_URL is missing host.")
    if not parsed.path.lstrip("/"):
        raise RuntimeError("DATABASE_URL is missing database name in path.")


def _db_url_diagnostics(database_url: str) -> str:
    parsed = urlparse(database_url)
    host = parsed.hostname or "<missing>"
    port = parsed.port or "<missing>"
    db_name = parsed.path.lstrip("/") or "<missing>"
    scheme = parsed.scheme or "<missing>"
    query = parsed.query or "<empty>"

    tips = []
    if scheme in {"postgres", "postgresql"}:
        tips.append("URL scheme is fine; app normalizes it to postgresql+psycopg internally.")
    if scheme != "sqlite" and "sslmode" not in query:
        tips.append("No sslmode in URL query; external managed DBs often require sslmode=require.")
    if not tips:
        tips.append("URL structure looks valid; check network access, DB credentials, and DB service status.")

    return (
        f"scheme={scheme}, host={host}, port={port}, database={db_name}, query={query}; "
        f"tips={' | '.join(tips)}"
    )


def _validate_required_env_for_runtime() -> None:
    errors = []
    warnings = []

    if not settings.JWT_SECRET.strip():
        errors.append("JWT_SECRET is required.")

    if not _is_http_url(settings.BASE_URL):
        errors.append("BASE_URL must be an absolute http(s) URL, e.g. https://marketplace.example.com")

    if not _is_http_url(settings.PAYMENT_SERVICE_URL):
        errors.append("PAYMENT_SERVICE_URL must be an absolute http(s) URL.")
    if not _is_http_url(settings.PAYMENT_CALLBACK_URL):
        errors.append("PAYMENT_CALLBACK_URL must be an absolute http(s) URL.")
    elif _is_localhost(urlparse(settings.PAYMENT_CALLBACK_URL).hostname):
        warnings.append("PAYMENT_CALLBACK_URL points to localhost; the payment service may not reach it.")
    if not settings.PAYMENT_WEBHOOK_SECRET:
        warnings.append("PAYMENT_WEBHOOK_SECRET is not set; payment callbacks are not authenticated.")

    if urlparse(settings.REDIS_URL).scheme not in {"redis", "rediss", "unix"}:
        errors.append("REDIS_URL must be a redis:// or rediss:// URL.")

    origins = _get_cors_origins(settings.CORS_ORIGINS)
    if not origins:
        errors.append("CORS_ORIGINS must contain at least one comma-separated origin URL.")
    else:
        invalid_origins = [origin for origin in origins if not _is_http_url(origin)]
        if invalid_origins:
            errors.append(f"CORS_ORIGINS contains invalid URL(s): {', '.join(invalid_origins)}")

    if warnings:
        logger.warning("Startup environment warnings: %s", " | ".join(warnings))

    if errors:
        raise RuntimeError("Startup environment validation failed: " + " | ".join(errors))


@asynccontextmanager
async def lifespan(app: FastAPI):
    database_url = "<unavailable>"
    logger.info("Application startup initiated.")
    try:
        database_url = settings.DATABASE_URL
        logger.info("DATABASE_URL diagnostics at startup: %s", _db_url_diagnostics(database_url))
        _validate_database_url_for_runtime(database_url)
        _validate_required_env_for_runtime()
        init_db()
    except Exception as exc:
        diagnostics = (
            _db_url_diagnostics(database_url)
            if database_url != "<unavailable>"
            else "DATABASE_URL unavailable (missing or unreadable)."
        )
        logger.exception(
            "Database initialization failed: %s. DATABASE_URL diagnostics: %s",
            str(exc),
            diagnostics,
        )
        raise
    logger.info("Application startup completed successfully.")
    yield
    logger.info("Application shutdown, waiting for pending order timeouts.")
    get_timeout_reconciler().shutdown(wait=True)
    # the next startup in this process builds a fresh executor
    get_timeout_reconciler.cache_clear()


app = FastAPI(
    title="Marketplace API",
    description=(
        "Order engine of the marketplace: open, submit, cancel and read earn/spend orders. "
        "Requests are authenticated with the app issued access token (Bearer JWT)."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Offers", "description": "Open orders for marketplace and external offers."},
        {"name": "Orders", "description": "Submit, cancel, get and list my orders."},
        {"name": "Webhooks", "description": "Called by the payment service."},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(settings.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(offers.router, prefix="/v1/offers", tags=["Offers"])
app.include_router(orders.router, prefix="/v1/orders", tags=["Orders"])
app.include_router(payment_callback.router, prefix="/webhooks", tags=["Webhooks"])


@app.get("/")
def root():
    return {"status": "ok", "service": "Marketplace API"}


@app.get("/health")
def health():
    return {"status": "ok"}
