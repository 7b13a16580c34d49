import logging
import time
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from marketplace.config import settings
from marketplace.models.database import Base, _normalize_database_url, engine
from marketplace.models import Application, Offer, OfferContent, Order, User  # noqa: F401 - register models

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def wait_for_db(retries: int, retry_delay_seconds: int) -> None:
    """Block until ``SELECT 1`` succeeds, sleeping between failed attempts."""
    for attempt in range(1, retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError as exc:
            logger.warning("Order store not reachable (attempt %s/%s): %s", attempt, retries, exc)
            if attempt == retries:
                raise RuntimeError(
                    f"Database is unreachable after {retries} attempts, check DATABASE_URL."
                ) from exc
            time.sleep(retry_delay_seconds)
        else:
            logger.info("Order store reachable on attempt %s", attempt)
            return


def init_db():
    """Prepare the schema: sqlite gets the ORM tables, other backends the migrations."""
    wait_for_db(settings.DB_CONNECT_RETRIES, settings.DB_CONNECT_RETRY_DELAY_SECONDS)
    if settings.DATABASE_URL.startswith("sqlite://"):
        Base.metadata.create_all(bind=engine)
    else:
        run_migrations()


def run_migrations() -> None:
    alembic_ini = PROJECT_ROOT / "alembic.ini"
    if not alembic_ini.exists():
        raise RuntimeError(f"alembic.ini not found in {PROJECT_ROOT}")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", _normalize_database_url(settings.DATABASE_URL))
    logger.info("Upgrading order store schema to head")
    command.upgrade(config, "head")
