import logging
from dataclasses import dataclass

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from marketplace.errors import InvalidExternalOrderJwt, NoSuchApp
from marketplace.models import Application

logger = logging.getLogger(__name__)

SPEND_SUBJECT = "spend"


@dataclass(frozen=True)
class ExternalOffer:
    id: str
    app_id: str
    amount: int
    title: str
    description: str
    wallet_address: str


def get_application(db: Session, app_id: str) -> Application:
    app = db.query(Application).filter(Application.id == app_id).first()
    if not app:
        raise NoSuchApp(f"no such app {app_id}")
    return app


def _signing_key(app: Application, kid: str | None) -> tuple[str, str]:
    keys = app.jwt_public_keys or {}
    if kid is None or kid not in keys:
        raise InvalidExternalOrderJwt(f"unknown key id {kid!r} for app {app.id}")
    entry = keys[kid]
    return entry["key"], entry["algorithm"].upper()


def validate_spend_jwt(db: Session, token: str, app_id: str) -> ExternalOffer:
    """Verify an app-signed spend JWT and return the offer it describes.

    The token must be issued by ``app_id`` (the caller's application) and
    signed with one of the keys that application registered.
    """
    try:
        header = jwt.get_unverified_header(token)
        claims = jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise InvalidExternalOrderJwt(f"malformed jwt: {exc}")

    issuer = claims.get("iss")
    if issuer != app_id:
        raise InvalidExternalOrderJwt(f"jwt issuer {issuer!r} does not match app {app_id}")

    app = get_application(db, app_id)
    key, algorithm = _signing_key(app, header.get("kid"))
    try:
        payload = jwt.decode(token, key, algorithms=[algorithm], options={"verify_aud": False})
    except JWTError as exc:
        logger.info("Rejected spend jwt from app %s: %s", app_id, exc)
        raise InvalidExternalOrderJwt(f"invalid jwt: {exc}")

    if payload.get("sub") != SPEND_SUBJECT:
        raise InvalidExternalOrderJwt(f"unsupported jwt subject {payload.get('sub')!r}")
    if not app.wallet_address:
        raise InvalidExternalOrderJwt(f"app {app_id} has no wallet address")

    offer = payload.get("offer") or {}
    sender = payload.get("sender") or {}
    try:
        amount = int(offer["amount"])
        offer_id = str(offer["id"])
    except (KeyError, TypeError, ValueError):
        raise InvalidExternalOrderJwt("jwt offer must contain id and integer amount")
    if amount <= 0:
        raise InvalidExternalOrderJwt("jwt offer amount must be positive")

    return ExternalOffer(
        id=offer_id,
        app_id=app_id,
        amount=amount,
        title=str(sender.get("title", "")),
        description=str(sender.get("description", "")),
        wallet_address=app.wallet_address,
    )
