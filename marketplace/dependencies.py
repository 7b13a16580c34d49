import logging
from datetime import timedelta
from functools import lru_cache
from typing import Annotated

import redis
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.errors import InvalidToken, MissingToken
from marketplace.models import SessionLocal, User, get_db
from marketplace.services.applications import get_application
from marketplace.services.context import RequestContext
from marketplace.services.order_history import TimeoutReconciler
from marketplace.services.rate_limit import throw_on_rate_limit
from marketplace.services.redis_client import get_redis

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


@lru_cache(maxsize=1)
def get_timeout_reconciler() -> TimeoutReconciler:
    return TimeoutReconciler(SessionLocal)


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise InvalidToken(f"invalid token: {exc}")
    if payload.get("type") not in {None, "access"}:
        raise InvalidToken("not an access token")
    if not payload.get("app_id") or not payload.get("sub"):
        raise InvalidToken("token must carry app_id and sub")
    return payload


def register_user(
    db: Session,
    client: redis.Redis,
    app_id: str,
    app_user_id: str,
    device_id: str | None,
    wallet_address: str | None,
) -> User:
    """Create the user on first sight, subject to the app's registration limits."""
    app = get_application(db, app_id)
    limits = app.limits
    throw_on_rate_limit(client, app.id, "minute_registration", limits["minute_registration"], timedelta(minutes=1))
    throw_on_rate_limit(client, app.id, "hourly_registration", limits["hourly_registration"], timedelta(hours=1))

    user = User(app_id=app.id, app_user_id=app_user_id, device_id=device_id, wallet_address=wallet_address)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # registered concurrently by another request
        db.rollback()
        return db.query(User).filter(User.app_id == app_id, User.app_user_id == app_user_id).one()
    db.refresh(user)
    logger.info("Registered user %s (app %s, app user %s)", user.id, app_id, app_user_id)
    return user


def get_request_context(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[redis.Redis, Depends(get_redis)],
) -> RequestContext:
    if not credentials:
        raise MissingToken("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    app_id = str(payload["app_id"])
    app_user_id = str(payload["sub"])
    device_id = payload.get("device_id")
    wallet_address = payload.get("wallet_address")

    user = db.query(User).filter(User.app_id == app_id, User.app_user_id == app_user_id).first()
    if user is None:
        user = register_user(db, client, app_id, app_user_id, device_id, wallet_address)
    elif wallet_address and user.wallet_address != wallet_address:
        user.wallet_address = wallet_address
        db.commit()

    return RequestContext(
        app_id=app_id,
        app_user_id=app_user_id,
        device_id=device_id,
        user_id=user.id,
        wallet_address=user.wallet_address,
    )
