from typing import Annotated

import redis
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from marketplace.dependencies import get_request_context
from marketplace.models import get_db
from marketplace.schemas.orders import ExternalOrderCreateRequest, OpenOrderResponse
from marketplace.services import orders as order_service
from marketplace.services.context import RequestContext
from marketplace.services.redis_client import get_redis

router = APIRouter()


@router.post(
    "/external/orders",
    response_model=OpenOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open an order for an offer described by an app signed JWT",
)
def create_external_order(
    body: ExternalOrderCreateRequest,
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[redis.Redis, Depends(get_redis)],
):
    return order_service.create_external_order(db, client, ctx, body.jwt)


@router.post(
    "/{offer_id}/orders",
    response_model=OpenOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open an order for a marketplace offer",
)
def create_order(
    offer_id: str,
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[redis.Redis, Depends(get_redis)],
):
    """
    Reserve an opened order for the offer. If the user already has an open
    order for it, that order is returned instead. The order must be
    submitted before ``expiration_date``.
    """
    return order_service.create_order(db, client, ctx, offer_id)
