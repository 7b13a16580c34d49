from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from marketplace.dependencies import get_request_context, get_timeout_reconciler
from marketplace.models import get_db
from marketplace.schemas.orders import AnyOrderResponse, OrderListResponse, OrderSubmitRequest
from marketplace.services import order_history
from marketplace.services import orders as order_service
from marketplace.services.context import RequestContext
from marketplace.services.order_history import TimeoutReconciler

router = APIRouter()


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders, newest first",
)
def list_orders(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    db: Annotated[Session, Depends(get_db)],
    reconciler: Annotated[TimeoutReconciler, Depends(get_timeout_reconciler)],
    limit: Annotated[int, Query(ge=1, le=order_history.MAX_PAGE_SIZE)] = order_history.DEFAULT_PAGE_SIZE,
    before: str | None = None,
    after: str | None = None,
):
    return order_history.build_order_list(db, reconciler, ctx.user_id, limit=limit, before=before, after=after)


@router.get(
    "/{order_id}",
    response_model=AnyOrderResponse,
    summary="Get one of my orders",
)
def get_order(
    order_id: str,
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    db: Annotated[Session, Depends(get_db)],
    reconciler: Annotated[TimeoutReconciler, Depends(get_timeout_reconciler)],
):
    """Opened orders are not returned; submit or cancel them first."""
    return order_service.get_order(db, reconciler, ctx, order_id)


@router.post(
    "/{order_id}",
    response_model=AnyOrderResponse,
    summary="Submit an opened order",
)
def submit_order(
    order_id: str,
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    db: Annotated[Session, Depends(get_db)],
    body: OrderSubmitRequest | None = None,
):
    """
    Move the order to pending. For earn offers the submitted form is
    validated and the payment to the user's wallet is requested; the order
    completes when the payment service reports back.
    """
    form = body.content if body else None
    return order_service.submit_order(db, ctx, order_id, form, ctx.wallet_address, ctx.app_id)


@router.delete(
    "/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Cancel an opened order",
)
def cancel_order(
    order_id: str,
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    db: Annotated[Session, Depends(get_db)],
):
    order_service.cancel_order(db, ctx, order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
