"""Read side of the order engine: projections, lazy timeouts and history paging."""

import base64
import binascii
import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session, sessionmaker

from marketplace.config import settings
from marketplace.errors import InvalidCursor, OpenedOrdersUnreturnable, transaction_failed
from marketplace.models import Order, OrderOrigin, OrderStatus
from marketplace.models.database import as_utc, utcnow
from marketplace.schemas.orders import (
    ExternalOrderResponse,
    MarketplaceOrderResponse,
    OrderListResponse,
    OrderResponse,
    Paging,
    PagingCursors,
)
from marketplace.services.url_utils import join_url, with_query_params

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


def order_to_api(order: Order) -> OrderResponse:
    if order.status == OrderStatus.OPENED:
        raise OpenedOrdersUnreturnable(f"opened order {order.id} cannot be returned")

    base = {
        "id": order.id,
        "offer_id": order.offer_id,
        "status": order.status,
        "error": order.error,
        "completion_date": order.status_date.isoformat(),
        "title": order.meta.get("title", ""),
        "description": order.meta.get("description", ""),
        "amount": order.amount,
    }

    if order.origin == OrderOrigin.MARKETPLACE:
        return MarketplaceOrderResponse(
            **base,
            offer_type=order.type,
            content=order.meta.get("content"),
            call_to_action=order.meta.get("call_to_action"),
            blockchain_data=order.blockchain_data,
            result=order.get_value(),
        )
    if order.origin == OrderOrigin.EXTERNAL:
        return ExternalOrderResponse(
            **base,
            blockchain_data={"recipient_address": order.meta.get("wallet_address")},
        )
    raise ValueError(f"unknown order origin: {order.origin!r}")


class TimeoutReconciler:
    """Fails expired pending orders found on the read path.

    The caller's copy of the order is flipped immediately; persisting the flip
    runs on an executor and is returned as a ``Future``. The update only
    applies while the row is still pending, so a confirmation that lands first
    wins.
    """

    def __init__(self, session_factory: sessionmaker, executor: Executor | None = None):
        self._session_factory = session_factory
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.TIMEOUT_RECONCILER_WORKERS,
            thread_name_prefix="order-timeouts",
        )

    def reconcile(self, db: Session, order: Order, now: datetime | None = None) -> Future | None:
        now = now or utcnow()
        if order.status != OrderStatus.PENDING or not order.is_expired(now):
            return None

        logger.info("Pending order %s expired at %s, marking failed", order.id, order.expiration_date)
        error = transaction_failed("TransactionTimeout", "transaction timed out")
        if order in db:
            # the flip is persisted by the executor, not by this session
            db.expunge(order)
        order.set_status(OrderStatus.FAILED, now)
        order.error = error

        future = self._executor.submit(self._persist_failed, order.id, now, error)
        future.add_done_callback(self._log_failure)
        return future

    def _persist_failed(self, order_id: str, failed_at: datetime, error: dict) -> bool:
        db = self._session_factory()
        try:
            updated = (
                db.query(Order)
                .filter(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
                .update(
                    {
                        Order.status: OrderStatus.FAILED.value,
                        Order.current_status_date: failed_at,
                        Order.error: error,
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        if updated != 1:
            logger.info("Order %s left pending state before the timeout was persisted", order_id)
        return updated == 1

    @staticmethod
    def _log_failure(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Failed to persist order timeout: %s", exc, exc_info=exc)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def encode_cursor(order: Order) -> str:
    raw = f"{order.status_date.isoformat()}|{order.id}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        status_date, order_id = raw.split("|", 1)
        return as_utc(datetime.fromisoformat(status_date)), order_id
    except (binascii.Error, UnicodeError, ValueError):
        raise InvalidCursor(f"invalid paging cursor {cursor!r}")


def _status_date_column():
    return func.coalesce(Order.current_status_date, Order.created_date)


def list_user_orders(
    db: Session,
    user_id: str,
    limit: int = DEFAULT_PAGE_SIZE,
    before: str | None = None,
    after: str | None = None,
    origin: OrderOrigin | None = None,
) -> list[Order]:
    """Return a page of non-opened orders, newest status change first.

    ``after`` continues past the given cursor (older orders), ``before``
    returns the page preceding it (newer orders).
    """
    status_date = _status_date_column()
    query = db.query(Order).filter(
        Order.user_id == user_id,
        Order.status != OrderStatus.OPENED.value,
    )
    if origin is not None:
        query = query.filter(Order.origin == origin.value)

    if after:
        cursor_date, cursor_id = decode_cursor(after)
        query = query.filter(
            or_(status_date < cursor_date, and_(status_date == cursor_date, Order.id < cursor_id))
        )
    elif before:
        cursor_date, cursor_id = decode_cursor(before)
        query = query.filter(
            or_(status_date > cursor_date, and_(status_date == cursor_date, Order.id > cursor_id))
        )
        newer = query.order_by(status_date.asc(), Order.id.asc()).limit(limit).all()
        return list(reversed(newer))

    return query.order_by(status_date.desc(), Order.id.desc()).limit(limit).all()


def _page_url(limit: int, **cursor: str | None) -> str:
    url = join_url(settings.BASE_URL, "/v1/orders")
    return with_query_params(url, {"limit": limit, **cursor})


def build_order_list(
    db: Session,
    reconciler: TimeoutReconciler,
    user_id: str,
    limit: int = DEFAULT_PAGE_SIZE,
    before: str | None = None,
    after: str | None = None,
) -> OrderListResponse:
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    orders = list_user_orders(db, user_id, limit=limit, before=before, after=after)
    cursors = PagingCursors()
    if orders:
        cursors = PagingCursors(before=encode_cursor(orders[0]), after=encode_cursor(orders[-1]))

    # cursors are taken before reconciliation so paging follows the stored order
    now = utcnow()
    for order in orders:
        reconciler.reconcile(db, order, now)

    return OrderListResponse(
        orders=[order_to_api(order) for order in orders],
        paging=Paging(
            cursors=cursors,
            previous=_page_url(limit, before=cursors.before) if cursors.before else None,
            next=_page_url(limit, after=cursors.after) if len(orders) == limit else None,
        ),
    )
