"""Order engine: creation, submission, cancellation and reads.

An order moves opened -> pending -> completed | failed. Opened orders can
also be cancelled (deleted) while they are still open. Pending orders that
outlive their deadline are failed lazily by the read path.
"""

import logging
from datetime import timedelta

import redis
from sqlalchemy.orm import Session

from marketplace.errors import (
    InvalidPollAnswers,
    MissingWalletAddress,
    NoSuchOffer,
    NoSuchOrder,
    OfferCapReached,
    OpenedOrdersOnly,
    OpenOrderExpired,
)
from marketplace.models import Application, Offer, OfferType, Order, OrderOrigin, OrderStatus
from marketplace.models.database import utcnow
from marketplace.schemas.orders import OpenOrderResponse, OrderResponse
from marketplace.services import offer_contents, payment
from marketplace.services.applications import ExternalOffer, get_application, validate_spend_jwt
from marketplace.services.context import RequestContext
from marketplace.services.locks import offer_creation_lock
from marketplace.services.offer_caps import reached_cap
from marketplace.services.order_history import TimeoutReconciler, order_to_api
from marketplace.services.rate_limit import check_app_earn_limit, check_user_earn_limit

logger = logging.getLogger(__name__)


def get_order_by_id(
    db: Session,
    order_id: str,
    user_id: str | None = None,
    status: OrderStatus | None = None,
    exclude_status: OrderStatus | None = None,
    origin: OrderOrigin | None = None,
) -> Order | None:
    query = db.query(Order).filter(Order.id == order_id)
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    if status is not None:
        query = query.filter(Order.status == status.value)
    if exclude_status is not None:
        query = query.filter(Order.status != exclude_status.value)
    if origin is not None:
        query = query.filter(Order.origin == origin.value)
    return query.first()


def find_open_order(db: Session, user_id: str, offer_id: str, origin: OrderOrigin) -> Order | None:
    return (
        db.query(Order)
        .filter(
            Order.user_id == user_id,
            Order.offer_id == offer_id,
            Order.origin == origin.value,
            Order.status == OrderStatus.OPENED.value,
        )
        .first()
    )


def _expire_open_order(db: Session, order: Order) -> None:
    """Fail an opened order that was never submitted in time."""
    error = OpenOrderExpired(f"open order {order.id} has expired")
    order.set_status(OrderStatus.FAILED, utcnow())
    order.error = error.to_dict()
    db.commit()
    logger.info("Open order %s expired, marked failed", order.id)


def _live_open_order(db: Session, user_id: str, offer_id: str, origin: OrderOrigin) -> Order | None:
    order = find_open_order(db, user_id, offer_id, origin)
    if order is not None and order.is_expired(utcnow()):
        _expire_open_order(db, order)
        return None
    return order


def _open_order_response(order: Order) -> OpenOrderResponse:
    return OpenOrderResponse(id=order.id, expiration_date=order.expiration_date.isoformat())


def _check_earn_limits(client: redis.Redis, app: Application, user_id: str, amount: int) -> None:
    limits = app.limits
    check_app_earn_limit(client, app.id, "minute_total_earn", limits["minute_total_earn"], timedelta(minutes=1), amount)
    check_app_earn_limit(client, app.id, "hourly_total_earn", limits["hourly_total_earn"], timedelta(hours=1), amount)
    check_user_earn_limit(client, user_id, "daily_user_earn", limits["daily_user_earn"], timedelta(days=1), amount)


def _insert_marketplace_order(
    db: Session, lock_client: redis.Redis, offer: Offer, ctx: RequestContext
) -> Order | None:
    """Insert an opened order unless one of the offer caps is reached. Caller holds the offer lock.

    Earn amounts count against the app and user limits only once the order is about to be inserted.
    """
    user_id = ctx.user_id
    if reached_cap(db, offer, user_id):
        return None

    if offer.type == OfferType.EARN:
        _check_earn_limits(lock_client, get_application(db, ctx.app_id), user_id, offer.amount)

    order_meta = offer.order_meta
    order = Order(
        origin=OrderOrigin.MARKETPLACE,
        user_id=user_id,
        offer_id=offer.id,
        amount=offer.amount,
        type=offer.type,
        status=OrderStatus.OPENED.value,
        meta={
            "title": order_meta.get("title", offer.meta.get("title", "")),
            "description": order_meta.get("description", offer.meta.get("description", "")),
            "call_to_action": order_meta.get("call_to_action"),
            "content": order_meta.get("content"),
        },
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def _insert_external_order(db: Session, offer: ExternalOffer, user_id: str) -> Order:
    order = Order(
        origin=OrderOrigin.EXTERNAL,
        user_id=user_id,
        offer_id=offer.id,
        amount=offer.amount,
        type=OfferType.SPEND.value,
        status=OrderStatus.OPENED.value,
        meta={
            "title": offer.title,
            "description": offer.description,
            "wallet_address": offer.wallet_address,
        },
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def create_order(
    db: Session,
    lock_client: redis.Redis,
    ctx: RequestContext,
    offer_id: str,
    origin: OrderOrigin = OrderOrigin.MARKETPLACE,
    external_offer: ExternalOffer | None = None,
) -> OpenOrderResponse:
    """Reserve an opened order for ``ctx.user_id`` on an offer.

    An existing open order for the same user and offer is returned as is.
    Marketplace orders are subject to the offer's total and per-user caps;
    the count and the insert happen under the offer's creation lock.
    """
    logger.info("Creating %s order for offer %s, user %s", origin.value, offer_id, ctx.user_id)

    if origin == OrderOrigin.MARKETPLACE:
        offer = db.query(Offer).filter(Offer.id == offer_id).first()
        if not offer:
            raise NoSuchOffer(f"cannot create order, offer {offer_id} not found")
    elif origin == OrderOrigin.EXTERNAL:
        if external_offer is None or external_offer.id != offer_id:
            raise ValueError("external orders need the offer described by the app jwt")
        offer = None
    else:
        raise ValueError(f"unknown order origin: {origin!r}")

    order = _live_open_order(db, ctx.user_id, offer_id, origin)
    if order:
        logger.info("Returning existing open order %s for offer %s", order.id, offer_id)
        return _open_order_response(order)

    with offer_creation_lock(lock_client, offer_id):
        # another request may have opened one while we waited for the lock
        order = _live_open_order(db, ctx.user_id, offer_id, origin)
        if order is None:
            if offer is not None:
                order = _insert_marketplace_order(db, lock_client, offer, ctx)
            else:
                order = _insert_external_order(db, external_offer, ctx.user_id)

    if order is None:
        raise OfferCapReached(f"offer {offer_id} cap reached")

    logger.info("Created open %s order %s for offer %s", origin.value, order.id, offer_id)
    return _open_order_response(order)


def create_external_order(
    db: Session,
    lock_client: redis.Redis,
    ctx: RequestContext,
    token: str,
) -> OpenOrderResponse:
    external_offer = validate_spend_jwt(db, token, ctx.app_id)
    return create_order(
        db,
        lock_client,
        ctx,
        external_offer.id,
        origin=OrderOrigin.EXTERNAL,
        external_offer=external_offer,
    )


def submit_order(
    db: Session,
    ctx: RequestContext,
    order_id: str,
    form: str | None,
    wallet_address: str | None,
    app_id: str,
) -> OrderResponse:
    """Move an opened order to pending and, for earn offers, trigger the payment.

    Submitting an order that is no longer open returns its current state.
    """
    order = get_order_by_id(db, order_id, user_id=ctx.user_id)
    if not order:
        raise NoSuchOrder(f"no such order {order_id}")
    if order.status != OrderStatus.OPENED:
        return order_to_api(order)
    if order.is_expired(utcnow()):
        _expire_open_order(db, order)
        raise OpenOrderExpired(f"open order {order_id} has expired")

    is_earn = order.type == OfferType.EARN
    if order.origin == OrderOrigin.MARKETPLACE:
        offer = db.query(Offer).filter(Offer.id == order.offer_id).first()
        if not offer:
            raise NoSuchOffer(f"no such offer {order.offer_id}")
        if is_earn and not offer_contents.is_valid(db, offer.id, form):
            raise InvalidPollAnswers(f"submitted form is invalid for {order.id}")
    if is_earn and not wallet_address:
        raise MissingWalletAddress(f"user {ctx.user_id} has no wallet address")

    order.set_status(OrderStatus.PENDING, utcnow())
    db.commit()
    db.refresh(order)
    logger.info("Order %s changed to pending", order_id)

    if is_earn:
        payment.pay_to(db, wallet_address, app_id, order.amount, order.id)
        db.refresh(order)

    return order_to_api(order)


def cancel_order(db: Session, ctx: RequestContext, order_id: str) -> None:
    order = get_order_by_id(db, order_id, user_id=ctx.user_id)
    if not order:
        raise NoSuchOrder(f"no such order {order_id}")
    if order.status != OrderStatus.OPENED:
        raise OpenedOrdersOnly(f"order {order_id} is {order.status}, only opened orders can be cancelled")

    db.delete(order)
    db.commit()
    logger.info("Order %s cancelled", order_id)


def get_order(db: Session, reconciler: TimeoutReconciler, ctx: RequestContext, order_id: str) -> OrderResponse:
    order = get_order_by_id(db, order_id, user_id=ctx.user_id, exclude_status=OrderStatus.OPENED)
    if not order:
        raise NoSuchOrder(f"no such order {order_id} or order is open")

    reconciler.reconcile(db, order)
    logger.info(
        "Returning order %s (status=%s, offer=%s, user=%s)",
        order.id,
        order.status,
        order.offer_id,
        order.user_id,
    )
    return order_to_api(order)
