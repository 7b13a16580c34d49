import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from marketplace.models import Offer, Order, OrderOrigin

logger = logging.getLogger(__name__)

TOTAL_CAP = "total"
PER_USER_CAP = "per_user"


def count_offer_orders(db: Session, offer_id: str, user_id: str | None = None) -> int:
    query = db.query(func.count(Order.id)).filter(
        Order.offer_id == offer_id,
        Order.origin == OrderOrigin.MARKETPLACE.value,
    )
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    return query.scalar() or 0


def reached_cap(db: Session, offer: Offer, user_id: str) -> str | None:
    """Return which cap blocks a new order for ``user_id``, or None if both allow it.

    Counts are taken from the orders table, so the caller must hold the
    offer's creation lock until the new order is committed.
    """
    total = count_offer_orders(db, offer.id)
    if total >= offer.total_cap:
        logger.info("Total cap reached for offer %s (user %s)", offer.id, user_id)
        return TOTAL_CAP

    for_user = count_offer_orders(db, offer.id, user_id)
    if for_user >= offer.per_user_cap:
        logger.info("Per-user cap reached for offer %s (user %s)", offer.id, user_id)
        return PER_USER_CAP

    return None
