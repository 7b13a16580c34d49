"""Payment orchestration around the external blockchain payment service.

``pay_to`` only asks the payment service to broadcast an earn transaction.
The service reports the outcome later through the payment callbacks, which
call :func:`complete_payment` or :func:`fail_payment`. Failures are recorded
on the order; nothing here raises into the request that submitted it.
"""

import logging

import httpx
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.errors import transaction_failed
from marketplace.models import Order, OrderStatus
from marketplace.models.database import utcnow
from marketplace.services.url_utils import join_url

logger = logging.getLogger(__name__)


def pay_to(db: Session, wallet_address: str, app_id: str, amount: int, order_id: str) -> None:
    payload = {
        "id": order_id,
        "app_id": app_id,
        "recipient_address": wallet_address,
        "amount": amount,
        "callback": settings.PAYMENT_CALLBACK_URL,
    }
    logger.info("Paying %s to %s for order %s (app %s)", amount, wallet_address, order_id, app_id)
    try:
        response = httpx.post(
            join_url(settings.PAYMENT_SERVICE_URL, "/payments"),
            json=payload,
            timeout=settings.PAYMENT_SERVICE_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("Payment service rejected order %s: %s", order_id, exc)
        fail_payment(db, order_id, transaction_failed("BlockchainError", f"payment submission failed: {exc}"))
        return

    logger.info("Earn transaction broadcast to blockchain submitted for order %s", order_id)


def _lock_order(db: Session, order_id: str) -> Order | None:
    return db.query(Order).filter(Order.id == order_id).with_for_update().first()


def complete_payment(
    db: Session,
    order_id: str,
    transaction_id: str,
    amount: int,
    sender_address: str | None = None,
    recipient_address: str | None = None,
    value: dict | str | None = None,
) -> bool:
    """Mark a pending order completed. Returns True when the order is (already) completed."""
    try:
        order = _lock_order(db, order_id)
        if not order:
            logger.warning("Payment completed for unknown order %s", order_id)
            return False

        if order.status == OrderStatus.COMPLETED:
            logger.info("Order %s already completed, skipping", order_id)
            db.rollback()
            return True

        if order.status != OrderStatus.PENDING:
            logger.error("Payment completed for order %s in state %s, ignoring", order_id, order.status)
            db.rollback()
            return False

        if amount != order.amount:
            logger.warning(
                "Payment amount mismatch for order %s: expected=%s, received=%s",
                order_id,
                order.amount,
                amount,
            )
            order.set_status(OrderStatus.FAILED, utcnow())
            order.error = transaction_failed("WrongAmount", f"expected {order.amount}, received {amount}")
            db.commit()
            return False

        order.blockchain_data = {
            "transaction_id": transaction_id,
            "sender_address": sender_address,
            "recipient_address": recipient_address,
        }
        if value is not None:
            if order.accepts_value(value):
                order.set_value(value)
            else:
                # the transfer is confirmed, only the malformed value is dropped
                logger.warning(
                    "Ignoring %s value for %s order %s",
                    type(value).__name__,
                    order.origin,
                    order_id,
                )
        order.set_status(OrderStatus.COMPLETED, utcnow())
        db.commit()
        logger.info("Order %s completed with transaction %s", order_id, transaction_id)
        return True
    except Exception:
        logger.exception("Error completing payment for order %s", order_id)
        db.rollback()
        raise


def fail_payment(db: Session, order_id: str, error: dict, transaction_id: str | None = None) -> bool:
    """Mark a pending order failed with ``error``. Returns True when the order is (already) failed."""
    try:
        order = _lock_order(db, order_id)
        if not order:
            logger.warning("Payment failed for unknown order %s", order_id)
            return False

        if order.status == OrderStatus.FAILED:
            logger.info("Order %s already failed, skipping", order_id)
            db.rollback()
            return True

        if order.status != OrderStatus.PENDING:
            logger.error("Payment failure for order %s in state %s, ignoring", order_id, order.status)
            db.rollback()
            return False

        if transaction_id:
            order.blockchain_data = {**(order.blockchain_data or {}), "transaction_id": transaction_id}
        order.set_status(OrderStatus.FAILED, utcnow())
        order.error = error
        db.commit()
        logger.info("Order %s failed: %s", order_id, error.get("message"))
        return True
    except Exception:
        logger.exception("Error failing payment for order %s", order_id)
        db.rollback()
        raise
