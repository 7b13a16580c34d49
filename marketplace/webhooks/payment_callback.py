import hashlib
import hmac
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.errors import InvalidSignature, MissingSignature, transaction_failed
from marketplace.models import get_db
from marketplace.schemas.webhooks import CallbackAck, PaymentCompletedCallback, PaymentFailedCallback
from marketplace.services import payment

router = APIRouter()
logger = logging.getLogger(__name__)


async def verify_payment_signature(request: Request) -> None:
    """Validate HMAC SHA-256 signature when PAYMENT_WEBHOOK_SECRET is configured."""
    if not settings.PAYMENT_WEBHOOK_SECRET:
        logger.warning("PAYMENT_WEBHOOK_SECRET is not set, skipping webhook verification")
        return

    signature = request.headers.get("x-payment-signature")
    if not signature:
        raise MissingSignature("Missing webhook signature")

    raw_body = await request.body()
    expected = hmac.new(
        settings.PAYMENT_WEBHOOK_SECRET.encode("utf-8"),
        raw_body,
        hashlib.sha256,
    ).hexdigest()

    if not hmac.compare_digest(signature, expected):
        raise InvalidSignature("Invalid webhook signature")


@router.post(
    "/payments/complete",
    response_model=CallbackAck,
    summary="Payment service reports a confirmed transaction",
    dependencies=[Depends(verify_payment_signature)],
)
def payment_complete(
    body: PaymentCompletedCallback,
    db: Session = Depends(get_db),
):
    """Idempotent: repeated confirmations of a completed order are acknowledged."""
    logger.info("Payment completed callback for order %s (tx %s)", body.id, body.transaction_id)
    success = payment.complete_payment(
        db,
        body.id,
        body.transaction_id,
        body.amount,
        sender_address=body.sender_address,
        recipient_address=body.recipient_address,
        value=body.value,
    )
    if not success:
        logger.warning("Payment completion for order %s was not applied", body.id)
    return CallbackAck()


@router.post(
    "/payments/failed",
    response_model=CallbackAck,
    summary="Payment service reports a failed transaction",
    dependencies=[Depends(verify_payment_signature)],
)
def payment_failed(
    body: PaymentFailedCallback,
    db: Session = Depends(get_db),
):
    logger.info("Payment failed callback for order %s: %s", body.id, body.reason)
    success = payment.fail_payment(
        db,
        body.id,
        transaction_failed("BlockchainError", body.reason),
        transaction_id=body.transaction_id,
    )
    if not success:
        logger.warning("Payment failure for order %s was not applied", body.id)
    return CallbackAck()
