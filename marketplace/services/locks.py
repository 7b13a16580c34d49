import logging
from contextlib import contextmanager

import redis
from redis.exceptions import LockError

from marketplace.config import settings
from marketplace.errors import OrderLockTimeout

logger = logging.getLogger(__name__)

CREATE_ORDER_RESOURCE_ID = "locks:orders:create"


def create_order_lock_name(offer_id: str) -> str:
    return f"{CREATE_ORDER_RESOURCE_ID}:{offer_id}"


@contextmanager
def offer_creation_lock(client: redis.Redis, offer_id: str):
    """Serialize order creation for one offer across all API processes.

    The lock expires after ``ORDER_LOCK_TIMEOUT_SECONDS`` so a crashed holder
    cannot block the offer forever.
    """
    name = create_order_lock_name(offer_id)
    lock = client.lock(
        name,
        timeout=settings.ORDER_LOCK_TIMEOUT_SECONDS,
        blocking_timeout=settings.ORDER_LOCK_WAIT_SECONDS,
    )
    if not lock.acquire():
        logger.warning("Timed out waiting for %s", name)
        raise OrderLockTimeout(f"offer {offer_id} is busy, try again")
    try:
        yield
    finally:
        try:
            lock.release()
        except LockError:
            # expired while held; another holder may already own it
            logger.error("Lock %s expired before release", name)
