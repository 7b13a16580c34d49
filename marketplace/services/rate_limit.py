"""Sliding-window rate limits backed by Redis counters.

The window is split into buckets of ``max(window / 60, 1)`` seconds. Every
check increments the current bucket by ``step`` and sums all buckets that fall
inside the trailing window. Buckets expire after ten windows, so Redis cleans
up after itself.
"""

import logging
import time
from datetime import timedelta

import redis

from marketplace.errors import TooManyRegistrations, TooMuchEarnOrdered

logger = logging.getLogger(__name__)

BUCKETS_PER_WINDOW = 60
TTL_WINDOWS = 10


class RateLimit:
    def __init__(self, client: redis.Redis, bucket_prefix: str, limit: int, window: timedelta):
        self._redis = client
        self.bucket_prefix = bucket_prefix
        self.limit = limit
        self.window_size = max(int(window.total_seconds()), 1)
        self.bucket_size = max(self.window_size // BUCKETS_PER_WINDOW, 1)
        self.ttl = self.window_size * TTL_WINDOWS

    def check_rate(self, now: float | None = None) -> bool:
        return self._check(1, now)

    def check_amount(self, amount: int, now: float | None = None) -> bool:
        return self._check(amount, now)

    def window_keys(self, now: float) -> list[str]:
        current = int(now // self.bucket_size) * self.bucket_size
        return [
            f"{self.bucket_prefix}{current - offset}"
            for offset in range(0, self.window_size, self.bucket_size)
        ]

    def _check(self, step: int, now: float | None) -> bool:
        """Record ``step`` and return True when the window total reached the limit."""
        keys = self.window_keys(time.time() if now is None else now)
        current_bucket = keys[0]

        self._redis.incrby(current_bucket, step)
        self._redis.expire(current_bucket, self.ttl)

        total = sum(int(value) for value in self._redis.mget(keys) if value)
        return total >= self.limit


def throw_on_rate_limit(
    client: redis.Redis,
    app_id: str,
    limit_type: str,
    limit: int,
    window: timedelta,
    now: float | None = None,
) -> None:
    rate_limit = RateLimit(client, f"rate_limit:{app_id}:{limit_type}:", limit, window)
    if rate_limit.check_rate(now):
        logger.warning("Rate limit reached for app %s (%s, limit=%s)", app_id, limit_type, limit)
        raise TooManyRegistrations(f"app: {app_id}, type: {limit_type} exceeded the limit: {limit}")


def check_app_earn_limit(
    client: redis.Redis,
    app_id: str,
    limit_type: str,
    limit: int,
    window: timedelta,
    amount: int,
    now: float | None = None,
) -> None:
    rate_limit = RateLimit(client, f"amount_limit:{app_id}:{limit_type}:", limit, window)
    if rate_limit.check_amount(amount, now):
        raise TooMuchEarnOrdered(
            f"app: {app_id}, type: {limit_type} exceeded the limit: {limit}, amount: {amount}"
        )


def check_user_earn_limit(
    client: redis.Redis,
    user_id: str,
    limit_type: str,
    limit: int,
    window: timedelta,
    amount: int,
    now: float | None = None,
) -> None:
    rate_limit = RateLimit(client, f"amount_limit:{user_id}:{limit_type}:", limit, window)
    if rate_limit.check_amount(amount, now):
        raise TooMuchEarnOrdered(
            f"user: {user_id}, type: {limit_type} exceeded the limit: {limit}, amount: {amount}"
        )
