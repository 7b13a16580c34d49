from functools import lru_cache

import redis

from marketplace.config import settings


@lru_cache(maxsize=1)
def _client() -> redis.Redis:
    return redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)


def get_redis() -> redis.Redis:
    """Shared Redis client backing rate-limit counters and order locks."""
    return _client()
