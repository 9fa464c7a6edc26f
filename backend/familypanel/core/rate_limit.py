"""Shared rate limiter instance.

PIN login has a search space of only 10 000 values, so it is throttled per
client address. Counters live in Redis when it is reachable so they survive
restarts and are shared between workers; otherwise they are kept in memory
(development / test environments).
"""

import logging

import redis as sync_redis
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)


def _create_limiter() -> Limiter:
    from familypanel.config import settings

    try:
        client = sync_redis.from_url(settings.REDIS_URL, socket_connect_timeout=1)
        client.ping()
        client.close()
        logger.info("Rate limiter: Redis storage (%s)", settings.REDIS_URL)
        return Limiter(
            key_func=get_remote_address,
            default_limits=["100/minute"],
            storage_uri=settings.REDIS_URL,
        )
    except sync_redis.RedisError:
        logger.warning("Rate limiter: Redis unavailable, using in-memory storage")
        return Limiter(key_func=get_remote_address, default_limits=["100/minute"])


limiter = _create_limiter()
