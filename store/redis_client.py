"""
Redis connection management shared by the replay guard and the session store.

A single ``redis.Redis`` client (backed by its own connection pool) is built
per application and shared by every request handler; redis-py clients are
safe to use from many threads at once.
"""
import logging
from contextlib import contextmanager
from typing import Optional

import redis

from core.errors import StoreUnavailable
from store.deadline import Deadline, check_deadline

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def get_redis_client(url: Optional[str] = None, socket_timeout: Optional[float] = 5.0) -> redis.Redis:
    """
    Create a Redis client for ``url``.

    Connections are opened lazily, so this never touches the network.
    Responses are decoded to ``str``.
    """
    client = redis.Redis.from_url(
        url or DEFAULT_REDIS_URL,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        health_check_interval=30,
    )
    logger.info("Redis client configured for %s", client.connection_pool.connection_kwargs.get("host", "?"))
    return client


@contextmanager
def store_call(operation: str, deadline: Optional[Deadline] = None):
    """
    Run one store round trip.

    Usage:
        with store_call("GET", deadline):
            value = client.get(key)

    The deadline is checked before the call; any ``redis.RedisError`` is
    re-raised as StoreUnavailable with the original chained.
    """
    check_deadline(deadline, operation)
    try:
        yield
    except redis.RedisError as e:
        logger.error("Redis %s failed: %s", operation, e)
        raise StoreUnavailable(f"Store unavailable during {operation}: {e}") from e
