"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured ``build_redis_client``
returns a pooled asyncio client, otherwise None and the cache falls back
to the in-memory store.  The client is created once at startup and
handed to the CacheStore; nothing else holds a reference to it.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from lms.core.config import Settings

logger = logging.getLogger(__name__)


def build_redis_client(settings: Settings) -> aioredis.Redis | None:
    if not settings.redis_url or not settings.cache_enabled:
        return None
    return aioredis.from_url(
        settings.redis_url,
        decode_responses=True,  # return str instead of bytes
        max_connections=20,
        socket_connect_timeout=2,
        socket_timeout=2,
    )


@asynccontextmanager
async def lifespan_redis(client: aioredis.Redis | None) -> AsyncIterator[None]:
    """Verify connectivity on startup and release the pool on shutdown.

    An unreachable Redis does not stop the app from starting; the cache
    is fail-open, so requests are served straight from the database.
    """
    if client is None:
        logger.info("No REDIS_URL configured — Redis cache not in use")
        yield
        return

    try:
        await client.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected")
    except (RedisError, OSError):
        logger.exception("Redis connection failed on startup; serving uncached")

    yield

    await client.aclose()
    logger.info("Redis connection pool closed")
