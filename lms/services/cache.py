"""Cache-aside read layer.

Flow:  handler → cache → hit  → return
       handler → cache → miss → system of record → populate cache → return

Writes never go through the cache.  A mutating service commits to the
system of record first, then asks the InvalidationCoordinator to purge
every key derived from the mutated resource, then reports success.

FAIL-OPEN
---------
Caching is an optimisation, never a correctness dependency.  Every
CacheStore call degrades to a no-op when the store is disabled or the
backend is unreachable: ``get`` returns None and writes are dropped.
Callers never branch on cache health.

Entries also carry a TTL, so anything a purge missed still ages out.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from redis.exceptions import RedisError

from lms.core.config import Settings
from lms.core.errors import CacheUnavailableError
from lms.core.metrics import CACHE_ERRORS, CACHE_OPERATIONS

logger = logging.getLogger(__name__)


@runtime_checkable
class CacheStore(Protocol):
    @property
    def enabled(self) -> bool: ...

    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on miss or when unavailable."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL.  Best-effort."""
        ...

    async def delete(self, key: str) -> None:
        """Evict one key.  Best-effort."""
        ...

    async def delete_pattern(self, pattern: str) -> None:
        """Evict every key matching a glob pattern (e.g. 'courses:list:*')."""
        ...


class InMemoryCacheStore:
    """Process-local cache for local development and tests.

    Expiry is checked lazily on read; pattern deletes use the same glob
    semantics as Redis MATCH for the *, ? and [...] wildcards.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._store: dict[str, tuple[str, float]] = {}
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._store[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        self._store[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def delete_pattern(self, pattern: str) -> None:
        for k in [k for k in self._store if fnmatch.fnmatchcase(k, pattern)]:
            del self._store[k]

    def clear(self) -> None:
        self._store.clear()


class RedisCacheStore:
    """Redis-backed cache shared by every API instance.

    Constructed with ``None`` the store is disabled: the service runs as
    if no cache existed.  Backend errors are logged, counted and
    absorbed.
    """

    # Key prefix keeps cache entries apart from anything else in the instance.
    _PREFIX = "cache:"

    def __init__(self, redis_client: Any | None) -> None:
        self._redis = redis_client

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    async def get(self, key: str) -> str | None:
        if self._redis is None:
            return None
        try:
            return await self._call("get", self._redis.get(f"{self._PREFIX}{key}"))
        except CacheUnavailableError:
            return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if self._redis is None or ttl_seconds <= 0:
            return
        try:
            await self._call(
                "set", self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)
            )
        except CacheUnavailableError:
            return

    async def delete(self, key: str) -> None:
        if self._redis is None:
            return
        try:
            await self._call("delete", self._redis.delete(f"{self._PREFIX}{key}"))
        except CacheUnavailableError:
            return

    async def delete_pattern(self, pattern: str) -> None:
        if self._redis is None:
            return
        # SCAN is cursor-based and never blocks the server the way KEYS
        # does.  Keys added mid-scan may be missed; those were written
        # after the mutation committed, so they already hold fresh data.
        cursor = 0
        try:
            while True:
                cursor, keys = await self._call(
                    "delete_pattern",
                    self._redis.scan(
                        cursor, match=f"{self._PREFIX}{pattern}", count=100
                    ),
                )
                if keys:
                    await self._call("delete_pattern", self._redis.delete(*keys))
                if cursor == 0:
                    break
        except CacheUnavailableError:
            return

    async def _call(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except (RedisError, OSError) as e:
            CACHE_ERRORS.labels(operation=operation).inc()
            logger.warning("Cache %s failed, continuing without cache: %s", operation, e)
            raise CacheUnavailableError(operation) from e


def build_cache_store(settings: Settings, redis_client: Any | None) -> CacheStore:
    """Pick the cache implementation for this process.

    REDIS_URL set          → Redis (fail-open)
    CACHE_ENABLED=false    → disabled store, every call a no-op
    otherwise              → in-process store
    """
    if not settings.cache_enabled:
        logger.info("Cache disabled by configuration")
        return RedisCacheStore(None)
    if redis_client is not None:
        return RedisCacheStore(redis_client)
    logger.info("No REDIS_URL configured — using in-memory cache")
    return InMemoryCacheStore()


async def read_through(
    cache: CacheStore,
    key: str,
    ttl_seconds: int,
    loader: Callable[[], Awaitable[Any]],
) -> Any:
    """Return the JSON payload cached under ``key``, loading it on a miss.

    ``loader`` must return something ``json.dumps`` accepts; the same
    decoded shape is returned on hits and misses so callers cannot tell
    them apart.
    """
    cached = await cache.get(key)
    if cached is not None:
        try:
            payload = json.loads(cached)
        except ValueError:
            logger.warning("Discarding undecodable cache entry key=%s", key)
            await cache.delete(key)
        else:
            CACHE_OPERATIONS.labels(operation="hit").inc()
            return payload

    CACHE_OPERATIONS.labels(operation="miss").inc()
    payload = await loader()
    # Round-trip so a miss returns exactly what a later hit would.
    encoded = json.dumps(payload, default=str)
    await cache.set(key, encoded, ttl_seconds)
    return json.loads(encoded)
