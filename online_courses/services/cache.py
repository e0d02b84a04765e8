"""Key/value cache for values fetched from slow upstream APIs.

Used read-through: callers ask the cache first, fetch from the upstream
on a miss and store the result.  Today the only user is the media
service, which caches Vimeo rendition links per video id.

Entries may carry a TTL.  With ttl_seconds=None an entry lives until Redis
evicts it; the rendition links are stable for the lifetime of a video,
so the media service stores them that way.  Nothing invalidates entries.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from online_courses.core.metrics import CACHE_OPERATIONS
from online_courses.db.redis import redis_pool


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store a value, optionally expiring after ttl_seconds."""
        ...


class InMemoryCacheService:
    """Process-local cache for tests and dev.  TTLs are not enforced."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    def clear(self) -> None:
        self._store.clear()

    async def get(self, key: str) -> str | None:
        value = self._store.get(key)
        CACHE_OPERATIONS.labels(operation="miss" if value is None else "hit").inc()
        return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._store[key] = value


class RedisCacheService:
    """Redis-backed cache shared by every API instance."""

    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        value = await self._redis.get(f"{self._PREFIX}{key}")
        CACHE_OPERATIONS.labels(operation="miss" if value is None else "hit").inc()
        return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        if ttl_seconds is None:
            await self._redis.set(f"{self._PREFIX}{key}", value)
        else:
            await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
