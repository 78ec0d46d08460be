"""
Cache invalidation after index generations change.

Finalize removes every cache entry under the deployment's cache prefix once
superseded indices are gone, so no reader keeps serving documents from a
deleted generation.
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Any, Protocol, runtime_checkable

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


@runtime_checkable
class CacheInvalidator(Protocol):
    """Protocol for caches that can drop keys by pattern."""

    async def scan_delete(self, pattern: str) -> int:
        """
        Delete every key matching a glob-style pattern.

        Returns:
            Number of keys deleted
        """
        ...


class RedisCacheInvalidator:
    """
    Deletes cache keys from Redis using SCAN, never KEYS.

    Args:
        redis: Async Redis client
        scan_count: COUNT hint passed to each SCAN call
        batch_size: Keys deleted per DEL command
    """

    def __init__(self, redis: Redis, *, scan_count: int = 1000, batch_size: int = 500) -> None:
        self._redis = redis
        self._scan_count = scan_count
        self._batch_size = batch_size

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisCacheInvalidator:
        """Create an invalidator with its own Redis connection pool."""
        return cls(Redis.from_url(url), **kwargs)

    async def scan_delete(self, pattern: str) -> int:
        deleted = 0
        batch: list[Any] = []

        async for key in self._redis.scan_iter(match=pattern, count=self._scan_count):
            batch.append(key)
            if len(batch) >= self._batch_size:
                deleted += await self._redis.delete(*batch)
                batch = []

        if batch:
            deleted += await self._redis.delete(*batch)

        logger.debug("Deleted %d cache keys matching %s", deleted, pattern)
        return deleted


class InMemoryCache:
    """
    Dictionary-backed cache for tests and single-process deployments.

    Example:
        >>> cache = InMemoryCache({"el:book:1": b"...", "other": b"..."})
        >>> await cache.scan_delete("el:*")
        1
    """

    def __init__(self, entries: dict[str, Any] | None = None) -> None:
        self.entries: dict[str, Any] = dict(entries or {})
        self.patterns_deleted: list[str] = []

    async def scan_delete(self, pattern: str) -> int:
        self.patterns_deleted.append(pattern)
        matched = [key for key in self.entries if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            del self.entries[key]
        return len(matched)


__all__ = ["CacheInvalidator", "InMemoryCache", "RedisCacheInvalidator"]
