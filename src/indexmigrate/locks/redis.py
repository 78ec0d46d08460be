"""
Redis lock manager for fleet-wide coordination.

A simple single-instance Redis lock, not the multi-node Redlock algorithm:

- Acquisition is ``SET key token NX PX ttl``, retried with a growing backoff
- While held, a background task extends the expiry every ``ttl / 2``
- Release deletes the key only if it still holds this holder's token
- A crashed holder's lock expires after ``ttl``

Usage:
    >>> lock_manager = RedisLockManager.from_url("redis://localhost:6379")
    >>> async with lock_manager.acquire("maintenance:migrations", ttl=30.0):
    ...     # Critical section - only one holder across the fleet
    ...     await apply_migrations()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from redis.asyncio import Redis
from redis.exceptions import RedisError

from indexmigrate.locks.interface import LockAcquisitionError, LockInfo
from indexmigrate.observability import (
    ATTR_LOCK_KEY,
    ATTR_LOCK_TIMEOUT,
    ATTR_LOCK_TTL,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)

# Deletes the key only when it still holds our token.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Extends the expiry only when the key still holds our token.
_EXTEND_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class RedisLockManager:
    """
    Manages Redis-backed locks shared by every instance of a deployment.

    Args:
        redis: Async Redis client
        key_prefix: Prefix prepended to every lock key in Redis
        default_ttl: Expiry in seconds when acquire() is called without ttl
        holder_id: Optional identifier for this lock holder (for debugging)
        tracer: Optional custom Tracer instance
        enable_tracing: Whether to enable OpenTelemetry tracing.
            Ignored if tracer is explicitly provided.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        key_prefix: str = "lock:",
        default_ttl: float = 30.0,
        holder_id: str | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._redis = redis
        self._key_prefix = key_prefix
        self._default_ttl = default_ttl
        self._holder_id = holder_id
        self._held: dict[str, str] = {}

    @classmethod
    def from_url(cls, url: str, **kwargs: object) -> RedisLockManager:
        """Create a lock manager with its own Redis connection pool."""
        return cls(Redis.from_url(url), **kwargs)  # type: ignore[arg-type]

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    @asynccontextmanager
    async def acquire(
        self,
        key: str,
        *,
        timeout: float | None = None,
        ttl: float | None = None,
    ) -> AsyncIterator[LockInfo]:
        """
        Acquire a lock as a context manager.

        The lock is released when the context exits, whether normally, due to
        an exception or due to cancellation.

        Args:
            key: String key identifying the lock
            timeout: Maximum seconds to wait for the lock (None = wait forever)
            ttl: Lock expiry in seconds, renewed while held

        Yields:
            LockInfo with lock details

        Raises:
            LockAcquisitionError: If the lock cannot be acquired within timeout
                or Redis is unavailable
        """
        effective_ttl = ttl if ttl is not None else self._default_ttl
        ttl_ms = max(1, int(effective_ttl * 1000))
        redis_key = self._redis_key(key)
        token = uuid.uuid4().hex

        with self._tracer.span(
            "indexmigrate.lock.acquire",
            {
                ATTR_LOCK_KEY: key,
                ATTR_LOCK_TIMEOUT: timeout if timeout is not None else -1,
                ATTR_LOCK_TTL: effective_ttl,
            },
        ):
            await self._acquire_lock(key, redis_key, token, ttl_ms, timeout)

        self._held[key] = token
        extender = asyncio.create_task(self._extend_until_released(key, redis_key, token, ttl_ms))

        logger.debug("Acquired redis lock: key=%s, ttl_ms=%d", key, ttl_ms)

        try:
            yield LockInfo(
                key=key,
                acquired_at=datetime.now(UTC),
                holder_id=self._holder_id,
                ttl=effective_ttl,
            )
        finally:
            extender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await extender
            await self._release_lock(key, redis_key, token)

    async def _acquire_lock(
        self,
        key: str,
        redis_key: str,
        token: str,
        ttl_ms: int,
        timeout: float | None,
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        attempt = 0

        while True:
            try:
                acquired = await self._redis.set(redis_key, token, px=ttl_ms, nx=True)
            except RedisError as e:
                raise LockAcquisitionError(key=key, reason=f"Redis error: {e}") from e

            if acquired:
                return

            attempt += 1
            if deadline is not None and loop.time() >= deadline:
                raise LockAcquisitionError(
                    key=key,
                    reason=f"Timeout after {timeout}s",
                    timeout=timeout,
                )

            await asyncio.sleep(0.01 * min(attempt, 10))

    async def _extend_until_released(
        self,
        key: str,
        redis_key: str,
        token: str,
        ttl_ms: int,
    ) -> None:
        interval = ttl_ms / 2000

        while True:
            await asyncio.sleep(interval)

            try:
                extended = await self._redis.eval(_EXTEND_SCRIPT, 1, redis_key, token, ttl_ms)
            except RedisError as e:
                logger.warning("Error extending redis lock: key=%s, error=%s", key, e)
                continue

            if not extended:
                logger.error(
                    "Redis lock lost before release: key=%s (expired or taken over)",
                    key,
                )
                return

    async def _release_lock(self, key: str, redis_key: str, token: str) -> None:
        with self._tracer.span("indexmigrate.lock.release", {ATTR_LOCK_KEY: key}):
            try:
                released = await self._redis.eval(_RELEASE_SCRIPT, 1, redis_key, token)
                if released:
                    logger.debug("Released redis lock: key=%s", key)
                else:
                    logger.warning("Redis lock already expired on release: key=%s", key)
            except RedisError as e:
                logger.warning("Error releasing redis lock: key=%s, error=%s", key, e)
            finally:
                self._held.pop(key, None)

    def is_held(self, key: str) -> bool:
        """Check whether this manager currently holds a lock."""
        return key in self._held


__all__ = ["RedisLockManager"]
