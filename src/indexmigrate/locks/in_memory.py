"""
In-process lock manager.

Only coordinates tasks inside a single process. Use it for tests and
single-instance deployments; fleets need RedisLockManager or
PostgreSQLLockManager.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from indexmigrate.locks.interface import LockAcquisitionError, LockInfo

logger = logging.getLogger(__name__)


class InMemoryLockManager:
    """
    Lock manager backed by one asyncio.Lock per key.

    Example:
        >>> locks = InMemoryLockManager()
        >>> async with locks.acquire("maintenance:migrations"):
        ...     assert locks.is_held("maintenance:migrations")
    """

    def __init__(self, *, holder_id: str | None = None) -> None:
        self._holder_id = holder_id
        self._locks: dict[str, asyncio.Lock] = {}
        self.acquire_count = 0
        self.release_count = 0

    @asynccontextmanager
    async def acquire(
        self,
        key: str,
        *,
        timeout: float | None = None,
        ttl: float | None = None,
    ) -> AsyncIterator[LockInfo]:
        lock = self._locks.setdefault(key, asyncio.Lock())

        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except TimeoutError:
            raise LockAcquisitionError(
                key=key,
                reason=f"Timeout after {timeout}s",
                timeout=timeout,
            ) from None

        self.acquire_count += 1
        logger.debug("Acquired in-memory lock: key=%s", key)

        try:
            yield LockInfo(
                key=key,
                acquired_at=datetime.now(UTC),
                holder_id=self._holder_id,
                ttl=ttl,
            )
        finally:
            lock.release()
            self.release_count += 1
            logger.debug("Released in-memory lock: key=%s", key)

    def is_held(self, key: str) -> bool:
        """Check whether any task currently holds the lock."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


__all__ = ["InMemoryLockManager"]
