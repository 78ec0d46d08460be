"""
Write gate - blocks database writes while indices are being migrated.

The gate works like a reader/writer lock with the roles swapped: any number
of writers may enter while the gate is open; ``block()`` closes the gate and
returns only once every writer that already entered has left. Writers that
try to enter a closed gate are rejected with WriteBlockedError instead of
queueing, so request handlers can fail fast.

Two implementations are provided:

- InMemoryWriteGate: a single process, coordinated with asyncio primitives
- RedisWriteGate: shared by every instance of a deployment through Redis

Usage:
    >>> gate = RedisWriteGate(redis)
    >>>
    >>> # In request handlers
    >>> async with gate.enter():
    ...     await save_document(doc)
    >>>
    >>> # In the migration run
    >>> await gate.block()
    >>> ...
    >>> await gate.unblock()
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class WriteBlockedError(Exception):
    """Raised when a writer tries to enter while writes are blocked."""

    def __init__(self, message: str = "Database writes are currently blocked.") -> None:
        super().__init__(message)


class WriteGateError(Exception):
    """
    Raised when the gate cannot change state.

    Attributes:
        operation: 'block' or 'unblock'
        reason: Description of the failure
    """

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Write gate {operation} failed: {reason}")


@dataclass(frozen=True)
class BlockMetrics:
    """
    Metrics for a completed block period.

    Attributes:
        duration_ms: How long writes were blocked in milliseconds
        started_at: When the block began (UTC)
        ended_at: When the block ended (UTC)
        drain_ms: How long block() waited for in-flight writers
        rejected_writers: Writers turned away while blocked
    """

    duration_ms: float
    started_at: datetime
    ended_at: datetime
    drain_ms: float = 0.0
    rejected_writers: int = 0

    @property
    def duration_seconds(self) -> float:
        """Get duration in seconds."""
        return self.duration_ms / 1000.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "duration_ms": self.duration_ms,
            "duration_seconds": self.duration_seconds,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "drain_ms": self.drain_ms,
            "rejected_writers": self.rejected_writers,
        }


@runtime_checkable
class WriteGate(Protocol):
    """Protocol for write gates toggled by the migration manager."""

    async def block(self) -> None:
        """Close the gate and wait for in-flight writers to finish."""
        ...

    async def unblock(self) -> None:
        """Open the gate."""
        ...

    async def is_blocked(self) -> bool:
        """Check whether writes are currently blocked."""
        ...


class InMemoryWriteGate:
    """
    Write gate for a single process.

    Blocking is idempotent: calling block() while already blocked only waits
    for writers to drain again. Unblocking an open gate is a no-op.

    Args:
        drain_timeout: Maximum seconds block() waits for writers to leave
            (None = wait forever)
        max_history_size: Number of completed block periods kept in history
    """

    def __init__(
        self,
        *,
        drain_timeout: float | None = None,
        max_history_size: int = 100,
    ) -> None:
        self._drain_timeout = drain_timeout
        self._max_history_size = max_history_size
        self._condition = asyncio.Condition()
        self._blocked = False
        self._writers = 0
        self._rejected = 0
        self._started_at: float | None = None
        self._started_at_utc: datetime | None = None
        self._drain_ms = 0.0
        self._history: list[BlockMetrics] = []
        self.block_calls = 0
        self.unblock_calls = 0

    @property
    def writer_count(self) -> int:
        """Number of writers currently inside the gate."""
        return self._writers

    async def block(self) -> None:
        self.block_calls += 1
        start = time.perf_counter()

        async with self._condition:
            if not self._blocked:
                self._blocked = True
                self._rejected = 0
                self._started_at = start
                self._started_at_utc = datetime.now(UTC)
                logger.info("Blocked database writes")

            try:
                await asyncio.wait_for(
                    self._condition.wait_for(lambda: self._writers == 0),
                    timeout=self._drain_timeout,
                )
            except TimeoutError:
                raise WriteGateError(
                    "block",
                    f"{self._writers} writers still active after {self._drain_timeout}s",
                ) from None

        self._drain_ms = (time.perf_counter() - start) * 1000
        logger.debug("Write gate drained in %.2fms", self._drain_ms)

    async def unblock(self) -> None:
        """Open the gate, recording the block period that ended in get_history()."""
        self.unblock_calls += 1

        async with self._condition:
            if not self._blocked or self._started_at is None or self._started_at_utc is None:
                logger.debug("Write gate not blocked (idempotent unblock)")
                return

            metrics = BlockMetrics(
                duration_ms=(time.perf_counter() - self._started_at) * 1000,
                started_at=self._started_at_utc,
                ended_at=datetime.now(UTC),
                drain_ms=self._drain_ms,
                rejected_writers=self._rejected,
            )
            self._blocked = False
            self._started_at = None
            self._started_at_utc = None

            self._history.append(metrics)
            if len(self._history) > self._max_history_size:
                self._history.pop(0)

        logger.info(
            "Unblocked database writes (duration=%.2fms, rejected=%d)",
            metrics.duration_ms,
            metrics.rejected_writers,
        )

    async def is_blocked(self) -> bool:
        return self._blocked

    @asynccontextmanager
    async def enter(self) -> AsyncIterator[None]:
        """
        Enter the gate as a writer.

        Raises:
            WriteBlockedError: If writes are blocked
        """
        async with self._condition:
            if self._blocked:
                self._rejected += 1
                raise WriteBlockedError()
            self._writers += 1

        try:
            yield
        finally:
            async with self._condition:
                self._writers -= 1
                self._condition.notify_all()

    def get_history(self) -> list[BlockMetrics]:
        """Get a copy of recent block period metrics."""
        return list(self._history)


class RedisWriteGate:
    """
    Write gate shared by a fleet through Redis.

    The blocked state is a Redis key; in-flight writers are tracked with a
    counter key. Writers increment the counter *before* checking the flag,
    so once block() has set the flag and observed a zero counter no writer
    can still be writing.

    Args:
        redis: Async Redis client
        block_key: Key holding the blocked flag
        writer_count_key: Key counting writers inside the gate
        poll_interval: Seconds between writer counter checks in block()
        drain_timeout: Maximum seconds block() waits for writers
            (None = wait forever)
    """

    def __init__(
        self,
        redis: Redis,
        *,
        block_key: str = "maintenance:writes_blocked",
        writer_count_key: str = "maintenance:writers",
        poll_interval: float = 0.1,
        drain_timeout: float | None = None,
    ) -> None:
        self._redis = redis
        self._block_key = block_key
        self._writer_count_key = writer_count_key
        self._poll_interval = poll_interval
        self._drain_timeout = drain_timeout

    async def block(self) -> None:
        try:
            await self._redis.set(self._block_key, "1")
        except RedisError as e:
            raise WriteGateError("block", f"Redis error: {e}") from e

        logger.info("Blocked database writes (key=%s)", self._block_key)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._drain_timeout if self._drain_timeout is not None else None

        while True:
            try:
                raw = await self._redis.get(self._writer_count_key)
            except RedisError as e:
                raise WriteGateError("block", f"Redis error: {e}") from e

            count = int(raw) if raw is not None else 0
            if count <= 0:
                return

            if deadline is not None and loop.time() >= deadline:
                raise WriteGateError(
                    "block",
                    f"{count} writers still active after {self._drain_timeout}s",
                )

            logger.debug("Waiting for %d writers to finish", count)
            await asyncio.sleep(self._poll_interval)

    async def unblock(self) -> None:
        try:
            await self._redis.delete(self._block_key)
        except RedisError as e:
            raise WriteGateError("unblock", f"Redis error: {e}") from e

        logger.info("Unblocked database writes (key=%s)", self._block_key)

    async def is_blocked(self) -> bool:
        return bool(await self._redis.exists(self._block_key))

    @asynccontextmanager
    async def enter(self) -> AsyncIterator[None]:
        """
        Enter the gate as a writer.

        Raises:
            WriteBlockedError: If writes are blocked
        """
        await self._redis.incr(self._writer_count_key)

        try:
            if await self._redis.exists(self._block_key):
                raise WriteBlockedError()
            yield
        finally:
            await self._redis.decr(self._writer_count_key)


__all__ = [
    "BlockMetrics",
    "InMemoryWriteGate",
    "RedisWriteGate",
    "WriteBlockedError",
    "WriteGate",
    "WriteGateError",
]
