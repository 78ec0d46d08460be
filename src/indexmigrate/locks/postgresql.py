"""
PostgreSQL advisory lock manager.

For deployments that already share a PostgreSQL database, session-level
advisory locks provide the fleet lock without Redis:

- Independent of table/row locks
- Held for the duration of a dedicated session
- Released automatically if the holder's connection drops, so no TTL is needed

Usage:
    >>> engine = create_async_engine("postgresql+asyncpg://localhost/app")
    >>> lock_manager = PostgreSQLLockManager(async_sessionmaker(engine))
    >>> async with lock_manager.acquire("maintenance:migrations"):
    ...     await apply_migrations()
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from indexmigrate.locks.interface import LockAcquisitionError, LockInfo
from indexmigrate.observability import ATTR_LOCK_KEY, ATTR_LOCK_TIMEOUT, Tracer, create_tracer

logger = logging.getLogger(__name__)


class PostgreSQLLockManager:
    """
    Manages PostgreSQL advisory locks for fleet-wide coordination.

    Each held lock keeps its own session open, because advisory locks belong
    to the session that took them. Size the connection pool accordingly.

    Args:
        session_factory: SQLAlchemy async session factory for database access
        holder_id: Optional identifier for this lock holder (for debugging)
        retry_interval: Seconds between attempts when a timeout is given
        tracer: Optional custom Tracer instance
        enable_tracing: Whether to enable OpenTelemetry tracing.
            Ignored if tracer is explicitly provided.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        holder_id: str | None = None,
        retry_interval: float = 0.1,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ):
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._session_factory = session_factory
        self._holder_id = holder_id
        self._retry_interval = retry_interval
        self._held: set[str] = set()

    @staticmethod
    def key_to_lock_id(key: str) -> int:
        """
        Convert a string key to a 63-bit advisory lock id.

        Uses the first 8 bytes of the SHA-256 digest, masked so the value
        fits a signed PostgreSQL bigint.
        """
        digest = hashlib.sha256(key.encode()).digest()
        return int.from_bytes(digest[:8], byteorder="big") & 0x7FFFFFFFFFFFFFFF

    @asynccontextmanager
    async def acquire(
        self,
        key: str,
        *,
        timeout: float | None = None,
        ttl: float | None = None,
    ) -> AsyncIterator[LockInfo]:
        """
        Acquire an advisory lock as a context manager.

        ``ttl`` is accepted for interface compatibility and ignored: the lock
        lives as long as its session.

        Raises:
            LockAcquisitionError: If the lock cannot be acquired within timeout
                or the database is unavailable
        """
        lock_id = self.key_to_lock_id(key)

        with self._tracer.span(
            "indexmigrate.lock.acquire",
            {
                ATTR_LOCK_KEY: key,
                ATTR_LOCK_TIMEOUT: timeout if timeout is not None else -1,
            },
        ):
            session = await self._acquire_lock(key, lock_id, timeout)

        self._held.add(key)
        logger.debug("Acquired advisory lock: key=%s, lock_id=%d", key, lock_id)

        try:
            yield LockInfo(
                key=key,
                acquired_at=datetime.now(UTC),
                holder_id=self._holder_id,
            )
        finally:
            await self._release_lock(key, session, lock_id)

    async def _acquire_lock(
        self,
        key: str,
        lock_id: int,
        timeout: float | None,
    ) -> AsyncSession:
        session = self._session_factory()

        try:
            if timeout is None:
                await session.execute(
                    text("SELECT pg_advisory_lock(:lock_id)"),
                    {"lock_id": lock_id},
                )
                return session

            loop = asyncio.get_running_loop()
            deadline = loop.time() + timeout

            while True:
                result = await session.execute(
                    text("SELECT pg_try_advisory_lock(:lock_id)"),
                    {"lock_id": lock_id},
                )
                if result.scalar():
                    return session

                if loop.time() >= deadline:
                    raise LockAcquisitionError(
                        key=key,
                        reason=f"Timeout after {timeout}s",
                        timeout=timeout,
                    )

                await asyncio.sleep(self._retry_interval)

        except LockAcquisitionError:
            await session.close()
            raise
        except SQLAlchemyError as e:
            await session.close()
            raise LockAcquisitionError(key=key, reason=f"Database error: {e}") from e
        except BaseException:
            await session.close()
            raise

    async def _release_lock(self, key: str, session: AsyncSession, lock_id: int) -> None:
        with self._tracer.span("indexmigrate.lock.release", {ATTR_LOCK_KEY: key}):
            try:
                await session.execute(
                    text("SELECT pg_advisory_unlock(:lock_id)"),
                    {"lock_id": lock_id},
                )
                logger.debug("Released advisory lock: key=%s, lock_id=%d", key, lock_id)
            except SQLAlchemyError as e:
                logger.warning("Error releasing advisory lock: key=%s, error=%s", key, e)
            finally:
                self._held.discard(key)
                await session.close()

    def is_held(self, key: str) -> bool:
        """Check whether this manager currently holds a lock."""
        return key in self._held


__all__ = ["PostgreSQLLockManager"]
