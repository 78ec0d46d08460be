"""
Distributed lock interface.

Lock managers hand out scoped locks: the lock is held for the body of an
``async with`` block and released on every exit path, including exceptions
and task cancellation.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class LockInfo:
    """
    Information about an acquired lock.

    Attributes:
        key: The string key used to identify the lock
        acquired_at: When the lock was acquired
        holder_id: Optional identifier for the lock holder (for debugging)
        ttl: Seconds after which an abandoned lock expires, if the backend expires locks
    """

    key: str
    acquired_at: datetime
    holder_id: str | None = None
    ttl: float | None = None


class LockAcquisitionError(Exception):
    """
    Raised when a lock cannot be acquired.

    Attributes:
        key: The lock key that could not be acquired
        reason: Description of why acquisition failed
        timeout: The timeout value if timeout was the cause
    """

    def __init__(
        self,
        key: str,
        reason: str,
        timeout: float | None = None,
    ):
        self.key = key
        self.reason = reason
        self.timeout = timeout
        super().__init__(f"Failed to acquire lock '{key}': {reason}")


@runtime_checkable
class LockManager(Protocol):
    """
    Protocol for fleet-wide lock managers.

    Example:
        >>> async with lock_manager.acquire("maintenance:migrations", timeout=30.0):
        ...     await apply_migrations()
    """

    def acquire(
        self,
        key: str,
        *,
        timeout: float | None = None,
        ttl: float | None = None,
    ) -> AbstractAsyncContextManager[LockInfo]:
        """
        Acquire a lock as an async context manager.

        Args:
            key: String key identifying the lock
            timeout: Maximum seconds to wait (None = wait forever)
            ttl: Expiry of the lock if the holder disappears, where supported

        Raises:
            LockAcquisitionError: If the lock cannot be acquired
        """
        ...


__all__ = [
    "LockAcquisitionError",
    "LockInfo",
    "LockManager",
]
