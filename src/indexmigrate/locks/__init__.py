"""
Fleet lock managers for indexmigrate.

A migration run holds one named lock so that at most one instance of a
deployment migrates the indices at a time.

Example:
    >>> from indexmigrate.locks import RedisLockManager
    >>>
    >>> lock_manager = RedisLockManager.from_url("redis://localhost:6379")
    >>> try:
    ...     async with lock_manager.acquire("maintenance:migrations", timeout=5.0):
    ...         await apply_migrations()
    ... except LockAcquisitionError:
    ...     print("Another instance is migrating")
"""

from indexmigrate.locks.in_memory import InMemoryLockManager
from indexmigrate.locks.interface import LockAcquisitionError, LockInfo, LockManager
from indexmigrate.locks.postgresql import PostgreSQLLockManager
from indexmigrate.locks.redis import RedisLockManager

__all__ = [
    "InMemoryLockManager",
    "LockAcquisitionError",
    "LockInfo",
    "LockManager",
    "PostgreSQLLockManager",
    "RedisLockManager",
]
