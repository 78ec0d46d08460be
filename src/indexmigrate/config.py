"""
Configuration for the migration engine.

This module provides:
- MigrationConfig: index, cache, lock and reindex settings
- DEFAULT_LOCK_KEY: the fleet-wide lock key used by migration runs
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any

DEFAULT_LOCK_KEY = "maintenance:migrations"


@dataclass(frozen=True)
class MigrationConfig:
    """
    Configuration for migration runs.

    Attributes:
        index_prefix: Prefix of every index owned by the deployment
        cache_prefix: Prefix of cache keys invalidated after finalize
        lock_key: Key of the fleet-wide migration lock
        lock_timeout: Seconds to wait for the fleet lock (None = wait forever)
        lock_ttl: Seconds before an abandoned fleet lock expires
        lock_finalize: Whether finalize takes the fleet lock as run does
        shard_count: Primary shards of newly created indices
        replica_count: Replicas of newly created indices
        refresh_interval: Refresh interval of newly created indices
        map_batch_size: Documents read per scroll page while reindexing
        map_workers: Maximum concurrent bulk requests while reindexing
        scroll_duration: Scroll context keep-alive while reindexing
        enable_tracing: Enable OpenTelemetry tracing

    Example:
        >>> config = MigrationConfig(index_prefix="nhitomi-", lock_timeout=30.0)
        >>> config.cache_pattern
        'el:*'
    """

    # Naming
    index_prefix: str = "idx-"
    cache_prefix: str = "el:"

    # Fleet lock
    lock_key: str = DEFAULT_LOCK_KEY
    lock_timeout: float | None = None
    lock_ttl: float = 30.0
    lock_finalize: bool = True

    # Index settings
    shard_count: int = 5
    replica_count: int = 1
    refresh_interval: str = "1s"

    # Reindexing
    map_batch_size: int = 1000
    map_workers: int = 16
    scroll_duration: str = "1m"

    enable_tracing: bool = True

    def __post_init__(self) -> None:
        if not self.lock_key:
            raise ValueError("lock_key must not be empty")
        if self.lock_timeout is not None and self.lock_timeout < 0:
            raise ValueError(f"lock_timeout must be >= 0, got {self.lock_timeout}")
        if self.lock_ttl <= 0:
            raise ValueError(f"lock_ttl must be > 0, got {self.lock_ttl}")
        if self.shard_count < 1:
            raise ValueError(f"shard_count must be >= 1, got {self.shard_count}")
        if self.replica_count < 0:
            raise ValueError(f"replica_count must be >= 0, got {self.replica_count}")
        if self.map_batch_size < 1:
            raise ValueError(f"map_batch_size must be >= 1, got {self.map_batch_size}")
        if self.map_workers < 1:
            raise ValueError(f"map_workers must be >= 1, got {self.map_workers}")

    @property
    def cache_pattern(self) -> str:
        """Scan pattern covering every cache key of the deployment."""
        return f"{self.cache_prefix}*"

    def index_settings(self) -> dict[str, Any]:
        """Settings applied to indices created by migrations."""
        return {
            "number_of_shards": self.shard_count,
            "number_of_replicas": self.replica_count,
            "refresh_interval": self.refresh_interval,
        }

    @classmethod
    def from_env(cls, prefix: str = "INDEXMIGRATE_") -> MigrationConfig:
        """
        Load configuration from environment variables.

        Each field maps to ``{prefix}{FIELD_NAME}``, e.g.
        ``INDEXMIGRATE_INDEX_PREFIX``. Unset variables keep their defaults.
        An empty ``LOCK_TIMEOUT`` means wait forever.
        """
        values: dict[str, Any] = {}

        for f in fields(cls):
            raw = os.getenv(f"{prefix}{f.name.upper()}")
            if raw is None:
                continue
            values[f.name] = _coerce(f.name, raw)

        return cls(**values)


_BOOL_FIELDS = {"lock_finalize", "enable_tracing"}
_INT_FIELDS = {"shard_count", "replica_count", "map_batch_size", "map_workers"}
_FLOAT_FIELDS = {"lock_ttl"}


def _coerce(name: str, raw: str) -> Any:
    if name in _BOOL_FIELDS:
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if name in _INT_FIELDS:
        return int(raw)
    if name in _FLOAT_FIELDS:
        return float(raw)
    if name == "lock_timeout":
        return float(raw) if raw.strip() else None
    return raw


__all__ = ["DEFAULT_LOCK_KEY", "MigrationConfig"]
