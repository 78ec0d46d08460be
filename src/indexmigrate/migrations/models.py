"""
Result and status models returned by the MigrationManager.

All models are immutable because they describe a completed operation or a
point-in-time snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class MigrationRunResult:
    """
    Result of ``MigrationManager.run()``.

    A failing unit does not raise out of run(); the failure is reported
    here instead and writes stay blocked.

    Attributes:
        watermark: Highest migration id found among existing indices
        applied: Ids applied by this run, ascending
        skipped: Registered ids at or below the watermark
        failed_migration_id: Id of the unit that failed, if any
        error: Exception raised by the failed unit
        rolled_back: Indices deleted while rolling back the failed unit
        rollback_failures: Indices that could not be deleted during rollback
        duration_ms: Time spent in run() in milliseconds
    """

    watermark: int
    applied: tuple[int, ...] = ()
    skipped: tuple[int, ...] = ()
    failed_migration_id: int | None = None
    error: Exception | None = field(default=None, compare=False)
    rolled_back: tuple[str, ...] = ()
    rollback_failures: tuple[str, ...] = ()
    duration_ms: float = 0.0

    @property
    def count(self) -> int:
        """Number of migrations applied."""
        return len(self.applied)

    @property
    def succeeded(self) -> bool:
        return self.failed_migration_id is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "watermark": self.watermark,
            "applied": list(self.applied),
            "skipped": list(self.skipped),
            "failed_migration_id": self.failed_migration_id,
            "error": repr(self.error) if self.error is not None else None,
            "rolled_back": list(self.rolled_back),
            "rollback_failures": list(self.rollback_failures),
            "duration_ms": self.duration_ms,
            "succeeded": self.succeeded,
        }


@dataclass(frozen=True)
class FinalizeResult:
    """
    Result of ``MigrationManager.finalize()``.

    Attributes:
        deleted: Superseded indices that were deleted
        failed_deletions: Superseded indices whose deletion failed
        retained: Latest registered generation of each logical index
        ignored: Indices left alone because their name does not parse or
            their id is not registered
        cache_keys_deleted: Cache keys removed after deletions
        cache_error: Error message if cache invalidation failed
        unblocked: Whether writes were unblocked
        duration_ms: Time spent in finalize() in milliseconds
    """

    deleted: tuple[str, ...] = ()
    failed_deletions: tuple[str, ...] = ()
    retained: tuple[str, ...] = ()
    ignored: tuple[str, ...] = ()
    cache_keys_deleted: int = 0
    cache_error: str | None = None
    unblocked: bool = False
    duration_ms: float = 0.0

    @property
    def cache_invalidated(self) -> bool:
        return bool(self.deleted) and self.cache_error is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "deleted": list(self.deleted),
            "failed_deletions": list(self.failed_deletions),
            "retained": list(self.retained),
            "ignored": list(self.ignored),
            "cache_keys_deleted": self.cache_keys_deleted,
            "cache_error": self.cache_error,
            "unblocked": self.unblocked,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class MigrationStatus:
    """
    Snapshot of the migration state of a deployment.

    Attributes:
        watermark: Highest migration id found among existing indices
        latest_id: Highest registered migration id
        applied: Registered ids at or below the watermark
        pending: Registered ids a run would apply, ascending
        generations: Existing generation ids per logical index, ascending
        writes_blocked: Whether the write gate is currently blocked
    """

    watermark: int
    latest_id: int | None
    applied: tuple[int, ...] = ()
    pending: tuple[int, ...] = ()
    generations: dict[str, tuple[int, ...]] = field(default_factory=dict)
    writes_blocked: bool = False

    @property
    def is_up_to_date(self) -> bool:
        return not self.pending

    @property
    def needs_finalize(self) -> bool:
        """True if any logical index has more than one generation."""
        return any(len(ids) > 1 for ids in self.generations.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "watermark": self.watermark,
            "latest_id": self.latest_id,
            "applied": list(self.applied),
            "pending": list(self.pending),
            "generations": {name: list(ids) for name, ids in self.generations.items()},
            "writes_blocked": self.writes_blocked,
            "is_up_to_date": self.is_up_to_date,
            "needs_finalize": self.needs_finalize,
        }


__all__ = ["FinalizeResult", "MigrationRunResult", "MigrationStatus"]
