"""
OpenTelemetry metrics for migration runs.

Metrics are recorded through the OpenTelemetry metrics API. Without an SDK
meter provider configured by the host application the API instruments are
no-ops, so recording is always safe.

Example:
    >>> from indexmigrate.metrics import MigrationMetrics
    >>>
    >>> metrics = MigrationMetrics(index_prefix="idx-")
    >>> metrics.record_migration_applied(202009022106, duration_seconds=12.5)
    >>> metrics.record_index_deleted("book", reason="finalize")

Metrics Exposed:
    - indexmigrate.migrations.applied (Counter): Migrations applied successfully
    - indexmigrate.migrations.failed (Counter): Migrations that failed and were rolled back
    - indexmigrate.migration.duration (Histogram): Time spent applying one migration
    - indexmigrate.indices.deleted (Counter): Indices deleted by rollback or finalize
    - indexmigrate.indices.delete_failures (Counter): Index deletions that failed

All metrics carry the 'index_prefix' attribute for filtering.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from opentelemetry import metrics

_meter: Any = None


def _get_meter() -> Any:
    """Get or create the meter for the indexmigrate namespace."""
    global _meter
    if _meter is None:
        _meter = metrics.get_meter("indexmigrate", version="1.0.0")
    return _meter


def reset_meter() -> None:
    """
    Reset the global meter instance.

    Useful for testing to ensure fresh meter state between tests.
    """
    global _meter
    _meter = None


@dataclass(frozen=True)
class MigrationMetricSnapshot:
    """
    Snapshot of metric values recorded by one MigrationMetrics instance.

    Attributes:
        migrations_applied: Count of migrations applied
        migrations_failed: Count of migrations that failed
        indices_deleted: Deleted index count keyed by reason
        delete_failures: Failed deletion count keyed by reason
        durations: Recorded migration durations in seconds, keyed by id
    """

    migrations_applied: int = 0
    migrations_failed: int = 0
    indices_deleted: dict[str, int] = field(default_factory=dict)
    delete_failures: dict[str, int] = field(default_factory=dict)
    durations: dict[int, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "migrations_applied": self.migrations_applied,
            "migrations_failed": self.migrations_failed,
            "indices_deleted": dict(self.indices_deleted),
            "delete_failures": dict(self.delete_failures),
            "durations": {str(k): v for k, v in self.durations.items()},
        }


class MigrationMetrics:
    """
    Container for migration metric instruments.

    Args:
        index_prefix: Deployment index prefix, attached to every measurement
        enable_metrics: Whether measurements are sent to OpenTelemetry
    """

    def __init__(self, index_prefix: str = "", *, enable_metrics: bool = True) -> None:
        self.index_prefix = index_prefix
        self.enable_metrics = enable_metrics

        self._applied = 0
        self._failed = 0
        self._deleted: dict[str, int] = {}
        self._delete_failures: dict[str, int] = {}
        self._durations: dict[int, float] = {}

        self._applied_counter: Any = None
        self._failed_counter: Any = None
        self._duration_histogram: Any = None
        self._deleted_counter: Any = None
        self._delete_failures_counter: Any = None

        if enable_metrics:
            self._setup_metrics()

    def _setup_metrics(self) -> None:
        meter = _get_meter()

        self._applied_counter = meter.create_counter(
            name="indexmigrate.migrations.applied",
            unit="migrations",
            description="Number of migrations applied successfully",
        )
        self._failed_counter = meter.create_counter(
            name="indexmigrate.migrations.failed",
            unit="migrations",
            description="Number of migrations that failed and were rolled back",
        )
        self._duration_histogram = meter.create_histogram(
            name="indexmigrate.migration.duration",
            unit="s",
            description="Time spent applying a single migration in seconds",
        )
        self._deleted_counter = meter.create_counter(
            name="indexmigrate.indices.deleted",
            unit="indices",
            description="Number of indices deleted by rollback or finalize",
        )
        self._delete_failures_counter = meter.create_counter(
            name="indexmigrate.indices.delete_failures",
            unit="indices",
            description="Number of index deletions that failed",
        )

    def _base_attributes(self) -> dict[str, str]:
        return {"index_prefix": self.index_prefix}

    def record_migration_applied(self, migration_id: int, duration_seconds: float) -> None:
        """Record a migration that completed successfully."""
        attrs = {**self._base_attributes(), "migration_id": str(migration_id)}
        if self.enable_metrics:
            self._applied_counter.add(1, attrs)
            self._duration_histogram.record(duration_seconds, {**attrs, "success": "true"})

        self._applied += 1
        self._durations[migration_id] = duration_seconds

    def record_migration_failed(self, migration_id: int, duration_seconds: float) -> None:
        """Record a migration that raised and was rolled back."""
        attrs = {**self._base_attributes(), "migration_id": str(migration_id)}
        if self.enable_metrics:
            self._failed_counter.add(1, attrs)
            self._duration_histogram.record(duration_seconds, {**attrs, "success": "false"})

        self._failed += 1
        self._durations[migration_id] = duration_seconds

    def record_index_deleted(self, logical_name: str, *, reason: str) -> None:
        """
        Record a deleted index.

        Args:
            logical_name: Logical name of the deleted generation
            reason: 'rollback' or 'finalize'
        """
        if self.enable_metrics:
            self._deleted_counter.add(
                1,
                {**self._base_attributes(), "logical_name": logical_name, "reason": reason},
            )
        self._deleted[reason] = self._deleted.get(reason, 0) + 1

    def record_delete_failure(self, logical_name: str, *, reason: str) -> None:
        """Record an index deletion that failed."""
        if self.enable_metrics:
            self._delete_failures_counter.add(
                1,
                {**self._base_attributes(), "logical_name": logical_name, "reason": reason},
            )
        self._delete_failures[reason] = self._delete_failures.get(reason, 0) + 1

    def snapshot(self) -> MigrationMetricSnapshot:
        """Get the values recorded so far by this instance."""
        return MigrationMetricSnapshot(
            migrations_applied=self._applied,
            migrations_failed=self._failed,
            indices_deleted=dict(self._deleted),
            delete_failures=dict(self._delete_failures),
            durations=dict(self._durations),
        )


__all__ = [
    "MigrationMetricSnapshot",
    "MigrationMetrics",
    "reset_meter",
]
