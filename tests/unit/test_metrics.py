"""
Unit tests for MigrationMetrics.

Tests cover:
- In-process totals and snapshots
- Instruments recorded through OpenTelemetry
- Disabled metrics
"""

from typing import Any

import pytest
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from indexmigrate.metrics import MigrationMetrics, MigrationMetricSnapshot


def _collect(reader: InMemoryMetricReader) -> dict[str, list[Any]]:
    """Map metric names to their data points."""
    data = reader.get_metrics_data()
    points: dict[str, list[Any]] = {}
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                points.setdefault(metric.name, []).extend(metric.data.data_points)
    return points


class TestMigrationMetricsSnapshot:
    """Tests for in-process totals."""

    def test_empty_snapshot(self) -> None:
        metrics = MigrationMetrics(enable_metrics=False)

        assert metrics.snapshot() == MigrationMetricSnapshot()

    def test_records_applied_and_failed(self) -> None:
        metrics = MigrationMetrics(enable_metrics=False)

        metrics.record_migration_applied(1, duration_seconds=0.5)
        metrics.record_migration_applied(2, duration_seconds=1.5)
        metrics.record_migration_failed(3, duration_seconds=0.1)

        snapshot = metrics.snapshot()
        assert snapshot.migrations_applied == 2
        assert snapshot.migrations_failed == 1
        assert snapshot.durations == {1: 0.5, 2: 1.5, 3: 0.1}

    def test_records_deletions_by_reason(self) -> None:
        metrics = MigrationMetrics(enable_metrics=False)

        metrics.record_index_deleted("book", reason="finalize")
        metrics.record_index_deleted("user", reason="finalize")
        metrics.record_index_deleted("book", reason="rollback")
        metrics.record_delete_failure("book", reason="finalize")

        snapshot = metrics.snapshot()
        assert snapshot.indices_deleted == {"finalize": 2, "rollback": 1}
        assert snapshot.delete_failures == {"finalize": 1}

    def test_snapshot_is_a_copy(self) -> None:
        metrics = MigrationMetrics(enable_metrics=False)
        snapshot = metrics.snapshot()

        metrics.record_index_deleted("book", reason="finalize")

        assert snapshot.indices_deleted == {}

    def test_to_dict(self) -> None:
        metrics = MigrationMetrics(enable_metrics=False)
        metrics.record_migration_applied(7, duration_seconds=2.0)

        data = metrics.snapshot().to_dict()

        assert data["migrations_applied"] == 1
        assert data["durations"] == {"7": 2.0}


class TestMigrationMetricsOpenTelemetry:
    """Tests for instruments recorded through OpenTelemetry."""

    def test_applied_counter_and_duration(self, otel_meter: InMemoryMetricReader) -> None:
        metrics = MigrationMetrics("idx-")

        metrics.record_migration_applied(202009022106, duration_seconds=3.0)

        points = _collect(otel_meter)
        [counter] = points["indexmigrate.migrations.applied"]
        assert counter.value == 1
        assert counter.attributes["index_prefix"] == "idx-"
        assert counter.attributes["migration_id"] == "202009022106"

        [duration] = points["indexmigrate.migration.duration"]
        assert duration.sum == pytest.approx(3.0)
        assert duration.attributes["success"] == "true"

    def test_failed_counter(self, otel_meter: InMemoryMetricReader) -> None:
        metrics = MigrationMetrics("idx-")

        metrics.record_migration_failed(5, duration_seconds=0.2)

        points = _collect(otel_meter)
        assert points["indexmigrate.migrations.failed"][0].value == 1
        assert points["indexmigrate.migration.duration"][0].attributes["success"] == "false"

    def test_deletion_counters(self, otel_meter: InMemoryMetricReader) -> None:
        metrics = MigrationMetrics("idx-")

        metrics.record_index_deleted("book", reason="finalize")
        metrics.record_delete_failure("book", reason="rollback")

        points = _collect(otel_meter)
        [deleted] = points["indexmigrate.indices.deleted"]
        assert deleted.attributes["logical_name"] == "book"
        assert deleted.attributes["reason"] == "finalize"
        [failed] = points["indexmigrate.indices.delete_failures"]
        assert failed.attributes["reason"] == "rollback"

    def test_disabled_metrics_record_nothing(self, otel_meter: InMemoryMetricReader) -> None:
        metrics = MigrationMetrics("idx-", enable_metrics=False)

        metrics.record_migration_applied(1, duration_seconds=1.0)

        data = otel_meter.get_metrics_data()
        assert data is None or _collect(otel_meter) == {}
        assert metrics.snapshot().migrations_applied == 1
