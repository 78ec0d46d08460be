"""
Shared pytest fixtures for the indexmigrate library tests.

This module provides:
- Configuration fixtures (config)
- In-memory collaborators (search_client, lock_manager, write_gate, cache)
- Observability fixtures (tracer, metrics, otel_meter)
- Migration fixtures (registry, context, manager, manager_factory)

All collaborators are in-memory, so the engine can be exercised without
Elasticsearch, Redis or PostgreSQL.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from dataclasses import replace
from typing import Any

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from indexmigrate import metrics as metrics_module
from indexmigrate.cache import InMemoryCache
from indexmigrate.config import MigrationConfig
from indexmigrate.locks import InMemoryLockManager
from indexmigrate.metrics import MigrationMetrics
from indexmigrate.migrations import MigrationContext, MigrationManager, MigrationRegistry
from indexmigrate.observability import MockTracer
from indexmigrate.search import InMemorySearchIndexClient
from indexmigrate.write_gate import InMemoryWriteGate

# ============================================================================
# Configuration
# ============================================================================


@pytest.fixture
def config() -> MigrationConfig:
    """Migration configuration with a test prefix and a bounded lock wait."""
    return MigrationConfig(
        index_prefix="test-",
        cache_prefix="el:",
        lock_timeout=1.0,
        map_batch_size=2,
        map_workers=2,
        enable_tracing=False,
    )


# ============================================================================
# In-memory collaborators
# ============================================================================


@pytest.fixture
def search_client() -> InMemorySearchIndexClient:
    return InMemorySearchIndexClient()


@pytest.fixture
def lock_manager() -> InMemoryLockManager:
    return InMemoryLockManager(holder_id="test")


@pytest.fixture
def write_gate() -> InMemoryWriteGate:
    return InMemoryWriteGate()


@pytest.fixture
def cache() -> InMemoryCache:
    """Cache with two keys under the cache prefix and one unrelated key."""
    return InMemoryCache({"el:book:1": "a", "el:book:2": "b", "session:1": "c"})


# ============================================================================
# Observability
# ============================================================================


@pytest.fixture
def tracer() -> MockTracer:
    return MockTracer()


@pytest.fixture
def metrics() -> MigrationMetrics:
    """Metrics recording in-process totals only."""
    return MigrationMetrics("test-", enable_metrics=False)


@pytest.fixture
def otel_meter(monkeypatch: pytest.MonkeyPatch) -> Generator[InMemoryMetricReader, Any, None]:
    """
    Route indexmigrate metrics to a private MeterProvider.

    The global meter provider can only be set once per process, so the
    module's meter lookup is patched instead.

    Yields:
        InMemoryMetricReader: Reader for inspecting collected metrics.
    """
    reader = InMemoryMetricReader()
    provider = MeterProvider(metric_readers=[reader])

    metrics_module.reset_meter()
    monkeypatch.setattr(metrics_module, "_get_meter", lambda: provider.get_meter("indexmigrate"))

    yield reader

    provider.shutdown()
    metrics_module.reset_meter()


# ============================================================================
# Migrations
# ============================================================================


@pytest.fixture
def registry() -> MigrationRegistry:
    return MigrationRegistry()


@pytest.fixture
def context(
    search_client: InMemorySearchIndexClient,
    config: MigrationConfig,
    tracer: MockTracer,
) -> MigrationContext:
    return MigrationContext(client=search_client, config=config, tracer=tracer)


@pytest.fixture
def manager(
    registry: MigrationRegistry,
    search_client: InMemorySearchIndexClient,
    lock_manager: InMemoryLockManager,
    write_gate: InMemoryWriteGate,
    cache: InMemoryCache,
    config: MigrationConfig,
    tracer: MockTracer,
    metrics: MigrationMetrics,
) -> MigrationManager:
    return MigrationManager(
        registry=registry,
        client=search_client,
        lock_manager=lock_manager,
        write_gate=write_gate,
        cache=cache,
        config=config,
        tracer=tracer,
        metrics=metrics,
    )


@pytest.fixture
def manager_factory(
    registry: MigrationRegistry,
    search_client: InMemorySearchIndexClient,
    lock_manager: InMemoryLockManager,
    write_gate: InMemoryWriteGate,
    cache: InMemoryCache,
    config: MigrationConfig,
    tracer: MockTracer,
    metrics: MigrationMetrics,
) -> Callable[..., MigrationManager]:
    """Build managers sharing the collaborators above with config overrides."""

    def make(**overrides: Any) -> MigrationManager:
        return MigrationManager(
            registry=registry,
            client=search_client,
            lock_manager=lock_manager,
            write_gate=write_gate,
            cache=cache,
            config=replace(config, **overrides),
            tracer=tracer,
            metrics=metrics,
        )

    return make
