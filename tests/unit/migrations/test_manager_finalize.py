"""
Unit tests for MigrationManager.finalize() and the read-only status queries.

Tests cover:
- Deleting superseded generations and keeping the latest registered one
- Ignoring unparseable and unregistered indices
- Cache invalidation after deletions
- Unblocking writes exactly once
- Fleet lock handling
- get_watermark() and status()
"""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from indexmigrate.cache import InMemoryCache
from indexmigrate.config import MigrationConfig
from indexmigrate.exceptions import SearchClientError
from indexmigrate.locks import InMemoryLockManager, LockAcquisitionError
from indexmigrate.metrics import MigrationMetrics
from indexmigrate.migrations import MigrationManager, MigrationRegistry
from indexmigrate.observability import MockTracer
from indexmigrate.search import InMemorySearchIndexClient
from indexmigrate.write_gate import InMemoryWriteGate

from tests.fixtures import scripted


@pytest.fixture
def registry_123(registry: MigrationRegistry) -> MigrationRegistry:
    for migration_id in (1, 2, 3):
        registry.register(scripted(migration_id), migration_id)
    return registry


@pytest_asyncio.fixture
async def blocked(write_gate: InMemoryWriteGate) -> InMemoryWriteGate:
    await write_gate.block()
    return write_gate


# =============================================================================
# Deletion
# =============================================================================


@pytest.mark.usefixtures("registry_123")
class TestFinalizeDeletes:
    """Tests for which indices finalize deletes."""

    @pytest.mark.asyncio
    async def test_keeps_only_latest_generation(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
    ) -> None:
        for name in ("test-foo-1", "test-foo-2", "test-foo-3", "test-bar-1"):
            search_client.seed(name)

        result = await manager.finalize()

        assert result.deleted == ("test-foo-1", "test-foo-2")
        assert result.retained == ("test-bar-1", "test-foo-3")
        assert result.failed_deletions == ()
        assert search_client.index_names() == ["test-bar-1", "test-foo-3"]

    @pytest.mark.asyncio
    async def test_ignores_unparseable_and_unregistered(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
    ) -> None:
        for name in ("test-foo-1", "test-foo-99", "test-foo-legacy", "other-foo-2"):
            search_client.seed(name)

        result = await manager.finalize()

        assert result.deleted == ()
        assert result.retained == ("test-foo-1",)
        assert result.ignored == ("test-foo-99", "test-foo-legacy")
        assert search_client.index_names() == [
            "other-foo-2",
            "test-foo-1",
            "test-foo-99",
            "test-foo-legacy",
        ]

    @pytest.mark.asyncio
    async def test_latest_registered_generation_is_kept_over_unregistered(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
    ) -> None:
        search_client.seed("test-foo-2")
        search_client.seed("test-foo-7")

        result = await manager.finalize()

        assert result.retained == ("test-foo-2",)
        assert result.ignored == ("test-foo-7",)

    @pytest.mark.asyncio
    async def test_deletion_failure_does_not_stop_others(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
        metrics: MigrationMetrics,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        for name in ("test-foo-1", "test-foo-2", "test-foo-3"):
            search_client.seed(name)
        original_delete = search_client.delete_index

        async def delete_index(name: str) -> None:
            if name == "test-foo-1":
                raise SearchClientError("delete", name, "cluster unavailable")
            await original_delete(name)

        monkeypatch.setattr(search_client, "delete_index", delete_index)

        result = await manager.finalize()

        assert result.deleted == ("test-foo-2",)
        assert result.failed_deletions == ("test-foo-1",)
        assert result.unblocked is True
        assert metrics.snapshot().indices_deleted == {"finalize": 1}
        assert metrics.snapshot().delete_failures == {"finalize": 1}

    @pytest.mark.asyncio
    async def test_nothing_to_delete(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
    ) -> None:
        search_client.seed("test-foo-3")

        result = await manager.finalize()

        assert result.deleted == ()
        assert result.retained == ("test-foo-3",)

    @pytest.mark.asyncio
    async def test_second_finalize_is_a_noop(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
    ) -> None:
        search_client.seed("test-foo-1")
        search_client.seed("test-foo-2")

        await manager.finalize()
        second = await manager.finalize()

        assert second.deleted == ()
        assert search_client.index_names() == ["test-foo-2"]


# =============================================================================
# Cache and write gate
# =============================================================================


@pytest.mark.usefixtures("registry_123")
class TestFinalizeCacheAndWrites:
    """Tests for cache invalidation and unblocking."""

    @pytest.mark.asyncio
    async def test_cache_invalidated_after_deletions(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
        cache: InMemoryCache,
    ) -> None:
        search_client.seed("test-foo-1")
        search_client.seed("test-foo-2")

        result = await manager.finalize()

        assert result.cache_keys_deleted == 2
        assert result.cache_invalidated is True
        assert cache.patterns_deleted == ["el:*"]
        assert cache.entries == {"session:1": "c"}

    @pytest.mark.asyncio
    async def test_cache_untouched_without_deletions(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
        cache: InMemoryCache,
    ) -> None:
        search_client.seed("test-foo-1")

        result = await manager.finalize()

        assert result.cache_invalidated is False
        assert cache.patterns_deleted == []
        assert len(cache.entries) == 3

    @pytest.mark.asyncio
    async def test_cache_error_is_recorded(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
        cache: InMemoryCache,
        blocked: InMemoryWriteGate,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        search_client.seed("test-foo-1")
        search_client.seed("test-foo-2")
        monkeypatch.setattr(cache, "scan_delete", AsyncMock(side_effect=RuntimeError("cache down")))

        result = await manager.finalize()

        assert result.deleted == ("test-foo-1",)
        assert result.cache_error == "cache down"
        assert result.cache_invalidated is False
        assert await blocked.is_blocked() is False

    @pytest.mark.asyncio
    async def test_unblocks_exactly_once(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
        blocked: InMemoryWriteGate,
    ) -> None:
        search_client.seed("test-foo-1")
        search_client.seed("test-foo-2")

        result = await manager.finalize()

        assert result.unblocked is True
        assert blocked.unblock_calls == 1
        assert await blocked.is_blocked() is False

    @pytest.mark.asyncio
    async def test_unblocks_without_deletions(
        self,
        manager: MigrationManager,
        blocked: InMemoryWriteGate,
    ) -> None:
        result = await manager.finalize()

        assert result.deleted == ()
        assert result.unblocked is True
        assert blocked.unblock_calls == 1
        assert await blocked.is_blocked() is False

    @pytest.mark.asyncio
    async def test_listing_failure_still_unblocks(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
        blocked: InMemoryWriteGate,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            search_client,
            "list_indices",
            AsyncMock(side_effect=SearchClientError("list", "test-*", "timeout")),
        )

        with pytest.raises(SearchClientError):
            await manager.finalize()

        assert await blocked.is_blocked() is False


# =============================================================================
# Fleet lock
# =============================================================================


@pytest.mark.usefixtures("registry_123")
class TestFinalizeLock:
    @pytest.mark.asyncio
    async def test_takes_and_releases_lock(
        self,
        manager: MigrationManager,
        lock_manager: InMemoryLockManager,
        config: MigrationConfig,
    ) -> None:
        await manager.finalize()

        assert lock_manager.acquire_count == 1
        assert not lock_manager.is_held(config.lock_key)

    @pytest.mark.asyncio
    async def test_lock_failure_leaves_writes_blocked(
        self,
        manager_factory: Callable[..., MigrationManager],
        search_client: InMemorySearchIndexClient,
        lock_manager: InMemoryLockManager,
        blocked: InMemoryWriteGate,
        config: MigrationConfig,
    ) -> None:
        search_client.seed("test-foo-1")
        search_client.seed("test-foo-2")
        manager = manager_factory(lock_timeout=0.01)

        async with lock_manager.acquire(config.lock_key):
            with pytest.raises(LockAcquisitionError):
                await manager.finalize()

        assert await blocked.is_blocked() is True
        assert blocked.unblock_calls == 0
        assert search_client.deleted == []

    @pytest.mark.asyncio
    async def test_lock_can_be_skipped(
        self,
        manager_factory: Callable[..., MigrationManager],
        search_client: InMemorySearchIndexClient,
        lock_manager: InMemoryLockManager,
        config: MigrationConfig,
    ) -> None:
        search_client.seed("test-foo-1")
        search_client.seed("test-foo-2")
        manager = manager_factory(lock_finalize=False, lock_timeout=0.01)

        async with lock_manager.acquire(config.lock_key):
            result = await manager.finalize()

        assert result.deleted == ("test-foo-1",)
        assert lock_manager.acquire_count == 1

    @pytest.mark.asyncio
    async def test_finalize_span(self, manager: MigrationManager, tracer: MockTracer) -> None:
        await manager.finalize()

        assert tracer.span_names == ["indexmigrate.finalize"]
        assert tracer.find("indexmigrate.finalize").attributes["indexmigrate.indices.deleted"] == 0


# =============================================================================
# Watermark and status
# =============================================================================


class TestStatus:
    """Tests for get_watermark() and status()."""

    @pytest.mark.asyncio
    async def test_watermark_of_empty_deployment(self, manager: MigrationManager) -> None:
        assert await manager.get_watermark() == 0

    @pytest.mark.asyncio
    async def test_watermark_is_highest_parsed_id(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
    ) -> None:
        search_client.seed("test-foo-1")
        search_client.seed("test-bar-202009022106")
        search_client.seed("test-legacy")
        search_client.seed("other-foo-9999999999999")

        assert await manager.get_watermark() == 202009022106

    @pytest.mark.asyncio
    @pytest.mark.usefixtures("registry_123")
    async def test_status(
        self,
        manager: MigrationManager,
        search_client: InMemorySearchIndexClient,
        blocked: InMemoryWriteGate,
    ) -> None:
        for name in ("test-foo-1", "test-foo-2", "test-bar-1"):
            search_client.seed(name)

        status = await manager.status()

        assert status.watermark == 2
        assert status.latest_id == 3
        assert status.applied == (1, 2)
        assert status.pending == (3,)
        assert status.generations == {"bar": (1,), "foo": (1, 2)}
        assert status.writes_blocked is True
        assert status.is_up_to_date is False
        assert status.needs_finalize is True

    @pytest.mark.asyncio
    async def test_status_takes_no_lock(
        self,
        manager: MigrationManager,
        lock_manager: InMemoryLockManager,
        config: MigrationConfig,
    ) -> None:
        async with lock_manager.acquire(config.lock_key):
            status = await manager.status()

        assert status.latest_id is None
        assert status.is_up_to_date is True
        assert lock_manager.acquire_count == 1

    @pytest.mark.asyncio
    async def test_status_after_run_and_finalize(
        self,
        manager: MigrationManager,
        registry: MigrationRegistry,
    ) -> None:
        registry.register(scripted(1), 1)
        registry.register(scripted(2), 2)

        await manager.run()
        before = await manager.status()
        await manager.finalize()
        after = await manager.status()

        assert before.needs_finalize is True
        assert before.writes_blocked is True
        assert after.generations == {"foo": (2,)}
        assert after.needs_finalize is False
        assert after.writes_blocked is False
        assert after.is_up_to_date is True
