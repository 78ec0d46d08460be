"""
MigrationManager - applies outstanding migrations and finalizes them.

Migrating a deployment is a two step process:

1. ``run()`` blocks writes, takes the fleet lock and applies every
   registered migration newer than the watermark (the highest migration id
   among existing indices). New data is written into new index generations
   only, so an older deployment keeps serving from the previous ones.
2. ``finalize()`` is called once the new deployment is confirmed healthy.
   It deletes superseded generations, invalidates the cache and unblocks
   writes.

Writes stay blocked after ``run()`` returns, whether it succeeded or not.
Only ``finalize()`` unblocks them.

Usage:
    >>> manager = MigrationManager(
    ...     registry=registry,
    ...     client=ElasticsearchIndexClient.from_url("http://localhost:9200"),
    ...     lock_manager=RedisLockManager(redis),
    ...     write_gate=RedisWriteGate(redis),
    ...     cache=RedisCacheInvalidator(redis),
    ...     config=MigrationConfig(index_prefix="nhitomi-"),
    ... )
    >>> result = await manager.run()
    >>> if not result.succeeded:
    ...     print(f"Migration {result.failed_migration_id} failed: {result.error}")
    >>> ...
    >>> await manager.finalize()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass

from indexmigrate.cache import CacheInvalidator
from indexmigrate.config import MigrationConfig
from indexmigrate.locks.interface import LockInfo, LockManager
from indexmigrate.metrics import MigrationMetrics
from indexmigrate.migrations.base import Migration
from indexmigrate.migrations.context import MigrationContext
from indexmigrate.migrations.models import FinalizeResult, MigrationRunResult, MigrationStatus
from indexmigrate.migrations.registry import MigrationRegistry
from indexmigrate.naming import IndexName, IndexNaming
from indexmigrate.observability import (
    ATTR_INDEX_PREFIX,
    ATTR_INDICES_DELETED,
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_NAME,
    ATTR_MIGRATION_SUCCESS,
    ATTR_MIGRATIONS_APPLIED,
    ATTR_WATERMARK,
    Tracer,
    create_tracer,
)
from indexmigrate.search.interface import SearchIndexClient
from indexmigrate.write_gate import WriteGate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Rollback:
    deleted: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()


class MigrationManager:
    """
    Orchestrates migration runs and finalization.

    Args:
        registry: Registered migration units
        client: Search engine client
        lock_manager: Fleet-wide lock manager
        write_gate: Write gate blocked by run() and unblocked by finalize()
        cache: Cache invalidated by finalize() after deletions
        config: Migration configuration
        tracer: Optional custom Tracer instance
        metrics: Optional MigrationMetrics instance
    """

    def __init__(
        self,
        registry: MigrationRegistry,
        client: SearchIndexClient,
        lock_manager: LockManager,
        write_gate: WriteGate,
        cache: CacheInvalidator,
        config: MigrationConfig | None = None,
        *,
        tracer: Tracer | None = None,
        metrics: MigrationMetrics | None = None,
    ) -> None:
        self._config = config or MigrationConfig()
        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)
        self._metrics = metrics or MigrationMetrics(self._config.index_prefix)

        self._registry = registry
        self._client = client
        self._lock_manager = lock_manager
        self._write_gate = write_gate
        self._cache = cache

        self._naming = IndexNaming(self._config.index_prefix)
        self._context = MigrationContext(client=client, config=self._config, tracer=self._tracer)

    @property
    def config(self) -> MigrationConfig:
        return self._config

    @property
    def metrics(self) -> MigrationMetrics:
        return self._metrics

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self) -> MigrationRunResult:
        """
        Apply every registered migration newer than the watermark.

        Migrations are applied one at a time in ascending id order. The
        first failing migration is rolled back (the indices it created are
        deleted) and ends the run; later migrations are left for the next
        run. Failures are reported in the result, not raised.

        If the task is cancelled while a migration is running, that
        migration is rolled back and the cancellation propagates.

        Returns:
            MigrationRunResult describing what was applied

        Raises:
            WriteGateError: If writes cannot be blocked
            LockAcquisitionError: If the fleet lock cannot be acquired
            SearchClientError: If existing indices cannot be listed
        """
        start = time.perf_counter()

        with self._tracer.span(
            "indexmigrate.run",
            {ATTR_INDEX_PREFIX: self._config.index_prefix},
        ) as span:
            await self._write_gate.block()

            async with self._acquire_lock():
                result = await self._run_locked(start)

            if span is not None:
                span.set_attribute(ATTR_WATERMARK, result.watermark)
                span.set_attribute(ATTR_MIGRATIONS_APPLIED, result.count)

        if result.succeeded:
            logger.info(
                "All %d migrations applied",
                result.count,
                extra=result.to_dict(),
            )
        else:
            logger.error(
                "Migration run stopped at migration %d after applying %d migrations",
                result.failed_migration_id,
                result.count,
                extra=result.to_dict(),
            )

        return result

    async def _run_locked(self, start: float) -> MigrationRunResult:
        watermark = await self.get_watermark()
        applied: list[int] = []
        skipped: list[int] = []

        logger.debug("Migration watermark is %d", watermark, extra={"watermark": watermark})

        for migration_id in self._registry.ids():
            if migration_id <= watermark:
                skipped.append(migration_id)
                continue

            error, rollback = await self._apply(migration_id)

            if error is not None:
                return MigrationRunResult(
                    watermark=watermark,
                    applied=tuple(applied),
                    skipped=tuple(skipped),
                    failed_migration_id=migration_id,
                    error=error,
                    rolled_back=rollback.deleted,
                    rollback_failures=rollback.failed,
                    duration_ms=(time.perf_counter() - start) * 1000,
                )

            applied.append(migration_id)

        return MigrationRunResult(
            watermark=watermark,
            applied=tuple(applied),
            skipped=tuple(skipped),
            duration_ms=(time.perf_counter() - start) * 1000,
        )

    async def _apply(self, migration_id: int) -> tuple[Exception | None, _Rollback]:
        unit: Migration | None = None
        unit_start = time.perf_counter()

        with self._tracer.span(
            "indexmigrate.migration.apply",
            {ATTR_MIGRATION_ID: migration_id},
        ) as span:
            try:
                unit = self._registry.create(migration_id, self._context)
                if span is not None:
                    span.set_attribute(ATTR_MIGRATION_NAME, type(unit).__name__)

                logger.warning(
                    "Applying migration %d",
                    migration_id,
                    extra={"migration_id": migration_id},
                )
                await unit.run()

            except asyncio.CancelledError:
                elapsed = time.perf_counter() - unit_start
                logger.warning(
                    "Migration %d cancelled after %.2fs, rolling back",
                    migration_id,
                    elapsed,
                    extra={"migration_id": migration_id},
                )
                self._metrics.record_migration_failed(migration_id, elapsed)
                await asyncio.shield(self._rollback(migration_id, unit))
                raise

            except Exception as e:
                elapsed = time.perf_counter() - unit_start
                logger.exception(
                    "Migration %d failed after %.2fs",
                    migration_id,
                    elapsed,
                    extra={"migration_id": migration_id, "error": str(e)},
                )
                if span is not None:
                    span.set_attribute(ATTR_MIGRATION_SUCCESS, False)
                self._metrics.record_migration_failed(migration_id, elapsed)
                return e, await self._rollback(migration_id, unit)

            elapsed = time.perf_counter() - unit_start
            if span is not None:
                span.set_attribute(ATTR_MIGRATION_SUCCESS, True)

        self._metrics.record_migration_applied(migration_id, elapsed)
        logger.info(
            "Applied migration %d in %.2fs",
            migration_id,
            elapsed,
            extra={"migration_id": migration_id, "duration_ms": elapsed * 1000},
        )
        return None, _Rollback()

    async def _rollback(self, migration_id: int, unit: Migration | None) -> _Rollback:
        if unit is None or not unit.indexes_created:
            return _Rollback()

        deleted: list[str] = []
        failed: list[str] = []

        for index in reversed(unit.indexes_created):
            logical_name = self._logical_name(index)
            try:
                await self._client.delete_index(index)
            except Exception as e:
                logger.warning(
                    "Could not delete index '%s' created by failed migration %d: %s",
                    index,
                    migration_id,
                    e,
                    extra={"migration_id": migration_id, "index": index},
                )
                self._metrics.record_delete_failure(logical_name, reason="rollback")
                failed.append(index)
                continue

            logger.warning(
                "Deleted index '%s' created by failed migration %d",
                index,
                migration_id,
                extra={"migration_id": migration_id, "index": index},
            )
            self._metrics.record_index_deleted(logical_name, reason="rollback")
            deleted.append(index)

        return _Rollback(tuple(deleted), tuple(failed))

    # =========================================================================
    # Finalize
    # =========================================================================

    async def finalize(self) -> FinalizeResult:
        """
        Delete superseded index generations and unblock writes.

        For every logical index only the generation with the highest
        registered id is kept. Indices whose names do not parse or whose id
        is not registered are left alone. Failed deletions are logged and
        reported; they do not stop other deletions. The cache is invalidated
        when at least one index was deleted, and writes are unblocked
        exactly once whether or not anything was deleted.

        Takes the fleet lock unless ``config.lock_finalize`` is False.

        Returns:
            FinalizeResult describing what was deleted

        Raises:
            LockAcquisitionError: If the fleet lock cannot be acquired.
                Writes are not unblocked in that case.
            WriteGateError: If writes cannot be unblocked
        """
        start = time.perf_counter()

        with self._tracer.span(
            "indexmigrate.finalize",
            {ATTR_INDEX_PREFIX: self._config.index_prefix},
        ) as span:
            async with contextlib.AsyncExitStack() as stack:
                if self._config.lock_finalize:
                    await stack.enter_async_context(self._acquire_lock())

                try:
                    result = await self._finalize_locked()
                finally:
                    await self._write_gate.unblock()

            result = FinalizeResult(
                deleted=result.deleted,
                failed_deletions=result.failed_deletions,
                retained=result.retained,
                ignored=result.ignored,
                cache_keys_deleted=result.cache_keys_deleted,
                cache_error=result.cache_error,
                unblocked=True,
                duration_ms=(time.perf_counter() - start) * 1000,
            )

            if span is not None:
                span.set_attribute(ATTR_INDICES_DELETED, len(result.deleted))

        logger.info(
            "Finalized migrations: deleted %d indices, %d deletions failed",
            len(result.deleted),
            len(result.failed_deletions),
            extra=result.to_dict(),
        )
        return result

    async def _finalize_locked(self) -> FinalizeResult:
        indices = await self._client.list_indices(self._naming.pattern())

        groups: dict[str, list[tuple[int, str]]] = {}
        ignored: list[str] = []

        for index in indices:
            parsed = self._naming.try_parse(index)
            if parsed is None or parsed.migration_id not in self._registry:
                ignored.append(index)
                continue
            groups.setdefault(parsed.logical_name, []).append((parsed.migration_id, index))

        deleted: list[str] = []
        failed: list[str] = []
        retained: list[str] = []

        for logical_name, generations in sorted(groups.items()):
            generations.sort()
            *superseded, (_, latest) = generations
            retained.append(latest)

            for _, index in superseded:
                try:
                    await self._client.delete_index(index)
                except Exception as e:
                    logger.warning(
                        "Could not delete old migration index '%s': %s",
                        index,
                        e,
                        extra={"index": index, "logical_name": logical_name},
                    )
                    self._metrics.record_delete_failure(logical_name, reason="finalize")
                    failed.append(index)
                    continue

                logger.info(
                    "Deleted old migration index '%s'",
                    index,
                    extra={"index": index, "logical_name": logical_name},
                )
                self._metrics.record_index_deleted(logical_name, reason="finalize")
                deleted.append(index)

        cache_keys_deleted = 0
        cache_error: str | None = None

        if deleted:
            pattern = self._config.cache_pattern
            try:
                cache_keys_deleted = await self._cache.scan_delete(pattern)
            except Exception as e:
                logger.warning(
                    "Could not invalidate cache keys matching '%s': %s",
                    pattern,
                    e,
                    extra={"pattern": pattern},
                )
                cache_error = str(e)
            else:
                logger.info(
                    "Invalidated %d cache keys matching '%s'",
                    cache_keys_deleted,
                    pattern,
                )

        return FinalizeResult(
            deleted=tuple(deleted),
            failed_deletions=tuple(failed),
            retained=tuple(retained),
            ignored=tuple(ignored),
            cache_keys_deleted=cache_keys_deleted,
            cache_error=cache_error,
        )

    # =========================================================================
    # Status
    # =========================================================================

    async def get_watermark(self) -> int:
        """
        Highest migration id among existing indices under the prefix.

        The watermark is global: logical indices a migration did not touch
        keep older generations, so no single index tells the current state.
        Returns 0 when no index parses.
        """
        indices = await self._client.list_indices(self._naming.pattern())
        return max((parsed.migration_id for parsed in self._parse_all(indices)), default=0)

    async def status(self) -> MigrationStatus:
        """Read the migration state of the deployment. Takes no lock."""
        indices = await self._client.list_indices(self._naming.pattern())
        parsed = list(self._parse_all(indices))
        watermark = max((p.migration_id for p in parsed), default=0)

        generations: dict[str, list[int]] = {}
        for p in parsed:
            generations.setdefault(p.logical_name, []).append(p.migration_id)

        ids = self._registry.ids()

        return MigrationStatus(
            watermark=watermark,
            latest_id=self._registry.latest_id,
            applied=tuple(i for i in ids if i <= watermark),
            pending=tuple(i for i in ids if i > watermark),
            generations={name: tuple(sorted(g)) for name, g in sorted(generations.items())},
            writes_blocked=await self._write_gate.is_blocked(),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @contextlib.asynccontextmanager
    async def _acquire_lock(self) -> AsyncIterator[LockInfo]:
        async with self._lock_manager.acquire(
            self._config.lock_key,
            timeout=self._config.lock_timeout,
            ttl=self._config.lock_ttl,
        ) as info:
            logger.debug("Acquired migration lock '%s'", self._config.lock_key)
            yield info

    def _parse_all(self, indices: list[str]) -> list[IndexName]:
        return [p for p in map(self._naming.try_parse, indices) if p is not None]

    def _logical_name(self, index: str) -> str:
        parsed = self._naming.try_parse(index)
        return parsed.logical_name if parsed is not None else index


__all__ = ["MigrationManager"]
