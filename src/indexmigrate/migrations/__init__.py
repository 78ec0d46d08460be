"""
Versioned index migrations.

Key Components:
    - Migration: Base class of migration units
    - MigrationRegistry: Ordered table of registered units
    - MigrationManager: Applies outstanding units and finalizes them

Usage:
    >>> from indexmigrate.migrations import Migration, MigrationManager, MigrationRegistry
    >>>
    >>> registry = MigrationRegistry()
    >>>
    >>> @registry.register
    ... class Migration202009022106(Migration):
    ...     async def run(self) -> None:
    ...         source, destination = await self.get_reindex_targets("book")
    ...         await self.map_index(source, destination, BookV1, BookV2, upgrade)
    >>>
    >>> manager = MigrationManager(registry, client, lock_manager, write_gate, cache)
    >>> result = await manager.run()
"""

from indexmigrate.migrations.base import Migration, ReindexTargets
from indexmigrate.migrations.context import MigrationContext
from indexmigrate.migrations.manager import MigrationManager
from indexmigrate.migrations.models import FinalizeResult, MigrationRunResult, MigrationStatus
from indexmigrate.migrations.registry import MigrationFactory, MigrationRegistry

__all__ = [
    "FinalizeResult",
    "Migration",
    "MigrationContext",
    "MigrationFactory",
    "MigrationManager",
    "MigrationRegistry",
    "MigrationRunResult",
    "MigrationStatus",
    "ReindexTargets",
]
