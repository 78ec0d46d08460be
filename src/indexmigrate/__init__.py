"""
indexmigrate - Zero-downtime schema migrations for search indices.

This library provides:
- Versioned index naming ({prefix}{logical}-{migration_id})
- Migration units that reindex into new index generations
- A registry and manager that apply outstanding migrations under a
  fleet-wide lock while writes are blocked
- Finalization that deletes superseded generations, invalidates the cache
  and restores writes
- Elasticsearch, Redis and PostgreSQL adapters plus in-memory ones for tests
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("indexmigrate")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from indexmigrate.cache import CacheInvalidator, InMemoryCache, RedisCacheInvalidator
from indexmigrate.config import DEFAULT_LOCK_KEY, MigrationConfig
from indexmigrate.documents import IndexDocument, MappedModel, mapped
from indexmigrate.exceptions import (
    DestinationIndexExistsError,
    DuplicateMigrationError,
    IndexMigrateError,
    InvalidIndexNameError,
    InvalidMigrationNameError,
    MigrationError,
    SearchClientError,
    SourceIndexNotFoundError,
    UnknownMigrationError,
)
from indexmigrate.locks import (
    InMemoryLockManager,
    LockAcquisitionError,
    LockInfo,
    LockManager,
    PostgreSQLLockManager,
    RedisLockManager,
)
from indexmigrate.migrations import (
    FinalizeResult,
    Migration,
    MigrationContext,
    MigrationManager,
    MigrationRegistry,
    MigrationRunResult,
    MigrationStatus,
    ReindexTargets,
)
from indexmigrate.naming import (
    IndexName,
    IndexNaming,
    format_index_name,
    index_pattern,
    parse_migration_id,
    try_parse_index_name,
)
from indexmigrate.search import (
    ElasticsearchIndexClient,
    InMemorySearchIndexClient,
    SearchDocument,
    SearchIndexClient,
)
from indexmigrate.write_gate import (
    InMemoryWriteGate,
    RedisWriteGate,
    WriteBlockedError,
    WriteGate,
    WriteGateError,
)

__all__ = [
    "__version__",
    # Naming
    "IndexName",
    "IndexNaming",
    "format_index_name",
    "index_pattern",
    "parse_migration_id",
    "try_parse_index_name",
    # Configuration
    "DEFAULT_LOCK_KEY",
    "MigrationConfig",
    # Exceptions
    "IndexMigrateError",
    "InvalidIndexNameError",
    "InvalidMigrationNameError",
    "MigrationError",
    "SourceIndexNotFoundError",
    "DestinationIndexExistsError",
    "DuplicateMigrationError",
    "UnknownMigrationError",
    "SearchClientError",
    # Migrations
    "Migration",
    "MigrationContext",
    "MigrationManager",
    "MigrationRegistry",
    "MigrationRunResult",
    "FinalizeResult",
    "MigrationStatus",
    "ReindexTargets",
    # Documents
    "IndexDocument",
    "MappedModel",
    "mapped",
    # Search
    "SearchIndexClient",
    "SearchDocument",
    "ElasticsearchIndexClient",
    "InMemorySearchIndexClient",
    # Locks
    "LockManager",
    "LockInfo",
    "LockAcquisitionError",
    "InMemoryLockManager",
    "RedisLockManager",
    "PostgreSQLLockManager",
    # Write gate
    "WriteGate",
    "WriteBlockedError",
    "WriteGateError",
    "InMemoryWriteGate",
    "RedisWriteGate",
    # Cache
    "CacheInvalidator",
    "InMemoryCache",
    "RedisCacheInvalidator",
]
