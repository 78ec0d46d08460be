"""
Standard span and metric attributes for indexmigrate.

Example:
    >>> from indexmigrate.observability.attributes import ATTR_MIGRATION_ID
    >>>
    >>> with tracer.span(
    ...     "indexmigrate.migration.apply",
    ...     {ATTR_MIGRATION_ID: migration.id},
    ... ):
    ...     pass
"""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_MIGRATION_ID = "indexmigrate.migration.id"
"""Identifier of the migration being applied (integer)."""

ATTR_MIGRATION_NAME = "indexmigrate.migration.name"
"""Class or declared name of the migration unit (string)."""

ATTR_MIGRATION_SUCCESS = "indexmigrate.migration.success"
"""Whether the migration completed (boolean)."""

ATTR_MIGRATIONS_APPLIED = "indexmigrate.migrations.applied"
"""Number of migrations applied in a run (integer)."""

ATTR_WATERMARK = "indexmigrate.watermark"
"""Highest migration id found among existing indices (integer)."""

# =============================================================================
# Index Attributes
# =============================================================================

ATTR_INDEX_NAME = "indexmigrate.index.name"
"""Full versioned index name (string)."""

ATTR_INDEX_LOGICAL_NAME = "indexmigrate.index.logical_name"
"""Version-independent index name (string)."""

ATTR_INDEX_PREFIX = "indexmigrate.index.prefix"
"""Deployment index prefix (string)."""

ATTR_INDICES_DELETED = "indexmigrate.indices.deleted"
"""Number of indices deleted by finalize (integer)."""

# =============================================================================
# Lock Attributes
# =============================================================================

ATTR_LOCK_KEY = "indexmigrate.lock.key"
"""String key identifying the lock (string)."""

ATTR_LOCK_TIMEOUT = "indexmigrate.lock.timeout"
"""Lock acquisition timeout in seconds, -1 for none (float)."""

ATTR_LOCK_TTL = "indexmigrate.lock.ttl"
"""Lock expiry in seconds (float)."""
