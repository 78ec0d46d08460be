"""
Observability utilities for indexmigrate.

Provides the composition-based tracer and the standard attribute names used
across the migration engine.

Example:
    >>> from indexmigrate.observability import create_tracer
    >>>
    >>> class MyManager:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
"""

from indexmigrate.observability.attributes import (
    ATTR_INDEX_LOGICAL_NAME,
    ATTR_INDEX_NAME,
    ATTR_INDEX_PREFIX,
    ATTR_INDICES_DELETED,
    ATTR_LOCK_KEY,
    ATTR_LOCK_TIMEOUT,
    ATTR_LOCK_TTL,
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_NAME,
    ATTR_MIGRATION_SUCCESS,
    ATTR_MIGRATIONS_APPLIED,
    ATTR_WATERMARK,
)
from indexmigrate.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "create_tracer",
    # Attributes - Migration
    "ATTR_MIGRATION_ID",
    "ATTR_MIGRATION_NAME",
    "ATTR_MIGRATION_SUCCESS",
    "ATTR_MIGRATIONS_APPLIED",
    "ATTR_WATERMARK",
    # Attributes - Index
    "ATTR_INDEX_NAME",
    "ATTR_INDEX_LOGICAL_NAME",
    "ATTR_INDEX_PREFIX",
    "ATTR_INDICES_DELETED",
    # Attributes - Lock
    "ATTR_LOCK_KEY",
    "ATTR_LOCK_TIMEOUT",
    "ATTR_LOCK_TTL",
]
