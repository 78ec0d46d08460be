"""
Tracers injected into the migration manager, migration units and locks.

Migration code only ever calls ``tracer.span(name, attributes)`` and, when
the yielded span is not None, ``span.set_attribute(key, value)``. Whether
spans go to OpenTelemetry, nowhere, or a list for tests is decided by the
tracer handed in.

Example:
    >>> tracer = create_tracer(__name__, enable_tracing=config.enable_tracing)
    >>> with tracer.span("indexmigrate.run", {ATTR_INDEX_PREFIX: "idx-"}) as span:
    ...     result = await apply_pending()
    ...     if span is not None:
    ...         span.set_attribute(ATTR_MIGRATIONS_APPLIED, result.count)
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from opentelemetry import trace

if TYPE_CHECKING:
    from opentelemetry.trace import Span


@runtime_checkable
class Tracer(Protocol):
    """Source of tracing spans for migration runs, finalization and locks."""

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """
        Open a span around a block of work.

        The context manager yields None when spans are not recorded, so
        callers guard ``set_attribute`` calls with ``if span is not None``.
        """
        ...

    @property
    def enabled(self) -> bool: ...


class NullTracer:
    """Tracer used when ``enable_tracing`` is off. Yields None for every span."""

    @contextlib.contextmanager
    def span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer that opens OpenTelemetry spans as the current span.

    Only the opentelemetry API is used. Spans are dropped unless the host
    process installs an SDK tracer provider.

    Args:
        tracer_name: Instrumentation scope name, usually the module name
    """

    def __init__(self, tracer_name: str) -> None:
        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(name, attributes=attributes or {})

    @property
    def enabled(self) -> bool:
        return True


@dataclass
class RecordedSpan:
    """Span captured by MockTracer: start attributes plus later set_attribute calls."""

    name: str
    attributes: dict[str, Any] = field(default_factory=dict)

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value


class MockTracer:
    """
    Tracer for tests that keeps every span in start order.

    Example:
        >>> tracer = MockTracer()
        >>> await MigrationManager(..., tracer=tracer).run()
        >>> tracer.span_names
        ['indexmigrate.run', 'indexmigrate.migration.apply']
        >>> tracer.find("indexmigrate.run").attributes["indexmigrate.watermark"]
        0
    """

    def __init__(self) -> None:
        self.spans: list[RecordedSpan] = []

    @contextlib.contextmanager
    def span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[RecordedSpan]:
        recorded = RecordedSpan(name, dict(attributes or {}))
        self.spans.append(recorded)
        yield recorded

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [s.name for s in self.spans]

    def find(self, name: str) -> RecordedSpan:
        """
        Return the first recorded span with the given name.

        Raises:
            KeyError: If no such span was recorded
        """
        for recorded in self.spans:
            if recorded.name == name:
                return recorded
        raise KeyError(name)

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """OpenTelemetryTracer when tracing is enabled, NullTracer otherwise."""
    if enable_tracing:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "create_tracer",
]
