"""Collaborators handed to every migration unit."""

from __future__ import annotations

from dataclasses import dataclass, field

from indexmigrate.config import MigrationConfig
from indexmigrate.naming import IndexNaming
from indexmigrate.observability import NullTracer, Tracer
from indexmigrate.search.interface import SearchIndexClient


@dataclass(frozen=True)
class MigrationContext:
    """
    Dependencies of a migration unit.

    Attributes:
        client: Search engine client used to read and write indices
        config: Migration configuration (prefix, index settings, reindexing)
        tracer: Tracer for spans emitted by the unit
    """

    client: SearchIndexClient
    config: MigrationConfig = field(default_factory=MigrationConfig)
    tracer: Tracer = field(default_factory=NullTracer)

    @property
    def naming(self) -> IndexNaming:
        return IndexNaming(self.config.index_prefix)


__all__ = ["MigrationContext"]
