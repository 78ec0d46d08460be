"""
In-memory search index client.

Keeps indices in process memory. Suitable for tests and local development;
it does not share state across processes.
"""

from __future__ import annotations

import asyncio
import fnmatch
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from indexmigrate.exceptions import SearchClientError
from indexmigrate.search.interface import SearchDocument, SearchIndexClient


@dataclass
class InMemoryIndex:
    """State of one in-memory index."""

    name: str
    mappings: dict[str, Any] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
    documents: dict[str, dict[str, Any]] = field(default_factory=dict)


class InMemorySearchIndexClient(SearchIndexClient):
    """
    In-memory implementation of SearchIndexClient.

    Besides the index state it records every created and deleted index name
    so tests can assert on side effects.

    Example:
        >>> client = InMemorySearchIndexClient()
        >>> await client.create_index("idx-book-1")
        >>> await client.list_indices("idx-*")
        ['idx-book-1']
    """

    def __init__(self) -> None:
        self._indices: dict[str, InMemoryIndex] = {}
        self._lock = asyncio.Lock()
        self.created: list[str] = []
        self.deleted: list[str] = []

    async def list_indices(self, pattern: str) -> list[str]:
        async with self._lock:
            return sorted(name for name in self._indices if fnmatch.fnmatchcase(name, pattern))

    async def index_exists(self, name: str) -> bool:
        async with self._lock:
            return name in self._indices

    async def create_index(
        self,
        name: str,
        *,
        mappings: dict[str, Any] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> None:
        async with self._lock:
            if name in self._indices:
                raise SearchClientError("create", name, "index already exists")
            self._indices[name] = InMemoryIndex(
                name=name,
                mappings=dict(mappings or {}),
                settings=dict(settings or {}),
            )
            self.created.append(name)

    async def delete_index(self, name: str) -> None:
        async with self._lock:
            if self._indices.pop(name, None) is None:
                raise SearchClientError("delete", name, "index not found")
            self.deleted.append(name)

    async def update_index_settings(self, name: str, settings: dict[str, Any]) -> None:
        async with self._lock:
            self._get(name, "update_settings").settings.update(settings)

    async def refresh_index(self, name: str) -> None:
        async with self._lock:
            self._get(name, "refresh")

    async def scan_documents(
        self,
        index: str,
        *,
        batch_size: int = 1000,
        scroll: str = "1m",
    ) -> AsyncIterator[list[SearchDocument]]:
        async with self._lock:
            items = list(self._get(index, "scan").documents.items())

        for start in range(0, len(items), batch_size):
            batch = items[start : start + batch_size]
            yield [SearchDocument(id=doc_id, source=dict(source)) for doc_id, source in batch]

    async def bulk_index(self, index: str, documents: Sequence[SearchDocument]) -> int:
        async with self._lock:
            target = self._get(index, "bulk")
            for document in documents:
                target.documents[document.id] = dict(document.source)
            return len(documents)

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def get_index(self, name: str) -> InMemoryIndex | None:
        """Get the raw state of an index, or None if it does not exist."""
        return self._indices.get(name)

    def index_names(self) -> list[str]:
        """Get all index names, sorted."""
        return sorted(self._indices)

    def seed(
        self,
        name: str,
        documents: dict[str, dict[str, Any]] | None = None,
        *,
        mappings: dict[str, Any] | None = None,
    ) -> None:
        """Create an index directly, bypassing the created log."""
        self._indices[name] = InMemoryIndex(
            name=name,
            mappings=dict(mappings or {}),
            documents={k: dict(v) for k, v in (documents or {}).items()},
        )

    def _get(self, name: str, operation: str) -> InMemoryIndex:
        try:
            return self._indices[name]
        except KeyError:
            raise SearchClientError(operation, name, "index not found") from None


__all__ = ["InMemoryIndex", "InMemorySearchIndexClient"]
