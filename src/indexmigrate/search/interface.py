"""
Search index client interface.

This module defines the index-level operations the migration engine needs
from the search engine:
- SearchDocument: A stored document with its id
- SearchIndexClient: Abstract base class for search engine adapters
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SearchDocument:
    """
    A document read from or written to an index.

    Attributes:
        id: Document id within the index
        source: Document body (the ``_source`` of the hit)
    """

    id: str
    source: dict[str, Any] = field(default_factory=dict)


class SearchIndexClient(ABC):
    """
    Abstract base class for search engine adapters.

    Implementations must translate transport failures into
    ``SearchClientError`` where they can add context, and must let
    ``asyncio.CancelledError`` propagate untouched.
    """

    @abstractmethod
    async def list_indices(self, pattern: str) -> list[str]:
        """
        List index names matching a wildcard pattern.

        Args:
            pattern: Wildcard pattern such as ``"idx-*"``

        Returns:
            Matching index names (empty if none match)
        """
        pass

    @abstractmethod
    async def index_exists(self, name: str) -> bool:
        """Check whether an index exists."""
        pass

    @abstractmethod
    async def create_index(
        self,
        name: str,
        *,
        mappings: dict[str, Any] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> None:
        """
        Create an index.

        Raises:
            SearchClientError: If the index exists or creation fails
        """
        pass

    @abstractmethod
    async def delete_index(self, name: str) -> None:
        """
        Delete an index.

        Raises:
            SearchClientError: If the index does not exist or deletion fails
        """
        pass

    @abstractmethod
    async def update_index_settings(self, name: str, settings: dict[str, Any]) -> None:
        """Update dynamic settings of an existing index."""
        pass

    @abstractmethod
    async def refresh_index(self, name: str) -> None:
        """Make all operations performed on an index visible to search."""
        pass

    @abstractmethod
    def scan_documents(
        self,
        index: str,
        *,
        batch_size: int = 1000,
        scroll: str = "1m",
    ) -> AsyncIterator[list[SearchDocument]]:
        """
        Iterate over every document of an index in batches.

        Args:
            index: Index to read
            batch_size: Documents per batch
            scroll: Scroll context keep-alive between batches

        Yields:
            Non-empty lists of documents
        """
        pass

    @abstractmethod
    async def bulk_index(self, index: str, documents: Sequence[SearchDocument]) -> int:
        """
        Index documents into an index, replacing existing ids.

        Returns:
            Number of documents indexed

        Raises:
            SearchClientError: If any document fails to index
        """
        pass


__all__ = ["SearchDocument", "SearchIndexClient"]
