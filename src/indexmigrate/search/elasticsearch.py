"""
Elasticsearch search index client.

Wraps ``elasticsearch.AsyncElasticsearch`` behind the SearchIndexClient
interface used by the migration engine.

Example:
    >>> from indexmigrate.search.elasticsearch import ElasticsearchIndexClient
    >>>
    >>> client = ElasticsearchIndexClient.from_url("http://localhost:9200")
    >>> await client.list_indices("idx-*")
    ['idx-book-202001010000', 'idx-user-202001010000']
    >>> await client.close()
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from typing import Any

from elasticsearch import ApiError, AsyncElasticsearch, TransportError
from elasticsearch.helpers import async_bulk, async_scan

from indexmigrate.exceptions import SearchClientError
from indexmigrate.search.interface import SearchDocument, SearchIndexClient

logger = logging.getLogger(__name__)


def _reason(error: ApiError | TransportError) -> str:
    # Transport errors stringify to a fixed label; the cause is in message/errors
    if isinstance(error, TransportError):
        causes = ", ".join(f"{type(cause).__name__}: {cause}" for cause in error.errors)
        return f"{error.message} ({causes})" if causes else str(error.message)
    return str(error)


class ElasticsearchIndexClient(SearchIndexClient):
    """
    SearchIndexClient backed by Elasticsearch.

    Transport and API errors are re-raised as SearchClientError with the
    operation and index name attached.

    Args:
        client: Configured AsyncElasticsearch instance
        owns_client: Whether close() should close the underlying client
    """

    def __init__(self, client: AsyncElasticsearch, *, owns_client: bool = False) -> None:
        self._client = client
        self._owns_client = owns_client

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        username: str | None = None,
        password: str | None = None,
        request_timeout: float = 30.0,
    ) -> ElasticsearchIndexClient:
        """Create a client for a single Elasticsearch endpoint."""
        if username and password:
            es = AsyncElasticsearch(
                hosts=[url],
                basic_auth=(username, password),
                request_timeout=request_timeout,
            )
        else:
            es = AsyncElasticsearch(hosts=[url], request_timeout=request_timeout)
        return cls(es, owns_client=True)

    @property
    def client(self) -> AsyncElasticsearch:
        """The underlying AsyncElasticsearch client."""
        return self._client

    async def close(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._owns_client:
            await self._client.close()

    async def list_indices(self, pattern: str) -> list[str]:
        try:
            response = await self._client.cat.indices(
                index=pattern,
                format="json",
                h="index",
                expand_wildcards="open,closed",
            )
        except (ApiError, TransportError) as e:
            raise SearchClientError("list", pattern, _reason(e)) from e

        return sorted(record["index"] for record in response.body)

    async def index_exists(self, name: str) -> bool:
        try:
            return bool(await self._client.indices.exists(index=name))
        except (ApiError, TransportError) as e:
            raise SearchClientError("exists", name, _reason(e)) from e

    async def create_index(
        self,
        name: str,
        *,
        mappings: dict[str, Any] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> None:
        try:
            await self._client.indices.create(index=name, mappings=mappings, settings=settings)
        except (ApiError, TransportError) as e:
            raise SearchClientError("create", name, _reason(e)) from e

    async def delete_index(self, name: str) -> None:
        try:
            await self._client.indices.delete(index=name)
        except (ApiError, TransportError) as e:
            raise SearchClientError("delete", name, _reason(e)) from e

    async def update_index_settings(self, name: str, settings: dict[str, Any]) -> None:
        try:
            await self._client.indices.put_settings(index=name, settings=settings)
        except (ApiError, TransportError) as e:
            raise SearchClientError("update_settings", name, _reason(e)) from e

    async def refresh_index(self, name: str) -> None:
        try:
            await self._client.indices.refresh(index=name)
        except (ApiError, TransportError) as e:
            raise SearchClientError("refresh", name, _reason(e)) from e

    async def scan_documents(
        self,
        index: str,
        *,
        batch_size: int = 1000,
        scroll: str = "1m",
    ) -> AsyncIterator[list[SearchDocument]]:
        batch: list[SearchDocument] = []
        scanned = 0

        try:
            async with aclosing(
                async_scan(self._client, index=index, size=batch_size, scroll=scroll)
            ) as hits:
                async for hit in hits:
                    scanned += 1
                    batch.append(SearchDocument(id=hit["_id"], source=hit.get("_source") or {}))
                    if len(batch) >= batch_size:
                        yield batch
                        batch = []
        except (ApiError, TransportError) as e:
            raise SearchClientError("scan", index, _reason(e)) from e

        if batch:
            yield batch

        logger.debug("Scanned %d documents from index '%s'", scanned, index)

    async def bulk_index(self, index: str, documents: Sequence[SearchDocument]) -> int:
        if not documents:
            return 0

        actions = [
            {"_op_type": "index", "_index": index, "_id": doc.id, "_source": doc.source}
            for doc in documents
        ]

        try:
            success, errors = await async_bulk(self._client, actions, raise_on_error=False)
        except (ApiError, TransportError) as e:
            raise SearchClientError("bulk", index, _reason(e)) from e

        if errors:
            raise SearchClientError(
                "bulk",
                index,
                f"{len(errors)} of {len(actions)} documents failed, first error: {errors[0]}",
            )

        return success


__all__ = ["ElasticsearchIndexClient"]
