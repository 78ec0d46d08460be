"""
Unit tests for ElasticsearchIndexClient.

The AsyncElasticsearch client is replaced with mocks; these tests check the
requests issued and the translation of transport errors.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from elasticsearch import ConnectionError as ESConnectionError

from indexmigrate.exceptions import SearchClientError
from indexmigrate.search import ElasticsearchIndexClient, SearchDocument


@pytest.fixture
def es() -> MagicMock:
    client = MagicMock()
    client.cat.indices = AsyncMock()
    client.indices.exists = AsyncMock(return_value=True)
    client.indices.create = AsyncMock()
    client.indices.delete = AsyncMock()
    client.indices.put_settings = AsyncMock()
    client.indices.refresh = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def client(es: MagicMock) -> ElasticsearchIndexClient:
    return ElasticsearchIndexClient(es)


# =============================================================================
# Index operations
# =============================================================================


class TestIndexOperations:
    @pytest.mark.asyncio
    async def test_list_indices_sorted(self, client: ElasticsearchIndexClient, es: MagicMock):
        es.cat.indices.return_value = MagicMock(body=[{"index": "idx-b-2"}, {"index": "idx-b-1"}])

        assert await client.list_indices("idx-*") == ["idx-b-1", "idx-b-2"]
        es.cat.indices.assert_awaited_once_with(
            index="idx-*",
            format="json",
            h="index",
            expand_wildcards="open,closed",
        )

    @pytest.mark.asyncio
    async def test_index_exists(self, client: ElasticsearchIndexClient, es: MagicMock):
        es.indices.exists.return_value = False

        assert await client.index_exists("idx-b-1") is False

    @pytest.mark.asyncio
    async def test_create_index(self, client: ElasticsearchIndexClient, es: MagicMock):
        await client.create_index(
            "idx-b-1",
            mappings={"dynamic": False},
            settings={"number_of_shards": 1},
        )

        es.indices.create.assert_awaited_once_with(
            index="idx-b-1",
            mappings={"dynamic": False},
            settings={"number_of_shards": 1},
        )

    @pytest.mark.asyncio
    async def test_delete_index(self, client: ElasticsearchIndexClient, es: MagicMock):
        await client.delete_index("idx-b-1")

        es.indices.delete.assert_awaited_once_with(index="idx-b-1")

    @pytest.mark.asyncio
    async def test_update_settings_and_refresh(
        self, client: ElasticsearchIndexClient, es: MagicMock
    ):
        await client.update_index_settings("idx-b-1", {"refresh_interval": "-1"})
        await client.refresh_index("idx-b-1")

        es.indices.put_settings.assert_awaited_once_with(
            index="idx-b-1", settings={"refresh_interval": "-1"}
        )
        es.indices.refresh.assert_awaited_once_with(index="idx-b-1")

    @pytest.mark.asyncio
    async def test_transport_errors_are_wrapped(
        self, client: ElasticsearchIndexClient, es: MagicMock
    ):
        es.indices.delete.side_effect = ESConnectionError("connection refused")

        with pytest.raises(SearchClientError) as exc_info:
            await client.delete_index("idx-b-1")

        assert exc_info.value.operation == "delete"
        assert exc_info.value.index == "idx-b-1"
        assert isinstance(exc_info.value.__cause__, ESConnectionError)

    @pytest.mark.asyncio
    async def test_transport_error_message_is_kept(
        self, client: ElasticsearchIndexClient, es: MagicMock
    ):
        es.indices.delete.side_effect = ESConnectionError("connection refused by 10.0.0.5:9200")

        with pytest.raises(SearchClientError) as exc_info:
            await client.delete_index("idx-book-1")

        assert "connection refused by 10.0.0.5:9200" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_causes_are_kept(
        self, client: ElasticsearchIndexClient, es: MagicMock
    ):
        es.cat.indices.side_effect = ESConnectionError(
            "Connection timed out", errors=(TimeoutError("read timed out after 30s"),)
        )

        with pytest.raises(SearchClientError) as exc_info:
            await client.list_indices("idx-*")

        assert str(exc_info.value) == (
            "Search engine list failed for 'idx-*': "
            "Connection timed out (TimeoutError: read timed out after 30s)"
        )


# =============================================================================
# Documents
# =============================================================================


def _scanner(*ids: str, error: Exception | None = None, closed: list[bool] | None = None):
    """Stand-in for async_scan yielding one hit per id, then optionally raising."""

    async def scan(*args, **kwargs):
        try:
            for i in ids:
                yield {"_id": i, "_source": {"n": i}}
            if error is not None:
                raise error
        finally:
            if closed is not None:
                closed.append(True)

    return patch("indexmigrate.search.elasticsearch.async_scan", new=MagicMock(side_effect=scan))


class TestScanDocuments:
    @pytest.mark.asyncio
    async def test_groups_hits_into_batches(self, client: ElasticsearchIndexClient, es: MagicMock):
        with _scanner("1", "2", "3") as scan:
            batches = [b async for b in client.scan_documents("idx-b-1", batch_size=2)]

        assert [[doc.id for doc in batch] for batch in batches] == [["1", "2"], ["3"]]
        assert batches[0][0].source == {"n": "1"}
        scan.assert_called_once_with(es, index="idx-b-1", size=2, scroll="1m")

    @pytest.mark.asyncio
    async def test_empty_index_yields_nothing(self, client: ElasticsearchIndexClient):
        with _scanner():
            batches = [b async for b in client.scan_documents("idx-b-1")]

        assert batches == []

    @pytest.mark.asyncio
    async def test_scan_errors_are_wrapped(self, client: ElasticsearchIndexClient):
        error = ESConnectionError("connection refused by 10.0.0.5:9200")

        with _scanner("1", error=error):
            with pytest.raises(SearchClientError, match="connection refused by 10.0.0.5:9200"):
                async for _ in client.scan_documents("idx-b-1"):
                    pass

    @pytest.mark.asyncio
    async def test_stopping_early_closes_scroll(self, client: ElasticsearchIndexClient):
        closed: list[bool] = []

        with _scanner("1", "2", "3", closed=closed):
            batches = client.scan_documents("idx-b-1", batch_size=1)
            async for _ in batches:
                break
            await batches.aclose()

        assert closed == [True]


class TestBulkIndex:
    @pytest.mark.asyncio
    async def test_bulk_index_actions(self, client: ElasticsearchIndexClient, es: MagicMock):
        with patch(
            "indexmigrate.search.elasticsearch.async_bulk",
            new=AsyncMock(return_value=(2, [])),
        ) as bulk:
            indexed = await client.bulk_index(
                "idx-b-2",
                [SearchDocument(id="1", source={"n": 1}), SearchDocument(id="2")],
            )

        assert indexed == 2
        actions = bulk.await_args.args[1]
        assert actions[0] == {"_op_type": "index", "_index": "idx-b-2", "_id": "1", "_source": {"n": 1}}
        assert bulk.await_args.kwargs == {"raise_on_error": False}

    @pytest.mark.asyncio
    async def test_bulk_index_empty_is_noop(self, client: ElasticsearchIndexClient):
        with patch("indexmigrate.search.elasticsearch.async_bulk", new=AsyncMock()) as bulk:
            assert await client.bulk_index("idx-b-2", []) == 0

        bulk.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bulk_item_errors_raise(self, client: ElasticsearchIndexClient):
        errors = [{"index": {"_id": "2", "error": "mapper_parsing_exception"}}]
        with patch(
            "indexmigrate.search.elasticsearch.async_bulk",
            new=AsyncMock(return_value=(1, errors)),
        ):
            with pytest.raises(SearchClientError, match="1 of 2 documents failed"):
                await client.bulk_index(
                    "idx-b-2", [SearchDocument(id="1"), SearchDocument(id="2")]
                )


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_close_owned_client(self, es: MagicMock):
        await ElasticsearchIndexClient(es, owns_client=True).close()

        es.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_borrowed_client_is_noop(self, es: MagicMock):
        await ElasticsearchIndexClient(es).close()

        es.close.assert_not_awaited()

    def test_from_url_owns_client(self):
        with patch("indexmigrate.search.elasticsearch.AsyncElasticsearch") as factory:
            client = ElasticsearchIndexClient.from_url(
                "http://es:9200", username="elastic", password="secret"
            )

        factory.assert_called_once_with(
            hosts=["http://es:9200"],
            basic_auth=("elastic", "secret"),
            request_timeout=30.0,
        )
        assert client.client is factory.return_value
