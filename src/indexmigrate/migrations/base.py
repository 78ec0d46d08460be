"""
Migration unit base class.

A migration unit performs one schema transform by writing into new index
generations named after its id. It never modifies or deletes the
generations it reads from; superseded generations are removed later by
``MigrationManager.finalize()``, so an older deployment can keep serving
while a newer one migrates.

Example:
    >>> class Migration202009022106(Migration):
    ...     async def run(self) -> None:
    ...         source, destination = await self.get_reindex_targets("book")
    ...         await self.map_index(source, destination, BookV1, BookV2, upgrade_book)
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import aclosing
from typing import ClassVar, NamedTuple, TypeVar

from indexmigrate.documents import IndexDocument
from indexmigrate.exceptions import DestinationIndexExistsError, SourceIndexNotFoundError
from indexmigrate.migrations.context import MigrationContext
from indexmigrate.naming import parse_migration_id
from indexmigrate.observability import ATTR_INDEX_NAME, ATTR_MIGRATION_ID
from indexmigrate.search.interface import SearchDocument

logger = logging.getLogger(__name__)

TSource = TypeVar("TSource", bound=IndexDocument)
TDestination = TypeVar("TDestination", bound=IndexDocument)


class ReindexTargets(NamedTuple):
    """Source and destination of a reindex."""

    source: str
    destination: str


class Migration(ABC):
    """
    Base class for migration units.

    The id of a unit is derived from the trailing digits of its declared
    name, which defaults to the class name (``Migration202009022106`` has id
    202009022106). Set the ``name`` class attribute to declare a different
    name, or let the registry pass an explicit id.

    Attributes:
        id: Migration identifier
        indexes_created: Indices created by this unit, in creation order.
            Only indices whose creation succeeded are listed.
    """

    name: ClassVar[str | None] = None

    def __init__(self, context: MigrationContext, migration_id: int | None = None) -> None:
        self.context = context
        self.id = migration_id if migration_id is not None else self.declared_id()
        self.indexes_created: list[str] = []

    @classmethod
    def declared_name(cls) -> str:
        return cls.name or cls.__name__

    @classmethod
    def declared_id(cls) -> int:
        """
        Migration id derived from the declared name.

        Raises:
            InvalidMigrationNameError: If the declared name has no trailing digits
        """
        return parse_migration_id(cls.declared_name())

    @abstractmethod
    async def run(self) -> None:
        """
        Apply the migration.

        Raising signals failure; the manager then deletes every index in
        ``indexes_created`` and stops the run.
        """
        pass

    def index_name(self, logical_name: str) -> str:
        """Name of this unit's generation of a logical index."""
        return self.context.naming.format(logical_name, self.id)

    async def get_reindex_targets(self, logical_name: str) -> ReindexTargets:
        """
        Resolve the source and destination generations of a logical index.

        The source is the existing generation with the highest id other than
        this unit's own id. The destination is this unit's generation.

        Raises:
            SourceIndexNotFoundError: If no other generation exists
            DestinationIndexExistsError: If the destination already exists
        """
        naming = self.context.naming
        client = self.context.client

        candidates = []
        for index in await client.list_indices(naming.pattern(logical_name)):
            parsed = naming.try_parse(index)
            if parsed is None or parsed.logical_name != logical_name:
                continue
            if parsed.migration_id == self.id:
                continue
            candidates.append((parsed.migration_id, index))

        if not candidates:
            raise SourceIndexNotFoundError(logical_name, self.id)

        _, source = max(candidates)
        destination = self.index_name(logical_name)

        if await client.index_exists(destination):
            raise DestinationIndexExistsError(destination, self.id)

        logger.info(
            "Reindexing source index '%s' to destination index '%s'",
            source,
            destination,
            extra={"migration_id": self.id, "source": source, "destination": destination},
        )

        return ReindexTargets(source, destination)

    async def create_index(self, name: str, document_type: type[IndexDocument]) -> None:
        """
        Create an index with the mappings of a document type.

        The index gets the configured shard, replica and refresh settings
        and is recorded in ``indexes_created`` once creation succeeded.
        """
        config = self.context.config

        await self.context.client.create_index(
            name,
            mappings=document_type.index_mappings(),
            settings=config.index_settings(),
        )
        self.indexes_created.append(name)

        logger.info(
            "Created index '%s' of type %s",
            name,
            document_type.__name__,
            extra={"migration_id": self.id, "index": name},
        )

    async def map_index(
        self,
        source: str,
        destination: str,
        source_type: type[TSource],
        destination_type: type[TDestination],
        transform: Callable[[TSource], TDestination | None],
    ) -> int:
        """
        Copy every document of ``source`` into a new ``destination`` index.

        Each document is validated into ``source_type`` and passed to
        ``transform``; returning None drops the document. Derived fields of
        the result are recomputed before it is written. Bulk requests run
        concurrently, at most ``map_workers`` at a time. Refresh and
        replicas are disabled while copying and restored afterwards.

        Returns:
            Number of documents written

        Raises:
            Exception: The first error raised by a bulk worker or the scan
        """
        config = self.context.config
        client = self.context.client

        with self.context.tracer.span(
            "indexmigrate.migration.map_index",
            {ATTR_MIGRATION_ID: self.id, ATTR_INDEX_NAME: destination},
        ):
            await self.create_index(destination, destination_type)
            await client.update_index_settings(
                destination, {"refresh_interval": "-1", "number_of_replicas": 0}
            )

            logger.debug("Using %d workers for indexing", config.map_workers)

            semaphore = asyncio.Semaphore(config.map_workers)
            workers: list[asyncio.Task[int]] = []
            start = time.perf_counter()
            batches = 0

            async def index_batch(batch: list[SearchDocument]) -> int:
                try:
                    documents = []
                    for hit in batch:
                        value = transform(source_type.from_search_document(hit))
                        if value is None:
                            continue
                        value.refresh_derived()
                        documents.append(value.to_search_document())

                    if not documents:
                        return 0
                    return await client.bulk_index(destination, documents)
                finally:
                    semaphore.release()

            try:
                async with aclosing(
                    client.scan_documents(  # type: ignore[type-var]
                        source,
                        batch_size=config.map_batch_size,
                        scroll=config.scroll_duration,
                    )
                ) as batches_iter:
                    async for batch in batches_iter:
                        batches += 1
                        logger.debug("Read batch %d, %d documents", batches, len(batch))

                        _raise_first_error(workers)
                        await semaphore.acquire()
                        workers.append(asyncio.create_task(index_batch(batch)))

                written = sum(await asyncio.gather(*workers))

            except BaseException:
                for worker in workers:
                    worker.cancel()
                await asyncio.gather(*workers, return_exceptions=True)
                raise

            logger.info("Refreshing index '%s'", destination)

            await client.refresh_index(destination)
            await client.update_index_settings(
                destination,
                {
                    "refresh_interval": config.refresh_interval,
                    "number_of_replicas": config.replica_count,
                },
            )

        logger.info(
            "Indexed %d documents from '%s' into '%s' in %.2fs",
            written,
            source,
            destination,
            time.perf_counter() - start,
            extra={"migration_id": self.id, "source": source, "destination": destination},
        )
        return written

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id})"


def _raise_first_error(workers: list[asyncio.Task[int]]) -> None:
    for worker in workers:
        if worker.done() and not worker.cancelled():
            error = worker.exception()
            if error is not None:
                raise error


__all__ = ["Migration", "ReindexTargets"]
