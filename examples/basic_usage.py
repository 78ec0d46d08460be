"""
Basic Usage Example

Runs the book migrations against in-memory collaborators:
1. The first run creates the initial book index and seeds it
2. A newer deployment registers the availability migration and runs again
3. Finalize deletes the superseded generation and unblocks writes

Run from the repository root with: python -m examples.basic_usage
"""

import asyncio
import logging
from datetime import UTC, datetime

from indexmigrate import (
    InMemoryCache,
    InMemoryLockManager,
    InMemorySearchIndexClient,
    InMemoryWriteGate,
    MigrationConfig,
    MigrationManager,
    MigrationRegistry,
    SearchDocument,
)

from examples.book_migrations import Migration202001010000, Migration202009022106


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    config = MigrationConfig(index_prefix="demo-", enable_tracing=False)
    client = InMemorySearchIndexClient()
    locks = InMemoryLockManager()
    gate = InMemoryWriteGate()
    cache = InMemoryCache({"el:book:1": "cached", "el:book:2": "cached"})

    # First deployment only knows the initial migration
    old_registry = MigrationRegistry()
    old_registry.register(Migration202001010000)

    manager = MigrationManager(old_registry, client, locks, gate, cache, config)
    result = await manager.run()
    print(f"Initial run applied {result.applied}")

    now = datetime.now(UTC).isoformat()
    await client.bulk_index("demo-book-202001010000", _seed_documents(now))
    await manager.finalize()

    # Newer deployment adds the availability migration
    registry = MigrationRegistry()
    registry.register(Migration202001010000)
    registry.register(Migration202009022106)

    manager = MigrationManager(registry, client, locks, gate, cache, config)
    result = await manager.run()
    print(f"Upgrade run applied {result.applied}, writes blocked: {await gate.is_blocked()}")

    status = await manager.status()
    print(f"Generations before finalize: {status.generations}")

    finalized = await manager.finalize()
    print(f"Finalize deleted {finalized.deleted}, retained {finalized.retained}")
    print(f"Cache keys left: {list(cache.entries)}")

    book = client.get_index("demo-book-202009022106").documents["1"]  # type: ignore[union-attr]
    print(f"Migrated book: {book}")


def _seed_documents(now: str) -> list[SearchDocument]:
    return [
        SearchDocument(
            id="1",
            source={
                "Tc": now,
                "Tu": now,
                "np": "Example Book",
                "tg": ["example", "demo"],
                "co": [
                    {"id": "c1", "pg": 24, "la": "en", "sr": "hitomi", "si": "100"},
                ],
            },
        ),
        SearchDocument(
            id="2",
            source={"Tc": now, "Tu": now, "np": "Another Book", "co": []},
        ),
    ]


if __name__ == "__main__":
    asyncio.run(main())
