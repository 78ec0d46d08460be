"""
Book Migrations Example

Migration units for a small book catalogue:
- Migration202001010000 creates the first generation of the "book" index
- Migration202009022106 reindexes books, adding an availability flag to
  every content entry and caching it on the book

Each migration declares its own frozen copy of the document shapes it reads
and writes, so old migrations stay valid when the live models change.

Used by basic_usage.py, or from the command line:
    indexmigrate run --registry examples.book_migrations:registry
"""

from __future__ import annotations

from datetime import datetime

from indexmigrate import IndexDocument, MappedModel, Migration, MigrationRegistry, mapped

registry = MigrationRegistry()


# =============================================================================
# Generation 202001010000
# =============================================================================


class BookContentV1(MappedModel):
    id: str = mapped("keyword", index=False)
    page_count: int = mapped("integer", name="pg", doc_values=False)
    language: str = mapped("keyword", name="la", doc_values=False)
    source: str = mapped("keyword", name="sr", doc_values=False)
    source_id: str = mapped("keyword", name="si", doc_values=False)


class BookV1(IndexDocument):
    created_time: datetime = mapped("date", name="Tc")
    updated_time: datetime = mapped("date", name="Tu")
    primary_name: str = mapped("text", name="np")
    english_name: str | None = mapped("text", name="ne", default=None)
    tags: list[str] = mapped("text", name="tg", default_factory=list)
    contents: list[BookContentV1] = mapped("object", name="co", enabled=False, default_factory=list)


@registry.register
class Migration202001010000(Migration):
    """Creates the initial book index."""

    async def run(self) -> None:
        await self.create_index(self.index_name("book"), BookV1)


# =============================================================================
# Generation 202009022106
# =============================================================================


class BookContentV2(BookContentV1):
    refresh_time: datetime | None = mapped("date", name="Tr", default=None)
    is_available: bool = mapped("boolean", name="av", doc_values=False, default=True)


class BookV2(IndexDocument):
    created_time: datetime = mapped("date", name="Tc")
    updated_time: datetime = mapped("date", name="Tu")
    primary_name: str = mapped("text", name="np")
    english_name: str | None = mapped("text", name="ne", default=None)
    tags: list[str] = mapped("text", name="tg", default_factory=list)
    contents: list[BookContentV2] = mapped("object", name="co", enabled=False, default_factory=list)

    # Cached
    page_count: list[int] = mapped("integer", name="pc", default_factory=list)
    tag_count: int = mapped("integer", name="tC", default=0)
    is_available: list[bool] = mapped("boolean", name="av", doc_values=False, default_factory=list)

    def refresh_derived(self) -> None:
        self.page_count = [c.page_count for c in self.contents]
        self.tag_count = len(self.tags)
        self.is_available = [c.is_available for c in self.contents]


def upgrade_book(book: BookV1) -> BookV2:
    return BookV2(
        id=book.id,
        created_time=book.created_time,
        updated_time=book.updated_time,
        primary_name=book.primary_name,
        english_name=book.english_name,
        tags=book.tags,
        contents=[
            # available by default
            BookContentV2(**content.model_dump(), refresh_time=None, is_available=True)
            for content in book.contents
        ],
    )


@registry.register
class Migration202009022106(Migration):
    """Adds an availability flag to books."""

    async def run(self) -> None:
        source, destination = await self.get_reindex_targets("book")
        await self.map_index(source, destination, BookV1, BookV2, upgrade_book)
