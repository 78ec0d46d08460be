"""
Versioned index naming.

Every index the search engine sees is named ``{prefix}{logical_name}-{migration_id}``.
The logical name identifies a class of documents across generations ("book",
"user"); the migration id identifies the migration that created the generation.

Example:
    >>> format_index_name("book", 202009022106, prefix="idx-")
    'idx-book-202009022106'
    >>> try_parse_index_name("idx-book-202009022106", prefix="idx-")
    IndexName(logical_name='book', migration_id=202009022106)
"""

from __future__ import annotations

import re
from typing import NamedTuple

from indexmigrate.exceptions import InvalidIndexNameError, InvalidMigrationNameError

_DIGITS = re.compile(r"[0-9]+")
_TRAILING_VERSION = re.compile(r"-[0-9]+$")
_DECLARED_ID = re.compile(r"([0-9]+)$")


class IndexName(NamedTuple):
    """A parsed versioned index name."""

    logical_name: str
    migration_id: int


def format_index_name(logical_name: str, migration_id: int, prefix: str = "") -> str:
    """
    Format the versioned index name of a logical index generation.

    Args:
        logical_name: Version-independent index name (e.g. "book")
        migration_id: Id of the migration that owns the generation
        prefix: Index prefix shared by all indices of the deployment

    Returns:
        Index name in the form ``{prefix}{logical_name}-{migration_id}``

    Raises:
        InvalidIndexNameError: If the logical name is empty or already ends
            in ``-<digits>``, or the id is negative
    """
    if not logical_name:
        raise InvalidIndexNameError(logical_name, "logical name must not be empty")
    if _TRAILING_VERSION.search(logical_name):
        raise InvalidIndexNameError(
            logical_name, "logical name must not end in '-<digits>'"
        )
    if migration_id < 0:
        raise InvalidIndexNameError(logical_name, f"migration id {migration_id} is negative")

    return f"{prefix}{logical_name}-{migration_id}"


def try_parse_index_name(index_name: str, prefix: str = "") -> IndexName | None:
    """
    Parse a versioned index name.

    The name is split on its last ``-``; the suffix must be decimal digits.

    Args:
        index_name: Full index name as reported by the search engine
        prefix: Index prefix to strip before parsing

    Returns:
        IndexName, or None if the name does not start with ``prefix`` or is
        not in versioned form
    """
    if not index_name.startswith(prefix):
        return None

    name = index_name[len(prefix) :]
    logical_name, dash, suffix = name.rpartition("-")

    if not dash or not logical_name or not _DIGITS.fullmatch(suffix):
        return None

    return IndexName(logical_name, int(suffix))


def index_pattern(prefix: str, logical_name: str | None = None) -> str:
    """
    Wildcard pattern matching all generations under a prefix.

    Args:
        prefix: Index prefix
        logical_name: Restrict the pattern to one logical index

    Returns:
        ``{prefix}*`` or ``{prefix}{logical_name}-*``
    """
    if logical_name is None:
        return f"{prefix}*"
    return f"{prefix}{logical_name}-*"


def parse_migration_id(declared_name: str) -> int:
    """
    Derive a migration id from the declared name of a migration.

    Example:
        >>> parse_migration_id("Migration202009082258")
        202009082258

    Raises:
        InvalidMigrationNameError: If the name does not end in digits
    """
    match = _DECLARED_ID.search(declared_name)
    if match is None:
        raise InvalidMigrationNameError(declared_name)
    return int(match.group(1))


class IndexNaming:
    """Index naming bound to one deployment prefix."""

    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix

    def format(self, logical_name: str, migration_id: int) -> str:
        return format_index_name(logical_name, migration_id, self.prefix)

    def try_parse(self, index_name: str) -> IndexName | None:
        return try_parse_index_name(index_name, self.prefix)

    def pattern(self, logical_name: str | None = None) -> str:
        return index_pattern(self.prefix, logical_name)

    def __repr__(self) -> str:
        return f"IndexNaming(prefix={self.prefix!r})"


__all__ = [
    "IndexName",
    "IndexNaming",
    "format_index_name",
    "index_pattern",
    "parse_migration_id",
    "try_parse_index_name",
]
