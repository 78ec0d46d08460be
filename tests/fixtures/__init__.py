"""
Shared test fixtures for the indexmigrate library.

Usage:
    from tests.fixtures import (
        NoteV1,
        NoteV2,
        ScriptedMigration,
        scripted,
        upgrade_note,
    )
"""

from tests.fixtures.documents import Attachment, NoteV1, NoteV2, upgrade_note
from tests.fixtures.migrations import (
    Migration202001010000,
    ScriptedMigration,
    build_registry,
    scripted,
)

__all__ = [
    # Documents
    "Attachment",
    "NoteV1",
    "NoteV2",
    "upgrade_note",
    # Migrations
    "Migration202001010000",
    "ScriptedMigration",
    "build_registry",
    "scripted",
]
