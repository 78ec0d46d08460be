"""Library exceptions for the indexmigrate package."""


class IndexMigrateError(Exception):
    """Base exception for indexmigrate library."""

    pass


class InvalidIndexNameError(IndexMigrateError, ValueError):
    """Raised when a logical index name cannot be formatted into a versioned name."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid index name '{name}': {reason}")


class InvalidMigrationNameError(IndexMigrateError, ValueError):
    """Raised when a migration id cannot be derived from a declared migration name."""

    def __init__(self, declared_name: str) -> None:
        self.declared_name = declared_name
        super().__init__(
            f"Cannot derive migration id from '{declared_name}': "
            f"name must end in a decimal identifier (e.g. 'Migration202009082258')"
        )


class MigrationError(IndexMigrateError):
    """Raised when a single migration unit cannot complete."""

    def __init__(self, migration_id: int, message: str) -> None:
        self.migration_id = migration_id
        super().__init__(f"Migration {migration_id}: {message}")


class SourceIndexNotFoundError(MigrationError):
    """
    Raised when no earlier generation of a logical index exists to reindex from.

    Attributes:
        logical_name: The logical index name that was resolved
        migration_id: Id of the migration that requested the source
    """

    def __init__(self, logical_name: str, migration_id: int) -> None:
        self.logical_name = logical_name
        super().__init__(migration_id, f"could not find source index for '{logical_name}'")


class DestinationIndexExistsError(MigrationError):
    """
    Raised when the destination generation of a migration already exists.

    This usually means a previous run of the same migration was interrupted
    without its indices being rolled back.

    Attributes:
        index_name: The destination index that already exists
        migration_id: Id of the migration that owns the destination
    """

    def __init__(self, index_name: str, migration_id: int) -> None:
        self.index_name = index_name
        super().__init__(migration_id, f"destination index '{index_name}' already exists")


class DuplicateMigrationError(IndexMigrateError, ValueError):
    """Raised when two different migrations are registered under the same id."""

    def __init__(self, migration_id: int, existing: object, new: object) -> None:
        self.migration_id = migration_id
        self.existing = existing
        self.new = new
        super().__init__(
            f"Migration id {migration_id} is already registered to {_describe(existing)}. "
            f"Cannot register {_describe(new)} with the same id."
        )


class UnknownMigrationError(IndexMigrateError, KeyError):
    """Raised when looking up a migration id that is not registered."""

    def __init__(self, migration_id: int, available_ids: list[int]) -> None:
        self.migration_id = migration_id
        self.available_ids = available_ids
        available = ", ".join(str(i) for i in available_ids) if available_ids else "none"
        super().__init__(f"Unknown migration id {migration_id}. Registered ids: {available}")


class SearchClientError(IndexMigrateError):
    """Raised when the search engine rejects or fails an index operation."""

    def __init__(self, operation: str, index: str, message: str) -> None:
        self.operation = operation
        self.index = index
        super().__init__(f"Search engine {operation} failed for '{index}': {message}")


def _describe(factory: object) -> str:
    return getattr(factory, "__qualname__", None) or repr(factory)
