"""
Migration registry.

The registry is the ordered table of migration units known to a deployment.
It is built explicitly at the composition root and handed to the
MigrationManager; nothing is discovered by scanning modules.

Usage:
    registry = MigrationRegistry()

    # Option 1: Decorator, id from the class name
    @registry.register
    class Migration202001010000(Migration):
        ...

    # Option 2: Explicit registration
    registry.register(Migration202009022106)

    # Option 3: Any factory callable with an explicit id
    registry.register(lambda context: AddAvailability(context, 202009022106), 202009022106)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from typing import TypeVar, overload

from indexmigrate.exceptions import DuplicateMigrationError, MigrationError, UnknownMigrationError
from indexmigrate.migrations.base import Migration
from indexmigrate.migrations.context import MigrationContext

logger = logging.getLogger(__name__)

MigrationFactory = Callable[[MigrationContext], Migration]
"""Callable that constructs a migration unit for one run."""

TFactory = TypeVar("TFactory", bound=Callable[..., Migration])


class MigrationRegistry:
    """
    Ordered table of ``(migration_id, factory)`` pairs.

    Iteration, ``ids()`` and ``latest_id`` always use ascending id order,
    regardless of registration order.

    Thread-Safety:
        All operations are thread-safe and use internal locking.

    Example:
        >>> registry = MigrationRegistry()
        >>> registry.register(Migration202001010000)
        >>> registry.register(Migration202009022106)
        >>> registry.ids()
        [202001010000, 202009022106]
    """

    def __init__(self) -> None:
        self._factories: dict[int, Callable[..., Migration]] = {}
        self._lock = threading.RLock()

    @overload
    def register(self, factory: TFactory, migration_id: int | None = None) -> TFactory: ...

    @overload
    def register(
        self, factory: None = None, migration_id: int | None = None
    ) -> Callable[[TFactory], TFactory]: ...

    def register(
        self,
        factory: TFactory | None = None,
        migration_id: int | None = None,
    ) -> TFactory | Callable[[TFactory], TFactory]:
        """
        Register a migration factory.

        Args:
            factory: A Migration subclass, or a callable taking a
                MigrationContext and returning a Migration
            migration_id: Explicit id. Required for callables that are not
                Migration subclasses; for subclasses it overrides the id
                derived from the declared name.

        Returns:
            The factory (enables use as decorator). Without a factory,
            returns a decorator that registers under ``migration_id``.

        Raises:
            DuplicateMigrationError: If the id is registered to a different factory
            InvalidMigrationNameError: If a subclass's declared name has no id
            ValueError: If the id cannot be determined or is negative
        """
        if factory is None:
            return lambda f: self.register(f, migration_id)

        resolved_id = self._resolve_id(factory, migration_id)

        with self._lock:
            existing = self._factories.get(resolved_id)
            if existing is not None:
                if existing is not factory:
                    raise DuplicateMigrationError(resolved_id, existing, factory)
                return factory

            self._factories[resolved_id] = factory
            logger.debug(
                "Registered migration %d -> %s",
                resolved_id,
                getattr(factory, "__qualname__", factory),
                extra={"migration_id": resolved_id},
            )
            return factory

    def _resolve_id(self, factory: Callable[..., Migration], migration_id: int | None) -> int:
        if migration_id is None:
            if not (isinstance(factory, type) and issubclass(factory, Migration)):
                raise ValueError(
                    f"An explicit migration_id is required to register {factory!r}"
                )
            migration_id = factory.declared_id()

        if migration_id < 0:
            raise ValueError(f"Migration id must be >= 0, got {migration_id}")
        return migration_id

    def get(self, migration_id: int) -> Callable[..., Migration]:
        """
        Get the factory registered under an id.

        Raises:
            UnknownMigrationError: If the id is not registered
        """
        with self._lock:
            if migration_id not in self._factories:
                raise UnknownMigrationError(migration_id, sorted(self._factories))
            return self._factories[migration_id]

    def create(self, migration_id: int, context: MigrationContext) -> Migration:
        """
        Construct the migration unit registered under an id.

        Raises:
            UnknownMigrationError: If the id is not registered
            MigrationError: If the factory produced a unit with another id
        """
        factory = self.get(migration_id)

        if isinstance(factory, type) and issubclass(factory, Migration):
            unit = factory(context, migration_id)
        else:
            unit = factory(context)

        if unit.id != migration_id:
            raise MigrationError(
                migration_id,
                f"factory {getattr(factory, '__qualname__', factory)!r} "
                f"produced a unit with id {unit.id}",
            )
        return unit

    def ids(self) -> list[int]:
        """All registered ids, ascending."""
        with self._lock:
            return sorted(self._factories)

    @property
    def latest_id(self) -> int | None:
        """Highest registered id, or None if the registry is empty."""
        with self._lock:
            return max(self._factories, default=None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._factories)

    def __bool__(self) -> bool:
        """Registry is always truthy, even when empty."""
        return True

    def __contains__(self, migration_id: object) -> bool:
        with self._lock:
            return migration_id in self._factories

    def __iter__(self) -> Iterator[tuple[int, Callable[..., Migration]]]:
        """Iterate over ``(id, factory)`` pairs in ascending id order."""
        with self._lock:
            return iter(sorted(self._factories.items(), key=lambda item: item[0]))


__all__ = ["MigrationFactory", "MigrationRegistry"]
