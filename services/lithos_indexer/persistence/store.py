"""
Entity Store

Synchronous get/set storage for derived entities, injected into every
aggregator.

Aggregators never hold references across events: each handler loads, mutates
and upserts. `load` returns a copy so an aggregated value only changes once it
is explicitly upserted.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Iterator, Optional, TypeVar

from ..core.entities import ENTITY_TYPES, Entity, EntityKind

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)

EntityKey = tuple[EntityKind, str]


class EntityStore(ABC):
    """Abstract entity storage."""

    @abstractmethod
    def load(self, cls: type[E], entity_id: str) -> Optional[E]:
        """Load an entity by id, or None if it does not exist."""

    @abstractmethod
    def upsert(self, entity: Entity) -> None:
        """Insert or replace an entity."""

    @abstractmethod
    def remove(self, cls: type[Entity], entity_id: str) -> bool:
        """Delete an entity. Returns True if it existed."""

    @abstractmethod
    def all(self, cls: type[E]) -> Iterator[E]:
        """Iterate over every entity of a kind."""

    def exists(self, cls: type[Entity], entity_id: str) -> bool:
        return self.load(cls, entity_id) is not None

    def ensure_exists(self, cls: type[E], entity_id: str, factory: Callable[[], E]) -> E:
        """
        Load an entity, creating and upserting it with `factory` if absent.

        This is the only get-or-create path; handlers that must not fabricate
        entities use `load` and skip on None.
        """
        entity = self.load(cls, entity_id)
        if entity is not None:
            return entity

        entity = factory()
        if entity.id != entity_id:
            raise ValueError(
                f"Factory for {cls.KIND.value} produced id {entity.id!r}, expected {entity_id!r}"
            )
        self.upsert(entity)
        logger.debug(f"Created {cls.KIND.value} {entity_id}")
        return entity


class InMemoryEntityStore(EntityStore):
    """
    Dict-backed store with change tracking.

    Changes since the last `drain_changes()` are tracked so a repository can
    persist only what moved.

    Usage:
        store = InMemoryEntityStore()
        store.upsert(Token(id="0xabc"))
        upserts, removals = store.drain_changes()
    """

    def __init__(self):
        self._tables: dict[EntityKind, dict[str, Entity]] = {}
        self._dirty: set[EntityKey] = set()
        self._removed: set[EntityKey] = set()
        self._lock = threading.RLock()

    def load(self, cls: type[E], entity_id: str) -> Optional[E]:
        with self._lock:
            entity = self._tables.get(cls.KIND, {}).get(entity_id)
            if entity is None:
                return None
            return entity.model_copy(deep=True)

    def upsert(self, entity: Entity) -> None:
        key = (entity.KIND, entity.id)
        with self._lock:
            self._tables.setdefault(entity.KIND, {})[entity.id] = entity.model_copy(deep=True)
            self._dirty.add(key)
            self._removed.discard(key)

    def remove(self, cls: type[Entity], entity_id: str) -> bool:
        key = (cls.KIND, entity_id)
        with self._lock:
            existed = self._tables.get(cls.KIND, {}).pop(entity_id, None) is not None
            if existed:
                self._dirty.discard(key)
                self._removed.add(key)
            return existed

    def all(self, cls: type[E]) -> Iterator[E]:
        with self._lock:
            entities = [e.model_copy(deep=True) for e in self._tables.get(cls.KIND, {}).values()]
        return iter(entities)

    def count(self, cls: Optional[type[Entity]] = None) -> int:
        """Number of stored entities, optionally for one kind."""
        with self._lock:
            if cls is not None:
                return len(self._tables.get(cls.KIND, {}))
            return sum(len(table) for table in self._tables.values())

    def drain_changes(self) -> tuple[list[Entity], list[EntityKey]]:
        """
        Return entities upserted and keys removed since the last drain, and
        reset tracking.
        """
        with self._lock:
            upserts = [
                self._tables[kind][entity_id].model_copy(deep=True)
                for kind, entity_id in sorted(self._dirty, key=lambda k: (k[0].value, k[1]))
            ]
            removals = sorted(self._removed, key=lambda k: (k[0].value, k[1]))
            self._dirty.clear()
            self._removed.clear()
        return upserts, removals

    def requeue(self, upserts: list[Entity], removals: list[EntityKey]) -> None:
        """Put drained changes back after a failed write; newer changes win."""
        with self._lock:
            for entity in upserts:
                key = (entity.KIND, entity.id)
                if key not in self._removed and entity.id in self._tables.get(entity.KIND, {}):
                    self._dirty.add(key)
            for key in removals:
                if key not in self._dirty and key[1] not in self._tables.get(key[0], {}):
                    self._removed.add(key)

    def restore(self, kind: EntityKind, entity_id: str, data: dict) -> Entity:
        """Load a persisted row without marking it dirty."""
        cls = ENTITY_TYPES[kind]
        entity = cls.model_validate(data)
        if entity.id != entity_id:
            raise ValueError(f"Persisted {kind.value} row {entity_id!r} holds id {entity.id!r}")
        with self._lock:
            self._tables.setdefault(kind, {})[entity_id] = entity
        return entity
