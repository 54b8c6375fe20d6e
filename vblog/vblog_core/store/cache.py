"""
In-memory mirror of the entity collections.

Invariants:
    - Each collection is held as a list sorted by ascending id
    - The cache is only changed after the matching durable write succeeded
    - No locking: the core runs on a single asyncio loop and never awaits
      between reading and mutating a cached list
"""

from __future__ import annotations

from typing import Iterable

from .models import Entity, EntityKind


class EntityCache:
    """Ordered per-collection mirror of durable entities."""

    def __init__(self) -> None:
        self._items: dict[EntityKind, list[Entity]] = {kind: [] for kind in EntityKind}

    def get(self, kind: EntityKind | str) -> list[Entity]:
        """The live cached list for a collection."""
        return self._items[EntityKind(kind)]

    def replace(self, kind: EntityKind | str, items: Iterable[Entity]) -> None:
        """Replace a collection's contents, keeping ascending id order."""
        self._items[EntityKind(kind)][:] = sorted(items, key=_sort_key)

    def append(self, kind: EntityKind | str, item: Entity) -> None:
        """Add one entity, keeping ascending id order."""
        items = self._items[EntityKind(kind)]
        if items and _sort_key(item) < _sort_key(items[-1]):
            items.append(item)
            items.sort(key=_sort_key)
        else:
            items.append(item)

    def find(self, kind: EntityKind | str, entity_id: int) -> Entity | None:
        for item in self._items[EntityKind(kind)]:
            if item.id == entity_id:
                return item
        return None

    def ids(self, kind: EntityKind | str) -> list[int]:
        """Integer ids currently cached for a collection."""
        return [item.id for item in self._items[EntityKind(kind)] if isinstance(item.id, int)]

    def sizes(self) -> dict[str, int]:
        return {kind.value: len(items) for kind, items in self._items.items()}


def _sort_key(item: Entity) -> tuple[int, int]:
    # Non-integer ids sort after every integer id
    return (0, item.id) if isinstance(item.id, int) else (1, 0)
