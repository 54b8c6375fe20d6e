"""
Numeric id allocation backed by durable counters.

Invariants:
    - Every value returned by next() for a name is unique while the durable
      store is reachable, and the stored seq is always returned + 1
    - ensure_counter() never overwrites an existing counter
    - ensure_counter() and next() for the same name are serialized, so a
      bootstrap in progress finishes before the first allocation
    - An entity counter is ensured from its collection before its first
      increment, so allocation never restarts below existing ids

The fallback path (store unreachable) computes max(cached ids) + 1 without
persisting it. It is not atomic and may collide with concurrent callers.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections import defaultdict

from .cache import EntityCache
from .document_store import DocumentStore, StoreError
from .models import EntityKind

logger = logging.getLogger(__name__)

_ENTITY_COUNTERS = frozenset(kind.value for kind in EntityKind)


class SequenceAllocator:
    """Hands out strictly increasing integer ids, one counter per entity kind.

    Example:
        >>> allocator = SequenceAllocator(store, cache)
        >>> await allocator.ensure_counter("posts", "posts")
        >>> await allocator.next("posts")
        4
    """

    def __init__(self, store: DocumentStore, cache: EntityCache | None = None) -> None:
        self.store = store
        self.cache = cache
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._ensured: set[str] = set()
        self.fallback_count = 0

    def is_ensured(self, name: str) -> bool:
        return name in self._ensured

    async def ensure_counter(self, name: str, source_collection: str, id_field: str = "id") -> int:
        """Create the counter from existing data if it doesn't exist yet.

        Args:
            name: Counter name (e.g. "users")
            source_collection: Collection scanned for the current max id
            id_field: Field holding the numeric id

        Returns:
            The counter's current seq
        """
        async with self._locks[name]:
            return await self._ensure(name, source_collection, id_field)

    async def next(self, name: str) -> int:
        """Reserve the next id for ``name``.

        An entity counter that was never ensured is bootstrapped from its
        collection first. Falls back to the cache when the durable store fails.
        """
        async with self._locks[name]:
            try:
                if name not in self._ensured and name in _ENTITY_COUNTERS:
                    await self._ensure(name, name, "id")
                return await self.store.increment_counter(name)
            except (StoreError, sqlite3.Error) as e:
                value = self._fallback(name)
                self.fallback_count += 1
                logger.warning(
                    f"Counter store unavailable, using non-atomic fallback id for {name}: {e}",
                    extra={"counter": name, "fallback_id": value},
                )
                return value

    async def _ensure(self, name: str, source_collection: str, id_field: str) -> int:
        # Caller holds self._locks[name]
        existing = await self.store.get_counter(name)
        if existing is None:
            max_id = await self.store.max_id(source_collection, id_field)
            seq = max_id + 1 if max_id is not None else 1
            if await self.store.create_counter(name, seq):
                logger.info(f"Initialized counter {name} -> {seq}", extra={"counter": name, "seq": seq})
                existing = seq
            else:
                # Another process created it between our read and insert
                existing = await self.store.get_counter(name)

        self._ensured.add(name)
        return existing

    def _fallback(self, name: str) -> int:
        ids: list[int] = []
        if self.cache is not None and name in _ENTITY_COUNTERS:
            ids = self.cache.ids(name)
        return max(ids, default=0) + 1
