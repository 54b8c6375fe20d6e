"""
BlogCore - the handle the request-handling layer holds.

BlogCore owns one instance of every component and exposes the operations
the surrounding layer calls:

    bootstrap()                          once, before anything else (idempotent)
    load_all(kind) / save(kind, snapshot) / add(kind, record)
    next(kind)
    record(event) / dispatch(event)
    hourly(date, type) / daily_totals(from, to, type) / weekly_averages(days, type)
    version_markers()
    close()

Invariants:
    - bootstrap() ensures every counter before any id can be allocated
    - Analytics availability is decided at construction; with analytics
      disabled the analytics operations raise AnalyticsDisabledError
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from .analytics import (
    AggregationEngine,
    AnalyticsBackend,
    AnalyticsDisabledError,
    AnalyticsEvent,
    AnalyticsEventLog,
    DailyTotal,
    EventDispatcher,
    SqliteAnalyticsBackend,
    VersionMarker,
    load_version_markers,
)
from .analytics.base import DateLike
from .config import CoreConfig
from .store import DocumentStore, Entity, EntityCache, EntityKind, EntityStore, SequenceAllocator

logger = logging.getLogger(__name__)

DEFAULT_TYPE: Any = object()


class BlogCore:
    """Persistence and analytics core.

    Attributes:
        config: Core configuration
        store: Durable document store
        cache: In-memory mirror of the entity collections
        allocator: Id allocator
        entities: Entity collections and domain helpers
        event_log: Analytics event log (None when analytics is disabled)
        dispatcher: Fire-and-forget event queue (None when analytics is disabled)
        aggregation: Aggregation engine (None when analytics is disabled)

    Example:
        >>> core = BlogCore(CoreConfig.from_env())
        >>> await core.bootstrap()
        >>> user = await core.entities.create_user("ada", "5baa61e4...")
        >>> core.dispatch({"type": "signup", "meta": {"username": "ada"}})
        >>> await core.close()
    """

    def __init__(
        self,
        config: CoreConfig | None = None,
        analytics_backend: AnalyticsBackend | None = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Wire the components together. Nothing touches the database yet.

        Args:
            config: Core configuration (defaults if not provided)
            analytics_backend: Backend for events; the SQLite one if not provided
            clock: Current-time source for weekly averages
        """
        self.config = config or CoreConfig()
        storage = self.config.storage

        self.store = DocumentStore(
            db_path=storage.db_path,
            wal_mode=storage.wal_mode,
            busy_timeout_ms=storage.busy_timeout_ms,
            cache_size_pages=storage.cache_size_pages,
        )
        self.cache = EntityCache()
        self.allocator = SequenceAllocator(self.store, self.cache)
        self.entities = EntityStore(self.store, self.allocator, self.cache)

        self.event_log: AnalyticsEventLog | None = None
        self.dispatcher: EventDispatcher | None = None
        self.aggregation: AggregationEngine | None = None
        if self.config.analytics.enabled:
            backend = analytics_backend or SqliteAnalyticsBackend(self.store)
            self.event_log = AnalyticsEventLog(backend)
            self.dispatcher = EventDispatcher(
                self.event_log,
                max_pending=self.config.analytics.queue_max_size,
                max_failures=self.config.analytics.failure_buffer_size,
            )
            self.aggregation = AggregationEngine(backend, clock=clock)

        self._bootstrapped = False
        self._bootstrap_lock = asyncio.Lock()

    @property
    def is_bootstrapped(self) -> bool:
        return self._bootstrapped

    async def bootstrap(self) -> None:
        """Create the schema, ensure counters, prime caches, start the dispatcher.

        Safe to call more than once; later calls are no-ops.
        """
        async with self._bootstrap_lock:
            if self._bootstrapped:
                logger.debug("Core already bootstrapped")
                return

            await self.store.initialize()
            for kind in EntityKind:
                await self.allocator.ensure_counter(kind.value, kind.value, "id")

            sizes = await self.entities.reload()
            if self.dispatcher is not None:
                await self.dispatcher.start()

            self._bootstrapped = True
            logger.info(
                f"Loaded caches: users={sizes['users']}, posts={sizes['posts']}, chats={sizes['chats']}",
                extra=sizes,
            )

    async def close(self) -> None:
        """Drain pending analytics events and stop the dispatcher."""
        if self.dispatcher is not None:
            await self.dispatcher.stop()
        self._bootstrapped = False
        logger.info("Core closed")

    # ---------- Entities ----------

    async def load_all(self, kind: EntityKind | str) -> list[Entity]:
        await self._ready()
        return await self.entities.load_all(kind)

    async def save(self, kind: EntityKind | str, snapshot: list[Entity]) -> None:
        await self._ready()
        await self.entities.save(kind, snapshot)

    async def add(self, kind: EntityKind | str, record: Entity) -> Entity:
        await self._ready()
        return await self.entities.add(kind, record)

    async def next(self, kind: EntityKind | str) -> int:
        await self._ready()
        return await self.allocator.next(EntityKind(kind).value)

    async def _ready(self) -> None:
        # Entity operations before bootstrap() bootstrap first
        if not self._bootstrapped:
            await self.bootstrap()

    # ---------- Analytics ----------

    async def record(self, event: AnalyticsEvent | Mapping[str, Any] | None) -> AnalyticsEvent:
        """Append one event and wait for the write."""
        return await self._require(self.event_log).record(event)

    def dispatch(self, event: AnalyticsEvent | Mapping[str, Any] | None) -> bool:
        """Queue one event without waiting. Returns False if it was dropped."""
        return self._require(self.dispatcher).dispatch(event)

    async def hourly(self, day: DateLike, event_type: Optional[str] = DEFAULT_TYPE) -> list[int]:
        return await self._require(self.aggregation).hourly(day, self._type(event_type))

    async def daily_totals(
        self,
        start: DateLike,
        end: DateLike,
        event_type: Optional[str] = DEFAULT_TYPE,
    ) -> list[DailyTotal]:
        return await self._require(self.aggregation).daily_totals(start, end, self._type(event_type))

    async def weekly_averages(self, days: int | None = None, event_type: Optional[str] = DEFAULT_TYPE) -> list[float]:
        days = days or self.config.analytics.weekly_window_days
        return await self._require(self.aggregation).weekly_averages(days, self._type(event_type))

    def version_markers(self) -> list[VersionMarker]:
        return load_version_markers(self.config.analytics.version_markers_path)

    def _type(self, event_type: Any) -> Optional[str]:
        # Omitted means the configured default; an explicit None or "" means every type
        if event_type is DEFAULT_TYPE:
            return self.config.analytics.default_type
        return event_type

    @staticmethod
    def _require(component: Any) -> Any:
        if component is None:
            raise AnalyticsDisabledError("Analytics is disabled (ANALYTICS_ENABLED=false)")
        return component
