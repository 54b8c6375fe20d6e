"""
Non-blocking dispatch of analytics events through a bounded queue.

Callers hand events to dispatch() and never wait for the write. A single
worker task drains the queue into the event log. Backpressure and failure
are explicit:

- dispatch() returns False when the queue is full and the event is dropped
- a failed write is logged and pushed onto the ``failures`` queue, which
  keeps the most recent failures (oldest dropped when full)

Invariants:
    - A failed record never propagates to the dispatching caller
    - Events may be written out of order relative to their timestamps;
      aggregation buckets by timestamp and does not care
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from .base import AnalyticsEvent
from .event_log import AnalyticsEventLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchFailure:
    """An event whose write failed, with the error raised by the backend."""

    event: AnalyticsEvent
    error: BaseException


class EventDispatcher:
    """Bounded fire-and-forget queue in front of the analytics event log.

    Example:
        >>> dispatcher = EventDispatcher(event_log, max_pending=1000)
        >>> await dispatcher.start()
        >>> dispatcher.dispatch({"type": "visit"})
        True
        >>> await dispatcher.stop()
    """

    def __init__(
        self,
        event_log: AnalyticsEventLog,
        max_pending: int = 1000,
        max_failures: int = 100,
    ) -> None:
        self.event_log = event_log
        self.max_pending = max_pending
        self.failures: asyncio.Queue[DispatchFailure] = asyncio.Queue(maxsize=max_failures)
        self._queue: asyncio.Queue[AnalyticsEvent] = asyncio.Queue(maxsize=max_pending)
        self._worker: asyncio.Task | None = None
        self._running = False
        self.recorded_count = 0
        self.dropped_count = 0
        self.failed_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        """Start the worker task."""
        if self._running:
            logger.warning("Event dispatcher already running")
            return

        self._running = True
        self._worker = asyncio.create_task(self._run())
        logger.info("Started event dispatcher", extra={"max_pending": self.max_pending})

    def dispatch(self, event: AnalyticsEvent | Mapping[str, Any] | None) -> bool:
        """Queue an event for recording without waiting.

        The timestamp is fixed here, not when the worker gets to it.

        Returns:
            True if queued, False if dropped because the queue is full
            or the dispatcher is stopped
        """
        normalized = AnalyticsEvent.normalize(event)
        if not self._running:
            self.dropped_count += 1
            logger.warning(
                "Event dispatcher not running, dropping event",
                extra={"event_type": normalized.type},
            )
            return False

        try:
            self._queue.put_nowait(normalized)
        except asyncio.QueueFull:
            self.dropped_count += 1
            logger.warning(
                "Analytics queue full, dropping event",
                extra={"event_type": normalized.type, "max_pending": self.max_pending},
            )
            return False
        return True

    async def flush(self) -> None:
        """Wait until every queued event has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        """Drain the queue and stop the worker."""
        if not self._running:
            return

        self._running = False
        await self._queue.join()
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None
        logger.info(
            "Stopped event dispatcher",
            extra={
                "recorded": self.recorded_count,
                "dropped": self.dropped_count,
                "failed": self.failed_count,
            },
        )

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.event_log.record(event)
                self.recorded_count += 1
            except Exception as e:
                self.failed_count += 1
                logger.error(f"Analytics record error: {e}", extra={"event_type": event.type}, exc_info=True)
                self._push_failure(DispatchFailure(event=event, error=e))
            finally:
                self._queue.task_done()

    def _push_failure(self, failure: DispatchFailure) -> None:
        if self.failures.full():
            self.failures.get_nowait()
        self.failures.put_nowait(failure)
