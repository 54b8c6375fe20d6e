"""
Append-only analytics event log.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .base import AnalyticsBackend, AnalyticsEvent, to_ms

logger = logging.getLogger(__name__)


class AnalyticsEventLog:
    """Normalizes events and appends them to the backend, one row per call."""

    def __init__(self, backend: AnalyticsBackend) -> None:
        self.backend = backend

    async def record(self, event: AnalyticsEvent | Mapping[str, Any] | None) -> AnalyticsEvent:
        """Append one event.

        Args:
            event: An AnalyticsEvent, or a mapping with type/ts/meta keys

        Returns:
            The normalized event that was written
        """
        normalized = AnalyticsEvent.normalize(event)
        await self.backend.append_event(
            normalized.type,
            to_ms(normalized.timestamp),
            normalized.metadata,
        )
        logger.debug(
            "Recorded analytics event",
            extra={"event_type": normalized.type, "ts": normalized.timestamp.isoformat()},
        )
        return normalized
