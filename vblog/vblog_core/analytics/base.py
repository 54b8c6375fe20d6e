"""
Base protocol and types for the analytics event log.

This module defines the AnalyticsBackend protocol that storage backends
must implement, along with the event type, errors and the UTC time helpers
shared by the event log and the aggregation engine.

Invariants:
    - Events are append-only; nothing here updates or deletes them
    - Timestamps are stored as Unix milliseconds in UTC
    - Naive datetimes and offset-less ISO strings are read as UTC

How to change safely:
    - Protocol changes require updating all implementations
    - Keep every bucketing helper anchored to UTC
"""

from __future__ import annotations

import calendar
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Mapping, Optional, Protocol, Union, runtime_checkable


class AnalyticsError(Exception):
    """Base exception for analytics operations."""
    pass


class AnalyticsDisabledError(AnalyticsError):
    """Analytics was turned off in configuration."""
    pass


DateLike = Union[str, date, datetime]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_utc(value: datetime | str) -> datetime:
    """Normalize a datetime or ISO-8601 string to an aware UTC datetime."""
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def day_start(value: DateLike) -> datetime:
    """Midnight UTC of the UTC calendar day named or containing ``value``."""
    if isinstance(value, datetime):
        day = to_utc(value).date()
    elif isinstance(value, date):
        day = value
    elif len(value.strip()) == 10:
        day = date.fromisoformat(value.strip())
    else:
        day = to_utc(value).date()
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def to_ms(value: datetime) -> int:
    """Unix milliseconds of an aware datetime, exact to the millisecond."""
    return calendar.timegm(value.utctimetuple()) * 1000 + value.microsecond // 1000


def from_ms(ms: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=ms)


ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class AnalyticsEvent:
    """A typed, timestamped usage event.

    Attributes:
        type: Event type (e.g. "visit", "login", "signup")
        timestamp: When the event happened (aware, UTC)
        metadata: Free-form context (e.g. {"username": "ada"})
    """
    type: str
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def normalize(cls, event: AnalyticsEvent | Mapping[str, Any] | None) -> AnalyticsEvent:
        """Build a normalized event from an event object or a plain mapping.

        Mappings may use ``type``/``ts``/``meta`` or ``type``/``timestamp``/``metadata``;
        a numeric timestamp is Unix milliseconds.
        Missing type becomes "event", missing timestamp becomes now, missing
        metadata becomes {}.
        """
        if isinstance(event, AnalyticsEvent):
            raw_type, raw_ts, raw_meta = event.type, event.timestamp, event.metadata
        else:
            data = event or {}
            raw_type = data.get("type")
            raw_ts = data.get("timestamp", data.get("ts"))
            raw_meta = data.get("metadata", data.get("meta"))

        if not raw_ts:
            timestamp = datetime.now(timezone.utc)
        elif isinstance(raw_ts, (int, float)):
            timestamp = from_ms(int(raw_ts))
        else:
            timestamp = to_utc(raw_ts)
        return cls(
            type=str(raw_type or "event"),
            timestamp=timestamp,
            metadata=dict(raw_meta or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the durable document shape."""
        return {
            "type": self.type,
            "ts": self.timestamp.isoformat(),
            "meta": self.metadata,
        }


@runtime_checkable
class AnalyticsBackend(Protocol):
    """Protocol for analytics storage backends.

    The aggregation engine and the event log receive a backend at
    construction; they never probe for capabilities at call time.

    Ordering contract:
        - None. Aggregations bucket strictly by timestamp, so events may be
          appended in any order.
    """

    @abstractmethod
    async def append_event(self, event_type: str, ts_ms: int, meta: dict[str, Any]) -> None:
        """Append exactly one event row."""
        ...

    @abstractmethod
    async def count_by_hour(
        self,
        start_ms: int,
        end_ms: int,
        event_type: Optional[str] = None,
    ) -> dict[int, int]:
        """Count events in ``[start_ms, end_ms)`` per UTC hour-of-day (0-23).

        A falsy ``event_type`` counts every type. Hours without events may
        be absent from the result.
        """
        ...

    @abstractmethod
    async def count_by_day(
        self,
        start_ms: int,
        end_ms: int,
        event_type: Optional[str] = None,
    ) -> list[tuple[str, int]]:
        """Count events in ``[start_ms, end_ms)`` per UTC day ("YYYY-MM-DD").

        Returns (day, count) pairs sorted by day; days without events are
        absent.
        """
        ...
