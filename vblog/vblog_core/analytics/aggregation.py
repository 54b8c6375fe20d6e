"""
Read-only aggregations over the analytics event log.

All bucketing is UTC. "Day" is the UTC calendar day and weekdays are
derived from that same calendar date, so hourly, daily and weekday series
always agree on which day an event belongs to.

Series shapes:
    hourly          dense, 24 ints, unseen hours are 0
    daily_totals    sparse, days without events are omitted
    weekly_averages dense, 7 floats (0=Sunday ... 6=Saturday), empty weekday is 0.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

from .base import ONE_DAY, AnalyticsBackend, DateLike, day_start, to_ms

logger = logging.getLogger(__name__)

WEEKDAY_LABELS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


@dataclass(frozen=True)
class DailyTotal:
    """Event count for one UTC calendar day."""

    date: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "count": self.count}


def sunday_weekday(day: str) -> int:
    """Weekday of a "YYYY-MM-DD" date with 0=Sunday ... 6=Saturday."""
    return date.fromisoformat(day).isoweekday() % 7


class AggregationEngine:
    """Hourly, daily and weekday-average count series.

    Attributes:
        backend: Analytics backend, injected at construction
        clock: Returns the current instant; weekly_averages() uses it for "today"
    """

    def __init__(
        self,
        backend: AnalyticsBackend,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.backend = backend
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def hourly(self, day: DateLike, event_type: Optional[str] = "visit") -> list[int]:
        """Counts per UTC hour for one UTC day.

        Args:
            day: Day to report ("YYYY-MM-DD", ISO datetime, date or datetime)
            event_type: Event type to count; falsy counts every type

        Returns:
            24 counts, index = hour of day
        """
        start = day_start(day)
        end = start + ONE_DAY
        counts = [0] * 24
        rows = await self.backend.count_by_hour(to_ms(start), to_ms(end), event_type or None)
        for hour, count in rows.items():
            if isinstance(hour, int) and 0 <= hour < 24:
                counts[hour] = count
        return counts

    async def daily_totals(
        self,
        start: DateLike,
        end: DateLike,
        event_type: Optional[str] = "visit",
    ) -> list[DailyTotal]:
        """Counts per UTC day from ``start`` to ``end``, both inclusive.

        Days with no events are omitted; callers treat a missing date as 0.
        """
        start_dt = day_start(start)
        end_dt = day_start(end) + ONE_DAY
        rows = await self.backend.count_by_day(to_ms(start_dt), to_ms(end_dt), event_type or None)
        return [DailyTotal(date=day, count=count) for day, count in rows]

    async def weekly_averages(self, days: int = 28, event_type: Optional[str] = "visit") -> list[float]:
        """Average daily count per weekday over the trailing ``days`` UTC days.

        The window ends today (inclusive). Only days that have a daily
        total contribute to their weekday's mean.

        Returns:
            7 averages, index 0 = Sunday

        Raises:
            ValueError: If days < 1
        """
        if days < 1:
            raise ValueError(f"days must be >= 1, got {days}")

        end = day_start(self.clock())
        start = end - timedelta(days=days - 1)
        totals = await self.daily_totals(start, end, event_type)

        sums = [0] * 7
        seen = [0] * 7
        for total in totals:
            dow = sunday_weekday(total.date)
            sums[dow] += total.count
            seen[dow] += 1

        return [sums[i] / seen[i] if seen[i] else 0.0 for i in range(7)]
