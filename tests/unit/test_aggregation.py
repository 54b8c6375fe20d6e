"""
Unit tests for the aggregation engine.

Tests cover:
- Dense hourly series
- Sparse daily totals with inclusive end day
- Weekday averages (Sunday first, empty weekday is 0.0)
- UTC bucketing of offset timestamps and out-of-order appends
"""

import math
import tempfile
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

from vblog.vblog_core.analytics import (
    AggregationEngine,
    AnalyticsBackend,
    AnalyticsEventLog,
    DailyTotal,
    SqliteAnalyticsBackend,
)
from vblog.vblog_core.analytics.aggregation import sunday_weekday
from vblog.vblog_core.analytics.base import from_ms, to_ms
from vblog.vblog_core.store import DocumentStore


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
async def backend(data_dir):
    store = DocumentStore(Path(data_dir) / "vblog.db", wal_mode=False)
    await store.initialize()
    return SqliteAnalyticsBackend(store)


@pytest.fixture
def event_log(backend):
    return AnalyticsEventLog(backend)


def fixed_clock(value: str):
    instant = datetime.fromisoformat(value).replace(tzinfo=timezone.utc)
    return lambda: instant


class TestHourly:
    """Tests for hourly()."""

    @pytest.mark.asyncio
    async def test_hourly_dense_series(self, backend, event_log):
        """Visits at hours 0,0,5,5,23 give the documented 24-slot series."""
        for hour in (0, 0, 5, 5, 23):
            await event_log.record({"type": "visit", "ts": f"2024-01-01T{hour:02d}:15:00Z"})
        # Other types and other days are not counted
        await event_log.record({"type": "login", "ts": "2024-01-01T05:00:00Z"})
        await event_log.record({"type": "visit", "ts": "2024-01-02T00:00:00Z"})

        engine = AggregationEngine(backend)
        result = await engine.hourly("2024-01-01", "visit")

        expected = [0] * 24
        expected[0], expected[5], expected[23] = 2, 2, 1
        assert result == expected

    @pytest.mark.asyncio
    async def test_hourly_all_types(self, backend, event_log):
        """A falsy type counts every event type."""
        await event_log.record({"type": "visit", "ts": "2024-01-01T10:00:00Z"})
        await event_log.record({"type": "login", "ts": "2024-01-01T10:30:00Z"})

        engine = AggregationEngine(backend)

        assert (await engine.hourly("2024-01-01", None))[10] == 2
        assert (await engine.hourly("2024-01-01", ""))[10] == 2

    @pytest.mark.asyncio
    async def test_hourly_empty_day(self, backend):
        engine = AggregationEngine(backend)
        assert await engine.hourly(date(2024, 1, 1)) == [0] * 24

    @pytest.mark.asyncio
    async def test_hourly_uses_utc(self, backend, event_log):
        """Offset timestamps are bucketed by their UTC hour and day."""
        await event_log.record({"type": "visit", "ts": "2024-01-01T22:30:00-05:00"})

        engine = AggregationEngine(backend)

        assert await engine.hourly("2024-01-01") == [0] * 24
        assert (await engine.hourly("2024-01-02"))[3] == 1


class TestDailyTotals:
    """Tests for daily_totals()."""

    @pytest.mark.asyncio
    async def test_zero_days_omitted(self, backend, event_log):
        """Two events on Jan 1 and none on Jan 2 give a single entry."""
        await event_log.record({"type": "visit", "ts": "2024-01-01T08:00:00Z"})
        await event_log.record({"type": "visit", "ts": "2024-01-01T09:00:00Z"})

        engine = AggregationEngine(backend)
        totals = await engine.daily_totals("2024-01-01", "2024-01-02", "visit")

        assert totals == [DailyTotal(date="2024-01-01", count=2)]
        assert totals[0].to_dict() == {"date": "2024-01-01", "count": 2}

    @pytest.mark.asyncio
    async def test_end_day_inclusive_and_sorted(self, backend, event_log):
        """Out-of-order appends come back sorted; the last day is included."""
        for ts in ("2024-01-03T23:59:59Z", "2024-01-01T00:00:00Z", "2024-01-03T00:00:00Z", "2024-01-04T00:00:00Z"):
            await event_log.record({"type": "visit", "ts": ts})

        engine = AggregationEngine(backend)
        totals = await engine.daily_totals("2024-01-01", "2024-01-03")

        assert [(t.date, t.count) for t in totals] == [("2024-01-01", 1), ("2024-01-03", 2)]


class TestWeeklyAverages:
    """Tests for weekly_averages()."""

    @pytest.mark.asyncio
    async def test_weekday_means(self, backend, event_log):
        """Means only count days that had events; empty weekdays are 0.0."""
        # 2023-12-25 and 2024-01-01 are Mondays, 2024-01-07 is a Sunday
        events = ["2023-12-25T10:00:00Z"] * 3 + ["2024-01-01T10:00:00Z"] + ["2024-01-07T01:00:00Z"] * 4
        # Outside the 14-day window ending 2024-01-07
        events.append("2023-12-24T10:00:00Z")
        for ts in events:
            await event_log.record({"type": "visit", "ts": ts})

        engine = AggregationEngine(backend, clock=fixed_clock("2024-01-07T12:00:00"))
        averages = await engine.weekly_averages(14, "visit")

        assert averages == [4.0, 2.0, 0.0, 0.0, 0.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_empty_window_never_nan(self, backend):
        engine = AggregationEngine(backend, clock=fixed_clock("2024-01-07T12:00:00"))

        averages = await engine.weekly_averages()

        assert averages == [0.0] * 7
        assert not any(math.isnan(a) for a in averages)

    @pytest.mark.asyncio
    async def test_single_day_window(self, backend, event_log):
        """days=1 covers only today."""
        await event_log.record({"type": "visit", "ts": "2024-01-06T10:00:00Z"})
        await event_log.record({"type": "visit", "ts": "2024-01-07T10:00:00Z"})

        engine = AggregationEngine(backend, clock=fixed_clock("2024-01-07T23:00:00"))

        assert await engine.weekly_averages(1) == [1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_invalid_days(self, backend):
        engine = AggregationEngine(backend)
        with pytest.raises(ValueError):
            await engine.weekly_averages(0)


class TestPreEpoch:
    """Tests for events before 1970-01-01 UTC."""

    @pytest.mark.asyncio
    async def test_sub_second_before_epoch(self, backend, event_log):
        """Half a second before the epoch stays on 1969-12-31 at hour 23."""
        await event_log.record({"type": "visit", "ts": "1969-12-31T23:59:59.500Z"})

        engine = AggregationEngine(backend)
        hourly = await engine.hourly("1969-12-31")

        assert hourly[23] == 1
        assert hourly[0] == 0
        assert await engine.daily_totals("1969-12-31", "1969-12-31") == [DailyTotal("1969-12-31", 1)]
        assert await engine.hourly("1970-01-01") == [0] * 24


class TestHelpers:
    """Tests for bucketing helpers and the backend protocol."""

    def test_sunday_weekday(self):
        assert sunday_weekday("2024-01-07") == 0
        assert sunday_weekday("2024-01-01") == 1
        assert sunday_weekday("2024-01-06") == 6

    def test_sqlite_backend_satisfies_protocol(self, data_dir):
        backend = SqliteAnalyticsBackend(DocumentStore(Path(data_dir) / "vblog.db"))
        assert isinstance(backend, AnalyticsBackend)

    def test_ms_conversion_is_exact(self):
        """Millisecond timestamps survive a round trip unchanged."""
        one_ms = datetime(2024, 1, 1, 0, 0, 0, 1000, tzinfo=timezone.utc)

        assert to_ms(one_ms) == 1704067200001
        assert from_ms(1704067200001) == one_ms
        for ms in (0, 1, 999, -1, -500, 1704067199999, 1704067200001):
            assert to_ms(from_ms(ms)) == ms

    def test_to_ms_truncates_sub_millisecond(self):
        value = datetime(1969, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)
        assert to_ms(value) == -1
