"""
Unit tests for the analytics event log and event dispatcher.

Tests cover:
- Event normalization (defaults, key aliases, timezones)
- One appended row per record call
- Fire-and-forget dispatch, backpressure and the failure channel
"""

import asyncio
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from vblog.vblog_core.analytics import (
    AnalyticsEvent,
    AnalyticsEventLog,
    DispatchFailure,
    EventDispatcher,
    SqliteAnalyticsBackend,
)
from vblog.vblog_core.store import DocumentStore


class RecordingBackend:
    """In-memory backend that records appends and can be made to fail."""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.rows: list[tuple[str, int, dict]] = []
        self.fail = fail
        self.delay = delay

    async def append_event(self, event_type, ts_ms, meta):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("backend down")
        self.rows.append((event_type, ts_ms, meta))

    async def count_by_hour(self, start_ms, end_ms, event_type=None):
        return {}

    async def count_by_day(self, start_ms, end_ms, event_type=None):
        return []


class TestNormalize:
    """Tests for AnalyticsEvent.normalize()."""

    def test_defaults(self):
        """Missing type, timestamp and metadata get defaults."""
        before = datetime.now(timezone.utc)
        event = AnalyticsEvent.normalize({})

        assert event.type == "event"
        assert event.metadata == {}
        assert event.timestamp >= before
        assert event.timestamp.tzinfo is not None

    def test_none_event(self):
        assert AnalyticsEvent.normalize(None).type == "event"

    def test_short_keys(self):
        event = AnalyticsEvent.normalize({"type": "login", "ts": "2024-01-01T10:00:00Z", "meta": {"username": "ada"}})

        assert event.type == "login"
        assert event.timestamp == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
        assert event.metadata == {"username": "ada"}

    def test_long_keys_and_offset(self):
        """Offsets are converted to UTC."""
        tz = timezone(timedelta(hours=2))
        event = AnalyticsEvent.normalize(
            {"type": "visit", "timestamp": datetime(2024, 1, 1, 1, 30, tzinfo=tz), "metadata": {"path": "/"}}
        )

        assert event.timestamp == datetime(2023, 12, 31, 23, 30, tzinfo=timezone.utc)
        assert event.timestamp.utcoffset() == timedelta(0)

    def test_naive_is_utc(self):
        event = AnalyticsEvent.normalize({"type": "visit", "ts": "2024-01-01T10:00:00"})
        assert event.timestamp == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)

    def test_numeric_ms(self):
        event = AnalyticsEvent.normalize({"type": "visit", "ts": 1704067200000})
        assert event.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_invalid_timestamp(self):
        with pytest.raises(ValueError):
            AnalyticsEvent.normalize({"type": "visit", "ts": "yesterday"})


class TestEventLog:
    """Tests for AnalyticsEventLog."""

    @pytest.mark.asyncio
    async def test_record_appends_one_row(self):
        backend = RecordingBackend()
        log = AnalyticsEventLog(backend)

        event = await log.record({"type": "signup", "ts": "2024-01-01T00:00:00Z", "meta": {"username": "ada"}})

        assert backend.rows == [("signup", 1704067200000, {"username": "ada"})]
        assert event.type == "signup"

    @pytest.mark.asyncio
    async def test_record_propagates_backend_errors(self):
        log = AnalyticsEventLog(RecordingBackend(fail=True))
        with pytest.raises(RuntimeError):
            await log.record({"type": "visit"})

    @pytest.mark.asyncio
    async def test_record_into_sqlite(self):
        """Events land in the analytics table with ms timestamps."""
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DocumentStore(Path(tmpdir) / "vblog.db", wal_mode=False)
            await store.initialize()
            log = AnalyticsEventLog(SqliteAnalyticsBackend(store))

            await log.record({"type": "visit", "ts": "2024-01-01T00:00:01.500Z", "meta": {"path": "/"}})

            with store.connection() as conn:
                row = conn.execute("SELECT type, ts, meta_json FROM analytics").fetchone()
            assert (row["type"], row["ts"], row["meta_json"]) == ("visit", 1704067201500, '{"path": "/"}')


class TestEventDispatcher:
    """Tests for EventDispatcher."""

    @pytest.mark.asyncio
    async def test_dispatch_and_flush(self):
        backend = RecordingBackend()
        dispatcher = EventDispatcher(AnalyticsEventLog(backend))
        await dispatcher.start()

        assert dispatcher.dispatch({"type": "visit"}) is True
        assert dispatcher.dispatch({"type": "login"}) is True
        await dispatcher.flush()

        assert [row[0] for row in backend.rows] == ["visit", "login"]
        assert dispatcher.recorded_count == 2
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_timestamp_fixed_at_dispatch(self):
        """The event time is taken when dispatched, not when written."""
        backend = RecordingBackend(delay=0.05)
        dispatcher = EventDispatcher(AnalyticsEventLog(backend))
        await dispatcher.start()

        before = datetime.now(timezone.utc)
        dispatcher.dispatch({"type": "visit"})
        await dispatcher.stop()

        assert backend.rows[0][1] - int(before.timestamp() * 1000) < 50

    @pytest.mark.asyncio
    async def test_full_queue_drops(self):
        backend = RecordingBackend(delay=0.05)
        dispatcher = EventDispatcher(AnalyticsEventLog(backend), max_pending=2)
        await dispatcher.start()

        results = [dispatcher.dispatch({"type": "visit"}) for _ in range(5)]

        assert results.count(False) >= 2
        assert dispatcher.dropped_count == results.count(False)
        await dispatcher.stop()
        assert len(backend.rows) == results.count(True)

    @pytest.mark.asyncio
    async def test_not_running_drops(self):
        dispatcher = EventDispatcher(AnalyticsEventLog(RecordingBackend()))

        assert dispatcher.dispatch({"type": "visit"}) is False
        assert dispatcher.dropped_count == 1

    @pytest.mark.asyncio
    async def test_failures_reported_not_raised(self):
        """Write errors go to the failures queue, never to the caller."""
        dispatcher = EventDispatcher(AnalyticsEventLog(RecordingBackend(fail=True)), max_failures=2)
        await dispatcher.start()

        for event_type in ("a", "b", "c"):
            assert dispatcher.dispatch({"type": event_type}) is True
        await dispatcher.flush()

        assert dispatcher.failed_count == 3
        # Only the most recent failures are kept
        kept = [dispatcher.failures.get_nowait() for _ in range(dispatcher.failures.qsize())]
        assert [f.event.type for f in kept] == ["b", "c"]
        assert all(isinstance(f, DispatchFailure) for f in kept)
        assert isinstance(kept[0].error, RuntimeError)
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_stop_drains_queue(self):
        backend = RecordingBackend(delay=0.01)
        dispatcher = EventDispatcher(AnalyticsEventLog(backend))
        await dispatcher.start()

        for _ in range(5):
            dispatcher.dispatch({"type": "visit"})
        await dispatcher.stop()

        assert len(backend.rows) == 5
        assert dispatcher.is_running is False
        assert dispatcher.pending == 0
