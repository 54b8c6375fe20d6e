"""
Analytics for the vblog core - event log, dispatch and aggregation.

This module provides:
- An append-only event log over a pluggable AnalyticsBackend
- A bounded fire-and-forget dispatcher with an explicit failure channel
- Hourly, daily and weekday-average aggregations (UTC)
- Release markers for charts

Invariants:
    - Events are never updated or deleted
    - Aggregations bucket by timestamp only, never by insertion order
    - Every bucket boundary is a UTC day/hour boundary
"""

from .aggregation import WEEKDAY_LABELS, AggregationEngine, DailyTotal
from .base import (
    AnalyticsBackend,
    AnalyticsDisabledError,
    AnalyticsError,
    AnalyticsEvent,
)
from .dispatcher import DispatchFailure, EventDispatcher
from .event_log import AnalyticsEventLog
from .markers import VersionMarker, load_version_markers
from .sqlite_backend import SqliteAnalyticsBackend

__all__ = [
    # Protocol and types
    "AnalyticsBackend",
    "AnalyticsEvent",
    "AnalyticsError",
    "AnalyticsDisabledError",
    "DailyTotal",
    "DispatchFailure",
    "VersionMarker",
    "WEEKDAY_LABELS",
    # Components
    "AnalyticsEventLog",
    "EventDispatcher",
    "AggregationEngine",
    "SqliteAnalyticsBackend",
    "load_version_markers",
]
