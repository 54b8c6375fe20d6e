"""
SQLite implementation of the analytics backend.

Events live in the ``analytics`` table of the document store's database.
Bucketing is done in SQL with strftime(..., 'unixepoch'), which is UTC.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from ..store.document_store import DocumentStore

logger = logging.getLogger(__name__)


class SqliteAnalyticsBackend:
    """AnalyticsBackend over the shared SQLite database.

    Example:
        >>> backend = SqliteAnalyticsBackend(store)
        >>> await backend.append_event("visit", 1704067200000, {})
        >>> await backend.count_by_hour(1704067200000, 1704153600000, "visit")
        {0: 1}
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def append_event(self, event_type: str, ts_ms: int, meta: dict[str, Any]) -> None:
        with self.store.connection() as conn:
            conn.execute(
                "INSERT INTO analytics (type, ts, meta_json) VALUES (?, ?, ?)",
                (event_type, ts_ms, json.dumps(meta, default=str)),
            )

    async def count_by_hour(
        self,
        start_ms: int,
        end_ms: int,
        event_type: Optional[str] = None,
    ) -> dict[int, int]:
        rows = self._grouped("CAST(strftime('%H', ts / 1000.0, 'unixepoch') AS INTEGER)", start_ms, end_ms, event_type)
        return {hour: count for hour, count in rows}

    async def count_by_day(
        self,
        start_ms: int,
        end_ms: int,
        event_type: Optional[str] = None,
    ) -> list[tuple[str, int]]:
        return self._grouped("strftime('%Y-%m-%d', ts / 1000.0, 'unixepoch')", start_ms, end_ms, event_type)

    def _grouped(
        self,
        bucket_expr: str,
        start_ms: int,
        end_ms: int,
        event_type: Optional[str],
    ) -> list[tuple[Any, int]]:
        query = f"SELECT {bucket_expr} AS bucket, COUNT(*) AS count FROM analytics WHERE ts >= ? AND ts < ?"
        params: list[Any] = [start_ms, end_ms]
        if event_type:
            query += " AND type = ?"
            params.append(event_type)
        query += " GROUP BY bucket ORDER BY bucket ASC"

        with self.store.connection() as conn:
            cursor = conn.execute(query, params)
            return [(row["bucket"], row["count"]) for row in cursor.fetchall()]
