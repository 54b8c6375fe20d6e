"""
Release markers drawn on analytics charts.

The markers file is a JSON array provided by the operator:
    [{"version": "v3.0.1", "ts": "2025-10-12T01:02:03Z"}, ...]
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .base import to_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VersionMarker:
    version: str
    ts: str

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "ts": self.ts}


def load_version_markers(path: str | Path = "version_releases.json") -> list[VersionMarker]:
    """Read release markers, normalizing timestamps to ISO-8601 UTC.

    Entries missing ``version`` or ``ts``, or with an unparseable ``ts``,
    are skipped. A missing or malformed file yields [].
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug(f"No version markers loaded from {path}: {e}")
        return []

    if not isinstance(raw, list):
        return []

    markers = []
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("version") or not entry.get("ts"):
            continue
        try:
            ts = to_utc(str(entry["ts"]))
        except ValueError:
            continue
        markers.append(
            VersionMarker(
                version=str(entry["version"]),
                ts=ts.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            )
        )
    return markers
