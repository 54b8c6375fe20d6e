"""
Import CLI tool for the vblog core.

Loads collections from JSON files (as written by the backup tool or the
legacy file-based storage) into the document store:

    <in>/users.json, <in>/posts.json, <in>/chats.json

Usage:
    vblog-import --data-dir <path> [--in <dir>] [--dry-run]

Invariants:
    - Each present file replaces its whole collection in one transaction
    - Missing files are skipped and leave their collection untouched
    - Counters are raised to max(id) + 1 afterwards, never lowered, so
      ids allocated later cannot collide with imported ones
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..store import DocumentStore, EntityKind

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """Result of an import run.

    Attributes:
        counts: Documents imported per collection
        skipped: Collections whose file was missing
        counters: Counter seq per collection after the import
        dry_run: Whether the database was left unchanged
    """

    counts: dict[str, int] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    counters: dict[str, int] = field(default_factory=dict)
    dry_run: bool = False


class ImportTool:
    """Replaces collections with the contents of JSON files."""

    def __init__(self, store: DocumentStore, in_dir: Path, dry_run: bool = False) -> None:
        self.store = store
        self.in_dir = Path(in_dir)
        self.dry_run = dry_run

    async def run(self) -> ImportResult:
        result = ImportResult(dry_run=self.dry_run)
        if not self.dry_run:
            await self.store.initialize()

        for kind in EntityKind:
            path = self.in_dir / f"{kind.value}.json"
            if not path.exists():
                logger.warning(f"{path.name} not found, skipping {kind.value}")
                result.skipped.append(kind.value)
                continue

            docs = self._read(path)
            result.counts[kind.value] = len(docs)
            if self.dry_run:
                continue

            await self.store.replace_all(kind, docs)
            max_id = await self.store.max_id(kind)
            floor = max_id + 1 if max_id is not None else 1
            result.counters[kind.value] = await self.store.raise_counter_floor(kind.value, floor)
            logger.info(f"Imported {len(docs)} {kind.value}", extra={"counter": result.counters[kind.value]})

        return result

    @staticmethod
    def _read(path: Path) -> list[dict[str, Any]]:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError(f"{path.name} must contain a JSON array")
        # Drop storage-specific keys carried over from other exports
        return [{k: v for k, v in doc.items() if k != "_id"} for doc in data]


def main() -> None:
    """CLI entry point for the import tool."""
    parser = argparse.ArgumentParser(description="Import vblog collections from JSON files")
    parser.add_argument("--data-dir", required=True, help="Directory holding the SQLite database")
    parser.add_argument("--db-filename", default="vblog.db", help="SQLite database file name")
    parser.add_argument("--in", dest="in_dir", default=".", help="Directory with the JSON files")
    parser.add_argument("--dry-run", action="store_true", help="Read files but don't change the database")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    store = DocumentStore(Path(args.data_dir) / args.db_filename)
    tool = ImportTool(store, Path(args.in_dir), dry_run=args.dry_run)
    try:
        result = asyncio.run(tool.run())
    except Exception as e:
        logger.error(f"Import failed: {e}", exc_info=True)
        sys.exit(1)

    print("Import completed" + (" (dry run)" if result.dry_run else " successfully"))
    for name, count in result.counts.items():
        print(f"  {name.capitalize()}: {count}")
    for name in result.skipped:
        print(f"  {name.capitalize()}: skipped (file not found)")


if __name__ == "__main__":
    main()
