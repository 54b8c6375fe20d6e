"""
Backup CLI tool for the vblog core.

Exports every entity collection to JSON files and keeps a timestamped copy:

    <out>/users.json, <out>/posts.json, <out>/chats.json
    <out>/backups/backup-<timestamp>/{users,posts,chats}.json

Usage:
    vblog-backup --data-dir <path> [--out <dir>]

Invariants:
    - Backup only reads; the database is never modified
    - Documents are written sorted by id, in the durable field names
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import shutil
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from ..store import DocumentStore, EntityKind

logger = logging.getLogger(__name__)


@dataclass
class BackupResult:
    """Result of a backup run.

    Attributes:
        counts: Documents exported per collection
        backup_dir: Timestamped directory holding the copies
        duration_ms: Total duration
    """

    counts: dict[str, int] = field(default_factory=dict)
    backup_dir: Path | None = None
    duration_ms: int = 0


class BackupTool:
    """Exports collections from the document store to JSON files.

    Example:
        >>> tool = BackupTool(DocumentStore("data/vblog.db"), Path("."))
        >>> result = await tool.backup()
        >>> result.counts
        {'users': 3, 'posts': 10, 'chats': 2}
    """

    def __init__(self, store: DocumentStore, out_dir: Path) -> None:
        self.store = store
        self.out_dir = Path(out_dir)

    async def backup(self) -> BackupResult:
        start = time.time()
        result = BackupResult()
        self.out_dir.mkdir(parents=True, exist_ok=True)

        written = []
        for kind in EntityKind:
            docs = await self.store.find_all(kind)
            path = self.out_dir / f"{kind.value}.json"
            path.write_text(json.dumps(docs, indent=2), encoding="utf-8")
            result.counts[kind.value] = len(docs)
            written.append(path)
            logger.info(f"Backed up {len(docs)} {kind.value} to {path.name}")

        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        backup_dir = self.out_dir / "backups" / f"backup-{stamp}"
        backup_dir.mkdir(parents=True)
        for path in written:
            shutil.copyfile(path, backup_dir / path.name)

        result.backup_dir = backup_dir
        result.duration_ms = int((time.time() - start) * 1000)
        logger.info(f"Created timestamped backup in: {backup_dir}")
        return result


def main() -> None:
    """CLI entry point for the backup tool."""
    parser = argparse.ArgumentParser(description="Export vblog collections to JSON files")
    parser.add_argument("--data-dir", required=True, help="Directory holding the SQLite database")
    parser.add_argument("--db-filename", default="vblog.db", help="SQLite database file name")
    parser.add_argument("--out", default=".", help="Directory for the JSON files")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    db_path = Path(args.data_dir) / args.db_filename
    if not db_path.exists():
        print(f"Backup failed: database not found: {db_path}")
        sys.exit(1)

    tool = BackupTool(DocumentStore(db_path), Path(args.out))
    try:
        result = asyncio.run(tool.backup())
    except Exception as e:
        logger.error(f"Backup failed: {e}", exc_info=True)
        sys.exit(1)

    print("Backup completed successfully")
    for name, count in result.counts.items():
        print(f"  {name.capitalize()}: {count}")
    print(f"  Backup location: {result.backup_dir}")
    print(f"  Duration: {result.duration_ms}ms")


if __name__ == "__main__":
    main()
