"""
Durable SQLite document store for the vblog core.

This module manages the single SQLite database that stores:
- Entity collections (users, posts, chats) as JSON documents keyed by id
- Named counters used for id allocation
- The append-only analytics event table

Collections are generic: every collection table has the same shape and the
store only knows how to create, replace-all, insert-one and find-all
documents. Entity semantics live in the entity store on top of it.

Invariants:
    - ``id`` is unique within a collection (UNIQUE constraint)
    - Every write runs in a single BEGIN IMMEDIATE transaction
    - Replace-all deletes and inserts in the same transaction, so no reader
      ever observes the collection empty mid-replace
    - Counter increments are one atomic upsert statement

How to change safely:
    - Schema changes must be backward compatible (CREATE ... IF NOT EXISTS)
    - Add new collections to EntityKind, never by raw table name
    - Keep the counter upsert a single statement

Table schema:
    users / posts / chats:
        - id (UNIQUE, integer for every record created by the core)
        - doc_json TEXT
        - users: UNIQUE index on $.username; posts: index on $.author
        - chats: no index on $.users (SQLite cannot index array members);
          membership lookups scan the cache

    counters:
        - name TEXT PRIMARY KEY
        - seq INTEGER

    analytics:
        - seq INTEGER PRIMARY KEY AUTOINCREMENT
        - type TEXT
        - ts INTEGER (Unix ms, UTC)
        - meta_json TEXT
        - INDEX on ts, INDEX on type
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .models import EntityKind

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for durable store operations."""

    pass


class StoreUnavailableError(StoreError):
    """The database file could not be opened."""

    pass


class UnknownCollectionError(StoreError):
    """Collection name is not one of the known entity kinds."""

    pass


def collection_name(kind: EntityKind | str) -> str:
    """Resolve ``kind`` to a known collection table name."""
    try:
        return EntityKind(kind).value
    except ValueError:
        raise UnknownCollectionError(f"Unknown collection: {kind!r}")


class DocumentStore:
    """SQLite store for entity collections, counters and analytics events.

    Thread safety:
        Each operation opens its own connection. SQLite serializes writers,
        so the counter upsert stays atomic even across processes sharing
        the same database file.

    Example:
        >>> store = DocumentStore("/var/lib/vblog/vblog.db")
        >>> await store.initialize()
        >>> await store.insert_one("users", {"id": 1, "username": "ada", "password": "x"})
        >>> await store.find_all("users")
        [{'id': 1, 'username': 'ada', 'password': 'x'}]
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: str | Path,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -16000,
    ) -> None:
        """Initialize the document store.

        Args:
            db_path: Path of the SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection to the database.

        Yields:
            SQLite connection in autocommit mode

        Raises:
            StoreUnavailableError: If the database cannot be opened
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        statements = [
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            )
            """,
        ]
        for kind in EntityKind:
            statements.append(
                f"""
                CREATE TABLE IF NOT EXISTS {kind.value} (
                    id NOT NULL UNIQUE,
                    doc_json TEXT NOT NULL DEFAULT '{{}}'
                )
                """
            )
        statements += [
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_users_username
                ON users(json_extract(doc_json, '$.username'))
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_posts_author
                ON posts(json_extract(doc_json, '$.author'))
            """,
            """
            CREATE TABLE IF NOT EXISTS counters (
                name TEXT PRIMARY KEY,
                seq INTEGER NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS analytics (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                type TEXT NOT NULL,
                ts INTEGER NOT NULL,
                meta_json TEXT NOT NULL DEFAULT '{}'
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_analytics_ts ON analytics(ts)",
            "CREATE INDEX IF NOT EXISTS idx_analytics_type ON analytics(type)",
            f"""
            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES ({self.SCHEMA_VERSION}, strftime('%s', 'now') * 1000)
            """,
        ]
        conn.execute("BEGIN IMMEDIATE")
        try:
            for statement in statements:
                conn.execute(statement)
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise

    async def initialize(self) -> None:
        """Create the database file and schema if they don't exist."""
        with self.connection() as conn:
            self._create_schema(conn)
        logger.info("Initialized document store", extra={"db_path": str(self.db_path)})

    # ---------- Collections ----------

    async def find_all(self, kind: EntityKind | str) -> list[dict[str, Any]]:
        """Return every document in a collection, ascending by id."""
        table = collection_name(kind)
        with self.connection() as conn:
            cursor = conn.execute(f"SELECT doc_json FROM {table} ORDER BY id ASC")
            return [json.loads(row["doc_json"]) for row in cursor.fetchall()]

    async def count(self, kind: EntityKind | str) -> int:
        """Count documents in a collection."""
        table = collection_name(kind)
        with self.connection() as conn:
            cursor = conn.execute(f"SELECT COUNT(*) FROM {table}")
            return cursor.fetchone()[0]

    async def insert_one(self, kind: EntityKind | str, doc: dict[str, Any]) -> None:
        """Insert exactly one document.

        Raises:
            sqlite3.IntegrityError: If the id (or a unique field) already exists
        """
        table = collection_name(kind)
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    f"INSERT INTO {table} (id, doc_json) VALUES (?, ?)",
                    (doc.get("id"), json.dumps(doc)),
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug("Inserted document", extra={"collection": table, "id": doc.get("id")})

    async def replace_all(self, kind: EntityKind | str, docs: list[dict[str, Any]]) -> int:
        """Overwrite a collection with ``docs``.

        Delete and insert share one transaction: either the collection ends
        equal to ``docs`` or it is left untouched.

        Returns:
            Number of documents written
        """
        table = collection_name(kind)
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(f"DELETE FROM {table}")
                if docs:
                    conn.executemany(
                        f"INSERT INTO {table} (id, doc_json) VALUES (?, ?)",
                        [(doc.get("id"), json.dumps(doc)) for doc in docs],
                    )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.info(f"Saved {len(docs)} {table}", extra={"collection": table, "count": len(docs)})
        return len(docs)

    async def max_id(self, kind: EntityKind | str, id_field: str = "id") -> int | None:
        """Largest integer ``id_field`` in a collection.

        Documents whose field is missing or not an integer are ignored.
        """
        table = collection_name(kind)
        if not id_field.isidentifier():
            raise ValueError(f"Invalid id field: {id_field!r}")
        path = f"$.{id_field}"
        with self.connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT MAX(json_extract(doc_json, ?)) FROM {table}
                WHERE json_type(doc_json, ?) = 'integer'
                """,
                (path, path),
            )
            return cursor.fetchone()[0]

    # ---------- Counters ----------

    async def get_counter(self, name: str) -> int | None:
        """Current ``seq`` of a counter, or None if it doesn't exist."""
        with self.connection() as conn:
            cursor = conn.execute("SELECT seq FROM counters WHERE name = ?", (name,))
            row = cursor.fetchone()
            return row["seq"] if row else None

    async def create_counter(self, name: str, seq: int) -> bool:
        """Create a counter unless one already exists.

        Returns:
            True if the counter was created by this call
        """
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO counters (name, seq) VALUES (?, ?)",
                (name, seq),
            )
            return cursor.rowcount == 1

    async def increment_counter(self, name: str) -> int:
        """Atomically reserve the next value of a counter.

        A missing counter is created as if it started at 1.

        Returns:
            The pre-increment ``seq``; the stored ``seq`` is now that value + 1
        """
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO counters (name, seq) VALUES (?, 2)
                    ON CONFLICT(name) DO UPDATE SET seq = seq + 1
                    RETURNING seq
                    """,
                    (name,),
                )
                rows = cursor.fetchall()
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        return rows[0][0] - 1

    async def raise_counter_floor(self, name: str, floor: int) -> int:
        """Lift a counter to at least ``floor``; never lowers it.

        Returns:
            The counter's ``seq`` after the update
        """
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO counters (name, seq) VALUES (?, ?)
                    ON CONFLICT(name) DO UPDATE SET seq = MAX(seq, excluded.seq)
                    RETURNING seq
                    """,
                    (name, floor),
                )
                rows = cursor.fetchall()
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        return rows[0][0]
