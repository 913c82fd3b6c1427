"""SQLite storage for health metrics, connection info, session log and runtime settings.

All blocking sqlite work goes through a single-worker thread pool so the
event loop never blocks and statements from different units of work never
interleave.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import fields
from pathlib import Path
from typing import Any, TypeVar

from ..errors import PersistenceConflict, StorageError
from .encoder import ValueEncoder, encoder as default_encoder
from .models import ServerHealthConnectionInfo, ServerHealthMetric, SessionLogEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
    CREATE TABLE IF NOT EXISTS health_metric (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        server_id TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        is_healthy INTEGER NOT NULL,
        value REAL NOT NULL,
        granularity INTEGER NOT NULL DEFAULT 1
    );

    CREATE UNIQUE INDEX IF NOT EXISTS idx_health_metric_unique
        ON health_metric (server_id, name, timestamp, granularity);

    CREATE TABLE IF NOT EXISTS health_connection_info (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        server_id TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        active INTEGER NOT NULL,
        closing INTEGER NOT NULL,
        idle INTEGER NOT NULL,
        granularity INTEGER NOT NULL DEFAULT 1
    );

    CREATE UNIQUE INDEX IF NOT EXISTS idx_health_connection_info_unique
        ON health_connection_info (server_id, timestamp, granularity);

    CREATE TABLE IF NOT EXISTS session_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        server_id TEXT NOT NULL,
        time TEXT NOT NULL,
        touched TEXT NOT NULL,
        is_open INTEGER NOT NULL DEFAULT 1,
        endpoint TEXT NOT NULL DEFAULT '',
        method TEXT NOT NULL DEFAULT '',
        duration REAL,
        error TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_session_log_open
        ON session_log (is_open, touched);

    CREATE TABLE IF NOT EXISTS runtime_settings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        settings TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
"""

# Record type → table
TABLES: dict[type, str] = {
    ServerHealthMetric: "health_metric",
    ServerHealthConnectionInfo: "health_connection_info",
    SessionLogEntry: "session_log",
}


class Database:
    """SQLite-backed storage shared by every unit of work of a pod."""

    def __init__(
        self,
        db_path: Path | str,
        encoder: ValueEncoder | None = None,
    ) -> None:
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self.encoder = encoder or default_encoder
        self._conn: sqlite3.Connection | None = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="podhealth-db")
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript(SCHEMA)
        conn.commit()

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking storage call on the database thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    # ── Blocking operations (database thread) ────────────────────────────

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        """Execute a statement and return the number of affected rows."""
        conn = self._get_conn()
        try:
            cursor = conn.execute(sql, self.encoder.convert_all(params))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Query failed: {e}") from e
        return cursor.rowcount

    def fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        try:
            rows = self._get_conn().execute(sql, self.encoder.convert_all(params)).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Query failed: {e}") from e
        return [dict(r) for r in rows]

    def insert_row(self, table: str, values: dict[str, Any]) -> int:
        """Insert one row, returning its id.

        Unique-key violations raise PersistenceConflict; any other failure,
        including other integrity errors, raises StorageError.
        """
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                self.encoder.convert_all(list(values.values())),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            # Only unique-key clashes are duplicates; NOT NULL / CHECK failures are real errors
            if "UNIQUE constraint failed" in str(e):
                raise PersistenceConflict(table, str(e)) from e
            raise StorageError(f"Insert into {table} failed: {e}") from e
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Insert into {table} failed: {e}") from e
        return int(cursor.lastrowid or 0)

    def insert_record(self, record: Any) -> int:
        table = TABLES.get(type(record))
        if table is None:
            raise TypeError(f"No table for record type {type(record).__name__}")
        values = {f.name: getattr(record, f.name) for f in fields(record)}
        if values.get("id") is None:
            values.pop("id", None)
        return self.insert_row(table, values)

    def ping(self) -> float:
        """Round-trip a trivial query, returning the latency in seconds."""
        t0 = time.perf_counter()
        self.fetch_all("SELECT 1")
        return time.perf_counter() - t0

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        if self._conn:
            self._conn.close()
            self._conn = None
