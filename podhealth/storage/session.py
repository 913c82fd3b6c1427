"""Scoped unit of work against the pod's database."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from .database import Database
from .models import SessionLogEntry

logger = logging.getLogger(__name__)


class ConnectionTracker:
    """Counts a pod's units of work by lifecycle stage."""

    def __init__(self) -> None:
        self.active = 0
        self.closing = 0

    def opened(self) -> None:
        self.active += 1

    def closing_started(self) -> None:
        self.active -= 1
        self.closing += 1

    def closed(self) -> None:
        self.closing -= 1


class Session:
    """One logical sequence of storage operations, opened and closed within a single step.

    When the session is logged, `log_entry_id` points at its open row in
    `session_log`; closing the session marks that row closed.

    A session with `log_on_close` set has no open row. It is written to the
    log once, on close, if it ran longer than `slow_session_duration` seconds
    or closed with an error (and `log_errors` is on).
    """

    def __init__(
        self,
        database: Database,
        server_id: str,
        *,
        log_entry_id: int | None = None,
        log_errors: bool = True,
        log_on_close: bool = False,
        slow_session_duration: float | None = None,
        endpoint: str = "",
        method: str = "",
        tracker: ConnectionTracker | None = None,
    ) -> None:
        self.database = database
        self.server_id = server_id
        self.log_entry_id = log_entry_id
        self.log_errors = log_errors
        self.log_on_close = log_on_close
        self.slow_session_duration = slow_session_duration
        self.endpoint = endpoint
        self.method = method
        self._tracker = tracker
        self._opened_at = datetime.now(timezone.utc)
        self._started = time.perf_counter()
        self._closed = False
        if self._tracker:
            self._tracker.opened()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def enable_logging(self) -> bool:
        return self.log_entry_id is not None

    async def insert(self, record: Any) -> int:
        """Insert a typed record (metric, connection info or session-log entry)."""
        return await self.database.run(self.database.insert_record, record)

    async def query(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        """Execute a parameterized statement, returning the affected row count."""
        return await self.database.run(self.database.execute, sql, params)

    async def fetch(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        return await self.database.run(self.database.fetch_all, sql, params)

    def _is_slow(self, duration: float) -> bool:
        return self.slow_session_duration is not None and duration > self.slow_session_duration

    async def close(self, error: BaseException | None = None) -> None:
        """Close the session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._tracker:
            self._tracker.closing_started()
        try:
            duration = round(time.perf_counter() - self._started, 6)
            error_text = repr(error) if error is not None and self.log_errors else None
            now = datetime.now(timezone.utc)
            if self.log_entry_id is not None:
                await self.query(
                    "UPDATE session_log SET is_open = ?, touched = ?, duration = ?, error = ? "
                    "WHERE id = ?",
                    (False, now, duration, error_text, self.log_entry_id),
                )
            elif self.log_on_close and (error_text is not None or self._is_slow(duration)):
                await self.insert(SessionLogEntry(
                    server_id=self.server_id, time=self._opened_at, touched=now, is_open=False,
                    endpoint=self.endpoint, method=self.method, duration=duration, error=error_text,
                ))
        finally:
            if self._tracker:
                self._tracker.closed()

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close(error=exc)
