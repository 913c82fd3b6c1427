"""The pod — process-wide context that owns configuration, storage and the health check manager.

Lifecycle:
    pod = Pod()
    await pod.start()      # loads runtime settings, starts once-a-minute health checks
    ...
    await pod.shutdown()
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from .config import Settings, settings as default_settings
from .health.clock import utcnow
from .health.collector import SystemResources
from .health.cycle import CycleExecutor
from .health.reaper import SessionReaper
from .health.scheduler import HealthCheckManager
from .storage.database import Database
from .storage.models import RuntimeSettings, ServerHealthMetric, SessionLogEntry
from .storage.session import ConnectionTracker, Session

logger = logging.getLogger(__name__)

# Extra application metrics gathered on every health check
HealthCheckHandler = Callable[["Pod", datetime], Awaitable[list[ServerHealthMetric]]]


class PodContext(Protocol):
    """What the health scheduler, cycle executor and reaper need from a pod."""

    server_id: str
    started_time: datetime

    async def create_session(self, *, enable_logging: bool = True) -> Session: ...

    async def reload_runtime_settings(self) -> RuntimeSettings: ...


@dataclass(frozen=True)
class ConnectionStats:
    active: int = 0
    closing: int = 0
    idle: int = 0


class Pod:
    """Owns the database, runtime settings and the health check manager for one server instance."""

    def __init__(
        self,
        settings: Settings | None = None,
        database: Database | None = None,
        health_check_handler: HealthCheckHandler | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.server_id = self.settings.server_id
        self.started_time = utcnow()
        self.database = database or Database(self.settings.db_path)
        self.runtime_settings = RuntimeSettings()
        self.health_check_handler = health_check_handler
        self._connections = ConnectionTracker()

        resources = SystemResources()
        reaper = SessionReaper(
            self, stale_after=timedelta(minutes=self.settings.stale_session_minutes),
        )
        self.health_check_manager = HealthCheckManager(
            self,
            CycleExecutor(self, resources=resources, reaper=reaper),
            resources=resources,
            guard=timedelta(seconds=self.settings.boundary_guard_seconds),
        )

    # -- lifecycle ---------------------------------------------------------------

    async def start(self) -> None:
        await self.reload_runtime_settings()
        await self.health_check_manager.start()
        logger.info("Pod %s started at %s", self.server_id, self.started_time.isoformat())

    async def shutdown(self) -> None:
        await self.health_check_manager.shutdown()
        self.database.close()
        logger.info("Pod %s shut down", self.server_id)

    # -- sessions ----------------------------------------------------------------

    async def create_session(
        self,
        *,
        enable_logging: bool = True,
        endpoint: str = "",
        method: str = "",
    ) -> Session:
        """Open a unit of work.

        Logged sessions get an open row in the session log. When session
        logging is switched off at runtime, slow and failed sessions are still
        logged on close.
        """
        rs = self.runtime_settings
        log_entry_id = None
        if enable_logging and rs.log_sessions:
            now = utcnow()
            entry = SessionLogEntry(
                server_id=self.server_id, time=now, touched=now,
                endpoint=endpoint, method=method,
            )
            log_entry_id = await self.database.run(self.database.insert_record, entry)

        return Session(
            self.database,
            self.server_id,
            log_entry_id=log_entry_id,
            log_errors=rs.log_failed_sessions,
            log_on_close=enable_logging and not rs.log_sessions,
            slow_session_duration=rs.slow_session_duration if rs.log_slow_sessions else None,
            endpoint=endpoint,
            method=method,
            tracker=self._connections,
        )

    def connection_stats(self) -> ConnectionStats:
        return ConnectionStats(
            active=self._connections.active,
            closing=self._connections.closing,
        )

    # -- runtime settings --------------------------------------------------------

    async def reload_runtime_settings(self) -> RuntimeSettings:
        """Re-read runtime settings from the database, writing defaults on first run."""
        session = await self.create_session(enable_logging=False)
        try:
            rows = await session.fetch(
                "SELECT settings FROM runtime_settings ORDER BY id DESC LIMIT 1",
            )
            if rows:
                loaded = RuntimeSettings.model_validate_json(rows[0]["settings"])
            else:
                loaded = RuntimeSettings()
                await self._write_runtime_settings(session, loaded)
        finally:
            await session.close()

        if loaded != self.runtime_settings:
            logger.info("Runtime settings changed: %s", loaded.model_dump())
        self.runtime_settings = loaded
        return loaded

    async def update_runtime_settings(self, runtime_settings: RuntimeSettings) -> None:
        session = await self.create_session(enable_logging=False)
        try:
            await self._write_runtime_settings(session, runtime_settings)
        finally:
            await session.close()
        self.runtime_settings = runtime_settings

    @staticmethod
    async def _write_runtime_settings(session: Session, runtime_settings: RuntimeSettings) -> None:
        await session.query(
            "INSERT INTO runtime_settings (settings, updated_at) VALUES (?, ?)",
            (runtime_settings.model_dump_json(), utcnow()),
        )

    def status(self) -> dict[str, Any]:
        return {
            "server_id": self.server_id,
            "started_time": self.started_time.isoformat(),
            "runtime_settings": self.runtime_settings.model_dump(),
            "connections": asdict(self.connection_stats()),
            "health_checks": self.health_check_manager.status(),
        }
