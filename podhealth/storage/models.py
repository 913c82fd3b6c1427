"""Records persisted by the health subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class ServerHealthMetric:
    """One named health value for one server at one (minute) timestamp."""

    name: str
    server_id: str
    timestamp: datetime
    is_healthy: bool
    value: float
    granularity: int = 1


@dataclass(frozen=True)
class ServerHealthConnectionInfo:
    """Connection counts for one server at one (minute) timestamp."""

    server_id: str
    timestamp: datetime
    active: int
    closing: int
    idle: int
    granularity: int = 1


@dataclass
class SessionLogEntry:
    """A row in the session log. `touched` is the liveness heartbeat."""

    server_id: str
    time: datetime
    touched: datetime
    is_open: bool = True
    endpoint: str = ""
    method: str = ""
    duration: float | None = None
    error: str | None = None
    id: int | None = field(default=None, compare=False)


class RuntimeSettings(BaseModel):
    """Settings that can change while the server runs. Reloaded every minute.

    With `log_sessions` off, a session is still written to the log when it
    closes if it ran longer than `slow_session_duration` seconds (and
    `log_slow_sessions` is on) or failed (and `log_failed_sessions` is on).
    """

    log_sessions: bool = True
    log_slow_sessions: bool = True
    log_failed_sessions: bool = True
    slow_session_duration: float = Field(default=1.0, ge=0)
