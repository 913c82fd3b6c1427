"""Value types passed between the health scheduler, cycle executor and reaper."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..storage.models import ServerHealthConnectionInfo, ServerHealthMetric


@dataclass(frozen=True)
class HealthCheckResult:
    """Everything one round of health checks produced, in collection order."""

    metrics: tuple[ServerHealthMetric, ...] = ()
    connection_infos: tuple[ServerHealthConnectionInfo, ...] = ()


class StepStatus(str, Enum):
    OK = "ok"
    TOLERATED = "tolerated"  # failed in a known-harmless way, e.g. duplicate rows
    FAILED = "failed"


@dataclass
class StepOutcome:
    """Best-effort result of one cycle step. A failed step never stops the cycle."""

    step: str
    status: StepStatus = StepStatus.OK
    error: BaseException | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "status": self.status.value,
            "error": f"{type(self.error).__name__}: {self.error}" if self.error else None,
            "detail": dict(self.detail),
        }


@dataclass
class CycleReport:
    started_at: datetime
    finished_at: datetime | None = None
    outcomes: list[StepOutcome] = field(default_factory=list)

    def outcome(self, step: str) -> StepOutcome | None:
        for o in self.outcomes:
            if o.step == step:
                return o
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass(frozen=True)
class SessionTouchWindow:
    """Parameters of one reaper pass."""

    now: datetime
    stale_threshold: datetime
    server_start_time: datetime
    server_id: str


@dataclass(frozen=True)
class ReapResult:
    touched: int
    closed: int
