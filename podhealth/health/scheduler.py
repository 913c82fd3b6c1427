"""Health check scheduler — fires once a minute, on the minute.

State machine:

    STOPPED --start()--> SCHEDULED --timer fires--> RUNNING --cycle done--> SCHEDULED
       ^                     |                         |
       +------ stop() -------+------- stop() ----------+  (cycle finishes, no re-arm)

At most one timer is outstanding and at most one cycle runs at a time: the
next timer is only armed once the previous cycle has finished.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..errors import PlatformNotSupported
from .clock import BOUNDARY_GUARD, time_until_next_minute, utcnow
from .collector import SystemResources
from .cycle import CycleExecutor
from .models import CycleReport

if TYPE_CHECKING:
    from ..pod import PodContext

logger = logging.getLogger(__name__)

# (delay_seconds, callback) -> handle with .cancel()
CallLater = Callable[[float, Callable[[], None]], Any]


class ScheduleState(str, Enum):
    STOPPED = "stopped"
    SCHEDULED = "scheduled"
    RUNNING = "running"


def _loop_call_later(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class HealthCheckManager:
    """Runs a health check cycle at every wall-clock minute until stopped.

    Lifecycle:
        manager = HealthCheckManager(pod)
        await manager.start()
        ...
        await manager.shutdown()
    """

    def __init__(
        self,
        pod: PodContext,
        executor: CycleExecutor | None = None,
        *,
        resources: SystemResources | None = None,
        clock: Callable[[], datetime] = utcnow,
        call_later: CallLater | None = None,
        guard: timedelta = BOUNDARY_GUARD,
    ) -> None:
        if executor is None:
            executor = CycleExecutor(pod, resources=resources or SystemResources())
        self.pod = pod
        self.executor = executor
        self.resources = resources or executor.resources
        self.clock = clock
        self.guard = guard
        self._call_later = call_later or _loop_call_later
        self._running = False
        self._state = ScheduleState.STOPPED
        self._timer: Any = None
        self._cycle_task: asyncio.Task[None] | None = None
        self.cycles_completed = 0
        self.last_report: CycleReport | None = None

    # -- public API ------------------------------------------------------------

    @property
    def state(self) -> ScheduleState:
        return self._state

    @property
    def running(self) -> bool:
        return self._running

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    @property
    def cycle_in_flight(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    async def start(self) -> None:
        self._running = True
        if self.resources is not None:
            try:
                self.resources.init()
            except PlatformNotSupported:
                logger.warning("CPU and memory usage metrics are not supported on this platform.")

        if self.cycle_in_flight:
            # Restarted mid-cycle: the cycle re-arms when it finishes.
            logger.info("Health checks restarted while a cycle is running")
            self._state = ScheduleState.RUNNING
            return
        self._schedule_next()
        logger.info("Health checks started (server_id=%s)", self.pod.server_id)

    def stop(self) -> None:
        """Cancel the pending timer. A cycle already running finishes but is not followed by another."""
        self._running = False
        self._cancel_timer()
        self._state = ScheduleState.STOPPED
        logger.info("Health checks stopped")

    async def wait_idle(self) -> None:
        """Wait for the in-flight cycle, if any, to finish."""
        if self._cycle_task is not None:
            await asyncio.shield(self._cycle_task)

    async def shutdown(self) -> None:
        self.stop()
        await self.wait_idle()

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "running": self._running,
            "pending_timer": self.has_pending_timer,
            "cycles_completed": self.cycles_completed,
            "metrics_available": bool(self.resources and self.resources.available),
            "last_cycle": self.last_report.to_dict() if self.last_report else None,
        }

    # -- core loop -------------------------------------------------------------

    def _on_timer(self) -> None:
        self._timer = None
        if not self._running or self.cycle_in_flight:
            return
        self._state = ScheduleState.RUNNING
        self._cycle_task = asyncio.ensure_future(self._perform_health_check())

    async def _perform_health_check(self) -> None:
        try:
            self.last_report = await self.executor.run_cycle()
        except Exception:
            logger.exception("Health check cycle failed")
        finally:
            self.cycles_completed += 1
            self._schedule_next()

    def _schedule_next(self) -> None:
        self._cancel_timer()
        if not self._running:
            self._state = ScheduleState.STOPPED
            return
        delay = time_until_next_minute(self.clock(), self.guard)
        self._timer = self._call_later(delay.total_seconds(), self._on_timer)
        self._state = ScheduleState.SCHEDULED
        logger.debug("Next health check in %.1fs", delay.total_seconds())

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
