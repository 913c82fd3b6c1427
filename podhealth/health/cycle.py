"""One health check cycle: collect → persist → reload runtime settings → reap sessions.

Steps run in order. Each step is contained: a failure ends that step only,
and the cycle always runs to the end so the scheduler can re-arm.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..errors import PersistenceConflict
from .clock import utcnow
from .collector import SystemResources, perform_health_checks
from .models import CycleReport, HealthCheckResult, StepOutcome, StepStatus
from .reaper import SessionReaper

if TYPE_CHECKING:
    from ..pod import PodContext

logger = logging.getLogger(__name__)

PERSIST_STEP = "persist_health"
RELOAD_STEP = "reload_settings"
REAP_STEP = "reap_sessions"

HealthCheck = Callable[[Any], Awaitable[HealthCheckResult]]


class CycleExecutor:
    """Runs one health check cycle against a pod."""

    def __init__(
        self,
        pod: PodContext,
        *,
        health_check: HealthCheck | None = None,
        reaper: SessionReaper | None = None,
        resources: SystemResources | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.pod = pod
        self.resources = resources
        self.health_check = health_check or functools.partial(perform_health_checks, resources=resources)
        self.reaper = reaper or SessionReaper(pod, clock=clock)
        self.clock = clock

    async def run_cycle(self) -> CycleReport:
        report = CycleReport(started_at=self.clock())
        report.outcomes.append(await self._persist_health())
        report.outcomes.append(await self._reload_settings())
        report.outcomes.append(await self._reap_sessions())
        report.finished_at = self.clock()

        logger.debug(
            "Health check cycle done: %s",
            ", ".join(f"{o.step}={o.status.value}" for o in report.outcomes),
        )
        return report

    async def _persist_health(self) -> StepOutcome:
        outcome = StepOutcome(PERSIST_STEP)
        session = None
        try:
            session = await self.pod.create_session(enable_logging=False)
            result = await self.health_check(self.pod)

            written = conflicts = 0
            for record in (*result.metrics, *result.connection_infos):
                try:
                    await session.insert(record)
                    written += 1
                except PersistenceConflict as e:
                    # Overlapping cycles sometimes write the same timestamped row twice.
                    conflicts += 1
                    logger.debug("Skipped duplicate health row: %s", e)

            outcome.detail = {"written": written, "conflicts": conflicts}
            if conflicts:
                outcome.status = StepStatus.TOLERATED
        except Exception as e:
            logger.warning("Health check round failed: %s", e, exc_info=True)
            outcome.status = StepStatus.FAILED
            outcome.error = e
        finally:
            if session is not None:
                try:
                    await session.close()
                except Exception:
                    logger.warning("Failed to close health check session", exc_info=True)
        return outcome

    async def _reload_settings(self) -> StepOutcome:
        try:
            await self.pod.reload_runtime_settings()
        except Exception as e:
            logger.warning("Failed to reload runtime settings: %s", e, exc_info=True)
            return StepOutcome(RELOAD_STEP, StepStatus.FAILED, error=e)
        return StepOutcome(RELOAD_STEP)

    async def _reap_sessions(self) -> StepOutcome:
        try:
            result = await self.reaper.reap_stale_sessions()
        except Exception as e:
            logger.exception("Session reaper raised")
            return StepOutcome(REAP_STEP, StepStatus.FAILED, error=e)

        if result is None:
            # Already logged by the reaper
            return StepOutcome(REAP_STEP, StepStatus.FAILED)
        return StepOutcome(REAP_STEP, detail={"touched": result.touched, "closed": result.closed})
