"""Health metric collection — CPU, memory, database response time, connection counts.

Every metric of one round shares a timestamp truncated to the minute, so two
rounds in the same minute produce the same unique keys.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

import psutil

from ..errors import PlatformNotSupported
from ..storage.models import ServerHealthConnectionInfo, ServerHealthMetric
from .clock import truncate_to_minute, utcnow
from .models import HealthCheckResult

if TYPE_CHECKING:
    from ..pod import Pod

logger = logging.getLogger(__name__)

CPU_METRIC = "serverpod_cpu"
MEMORY_METRIC = "serverpod_memory"
DATABASE_METRIC = "serverpod_database"


class SystemResources:
    """CPU and memory sampling via psutil."""

    def __init__(self) -> None:
        self._available = False

    @property
    def available(self) -> bool:
        return self._available

    def init(self) -> None:
        """Prime the CPU counter. Raises PlatformNotSupported if sampling fails."""
        try:
            psutil.cpu_percent(interval=None)
            psutil.virtual_memory()
        except (NotImplementedError, OSError, psutil.Error) as e:
            self._available = False
            raise PlatformNotSupported(f"{type(e).__name__}: {e}") from e
        self._available = True

    def cpu_load(self) -> float:
        """CPU load since the previous call, as a fraction (0.0–1.0)."""
        return psutil.cpu_percent(interval=None) / 100

    def memory_usage(self) -> float:
        """Used memory as a fraction (0.0–1.0)."""
        return psutil.virtual_memory().percent / 100


async def perform_health_checks(
    pod: Pod,
    resources: SystemResources | None = None,
) -> HealthCheckResult:
    """Run one round of health checks for the pod."""
    timestamp = truncate_to_minute(utcnow())
    metrics: list[ServerHealthMetric] = []

    if resources is not None and resources.available:
        metrics.append(ServerHealthMetric(
            name=CPU_METRIC, server_id=pod.server_id, timestamp=timestamp,
            is_healthy=True, value=resources.cpu_load(),
        ))
        metrics.append(ServerHealthMetric(
            name=MEMORY_METRIC, server_id=pod.server_id, timestamp=timestamp,
            is_healthy=True, value=resources.memory_usage(),
        ))

    metrics.append(await _check_database(pod, timestamp))

    if pod.health_check_handler:
        try:
            metrics.extend(await pod.health_check_handler(pod, timestamp))
        except Exception:
            logger.exception("Custom health check handler failed")

    stats = pod.connection_stats()
    connection_info = ServerHealthConnectionInfo(
        server_id=pod.server_id, timestamp=timestamp,
        active=stats.active, closing=stats.closing, idle=stats.idle,
    )

    return HealthCheckResult(metrics=tuple(metrics), connection_infos=(connection_info,))


async def _check_database(pod: Pod, timestamp: datetime) -> ServerHealthMetric:
    """Database response time in seconds; unhealthy if the round trip fails."""
    try:
        latency = await pod.database.run(pod.database.ping)
        healthy = True
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        latency = 0.0
        healthy = False
    return ServerHealthMetric(
        name=DATABASE_METRIC, server_id=pod.server_id, timestamp=timestamp,
        is_healthy=healthy, value=round(latency, 6),
    )
