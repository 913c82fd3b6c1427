"""Tests for health metric collection."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import MagicMock, patch

import pytest

from podhealth.errors import PlatformNotSupported
from podhealth.health.collector import (
    CPU_METRIC,
    DATABASE_METRIC,
    MEMORY_METRIC,
    SystemResources,
    perform_health_checks,
)
from podhealth.storage.models import ServerHealthMetric


@pytest.fixture
def mock_psutil():
    with patch("podhealth.health.collector.psutil") as ps:
        ps.Error = RuntimeError
        ps.cpu_percent.return_value = 25.0
        ps.virtual_memory.return_value = MagicMock(percent=50.0)
        yield ps


class TestSystemResources:
    def test_init_marks_available(self, mock_psutil) -> None:
        resources = SystemResources()
        assert not resources.available
        resources.init()
        assert resources.available
        assert resources.cpu_load() == pytest.approx(0.25)
        assert resources.memory_usage() == pytest.approx(0.5)

    def test_unsupported_platform(self, mock_psutil) -> None:
        mock_psutil.cpu_percent.side_effect = NotImplementedError("no /proc/stat")
        resources = SystemResources()
        with pytest.raises(PlatformNotSupported):
            resources.init()
        assert not resources.available


class TestPerformHealthChecks:
    def test_without_system_metrics(self, pod) -> None:
        result = asyncio.run(perform_health_checks(pod))

        assert [m.name for m in result.metrics] == [DATABASE_METRIC]
        db_metric = result.metrics[0]
        assert db_metric.is_healthy
        assert db_metric.server_id == "server-a"
        assert db_metric.timestamp.second == 0
        assert db_metric.timestamp.microsecond == 0

        (info,) = result.connection_infos
        assert info.server_id == "server-a"
        assert info.timestamp == db_metric.timestamp

    def test_with_system_metrics(self, pod, mock_psutil) -> None:
        resources = SystemResources()
        resources.init()
        result = asyncio.run(perform_health_checks(pod, resources))

        assert [m.name for m in result.metrics] == [CPU_METRIC, MEMORY_METRIC, DATABASE_METRIC]
        assert result.metrics[0].value == pytest.approx(0.25)
        assert result.metrics[1].value == pytest.approx(0.5)
        assert len({m.timestamp for m in result.metrics}) == 1

    def test_unavailable_resources_are_skipped(self, pod) -> None:
        result = asyncio.run(perform_health_checks(pod, SystemResources()))
        assert [m.name for m in result.metrics] == [DATABASE_METRIC]

    def test_database_failure_is_unhealthy(self, pod) -> None:
        with patch.object(pod.database, "ping", side_effect=RuntimeError("db down")):
            result = asyncio.run(perform_health_checks(pod))

        (metric,) = result.metrics
        assert metric.name == DATABASE_METRIC
        assert not metric.is_healthy

    def test_custom_handler_metrics_are_appended(self, pod) -> None:
        async def handler(p, timestamp):
            return [ServerHealthMetric(
                name="queue_depth", server_id=p.server_id, timestamp=timestamp, is_healthy=True, value=7,
            )]

        pod.health_check_handler = handler
        result = asyncio.run(perform_health_checks(pod))
        assert [m.name for m in result.metrics] == [DATABASE_METRIC, "queue_depth"]
        assert result.metrics[1].timestamp == result.metrics[0].timestamp

    def test_failing_custom_handler_is_skipped(self, pod, caplog) -> None:
        async def handler(p, timestamp):
            raise ValueError("handler bug")

        pod.health_check_handler = handler
        with caplog.at_level(logging.ERROR, logger="podhealth.health.collector"):
            result = asyncio.run(perform_health_checks(pod))

        assert [m.name for m in result.metrics] == [DATABASE_METRIC]
        assert "Custom health check handler failed" in caplog.text

    def test_connection_info_reflects_open_sessions(self, pod) -> None:
        async def scenario():
            session = await pod.create_session(enable_logging=False)
            try:
                return await perform_health_checks(pod)
            finally:
                await session.close()

        result = asyncio.run(scenario())
        assert result.connection_infos[0].active == 1
