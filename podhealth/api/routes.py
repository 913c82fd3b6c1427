"""Read-only health endpoints.

Endpoints:
  GET /api/health/status    — scheduler state, last cycle, runtime settings
  GET /api/health/metrics   — most recent health metric rows
  GET /api/health/sessions  — open session-log rows, split by this server / others
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Query, Request

logger = logging.getLogger(__name__)

health_router = APIRouter()


@health_router.get("/health/status")
async def health_status(request: Request) -> dict[str, Any]:
    return request.app.state.pod.status()


@health_router.get("/health/metrics")
async def latest_metrics(request: Request, limit: int = Query(50, ge=1, le=1000)) -> dict[str, Any]:
    """Latest metric rows across all servers, newest first."""
    database = request.app.state.pod.database
    rows = await database.run(
        database.fetch_all,
        "SELECT name, server_id, timestamp, is_healthy, value, granularity "
        "FROM health_metric ORDER BY timestamp DESC, id DESC LIMIT ?",
        (limit,),
    )
    for r in rows:
        r["is_healthy"] = bool(r["is_healthy"])
    return {"metrics": rows, "count": len(rows)}


@health_router.get("/health/sessions")
async def open_sessions(request: Request) -> dict[str, Any]:
    pod = request.app.state.pod
    rows = await pod.database.run(
        pod.database.fetch_all,
        "SELECT server_id, COUNT(*) AS open FROM session_log WHERE is_open = ? GROUP BY server_id",
        (True,),
    )
    by_server = {r["server_id"]: r["open"] for r in rows}
    return {
        "server_id": pod.server_id,
        "open_here": by_server.get(pod.server_id, 0),
        "open_total": sum(by_server.values()),
        "by_server": by_server,
    }
