"""FastAPI host for the pod. Starting the app starts the health checks."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from podhealth import __version__
from podhealth.api.routes import health_router
from podhealth.pod import Pod

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the pod on startup, shut it down on exit."""
    pod = Pod()
    app.state.pod = pod
    try:
        await pod.start()
    except Exception:
        logger.exception("Pod failed to start")
    yield
    await pod.shutdown()


def create_app() -> FastAPI:
    app = FastAPI(
        title="podhealth",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(health_router, prefix="/api")
    return app


app = create_app()
