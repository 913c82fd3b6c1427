"""Session reaper — keeps this server's open sessions alive and closes abandoned ones.

Open state in the session log is shared by every server instance using the
database, so sessions left open by a crashed instance get closed by whichever
instance reaps next.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .clock import utcnow
from .models import ReapResult, SessionTouchWindow

if TYPE_CHECKING:
    from ..pod import PodContext

logger = logging.getLogger(__name__)

STALE_AFTER = timedelta(minutes=3)

TOUCH_SESSIONS = (
    "UPDATE session_log SET touched = ? "
    "WHERE server_id = ? AND is_open = ? AND time >= ?"
)

CLOSE_STALE_SESSIONS = (
    "UPDATE session_log SET is_open = ? "
    "WHERE is_open = ? AND touched < ?"
)


class SessionReaper:
    """Touches this server's open sessions, then closes sessions nobody touched recently."""

    def __init__(
        self,
        pod: PodContext,
        stale_after: timedelta = STALE_AFTER,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.pod = pod
        self.stale_after = stale_after
        self.clock = clock

    def window(self) -> SessionTouchWindow:
        now = self.clock()
        return SessionTouchWindow(
            now=now,
            stale_threshold=now - self.stale_after,
            server_start_time=self.pod.started_time,
            server_id=self.pod.server_id,
        )

    async def reap_stale_sessions(self) -> ReapResult | None:
        """One reaper pass. Failures are logged, never raised."""
        session = None
        try:
            session = await self.pod.create_session(enable_logging=False)
            window = self.window()

            # Touch first: a live session of ours must never look stale to the close step.
            touched = await session.query(
                TOUCH_SESSIONS,
                (window.now, window.server_id, True, window.server_start_time),
            )
            closed = await session.query(
                CLOSE_STALE_SESSIONS,
                (False, True, window.stale_threshold),
            )
            if closed:
                logger.info("Closed %d stale sessions (untouched since %s)", closed, window.stale_threshold.isoformat())
            return ReapResult(touched=touched, closed=closed)
        except Exception:
            logger.exception("Failed to clean up closed sessions")
            return None
        finally:
            if session is not None:
                try:
                    await session.close()
                except Exception:
                    logger.warning("Failed to close reaper session", exc_info=True)
