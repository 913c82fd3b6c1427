"""Wall-clock alignment for the once-a-minute health check."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

# Pushes "now" forward so a timer firing a hair early doesn't target the boundary it is sitting on.
BOUNDARY_GUARD = timedelta(seconds=2)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def truncate_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def time_until_next_minute(
    now: datetime | None = None,
    guard: timedelta = BOUNDARY_GUARD,
) -> timedelta:
    """Time from `now + guard` until the next whole minute.

    Always in (0s, 60s]; `now + guard + result` has zero seconds.
    """
    if now is None:
        now = utcnow()
    shifted = now + guard
    boundary = truncate_to_minute(shifted) + timedelta(minutes=1)
    return boundary - shifted
