"""
Local clock sampler — elapsed active seconds from a session's server timestamps.

    elapsed = floor(reference - started_at) - total_paused_seconds

where `reference` is `paused_at` for a paused session and `now` otherwise.
Pure functions; safe to call on every tick.
"""

import datetime as dt
import logging
import math
from typing import Optional, Protocol

from goaltimer.models.session import SessionStatus

logger = logging.getLogger(__name__)


class ClockSnapshot(Protocol):
    started_at: Optional[dt.datetime]
    paused_at: Optional[dt.datetime]
    total_paused_seconds: int
    status: SessionStatus


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def elapsed_active_seconds(snapshot: ClockSnapshot, now: dt.datetime) -> int:
    if snapshot.started_at is None:
        # IN_PROGRESS but waiting for the next sub-task
        return 0

    reference = now
    if snapshot.status == SessionStatus.PAUSED and snapshot.paused_at is not None:
        reference = snapshot.paused_at

    wall = math.floor((reference - snapshot.started_at).total_seconds())
    elapsed = wall - snapshot.total_paused_seconds
    if elapsed < 0:
        logger.debug(
            "Negative elapsed time (%ss) clamped to 0: started_at=%s reference=%s paused=%ss",
            elapsed, snapshot.started_at, reference, snapshot.total_paused_seconds,
        )
        return 0
    return elapsed


def remaining_seconds(elapsed: int, target_seconds: int) -> int:
    return max(0, target_seconds - elapsed)


def progress(elapsed: int, target_seconds: int) -> float:
    """Percentage of the target reached, capped at 100."""
    if target_seconds <= 0:
        return 0.0
    return min(elapsed / target_seconds * 100, 100.0)


def format_duration(seconds: int) -> str:
    """MM:SS, or HH:MM:SS from one hour up."""
    hours, rest = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"
