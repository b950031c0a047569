"""
Timer tick engine — the per-client store of ticking session timers.

Keeps `user_id -> elapsed seconds` for display and re-samples every
IN_PROGRESS entry once per tick. PAUSED entries are frozen at their last
sample and never re-sampled until resumed.

A single asyncio task drives the ticks. It is cancelled and recreated on
every change to the registered set and torn down when nothing is running.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from goaltimer.clock import elapsed_active_seconds, utcnow
from goaltimer.errors import GoalTimerError
from goaltimer.models.session import Session, SessionStatus

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL_S = 1.0

ElapsedListener = Callable[[dict[int, int]], None]


@dataclass
class TimerEntry:
    """Derived projection of one user's session. Timestamps are server-owned."""

    user_id: int
    date: dt.date
    status: SessionStatus
    started_at: Optional[dt.datetime]
    paused_at: Optional[dt.datetime] = None
    total_paused_seconds: int = 0
    session_id: Optional[int] = None
    elapsed_seconds: int = 0
    target_seconds: Optional[int] = None
    target_notified: bool = False

    @classmethod
    def from_session(cls, session: Session, target_seconds: Optional[int] = None) -> TimerEntry:
        return cls(
            user_id=session.user_id,
            date=session.date,
            status=session.status,
            started_at=session.started_at,
            paused_at=session.paused_at,
            total_paused_seconds=session.total_paused_seconds,
            session_id=session.id,
            target_seconds=target_seconds,
        )

    @property
    def remaining_seconds(self) -> Optional[int]:
        if self.target_seconds is None:
            return None
        return max(0, self.target_seconds - self.elapsed_seconds)


class TimerStore:
    def __init__(
        self,
        tick_interval: float = DEFAULT_TICK_INTERVAL_S,
        clock: Callable[[], dt.datetime] = utcnow,
    ):
        self._tick_interval = tick_interval
        self._clock = clock
        self._entries: dict[int, TimerEntry] = {}
        self._task: Optional[asyncio.Task[None]] = None
        self._running = False
        self._listeners: list[ElapsedListener] = []
        self._change_listeners: list[Callable[[], None]] = []
        self._on_target_reached: Optional[Callable[[int], object]] = None

    # -- lifecycle -----------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def ticking(self) -> bool:
        return self._task is not None and not self._task.done()

    def init(self) -> None:
        self._running = True
        self._rearm()

    def shutdown(self) -> None:
        self._running = False
        self._cancel()
        self._entries.clear()
        self._publish()

    # -- registration --------------------------------------------------

    def register_session(self, session: Session, target_seconds: Optional[int] = None) -> TimerEntry:
        entry = TimerEntry.from_session(session, target_seconds)
        self._register(entry)
        return entry

    def start_timer(
        self,
        user_id: int,
        *,
        started_at: dt.datetime,
        date: dt.date,
        total_paused_seconds: int = 0,
        session_id: Optional[int] = None,
        target_seconds: Optional[int] = None,
    ) -> TimerEntry:
        entry = TimerEntry(
            user_id=user_id,
            date=date,
            status=SessionStatus.IN_PROGRESS,
            started_at=started_at,
            total_paused_seconds=total_paused_seconds,
            session_id=session_id,
            target_seconds=target_seconds,
        )
        self._register(entry)
        logger.info("Timer started for user %s", user_id)
        return entry

    def unregister_session(self, user_id: int) -> Optional[TimerEntry]:
        entry = self._entries.pop(user_id, None)
        if entry is not None:
            self._changed()
        return entry

    def stop_timer(self, user_id: int) -> None:
        if self.unregister_session(user_id):
            logger.info("Timer stopped for user %s", user_id)

    def reset_timer(self, user_id: int) -> None:
        if self.unregister_session(user_id):
            logger.info("Timer reset for user %s", user_id)

    def pause_timer(self, user_id: int) -> None:
        entry = self._entries.get(user_id)
        if entry is None or entry.status != SessionStatus.IN_PROGRESS:
            return
        # the local pause instant freezes every later sample at the pause point
        entry.paused_at = self._clock()
        entry.status = SessionStatus.PAUSED
        self._sample(entry)
        self._changed()
        logger.info("Timer paused for user %s", user_id)

    def resume_timer(self, user_id: int) -> None:
        entry = self._entries.get(user_id)
        if entry is None or entry.status != SessionStatus.PAUSED:
            return
        entry.paused_at = None
        entry.status = SessionStatus.IN_PROGRESS
        self._changed()
        logger.info("Timer resumed for user %s", user_id)

    def replace(self, entries: dict[int, TimerEntry]) -> None:
        """Swap in a freshly reconciled set of entries as one change."""
        for user_id, entry in entries.items():
            previous = self._entries.get(user_id)
            if previous is not None and previous is not entry and previous.date == entry.date:
                if entry.target_seconds is None:
                    entry.target_seconds = previous.target_seconds
                entry.target_notified = entry.target_notified or previous.target_notified
            self._sample(entry)
        self._entries = dict(entries)
        self._changed()

    # -- reads ---------------------------------------------------------

    def get(self, user_id: int) -> Optional[TimerEntry]:
        return self._entries.get(user_id)

    def entries(self) -> list[TimerEntry]:
        return list(self._entries.values())

    def elapsed_by_user(self) -> dict[int, int]:
        return {uid: e.elapsed_seconds for uid, e in self._entries.items()}

    def status_by_user(self) -> dict[int, SessionStatus]:
        return {uid: e.status for uid, e in self._entries.items()}

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # -- listeners -----------------------------------------------------

    def add_listener(self, listener: ElapsedListener) -> Callable[[], None]:
        """Called with the elapsed map after every tick and registration change."""
        self._listeners.append(listener)
        return lambda: self._remove(self._listeners, listener)

    def add_change_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Called whenever the set of tracked sessions (or their status) changes."""
        self._change_listeners.append(listener)
        return lambda: self._remove(self._change_listeners, listener)

    def on_target_reached(self, callback: Optional[Callable[[int], object]]) -> None:
        """Called once per entry when an IN_PROGRESS timer reaches its target."""
        self._on_target_reached = callback

    # -- ticking -------------------------------------------------------

    def tick(self) -> None:
        reached: list[int] = []
        for entry in list(self._entries.values()):
            if entry.status != SessionStatus.IN_PROGRESS:
                continue
            self._sample(entry)
            if (
                entry.target_seconds is not None
                and not entry.target_notified
                and entry.elapsed_seconds >= entry.target_seconds
            ):
                entry.target_notified = True
                reached.append(entry.user_id)
        self._publish()
        for user_id in reached:
            self._fire_target_reached(user_id)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            self.tick()

    def _sample(self, entry: TimerEntry) -> None:
        try:
            entry.elapsed_seconds = elapsed_active_seconds(entry, self._clock())
        except (TypeError, ValueError) as e:
            # bad timestamps must not stop the loop; keep the last value
            logger.warning("Could not sample timer for user %s: %s", entry.user_id, e)

    def _fire_target_reached(self, user_id: int) -> None:
        if self._on_target_reached is None:
            return
        logger.info("Timer for user %s reached its target", user_id)
        try:
            self._on_target_reached(user_id)
        except GoalTimerError as e:
            logger.warning("Auto-complete for user %s rejected: %s", user_id, e)
        except Exception:
            logger.exception("Target callback failed for user %s", user_id)

    def _changed(self) -> None:
        self._rearm()
        self._publish()
        for listener in list(self._change_listeners):
            try:
                listener()
            except Exception:
                logger.exception("Timer change listener failed")

    def _publish(self) -> None:
        snapshot = self.elapsed_by_user()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Timer listener failed")

    def _rearm(self) -> None:
        self._cancel()
        if not self._running:
            return
        if not any(e.status == SessionStatus.IN_PROGRESS for e in self._entries.values()):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; ticks must be driven manually")
            return
        self._task = loop.create_task(self._run())

    def _cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _register(self, entry: TimerEntry) -> None:
        self._sample(entry)
        self._entries[entry.user_id] = entry
        self._changed()

    @staticmethod
    def _remove(items: list, item: object) -> None:
        try:
            items.remove(item)
        except ValueError:
            pass
