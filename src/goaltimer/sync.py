"""
Reconciliation sync — periodically overwrite the local projection with the
Session Service's records.

Corrects clock drift in long-running clients, pauses/resumes made from other
devices and server-side sweeps. A failed fetch keeps the previous projection.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from collections.abc import Awaitable, Iterable
from typing import Callable, Optional

import pydantic

from goaltimer.errors import GoalTimerError, InconsistentStateError
from goaltimer.models.session import CleanupResult, Session, SessionStatus
from goaltimer.notices import Notifier
from goaltimer.sessions import SessionsAPI
from goaltimer.state import SessionStateMachine
from goaltimer.ticker import TimerEntry, TimerStore

logger = logging.getLogger(__name__)

DEFAULT_SYNC_INTERVAL_S = 30.0

TargetResolver = Callable[[Session], Awaitable[Optional[int]]]


def latest_per_user(sessions: Iterable[Session]) -> dict[int, Session]:
    """One record per user: the most recent date, active records first on ties."""
    chosen: dict[int, Session] = {}
    for session in sessions:
        current = chosen.get(session.user_id)
        if current is None or (session.date, session.is_active) > (current.date, current.is_active):
            chosen[session.user_id] = session
    return chosen


def project_session(session: Session, target: Optional[int] = None) -> Optional[TimerEntry]:
    """Timer entry for a server record, or None when it has nothing to tick.

    Raises InconsistentStateError for a PAUSED record missing its timestamps.
    """
    if session.status == SessionStatus.IN_PROGRESS:
        if session.started_at is None:
            logger.debug("Session %s waiting for next sub-task", session.id)
            return None
        return TimerEntry.from_session(session, target)
    if session.status == SessionStatus.PAUSED:
        if session.started_at is None or session.paused_at is None:
            raise InconsistentStateError(
                f"Session {session.id} is PAUSED without timestamps",
                {"session_id": session.id, "user_id": session.user_id},
            )
        return TimerEntry.from_session(session, target)
    return None


class Reconciler:
    def __init__(
        self,
        sessions: SessionsAPI,
        store: TimerStore,
        machine: SessionStateMachine,
        *,
        notifier: Optional[Notifier] = None,
        sync_interval: float = DEFAULT_SYNC_INTERVAL_S,
        target_resolver: Optional[TargetResolver] = None,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self._sessions = sessions
        self._store = store
        self._machine = machine
        self._notifier = notifier or Notifier()
        self._sync_interval = sync_interval
        self._target_resolver = target_resolver
        self._today = today
        self._date_range: Optional[tuple[dt.date, dt.date]] = None
        self._targets: dict[tuple[int, int, Optional[int]], Optional[int]] = {}
        self._task: Optional[asyncio.Task[None]] = None
        self._remove_listener: Optional[Callable[[], None]] = None
        self._started_seq = 0
        self._applied_seq = 0
        self.last_synced_at: Optional[dt.datetime] = None

    def set_date_range(self, start_date: dt.date, end_date: dt.date) -> None:
        """Sync a date range instead of just today (e.g. a calendar month)."""
        self._date_range = (start_date, end_date)

    def _scope(self) -> list[dt.date]:
        if self._date_range is None:
            return [self._today()]
        start, end = self._date_range
        return [start + dt.timedelta(days=n) for n in range((end - start).days + 1)]

    # -- one-shot operations -------------------------------------------

    async def sync(self) -> bool:
        """Fetch and apply. Returns False (projection untouched) if the fetch failed."""
        self._started_seq += 1
        seq = self._started_seq
        try:
            if self._date_range is None:
                fetched = await self._sessions.list(date=self._today())
            else:
                start, end = self._date_range
                fetched = await self._sessions.list(start_date=start, end_date=end)
            targets = await self._resolve_targets(fetched)
        except (GoalTimerError, pydantic.ValidationError) as e:
            logger.warning("Sync failed, keeping local timers: %s", e)
            return False

        if seq < self._applied_seq:
            logger.debug("Discarding sync #%s, a newer one was already applied", seq)
            return True
        self._applied_seq = seq
        self._apply(fetched, self._scope(), targets)
        self.last_synced_at = dt.datetime.now(dt.timezone.utc)
        logger.debug("Timers synced with server (%s sessions)", len(fetched))
        return True

    async def seed(self) -> CleanupResult:
        """Run the server's stale-session sweep once and seed timers from today's sessions."""
        result = await self._sessions.check_and_cleanup()
        if result.cleaned_up > 0:
            self._notifier.info(f"{result.cleaned_up} session(s) from previous days marked as MISSED")
        targets = await self._resolve_targets(result.sessions)
        self._apply(result.sessions, [self._today()], targets)
        return result

    def apply_session(self, session: Session) -> None:
        """Apply a single pushed record. Uses cached targets only."""
        target = self._targets.get(self._target_key(session))
        self._machine.put(session)
        entries = {e.user_id: e for e in self._store.entries()}
        entry = self._project(session, target)
        if entry is None:
            entries.pop(session.user_id, None)
        else:
            entries[session.user_id] = entry
        self._store.replace(entries)

    on_session_changed = apply_session

    # -- periodic driver -----------------------------------------------

    @property
    def polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._remove_listener is None:
            self._remove_listener = self._store.add_change_listener(self._rearm)
        self._rearm()

    def stop(self) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _rearm(self) -> None:
        # any tracked entry is IN_PROGRESS or PAUSED
        if len(self._store) == 0:
            if self._task is not None:
                self._task.cancel()
                self._task = None
            return
        if self.polling:
            # never cancel a sync that may be mid-request
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._sync_interval)
            await self.sync()

    # -- projection ----------------------------------------------------

    def _apply(
        self,
        sessions: list[Session],
        scope: list[dt.date],
        targets: dict[tuple[int, int, Optional[int]], Optional[int]],
    ) -> None:
        by_user = latest_per_user(sessions)
        self._machine.replace(by_user.values(), dates=scope)

        scope_set = set(scope)
        entries: dict[int, TimerEntry] = {}
        for entry in self._store.entries():
            if entry.date not in scope_set:
                entries[entry.user_id] = entry
            elif entry.user_id not in by_user:
                logger.warning(
                    "User %s has a local timer but no server session on %s; dropping it",
                    entry.user_id, entry.date,
                )

        for user_id, session in by_user.items():
            projected = self._project(session, targets.get(self._target_key(session)))
            if projected is None:
                entries.pop(user_id, None)
            else:
                entries[user_id] = projected
        self._store.replace(entries)

    @staticmethod
    def _project(session: Session, target: Optional[int]) -> Optional[TimerEntry]:
        try:
            return project_session(session, target)
        except InconsistentStateError as e:
            logger.warning("%s; dropping its timer", e)
            return None

    @staticmethod
    def _target_key(session: Session) -> tuple[int, int, Optional[int]]:
        return (session.user_id, session.goal_id, session.sub_task_id)

    async def _resolve_targets(
        self, sessions: Iterable[Session],
    ) -> dict[tuple[int, int, Optional[int]], Optional[int]]:
        if self._target_resolver is None:
            return {}
        for session in sessions:
            key = self._target_key(session)
            if not session.is_active or key in self._targets:
                continue
            try:
                self._targets[key] = await self._target_resolver(session)
            except GoalTimerError as e:
                logger.warning("Could not resolve target for session %s: %s", session.id, e)
        return self._targets
