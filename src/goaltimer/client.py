"""
AsyncGoalTimer / GoalTimer — main client wiring the timer engine together.
"""

import asyncio
import datetime as dt
from typing import Any, Callable, Optional

import httpx
import socketio

from goaltimer.clock import utcnow
from goaltimer.config import Settings, load_settings
from goaltimer.errors import ConnectionError, GoalTimerError
from goaltimer.goals import GoalsAPI
from goaltimer.models.session import CleanupResult, Session
from goaltimer.notices import Notifier
from goaltimer.optimistic import OptimisticUpdater
from goaltimer.sessions import SessionsAPI
from goaltimer.state import Action, SessionStateMachine
from goaltimer.sync import Reconciler
from goaltimer.ticker import TimerStore
from goaltimer.transport.http import HttpClient
from goaltimer.transport.socketio import SessionFeed


class AsyncGoalTimer:
    """Async timer client (primary). One instance per signed-in user."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], dt.datetime] = utcnow,
        today: Callable[[], dt.date] = dt.date.today,
        **overrides: Any,
    ):
        settings = settings or load_settings()
        if overrides:
            settings = settings.model_copy(update=overrides)
        self.settings = settings

        self.http = HttpClient(base_url=settings.base_url, token=settings.access_token, transport=transport)
        self.sessions = SessionsAPI(self.http)
        self.goals = GoalsAPI(self.http)
        self.notifier = Notifier()
        self.machine = SessionStateMachine()
        self.store = TimerStore(tick_interval=settings.tick_interval, clock=clock)
        self.reconciler = Reconciler(
            self.sessions, self.store, self.machine,
            notifier=self.notifier,
            sync_interval=settings.sync_interval,
            target_resolver=self.goals.target_seconds,
            today=today,
        )
        self.updater = OptimisticUpdater(
            self.sessions, self.store, self.machine, self.reconciler,
            actor_id=settings.user_id,
            notifier=self.notifier,
            clock=clock,
        )
        self.store.on_target_reached(self.updater.complete)
        self._today = today
        self._feed: Optional[SessionFeed] = None

    @property
    def user_id(self) -> Optional[int]:
        return self.updater.actor_id

    async def open(self) -> CleanupResult:
        """Seed local timers from the server's cleanup sweep and start both drivers."""
        self.store.init()
        try:
            result = await self.reconciler.seed()
        except GoalTimerError as e:
            self.notifier.error(f"Failed to load sessions: {e}")
            await self.reconciler.sync()
            result = CleanupResult()
        self.reconciler.start()
        return result

    async def close(self) -> None:
        await self.updater.drain()
        self.reconciler.stop()
        self.store.shutdown()
        if self._feed:
            await self._feed.disconnect()
            self._feed = None
        await self.http.close()

    async def __aenter__(self) -> "AsyncGoalTimer":
        await self.open()
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.close()

    async def connect_feed(self) -> SessionFeed:
        """Also receive pushed session changes (polling keeps running)."""
        if self._feed is None:
            self._feed = SessionFeed(self.settings.base_url, token=self.settings.access_token)
            self._feed.add_handler(self.reconciler.on_session_changed)
        try:
            await self._feed.connect()
        except (OSError, TimeoutError, socketio.exceptions.ConnectionError) as e:
            raise ConnectionError(f"Session feed unavailable: {e}") from e
        return self._feed

    # -- actions (optimistic, eventually consistent) -------------------

    async def start(
        self, goal_id: int, *, sub_task_id: Optional[int] = None, user_id: Optional[int] = None,
    ) -> "asyncio.Task[Optional[Session]]":
        """Look up the goal's sub-tasks and target, then start optimistically."""
        user_id = self._owner(user_id)
        # ownership and IDLE are settled before any goal lookup is sent
        self.machine.check(Action.START, self.user_id, user_id, goal_id=goal_id)
        sub_task_ids: list[int] = []
        target: Optional[int] = None
        user_goal = await self.goals.find_user_goal(user_id, goal_id)
        if user_goal is not None:
            sub_tasks = await self.goals.sub_tasks(user_goal.id)
            sub_task_ids = [st.id for st in sub_tasks]
            target = user_goal.daily_duration_minutes * 60
            for st in sub_tasks:
                if st.id == sub_task_id:
                    target = st.duration_minutes * 60
        return self.updater.start(
            user_id, goal_id,
            sub_task_id=sub_task_id, sub_task_ids=sub_task_ids, date=self._today(), target_seconds=target,
        )

    def pause(self, user_id: Optional[int] = None) -> "asyncio.Task[Optional[Session]]":
        return self.updater.pause(self._owner(user_id))

    def resume(self, user_id: Optional[int] = None) -> "asyncio.Task[Optional[Session]]":
        return self.updater.resume(self._owner(user_id))

    def stop(self, user_id: Optional[int] = None) -> "asyncio.Task[Optional[Session]]":
        return self.updater.stop(self._owner(user_id))

    def complete_sub_task(self, user_id: Optional[int] = None) -> "asyncio.Task[Optional[Session]]":
        return self.updater.complete_sub_task(self._owner(user_id))

    # -- reads ---------------------------------------------------------

    def elapsed(self, user_id: Optional[int] = None) -> int:
        entry = self.store.get(self._owner(user_id))
        return entry.elapsed_seconds if entry else 0

    def remaining(self, user_id: Optional[int] = None) -> Optional[int]:
        entry = self.store.get(self._owner(user_id))
        return entry.remaining_seconds if entry else None

    def _owner(self, user_id: Optional[int]) -> int:
        owner = user_id if user_id is not None else self.user_id
        if owner is None:
            raise ConnectionError("user_id required. Run `goaltimer config --user-id` first.")
        return owner


class GoalTimer:
    """Sync wrapper around AsyncGoalTimer for one-shot actions.

    Each action waits for its request and reload; timers only tick while a
    call is running.
    """

    def __init__(self, **kwargs: Any):
        self._async = AsyncGoalTimer(**kwargs)
        self._loop = asyncio.new_event_loop()

    def _run(self, coro: Any) -> Any:
        return self._loop.run_until_complete(coro)

    @property
    def sessions(self) -> SessionsAPI:
        return self._async.sessions

    @property
    def store(self) -> TimerStore:
        return self._async.store

    def open(self) -> CleanupResult:
        return self._run(self._async.open())

    def close(self) -> None:
        self._run(self._async.close())
        self._loop.close()

    def start(self, goal_id: int, **kwargs: Any) -> Optional[Session]:
        async def _go() -> Optional[Session]:
            return await (await self._async.start(goal_id, **kwargs))
        return self._run(_go())

    def pause(self, user_id: Optional[int] = None) -> Optional[Session]:
        return self._act(self._async.pause, user_id)

    def resume(self, user_id: Optional[int] = None) -> Optional[Session]:
        return self._act(self._async.resume, user_id)

    def stop(self, user_id: Optional[int] = None) -> Optional[Session]:
        return self._act(self._async.stop, user_id)

    def complete_sub_task(self, user_id: Optional[int] = None) -> Optional[Session]:
        return self._act(self._async.complete_sub_task, user_id)

    def elapsed(self, user_id: Optional[int] = None) -> int:
        return self._async.elapsed(user_id)

    def _act(self, action: Callable[..., "asyncio.Task[Optional[Session]]"], user_id: Optional[int]) -> Optional[Session]:
        async def _go() -> Optional[Session]:
            return await action(user_id)
        return self._run(_go())
