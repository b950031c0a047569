"""
Optimistic update manager.

Every state-changing action:
  1. is authorized and validated locally (ValidationError, nothing sent);
  2. is applied to the local state machine and timer store at once;
  3. sends its request to the Session Service in a background task;
  4. ends with a notice (success or error) and a full reload.

There is no partial rollback. A failed request is corrected by the reload,
so callers must treat actions as eventually consistent, not durable.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from collections.abc import Awaitable, Iterable
from typing import Callable, Optional

import pydantic

from goaltimer.clock import utcnow
from goaltimer.errors import GoalTimerError
from goaltimer.models.session import Session
from goaltimer.notices import Notifier
from goaltimer.sessions import SessionsAPI
from goaltimer.state import Action, SessionStateMachine
from goaltimer.sync import Reconciler
from goaltimer.ticker import TimerStore

logger = logging.getLogger(__name__)

ReloadHook = Callable[[], Awaitable[None]]

SUCCESS_MESSAGES = {
    Action.START: "Session started!",
    Action.PAUSE: "Session paused",
    Action.RESUME: "Session resumed",
    Action.STOP: "Session stopped",
    Action.COMPLETE: "Session completed!",
    Action.COMPLETE_SUB_TASK: "Sub-task completed",
}


class OptimisticUpdater:
    def __init__(
        self,
        sessions: SessionsAPI,
        store: TimerStore,
        machine: SessionStateMachine,
        reconciler: Reconciler,
        *,
        actor_id: Optional[int],
        notifier: Optional[Notifier] = None,
        clock: Callable[[], dt.datetime] = utcnow,
    ):
        self._sessions = sessions
        self._store = store
        self._machine = machine
        self._reconciler = reconciler
        self._notifier = notifier or Notifier()
        self._clock = clock
        self.actor_id = actor_id
        self._reload_hooks: list[ReloadHook] = []
        self._pending: set[asyncio.Task[Optional[Session]]] = set()

    def add_reload_hook(self, hook: ReloadHook) -> Callable[[], None]:
        """Extra reload work (goal summaries, calendars) run after every action."""
        self._reload_hooks.append(hook)
        def remove() -> None:
            try:
                self._reload_hooks.remove(hook)
            except ValueError:
                pass
        return remove

    # -- actions -------------------------------------------------------

    def start(
        self,
        user_id: int,
        goal_id: int,
        *,
        sub_task_id: Optional[int] = None,
        sub_task_ids: Iterable[int] = (),
        date: Optional[dt.date] = None,
        target_seconds: Optional[int] = None,
    ) -> asyncio.Task[Optional[Session]]:
        """Start timing `goal_id`. `sub_task_ids` are the goal's sub-tasks, if it has any."""
        record = self._machine.check(
            Action.START, self.actor_id, user_id,
            goal_id=goal_id, sub_task_id=sub_task_id, sub_task_ids=sub_task_ids, date=date,
        )
        now = self._clock()
        record = self._machine.apply(Action.START, record, now)
        self._store.start_timer(user_id, started_at=now, date=record.date, target_seconds=target_seconds)
        return self._send(
            Action.START,
            lambda: self._sessions.start(user_id, goal_id, record.date, sub_task_id),
        )

    def pause(self, user_id: int) -> asyncio.Task[Optional[Session]]:
        record = self._machine.check(Action.PAUSE, self.actor_id, user_id)
        self._machine.apply(Action.PAUSE, record, self._clock())
        self._store.pause_timer(user_id)
        return self._send(Action.PAUSE, lambda: self._sessions.pause(record.id))

    def resume(self, user_id: int) -> asyncio.Task[Optional[Session]]:
        record = self._machine.check(Action.RESUME, self.actor_id, user_id)
        self._machine.apply(Action.RESUME, record, self._clock())
        self._store.resume_timer(user_id)
        return self._send(Action.RESUME, lambda: self._sessions.resume(record.id))

    def stop(self, user_id: int) -> asyncio.Task[Optional[Session]]:
        """End the session for good; it cannot be paused or resumed afterwards."""
        record = self._machine.check(Action.STOP, self.actor_id, user_id)
        entry = self._store.get(user_id)
        reached = bool(entry and entry.target_seconds is not None
                       and entry.elapsed_seconds >= entry.target_seconds)
        self._machine.apply(Action.STOP, record, self._clock(), target_reached=reached)
        self._store.stop_timer(user_id)
        return self._send(Action.STOP, lambda: self._sessions.stop(record.id))

    def complete(self, user_id: int) -> asyncio.Task[Optional[Session]]:
        record = self._machine.check(Action.COMPLETE, self.actor_id, user_id)
        self._machine.apply(Action.COMPLETE, record, self._clock())
        self._store.stop_timer(user_id)
        return self._send(Action.COMPLETE, lambda: self._sessions.complete(record.id))

    def complete_sub_task(self, user_id: int) -> asyncio.Task[Optional[Session]]:
        """Finish the current sub-task; the display drops to zero for the next one."""
        record = self._machine.check(Action.COMPLETE_SUB_TASK, self.actor_id, user_id)
        self._machine.apply(Action.COMPLETE_SUB_TASK, record, self._clock())
        self._store.reset_timer(user_id)
        return self._send(Action.COMPLETE_SUB_TASK, lambda: self._sessions.complete_sub_task(record.id))

    # -- background ----------------------------------------------------

    async def reload(self) -> None:
        """Re-fetch everything. This is the only recovery path after a failure."""
        await self._reconciler.sync()
        for hook in list(self._reload_hooks):
            try:
                await hook()
            except GoalTimerError as e:
                logger.warning("Reload hook failed: %s", e)

    async def drain(self) -> None:
        """Wait for every in-flight action (and its reload) to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _send(
        self, action: Action, request: Callable[[], Awaitable[Session]],
    ) -> asyncio.Task[Optional[Session]]:
        task = asyncio.get_running_loop().create_task(self._request(action, request))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _request(
        self, action: Action, request: Callable[[], Awaitable[Session]],
    ) -> Optional[Session]:
        session: Optional[Session] = None
        try:
            session = await request()
        except (GoalTimerError, pydantic.ValidationError) as e:
            logger.error("Failed to %s session: %s", action.value.replace("_", " "), e)
            self._notifier.error(str(e) or f"Failed to {action.value.replace('_', ' ')} session")
        else:
            self._notifier.success(SUCCESS_MESSAGES[action])
        await self.reload()
        return session
