"""
Session state machine.

    IDLE -> IN_PROGRESS <-> PAUSED -> DONE | MISSED

Holds the local view of each user's current session record. Optimistic
actions write to it; reconciliation overwrites it with server records.
"""

import datetime as dt
import logging
from collections.abc import Iterable
from enum import Enum
from typing import Optional

from goaltimer.errors import ValidationError
from goaltimer.models.session import Session, SessionStatus

logger = logging.getLogger(__name__)


class TimerState(str, Enum):
    IDLE = "IDLE"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    DONE = "DONE"
    MISSED = "MISSED"


class Action(str, Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"
    COMPLETE = "complete"
    COMPLETE_SUB_TASK = "complete_sub_task"


ALLOWED_FROM: dict[Action, frozenset[TimerState]] = {
    Action.START: frozenset({TimerState.IDLE}),
    Action.PAUSE: frozenset({TimerState.IN_PROGRESS}),
    Action.RESUME: frozenset({TimerState.PAUSED}),
    Action.STOP: frozenset({TimerState.IN_PROGRESS, TimerState.PAUSED}),
    Action.COMPLETE: frozenset({TimerState.IN_PROGRESS}),
    Action.COMPLETE_SUB_TASK: frozenset({TimerState.IN_PROGRESS}),
}


def state_of(session: Optional[Session]) -> TimerState:
    if session is None:
        return TimerState.IDLE
    if session.status == SessionStatus.IN_PROGRESS and session.started_at is None:
        # finished a sub-task, waiting for the next one to be started
        return TimerState.IDLE
    return TimerState(session.status.value)


def authorize(actor_id: Optional[int], owner_id: int) -> None:
    if actor_id is None or actor_id != owner_id:
        raise ValidationError("You can only manage your own sessions", code="forbidden",
                              details={"actor_id": actor_id, "owner_id": owner_id})


class SessionStateMachine:
    def __init__(self) -> None:
        self._records: dict[int, Session] = {}

    def record(self, user_id: int) -> Optional[Session]:
        return self._records.get(user_id)

    def state(self, user_id: int) -> TimerState:
        return state_of(self._records.get(user_id))

    def replace(self, sessions: Iterable[Session], dates: Optional[Iterable[dt.date]] = None) -> None:
        """Overwrite records with server truth.

        With `dates`, records for other days are kept; otherwise all are replaced.
        """
        scope = set(dates) if dates is not None else None
        kept = {
            uid: rec for uid, rec in self._records.items()
            if scope is not None and rec.date not in scope
        }
        kept.update({s.user_id: s for s in sessions})
        self._records = kept

    def put(self, session: Session) -> None:
        self._records[session.user_id] = session

    def check(
        self,
        action: Action,
        actor_id: Optional[int],
        user_id: int,
        *,
        goal_id: Optional[int] = None,
        sub_task_id: Optional[int] = None,
        sub_task_ids: Iterable[int] = (),
        date: Optional[dt.date] = None,
    ) -> Session:
        """Authorize and validate `action`. Raises ValidationError, never touches the network.

        Returns the record the action applies to (a fresh, unsaved one for START).
        """
        authorize(actor_id, user_id)
        current = self.state(user_id)
        if current not in ALLOWED_FROM[action]:
            raise ValidationError(
                f"Cannot {action.value.replace('_', ' ')} a session that is {current.value}",
                code="invalid_transition",
                details={"action": action.value, "state": current.value},
            )

        record = self._records.get(user_id)
        if action == Action.START:
            if goal_id is None:
                raise ValidationError("A goal is required to start a session")
            sub_task_ids = set(sub_task_ids)
            if sub_task_ids and sub_task_id is None:
                raise ValidationError("Select a sub-task to start this goal", code="sub_task_required")
            if sub_task_id is not None and sub_task_ids and sub_task_id not in sub_task_ids:
                raise ValidationError("Sub-task does not belong to this goal", code="sub_task_required",
                                      details={"sub_task_id": sub_task_id})
            return Session(user_id=user_id, goal_id=goal_id, date=date or dt.date.today(),
                           sub_task_id=sub_task_id, status=SessionStatus.IN_PROGRESS)

        if record is None:
            raise ValidationError(f"No session to {action.value.replace('_', ' ')}",
                                  code="invalid_transition")
        if action == Action.COMPLETE_SUB_TASK and record.sub_task_id is None:
            raise ValidationError("No sub-task is being timed", code="invalid_transition")
        if record.id is None:
            raise ValidationError("Session is still starting, try again in a moment",
                                  code="invalid_transition")
        return record

    def apply(
        self,
        action: Action,
        record: Session,
        now: dt.datetime,
        *,
        target_reached: bool = False,
    ) -> Session:
        """Write the optimistic result of `action` into the local view.

        Server-owned counters (total_paused_seconds) are never recomputed here.
        """
        if action == Action.START:
            updated = record.model_copy(update={"started_at": now, "status": SessionStatus.IN_PROGRESS})
        elif action == Action.PAUSE:
            updated = record.model_copy(update={"paused_at": now, "status": SessionStatus.PAUSED})
        elif action == Action.RESUME:
            updated = record.model_copy(update={"paused_at": None, "status": SessionStatus.IN_PROGRESS})
        elif action == Action.STOP:
            status = SessionStatus.DONE if target_reached else SessionStatus.MISSED
            updated = record.model_copy(update={"paused_at": None, "finished_at": now, "status": status})
        elif action == Action.COMPLETE:
            updated = record.model_copy(update={"finished_at": now, "status": SessionStatus.DONE})
        else:
            updated = record.model_copy(update={"started_at": None, "sub_task_id": None})
        self._records[updated.user_id] = updated
        logger.debug("user %s: %s -> %s", updated.user_id, action.value, state_of(updated).value)
        return updated
