"""
goaltimer — focused-work session timers for a goal-tracking service.

Ticks elapsed time locally, applies pause/resume/stop optimistically and
reconciles with the Session Service in the background.
"""

from goaltimer.client import GoalTimer, AsyncGoalTimer
from goaltimer.config import Settings, load_settings
from goaltimer.sessions import SessionsAPI
from goaltimer.errors import (
    GoalTimerError,
    ValidationError,
    NetworkError,
    InconsistentStateError,
    ConnectionError,
)
from goaltimer.models.session import Session, SessionStatus
from goaltimer.state import Action, TimerState

__version__ = "0.1.0"
__all__ = [
    "GoalTimer",
    "AsyncGoalTimer",
    "Settings",
    "load_settings",
    "SessionsAPI",
    "GoalTimerError",
    "ValidationError",
    "NetworkError",
    "InconsistentStateError",
    "ConnectionError",
    "Session",
    "SessionStatus",
    "Action",
    "TimerState",
]
