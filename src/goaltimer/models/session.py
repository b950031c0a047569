"""
Daily session models, as returned by the Session Service.
"""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SessionStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    DONE = "DONE"
    MISSED = "MISSED"


def _as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


class Session(BaseModel):
    """One user's timed work record for a goal on a calendar day."""

    id: Optional[int] = None
    user_id: int
    goal_id: int
    date: dt.date
    sub_task_id: Optional[int] = None
    started_at: Optional[dt.datetime] = None
    paused_at: Optional[dt.datetime] = None
    finished_at: Optional[dt.datetime] = None
    total_paused_seconds: int = 0
    duration_completed_minutes: Optional[int] = None
    status: SessionStatus
    user_name: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @field_validator("started_at", "paused_at", "finished_at", "created_at", "updated_at")
    @classmethod
    def _timestamps_are_aware(cls, value: Optional[dt.datetime]) -> Optional[dt.datetime]:
        return _as_utc(value)

    @field_validator("total_paused_seconds", mode="before")
    @classmethod
    def _null_paused_is_zero(cls, value: Optional[int]) -> int:
        return value or 0

    @property
    def is_active(self) -> bool:
        return self.status in (SessionStatus.IN_PROGRESS, SessionStatus.PAUSED)


class CleanupResult(BaseModel):
    """check-and-cleanup payload: stale sessions marked MISSED plus today's sessions."""

    model_config = ConfigDict(populate_by_name=True)

    cleaned_up: int = Field(0, alias="cleanedUp")
    auto_paused: int = Field(0, alias="autoPaused")
    sessions: list[Session] = []


class SessionSummary(BaseModel):
    user_id: int
    user_name: str = ""
    total_done: int = 0
    total_missed: int = 0

    @field_validator("total_done", "total_missed", mode="before")
    @classmethod
    def _counts_are_ints(cls, value: object) -> int:
        # Postgres COUNT() comes back as a string
        return int(value or 0)
