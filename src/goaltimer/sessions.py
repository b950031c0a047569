"""
Daily sessions REST API — the Session Service operations the timer consumes.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from goaltimer.models.session import CleanupResult, Session, SessionSummary
from goaltimer.transport.http import HttpClient

BASE_PATH = "/daily-sessions"


class SessionsAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def list(
        self,
        user_id: Optional[int] = None,
        goal_id: Optional[int] = None,
        start_date: Optional[dt.date] = None,
        end_date: Optional[dt.date] = None,
        date: Optional[dt.date] = None,
    ) -> list[Session]:
        """List sessions. `date` wins over a start/end range."""
        params: dict[str, Any] = {}
        if user_id is not None:
            params["userId"] = user_id
        if goal_id is not None:
            params["goalId"] = goal_id
        if date is not None:
            params["date"] = date.isoformat()
        elif start_date is not None and end_date is not None:
            params["startDate"] = start_date.isoformat()
            params["endDate"] = end_date.isoformat()
        data = await self._http.get(BASE_PATH, params=params or None)
        return [Session.model_validate(row) for row in data or []]

    async def summary(self, goal_id: Optional[int] = None) -> list[SessionSummary]:
        """DONE/MISSED totals per user."""
        params = {"goalId": goal_id} if goal_id is not None else None
        data = await self._http.get(f"{BASE_PATH}/summary", params=params)
        return [SessionSummary.model_validate(row) for row in data or []]

    async def start(
        self, user_id: int, goal_id: int, date: dt.date, sub_task_id: Optional[int] = None,
    ) -> Session:
        body: dict[str, Any] = {"user_id": user_id, "goal_id": goal_id, "date": date.isoformat()}
        if sub_task_id is not None:
            body["sub_task_id"] = sub_task_id
        return Session.model_validate(await self._http.post(f"{BASE_PATH}/start", body))

    async def pause(self, session_id: int) -> Session:
        return await self._act("pause", session_id)

    async def resume(self, session_id: int) -> Session:
        return await self._act("resume", session_id)

    async def stop(self, session_id: int) -> Session:
        """Stop for good. The server marks DONE or MISSED from active time."""
        return await self._act("stop", session_id)

    async def complete(self, session_id: int) -> Session:
        """Mark DONE once the target duration has been reached."""
        return await self._act("complete", session_id)

    async def complete_sub_task(self, session_id: int) -> Session:
        return await self._act("complete-sub-task", session_id)

    async def check_and_cleanup(self) -> CleanupResult:
        """Mark stale prior-day sessions MISSED and return today's sessions."""
        return CleanupResult.model_validate(await self._http.post(f"{BASE_PATH}/check-and-cleanup"))

    async def _act(self, action: str, session_id: int) -> Session:
        data = await self._http.post(f"{BASE_PATH}/{action}", {"session_id": session_id})
        return Session.model_validate(data)
