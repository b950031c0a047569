"""
Goal lookups needed to validate a start and to find a timer's target duration.
"""

from typing import Optional

from goaltimer.models.goal import GoalSubTask, UserGoal
from goaltimer.models.session import Session
from goaltimer.transport.http import HttpClient


class GoalsAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def user_goals(self) -> list[UserGoal]:
        data = await self._http.get("/user-goals")
        return [UserGoal.model_validate(row) for row in data or []]

    async def sub_tasks(self, user_goal_id: Optional[int] = None) -> list[GoalSubTask]:
        params = {"userGoalId": user_goal_id} if user_goal_id is not None else None
        data = await self._http.get("/goal-sub-tasks", params=params)
        return [GoalSubTask.model_validate(row) for row in data or []]

    async def find_user_goal(self, user_id: int, goal_id: int) -> Optional[UserGoal]:
        for goal in await self.user_goals():
            if goal.user_id == user_id and goal.goal_id == goal_id:
                return goal
        return None

    async def target_seconds(self, session: Session) -> Optional[int]:
        """Sub-task duration when one is being timed, else the goal's daily duration."""
        user_goal = await self.find_user_goal(session.user_id, session.goal_id)
        if user_goal is None:
            return None
        if session.sub_task_id is not None:
            for sub_task in await self.sub_tasks(user_goal.id):
                if sub_task.id == session.sub_task_id:
                    return sub_task.duration_minutes * 60
            return None
        return user_goal.daily_duration_minutes * 60
