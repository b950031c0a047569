"""
Goal models — only the fields the timer needs to find a target duration.
"""

from typing import Optional
from pydantic import BaseModel


class UserGoal(BaseModel):
    id: int
    user_id: int
    user_name: str = ""
    goal_id: int
    goal_title: str = ""
    daily_duration_minutes: int = 0


class GoalSubTask(BaseModel):
    id: int
    user_goal_id: int
    title: str = ""
    duration_minutes: int = 0
    display_order: Optional[int] = None
