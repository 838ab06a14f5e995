from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class Streak(BaseModel):
    """
    Consecutive completed days for one (user, habit).

    ``count`` only ever grows; a broken streak is retired (is_active=False,
    end_date set) and a new one is started.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    habit_id: str
    start_date: date
    end_date: Optional[date] = None
    count: int = 0
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class HabitTask(BaseModel):
    """One day's task for a habit, bound to the streak active when it was created."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    habit_id: str
    streak_id: str
    task_date: date
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class DailyTaskStatus(BaseModel):
    """Outcome of ensuring today's task for one habit."""

    model_config = ConfigDict(frozen=True)

    habit_id: str
    message: str
    habit_task: Optional[HabitTask] = None
    current_streak: Optional[Streak] = None
    all_streaks: List[Streak] = []
    created: bool = False


class HabitStreaks(BaseModel):
    model_config = ConfigDict(frozen=True)

    habit_id: str
    habit_name: str
    current_streak: Optional[Streak] = None
    all_streaks: List[Streak] = []
    habit_tasks: List[HabitTask] = []


class ExperienceGained(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_experience: int
    streak_bonus: int
    total_experience: int
    multiplier: float
    category: str


class CompletionResult(BaseModel):
    """
    Outcome of completing a task.

    ``experience_recorded`` is False when the award was computed but the
    running total or ledger write failed; the award is then queued for retry.
    """

    model_config = ConfigDict(frozen=True)

    message: str = "Habit task completed successfully"
    habit_task: HabitTask
    current_streak: Optional[Streak] = None
    experience_gained: ExperienceGained
    experience_recorded: bool = True
