from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from habitforge.models.experience import UserExperience, UserLevels
from habitforge.models.habit import Habit, User
from habitforge.models.streak import HabitTask, Streak


class RelationshipStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class Relationship(BaseModel):
    """Directed friendship record: ``user_id`` asked ``target_user_id``."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    target_user_id: str
    status: RelationshipStatus
    created_at: Optional[datetime] = None


class FriendSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    friends: List[Relationship] = []
    pending_requests: List[Relationship] = []
    sent_requests: List[Relationship] = []


class HabitStatusView(BaseModel):
    model_config = ConfigDict(frozen=True)

    habit_id: str
    habit_name: str
    habit_details: Habit
    message: str
    habit_task: Optional[HabitTask] = None
    current_streak: Optional[Streak] = None
    all_streaks: List[Streak] = []
    created: bool = False


class Profile(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: User
    habits: List[HabitStatusView] = []
    levels: UserLevels
    friends: FriendSummary
    experience: UserExperience
