from __future__ import annotations

from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict


class LeaderboardType(str, Enum):
    STREAK_BY_CATEGORY = "streak-by-category"
    STREAK_BY_USER = "streak-by-user"
    LEVEL_BY_CATEGORY = "level-by-category"
    LEVEL_BY_USER = "level-by-user"

    @property
    def title(self) -> str:
        return self.value.replace("-", " ").title().replace(" By ", " by ")

    @property
    def needs_category(self) -> bool:
        return self in (LeaderboardType.STREAK_BY_CATEGORY, LeaderboardType.LEVEL_BY_CATEGORY)


class StreakEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    rank: int
    user_id: str
    username: Optional[str] = None
    habit_id: str
    habit_name: str
    category_id: str
    category_name: str
    streak_count: int
    is_active: bool


class TopStreakHabit(BaseModel):
    model_config = ConfigDict(frozen=True)

    habit_id: str
    habit_name: str
    category_id: str
    category_name: str


class UserStreakEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    rank: int
    user_id: str
    username: Optional[str] = None
    streak_count: int
    top_streak_habit: Optional[TopStreakHabit] = None
    is_active: bool


class CategoryLevelEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    rank: int
    user_id: str
    username: Optional[str] = None
    category_id: str
    category_name: Optional[str] = None
    total_experience: int
    level: int


class TopCategory(BaseModel):
    model_config = ConfigDict(frozen=True)

    category_id: str
    category_name: Optional[str] = None
    level: int
    experience: int


class UserLevelEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    rank: int
    user_id: str
    username: Optional[str] = None
    total_experience: int
    total_level: int
    categories_count: int
    top_category: Optional[TopCategory] = None


LeaderboardEntry = Union[StreakEntry, UserStreakEntry, CategoryLevelEntry, UserLevelEntry]


class Leaderboard(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    leaderboard_type: LeaderboardType
    category_id: Optional[str] = None
    limit: int
    entries: List[LeaderboardEntry] = []
    count: int = 0
