from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class TransactionType(str, Enum):
    HABIT_COMPLETION = "HABIT_COMPLETION"
    STREAK_BONUS = "STREAK_BONUS"
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"


class ExperienceTransaction(BaseModel):
    """Immutable ledger entry. Never updated or deleted."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    category_id: str
    type: TransactionType
    experience_gained: int
    habit_task_id: Optional[str] = None
    streak_count: Optional[int] = None
    multiplier: Optional[float] = None
    description: Optional[str] = None
    created_at: datetime


class CategoryExperience(BaseModel):
    """Running experience total for one (user, category)."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    category_id: str
    category_name: Optional[str] = None
    total_experience: int = 0


class AwardBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_experience: int
    multiplier: float
    total_experience: int
    streak_bonus: int


class LevelInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_level: int
    current_experience: int
    experience_to_next_level: int
    total_experience_for_next_level: int
    progress: float


class CategoryLevel(BaseModel):
    model_config = ConfigDict(frozen=True)

    category_id: str
    level: int
    experience: int


class UserLevelSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_level: int
    total_experience: int
    category_levels: List[CategoryLevel] = []


class LedgerStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_experience: int = 0
    total_transactions: int = 0
    average_experience: float = 0.0
    max_experience: int = 0
    min_experience: int = 0


class StreakBonusStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    highest_streak_bonus: float = 0.0
    average_streak_count: float = 0.0
    total_streak_bonuses: int = 0


class CategoryLevelDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    category_id: str
    category_name: Optional[str] = None
    level: int
    experience: int
    experience_to_next_level: int
    progress: float


class UserLevels(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    total_level: int
    total_experience: int
    category_levels: List[CategoryLevelDetail] = []


class UserExperience(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    total_experience: int
    today_experience: int
    category_breakdown: List[CategoryExperience] = []


class NamedRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: TransactionType
    experience_gained: int
    category: NamedRef
    habit: Optional[NamedRef] = None
    streak_count: Optional[int] = None
    multiplier: Optional[float] = None
    description: Optional[str] = None
    created_at: datetime


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    limit: int
    offset: int
    count: int


class ExperienceHistory(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    transactions: List[HistoryEntry] = []
    pagination: Pagination


class CategoryStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    category: NamedRef
    level: int
    experience: int
    experience_to_next_level: int
    progress: float
    stats: LedgerStats
    streak_stats: StreakBonusStats


class CategoryDrift(BaseModel):
    model_config = ConfigDict(frozen=True)

    category_id: str
    ledger_sum: int
    running_total: int
    difference: int


class ReconcileReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    mismatches: List[CategoryDrift] = []
    categories_checked: int = 0
