from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class HabitStatus(str, Enum):
    DRAFT = "Draft"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    DELETED = "Deleted"


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    email: str


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    active: bool = True


class Habit(BaseModel):
    """A user's habit. Only ACTIVE habits take part in streak evaluation."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    user_id: str
    status: HabitStatus = HabitStatus.DRAFT
    category: Optional[Category] = None
    start_date: Optional[date] = None
    created_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == HabitStatus.ACTIVE
