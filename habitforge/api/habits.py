from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from habitforge.api.deps import HabitEngine, get_habit_engine
from habitforge.models.habit import Habit, HabitStatus

router = APIRouter()


class CreateHabitRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    status: HabitStatus = HabitStatus.DRAFT
    start_date: Optional[date] = None


class UpdateStatusRequest(BaseModel):
    status: HabitStatus


@router.post("/v1/habits", response_model=Habit, status_code=status.HTTP_201_CREATED)
def create_habit(body: CreateHabitRequest, engine: HabitEngine = Depends(get_habit_engine)):
    return engine.habits.create_habit(
        user_id=body.user_id,
        category_id=body.category_id,
        name=body.name,
        status=body.status,
        start_date=body.start_date,
    )


@router.patch("/v1/habits/{habit_id}/status", response_model=Habit)
def update_habit_status(habit_id: str, body: UpdateStatusRequest, engine: HabitEngine = Depends(get_habit_engine)):
    return engine.habits.update_status(habit_id, body.status)


@router.get("/v1/users/{user_id}/habits", response_model=List[Habit])
def list_habits(user_id: str, engine: HabitEngine = Depends(get_habit_engine)):
    return engine.habits.list_for_user(user_id)
