from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from habitforge.api.deps import HabitEngine, get_habit_engine
from habitforge.models.experience import (
    CategoryStats,
    ExperienceHistory,
    ReconcileReport,
    UserExperience,
    UserLevels,
)

router = APIRouter(prefix="/v1/users/{user_id}")


@router.get("/levels", response_model=UserLevels)
def get_user_levels(user_id: str, engine: HabitEngine = Depends(get_habit_engine)):
    return engine.experience.user_levels(user_id)


@router.get("/experience", response_model=UserExperience)
def get_user_experience(user_id: str, engine: HabitEngine = Depends(get_habit_engine)):
    return engine.experience.user_experience(user_id)


@router.get("/experience/history", response_model=ExperienceHistory)
def get_experience_history(
    user_id: str,
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
    category_id: Optional[str] = Query(None, min_length=1),
    engine: HabitEngine = Depends(get_habit_engine),
):
    """Newest first. ``limit`` is clamped to [1, 100]; ``offset`` to >= 0."""
    return engine.experience.history(user_id, limit=limit, offset=offset, category_id=category_id)


@router.get("/experience/categories/{category_id}", response_model=CategoryStats)
def get_category_stats(user_id: str, category_id: str, engine: HabitEngine = Depends(get_habit_engine)):
    return engine.experience.category_stats(user_id, category_id)


@router.post("/experience/reconcile", response_model=ReconcileReport)
def reconcile_experience(user_id: str, engine: HabitEngine = Depends(get_habit_engine)):
    return engine.experience.reconcile(user_id)
