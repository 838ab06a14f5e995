from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from habitforge.api.deps import HabitEngine, get_habit_engine
from habitforge.features.leaderboard.service import DEFAULT_LIMIT, MAX_LIMIT
from habitforge.models.leaderboard import Leaderboard, LeaderboardType

router = APIRouter()


@router.get("/v1/leaderboard", response_model=Leaderboard)
def get_leaderboard(
    leaderboard_type: LeaderboardType = Query(..., alias="type"),
    category_id: Optional[str] = Query(None, min_length=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    engine: HabitEngine = Depends(get_habit_engine),
):
    return engine.leaderboard.get(leaderboard_type, category_id=category_id, limit=limit)
