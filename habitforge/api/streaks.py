from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from habitforge.api.deps import HabitEngine, get_habit_engine
from habitforge.models.streak import CompletionResult, HabitStreaks

router = APIRouter()


@router.post("/v1/users/{user_id}/habit-status")
def ensure_habit_status(
    user_id: str,
    response: Response,
    habit_id: Optional[str] = Query(None, min_length=1),
    engine: HabitEngine = Depends(get_habit_engine),
):
    """Ensure today's task for one habit (or every habit of the user)."""
    if habit_id:
        status = engine.streaks.ensure_daily_task(user_id, habit_id)
        if status.created:
            response.status_code = 201
        return status

    statuses = engine.streaks.ensure_all_daily_tasks(user_id)
    names = {habit.id: habit.name for habit in engine.store.find_habits_by_user(user_id)}
    habits = [
        {"habit_name": names.get(status.habit_id), **status.model_dump(mode="json")}
        for status in statuses
    ]
    return {"message": "Status retrieved for all user habits", "habits": habits}


@router.get("/v1/users/{user_id}/streaks")
def get_streaks(
    user_id: str,
    habit_id: Optional[str] = Query(None, min_length=1),
    engine: HabitEngine = Depends(get_habit_engine),
):
    if habit_id:
        return engine.streaks.get_streaks_for_habit(user_id, habit_id)
    habits: list[HabitStreaks] = engine.streaks.get_streaks_for_user(user_id)
    return {"message": "Streaks retrieved for all user habits", "habits": habits}


@router.post("/v1/habit-tasks/{task_id}/complete", response_model=CompletionResult)
def complete_habit_task(task_id: str, engine: HabitEngine = Depends(get_habit_engine)):
    return engine.completion.complete_task(task_id)


@router.post("/v1/experience/pending/retry")
def retry_pending_awards(engine: HabitEngine = Depends(get_habit_engine)):
    """Replay awards whose running-total or ledger write failed earlier."""
    recorded = engine.completion.retry_pending_awards()
    return {"recorded": recorded, "pending": len(engine.completion.pending)}
