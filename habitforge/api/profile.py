from fastapi import APIRouter, Depends

from habitforge.api.deps import HabitEngine, get_habit_engine
from habitforge.models.profile import Profile

router = APIRouter()


@router.get("/v1/users/{user_id}/profile", response_model=Profile)
def get_profile(user_id: str, engine: HabitEngine = Depends(get_habit_engine)):
    """User, habits with today's status, levels, friends and experience in one call."""
    return engine.profile.build_profile(user_id)
