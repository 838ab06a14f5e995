"""FastAPI dependencies. Tests override ``get_habit_engine`` via ``app.dependency_overrides``."""

from habitforge.features.engine import HabitEngine, get_habit_engine

__all__ = ["HabitEngine", "get_habit_engine"]
