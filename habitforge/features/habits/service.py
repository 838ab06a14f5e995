from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import uuid4

from habitforge.core.clock import Clock
from habitforge.core.errors import NotFoundError, ValidationError
from habitforge.core.logging import log_event
from habitforge.features.streaks.store import TrackingStore
from habitforge.models.habit import Habit, HabitStatus


class HabitService:
    """Thin habit lifecycle: just enough to put habits into and out of the engine."""

    def __init__(self, store: TrackingStore, clock: Optional[Clock] = None):
        self._store = store
        self._clock = clock or Clock()

    def create_habit(
        self,
        *,
        user_id: str,
        category_id: str,
        name: str,
        status: HabitStatus = HabitStatus.DRAFT,
        start_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> Habit:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Habit name is required")
        if self._store.find_user_by_id(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        category = self._store.find_category_by_id(category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")

        status = HabitStatus(status)
        if status == HabitStatus.ACTIVE and start_date is None:
            start_date = today or self._clock.today()

        habit = self._store.create_habit(
            Habit(
                id=str(uuid4()),
                name=name,
                user_id=user_id,
                status=status,
                category=category,
                start_date=start_date,
                created_at=self._clock.now(),
            )
        )
        log_event("info", "habit.created", user_id=user_id, habit_id=habit.id, extra={"status": status.value})
        return habit

    def update_status(self, habit_id: str, status: HabitStatus, today: Optional[date] = None) -> Habit:
        habit = self._store.find_habit_by_id(habit_id)
        if habit is None:
            raise NotFoundError(f"Habit {habit_id} not found")

        status = HabitStatus(status)
        fields = {"status": status}
        if status == HabitStatus.ACTIVE and habit.status != HabitStatus.ACTIVE:
            fields["start_date"] = today or self._clock.today()

        updated = self._store.update_habit(habit_id, **fields)
        log_event(
            "info",
            "habit.status_changed",
            user_id=habit.user_id,
            habit_id=habit_id,
            extra={"previous_status": habit.status.value, "status": status.value},
        )
        return updated

    def list_for_user(self, user_id: str) -> List[Habit]:
        if self._store.find_user_by_id(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        return self._store.find_habits_by_user(user_id)
