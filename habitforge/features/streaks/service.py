from __future__ import annotations

from datetime import date, timedelta
from typing import List, Optional

from habitforge.core.clock import Clock
from habitforge.core.errors import ConflictError, NotFoundError
from habitforge.core.logging import log_event
from habitforge.features.streaks.store import TrackingStore
from habitforge.models.habit import Habit
from habitforge.models.streak import DailyTaskStatus, HabitStreaks, HabitTask, Streak


class StreakService:
    """
    Lazy, idempotent streak state machine.

    There is no scheduler: a habit's streak is evaluated the first time its
    daily task is requested on a given day. Calling ``ensure_daily_task``
    repeatedly on the same day is a no-op after the first call.
    """

    def __init__(self, store: TrackingStore, clock: Optional[Clock] = None):
        self._store = store
        self._clock = clock or Clock()

    def ensure_daily_task(self, user_id: str, habit_id: str, today: Optional[date] = None) -> DailyTaskStatus:
        today = today or self._clock.today()

        if self._store.find_user_by_id(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        habit = self._store.find_habit_by_id(habit_id)
        if habit is None:
            raise NotFoundError(f"Habit {habit_id} not found")

        if not habit.is_active:
            return self._status(user_id, habit_id, f"Habit is {habit.status.value} - no task created")

        existing = self._store.find_task_by_date(user_id, habit_id, today)
        if existing is not None:
            return self._existing_status(user_id, habit_id, existing)

        active = self._resolve_active_streak(user_id, habit, today)

        try:
            task = self._store.create_task(
                user_id=user_id,
                habit_id=habit_id,
                streak_id=active.id,
                task_date=today,
                now=self._clock.now(),
            )
        except ConflictError:
            # A concurrent request created today's task first
            existing = self._store.find_task_by_date(user_id, habit_id, today)
            if existing is None:
                raise
            return self._existing_status(user_id, habit_id, existing)

        log_event(
            "info",
            "habit_task.created",
            user_id=user_id,
            habit_id=habit_id,
            event_type="habit_task.created",
            extra={"task_id": task.id, "streak_id": active.id, "task_date": today.isoformat()},
        )
        return self._status(user_id, habit_id, "Habit task created for today", task=task, created=True)

    def ensure_all_daily_tasks(self, user_id: str, today: Optional[date] = None) -> List[DailyTaskStatus]:
        today = today or self._clock.today()
        if self._store.find_user_by_id(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        return [self.ensure_daily_task(user_id, habit.id, today) for habit in self._store.find_habits_by_user(user_id)]

    def get_streaks_for_habit(self, user_id: str, habit_id: str) -> HabitStreaks:
        if self._store.find_user_by_id(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        habit = self._store.find_habit_by_id(habit_id)
        if habit is None:
            raise NotFoundError(f"Habit {habit_id} not found")
        return self._habit_streaks(user_id, habit)

    def get_streaks_for_user(self, user_id: str) -> List[HabitStreaks]:
        if self._store.find_user_by_id(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        return [self._habit_streaks(user_id, habit) for habit in self._store.find_habits_by_user(user_id)]

    # Internal helpers -------------------------------------------------
    def _resolve_active_streak(self, user_id: str, habit: Habit, today: date) -> Streak:
        """Return the streak today's task binds to, starting or rolling over as needed."""
        now = self._clock.now()
        active = self._store.find_active_streak(user_id, habit.id)

        if active is None:
            try:
                return self._store.create_streak(user_id=user_id, habit_id=habit.id, start_date=today, now=now)
            except ConflictError:
                return self._require_active(user_id, habit.id)

        # A streak that started today cannot have missed yesterday
        if active.start_date >= today:
            return active

        yesterday = today - timedelta(days=1)
        yesterday_task = self._store.find_task_by_date(user_id, habit.id, yesterday)
        if yesterday_task is not None and yesterday_task.is_completed:
            return active

        rolled = self._store.rollover_streak(
            expected_active_id=active.id,
            user_id=user_id,
            habit_id=habit.id,
            end_date=yesterday,
            start_date=today,
            now=now,
        )
        if rolled is None:
            # Lost the compare-and-swap; whoever won already started the new streak
            return self._require_active(user_id, habit.id)

        log_event(
            "info",
            "streak.broken",
            user_id=user_id,
            habit_id=habit.id,
            event_type="streak.broken",
            extra={"ended_streak_id": active.id, "final_count": active.count, "new_streak_id": rolled.id},
        )
        return rolled

    def _require_active(self, user_id: str, habit_id: str) -> Streak:
        active = self._store.find_active_streak(user_id, habit_id)
        if active is None:
            raise ConflictError(f"No active streak for habit {habit_id} after concurrent update")
        return active

    def _existing_status(self, user_id: str, habit_id: str, task: HabitTask) -> DailyTaskStatus:
        message = "Habit already completed for today" if task.is_completed else "Habit task exists for today"
        return self._status(user_id, habit_id, message, task=task)

    def _status(
        self,
        user_id: str,
        habit_id: str,
        message: str,
        *,
        task: Optional[HabitTask] = None,
        created: bool = False,
    ) -> DailyTaskStatus:
        return DailyTaskStatus(
            habit_id=habit_id,
            message=message,
            habit_task=task,
            current_streak=self._store.find_active_streak(user_id, habit_id),
            all_streaks=self._store.find_all_streaks(user_id, habit_id),
            created=created,
        )

    def _habit_streaks(self, user_id: str, habit: Habit) -> HabitStreaks:
        current = self._store.find_active_streak(user_id, habit.id)
        tasks = self._store.find_tasks_by_streak(current.id) if current else []
        return HabitStreaks(
            habit_id=habit.id,
            habit_name=habit.name,
            current_streak=current,
            all_streaks=self._store.find_all_streaks(user_id, habit.id),
            habit_tasks=tasks,
        )
