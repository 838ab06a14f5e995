"""
Tracking store: users, categories, habits, streaks and daily habit tasks.

``TrackingStore`` is the narrow interface the engine depends on.
``InMemoryTrackingStore`` implements it with the same atomicity guarantees
the SQL store gets from its constraints:
- one task per (user, habit, task_date)
- at most one active streak per (user, habit)
- completion and streak rollover are compare-and-swap
"""
from __future__ import annotations

import threading
from datetime import date, datetime
from typing import Dict, List, Optional, Protocol, Tuple
from uuid import uuid4

from habitforge.core.errors import ConflictError, NotFoundError
from habitforge.models.habit import Category, Habit, User
from habitforge.models.streak import HabitTask, Streak


class TrackingStore(Protocol):
    # Collaborator-owned records
    def add_user(self, user: User) -> User: ...
    def add_category(self, category: Category) -> Category: ...
    def find_user_by_id(self, user_id: str) -> Optional[User]: ...
    def find_category_by_id(self, category_id: str) -> Optional[Category]: ...

    # Habits
    def create_habit(self, habit: Habit) -> Habit: ...
    def update_habit(self, habit_id: str, **fields) -> Habit: ...
    def find_habit_by_id(self, habit_id: str) -> Optional[Habit]: ...
    def find_habits_by_user(self, user_id: str) -> List[Habit]: ...

    # Tasks
    def find_task_by_id(self, task_id: str) -> Optional[HabitTask]: ...
    def find_task_by_date(self, user_id: str, habit_id: str, task_date: date) -> Optional[HabitTask]: ...
    def find_tasks_by_streak(self, streak_id: str) -> List[HabitTask]: ...
    def create_task(self, *, user_id: str, habit_id: str, streak_id: str, task_date: date, now: datetime) -> HabitTask: ...
    def mark_complete(self, task_id: str, completed_at: datetime) -> Optional[HabitTask]: ...

    # Streaks
    def find_streak_by_id(self, streak_id: str) -> Optional[Streak]: ...
    def find_active_streak(self, user_id: str, habit_id: str) -> Optional[Streak]: ...
    def find_all_streaks(self, user_id: str, habit_id: str) -> List[Streak]: ...
    def create_streak(self, *, user_id: str, habit_id: str, start_date: date, now: datetime) -> Streak: ...
    def update_streak(self, streak_id: str, *, now: datetime, **fields) -> Streak: ...
    def retire_streak(self, streak_id: str, end_date: date, *, now: datetime) -> Streak: ...
    def rollover_streak(
        self, *, expected_active_id: str, user_id: str, habit_id: str, end_date: date, start_date: date, now: datetime
    ) -> Optional[Streak]: ...
    def increment_streak(self, streak_id: str, *, now: datetime) -> Streak: ...

    # Leaderboard reads
    def list_top_streaks(self, *, category_id: Optional[str], limit: int) -> List[Tuple[Streak, Habit]]: ...


class InMemoryTrackingStore:
    """Process-local store. Used when DATABASE_URL is unset and by tests."""

    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._categories: Dict[str, Category] = {}
        self._habits: Dict[str, Habit] = {}
        self._streaks: Dict[str, Streak] = {}
        self._tasks: Dict[str, HabitTask] = {}
        self._task_index: Dict[Tuple[str, str, date], str] = {}
        self._active_index: Dict[Tuple[str, str], str] = {}

    # Collaborator-owned records -----------------------------------------
    def add_user(self, user: User) -> User:
        with self._lock:
            self._users[user.id] = user
            return user

    def add_category(self, category: Category) -> Category:
        with self._lock:
            self._categories[category.id] = category
            return category

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def find_category_by_id(self, category_id: str) -> Optional[Category]:
        return self._categories.get(category_id)

    # Habits ---------------------------------------------------------------
    def create_habit(self, habit: Habit) -> Habit:
        with self._lock:
            if habit.id in self._habits:
                raise ConflictError(f"Habit {habit.id} already exists")
            self._habits[habit.id] = habit
            return habit

    def update_habit(self, habit_id: str, **fields) -> Habit:
        with self._lock:
            habit = self._habits.get(habit_id)
            if habit is None:
                raise NotFoundError(f"Habit {habit_id} not found")
            updated = habit.model_copy(update=fields)
            self._habits[habit_id] = updated
            return updated

    def find_habit_by_id(self, habit_id: str) -> Optional[Habit]:
        habit = self._habits.get(habit_id)
        if habit is None or habit.category is None:
            return habit
        # Category renames/deactivation show through, as with a join
        category = self._categories.get(habit.category.id, habit.category)
        return habit.model_copy(update={"category": category})

    def find_habits_by_user(self, user_id: str) -> List[Habit]:
        owned = [h for h in self._habits.values() if h.user_id == user_id]
        owned.sort(key=lambda h: (h.created_at is None, h.created_at))
        return [self.find_habit_by_id(h.id) for h in owned]

    # Tasks ----------------------------------------------------------------
    def find_task_by_id(self, task_id: str) -> Optional[HabitTask]:
        return self._tasks.get(task_id)

    def find_task_by_date(self, user_id: str, habit_id: str, task_date: date) -> Optional[HabitTask]:
        task_id = self._task_index.get((user_id, habit_id, task_date))
        return self._tasks.get(task_id) if task_id else None

    def find_tasks_by_streak(self, streak_id: str) -> List[HabitTask]:
        tasks = [t for t in self._tasks.values() if t.streak_id == streak_id]
        return sorted(tasks, key=lambda t: t.task_date)

    def create_task(self, *, user_id: str, habit_id: str, streak_id: str, task_date: date, now: datetime) -> HabitTask:
        with self._lock:
            key = (user_id, habit_id, task_date)
            if key in self._task_index:
                raise ConflictError(f"Task already exists for habit {habit_id} on {task_date.isoformat()}")
            task = HabitTask(
                id=str(uuid4()),
                user_id=user_id,
                habit_id=habit_id,
                streak_id=streak_id,
                task_date=task_date,
                created_at=now,
                updated_at=now,
            )
            self._tasks[task.id] = task
            self._task_index[key] = task.id
            return task

    def mark_complete(self, task_id: str, completed_at: datetime) -> Optional[HabitTask]:
        """Complete the task unless it already is; None means another caller got there first."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise NotFoundError(f"Habit task {task_id} not found")
            if task.is_completed:
                return None
            completed = task.model_copy(
                update={"is_completed": True, "completed_at": completed_at, "updated_at": completed_at}
            )
            self._tasks[task_id] = completed
            return completed

    # Streaks --------------------------------------------------------------
    def find_streak_by_id(self, streak_id: str) -> Optional[Streak]:
        return self._streaks.get(streak_id)

    def find_active_streak(self, user_id: str, habit_id: str) -> Optional[Streak]:
        streak_id = self._active_index.get((user_id, habit_id))
        return self._streaks.get(streak_id) if streak_id else None

    def find_all_streaks(self, user_id: str, habit_id: str) -> List[Streak]:
        owned = [s for s in self._streaks.values() if s.user_id == user_id and s.habit_id == habit_id]
        return sorted(owned, key=lambda s: s.created_at, reverse=True)

    def create_streak(self, *, user_id: str, habit_id: str, start_date: date, now: datetime) -> Streak:
        with self._lock:
            key = (user_id, habit_id)
            if key in self._active_index:
                raise ConflictError(f"Active streak already exists for habit {habit_id}")
            streak = Streak(
                id=str(uuid4()),
                user_id=user_id,
                habit_id=habit_id,
                start_date=start_date,
                count=0,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            self._streaks[streak.id] = streak
            self._active_index[key] = streak.id
            return streak

    def update_streak(self, streak_id: str, *, now: datetime, **fields) -> Streak:
        with self._lock:
            streak = self._streaks.get(streak_id)
            if streak is None:
                raise NotFoundError(f"Streak {streak_id} not found")
            updated = streak.model_copy(update={**fields, "updated_at": now})
            self._streaks[streak_id] = updated
            key = (streak.user_id, streak.habit_id)
            if not updated.is_active and self._active_index.get(key) == streak_id:
                del self._active_index[key]
            return updated

    def retire_streak(self, streak_id: str, end_date: date, *, now: datetime) -> Streak:
        return self.update_streak(streak_id, now=now, is_active=False, end_date=end_date)

    def rollover_streak(
        self, *, expected_active_id: str, user_id: str, habit_id: str, end_date: date, start_date: date, now: datetime
    ) -> Optional[Streak]:
        with self._lock:
            if self._active_index.get((user_id, habit_id)) != expected_active_id:
                return None
            self.retire_streak(expected_active_id, end_date, now=now)
            return self.create_streak(user_id=user_id, habit_id=habit_id, start_date=start_date, now=now)

    def increment_streak(self, streak_id: str, *, now: datetime) -> Streak:
        with self._lock:
            streak = self._streaks.get(streak_id)
            if streak is None:
                raise NotFoundError(f"Streak {streak_id} not found")
            return self.update_streak(streak_id, now=now, count=streak.count + 1)

    # Leaderboard reads ----------------------------------------------------
    def list_top_streaks(self, *, category_id: Optional[str], limit: int) -> List[Tuple[Streak, Habit]]:
        rows: List[Tuple[Streak, Habit]] = []
        for streak in self._streaks.values():
            if streak.count <= 0:
                continue
            habit = self.find_habit_by_id(streak.habit_id)
            if habit is None or habit.category is None:
                continue
            if category_id and habit.category.id != category_id:
                continue
            rows.append((streak, habit))
        rows.sort(key=lambda row: (row[0].count, row[0].created_at), reverse=True)
        return rows[:limit]
