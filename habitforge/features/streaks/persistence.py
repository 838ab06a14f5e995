"""
SQL persistence for the tracking store.

Maintains the same API contract as InMemoryTrackingStore. Uniqueness and
compare-and-swap guarantees come from the table constraints and conditional
UPDATEs rather than from a process lock.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import and_, insert, select, update
from sqlalchemy.exc import IntegrityError

from habitforge.core.database import categories, habit_tasks, habits, make_session_scope, streaks, users
from habitforge.core.errors import ConflictError, NotFoundError
from habitforge.models.habit import Category, Habit, HabitStatus, User
from habitforge.models.streak import HabitTask, Streak


def _aware(moment: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _streak_from_row(row) -> Streak:
    return Streak(
        id=row.id,
        user_id=row.user_id,
        habit_id=row.habit_id,
        start_date=row.start_date,
        end_date=row.end_date,
        # Row.count is the tuple method; read the column through the mapping
        count=row._mapping["count"],
        is_active=bool(row.is_active),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _task_from_row(row) -> HabitTask:
    return HabitTask(
        id=row.id,
        user_id=row.user_id,
        habit_id=row.habit_id,
        streak_id=row.streak_id,
        task_date=row.task_date,
        is_completed=bool(row.is_completed),
        completed_at=_aware(row.completed_at),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


_habit_with_category = (
    select(
        habits,
        categories.c.name.label("category_name"),
        categories.c.active.label("category_active"),
    )
    .select_from(habits.outerjoin(categories, habits.c.category_id == categories.c.id))
)


def _habit_from_row(row) -> Habit:
    category = None
    if row.category_id is not None and row.category_name is not None:
        category = Category(id=row.category_id, name=row.category_name, active=bool(row.category_active))
    return Habit(
        id=row.id,
        name=row.name,
        user_id=row.user_id,
        status=HabitStatus(row.status),
        category=category,
        start_date=row.start_date,
        created_at=_aware(row.created_at),
    )


class SqlTrackingStore:
    """SQLAlchemy Core implementation of TrackingStore."""

    def __init__(self, session_factory):
        self._scope = make_session_scope(session_factory)

    # Collaborator-owned records -----------------------------------------
    def add_user(self, user: User) -> User:
        with self._scope() as session:
            session.execute(insert(users).values(id=user.id, username=user.username, email=user.email))
        return user

    def add_category(self, category: Category) -> Category:
        with self._scope() as session:
            session.execute(insert(categories).values(id=category.id, name=category.name, active=category.active))
        return category

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        with self._scope() as session:
            row = session.execute(select(users).where(users.c.id == user_id)).first()
        return User(id=row.id, username=row.username, email=row.email) if row else None

    def find_category_by_id(self, category_id: str) -> Optional[Category]:
        with self._scope() as session:
            row = session.execute(select(categories).where(categories.c.id == category_id)).first()
        return Category(id=row.id, name=row.name, active=bool(row.active)) if row else None

    # Habits ---------------------------------------------------------------
    def create_habit(self, habit: Habit) -> Habit:
        created_at = habit.created_at or datetime.now(timezone.utc)
        try:
            with self._scope() as session:
                session.execute(
                    insert(habits).values(
                        id=habit.id,
                        name=habit.name,
                        status=habit.status.value,
                        user_id=habit.user_id,
                        category_id=habit.category.id if habit.category else None,
                        start_date=habit.start_date,
                        created_at=created_at,
                    )
                )
        except IntegrityError as exc:
            raise ConflictError(f"Habit {habit.id} could not be created: {exc.orig}") from exc
        return habit.model_copy(update={"created_at": created_at})

    def update_habit(self, habit_id: str, **fields) -> Habit:
        values = dict(fields)
        if "status" in values:
            values["status"] = HabitStatus(values["status"]).value
        if "category" in values:
            category = values.pop("category")
            values["category_id"] = category.id if category else None
        with self._scope() as session:
            result = session.execute(update(habits).where(habits.c.id == habit_id).values(**values))
            if result.rowcount == 0:
                raise NotFoundError(f"Habit {habit_id} not found")
        return self.find_habit_by_id(habit_id)

    def find_habit_by_id(self, habit_id: str) -> Optional[Habit]:
        with self._scope() as session:
            row = session.execute(_habit_with_category.where(habits.c.id == habit_id)).first()
        return _habit_from_row(row) if row else None

    def find_habits_by_user(self, user_id: str) -> List[Habit]:
        with self._scope() as session:
            rows = session.execute(
                _habit_with_category.where(habits.c.user_id == user_id).order_by(habits.c.created_at, habits.c.id)
            ).all()
        return [_habit_from_row(row) for row in rows]

    # Tasks ----------------------------------------------------------------
    def find_task_by_id(self, task_id: str) -> Optional[HabitTask]:
        with self._scope() as session:
            row = session.execute(select(habit_tasks).where(habit_tasks.c.id == task_id)).first()
        return _task_from_row(row) if row else None

    def find_task_by_date(self, user_id: str, habit_id: str, task_date: date) -> Optional[HabitTask]:
        with self._scope() as session:
            row = session.execute(
                select(habit_tasks).where(
                    and_(
                        habit_tasks.c.user_id == user_id,
                        habit_tasks.c.habit_id == habit_id,
                        habit_tasks.c.task_date == task_date,
                    )
                )
            ).first()
        return _task_from_row(row) if row else None

    def find_tasks_by_streak(self, streak_id: str) -> List[HabitTask]:
        with self._scope() as session:
            rows = session.execute(
                select(habit_tasks).where(habit_tasks.c.streak_id == streak_id).order_by(habit_tasks.c.task_date)
            ).all()
        return [_task_from_row(row) for row in rows]

    def create_task(self, *, user_id: str, habit_id: str, streak_id: str, task_date: date, now: datetime) -> HabitTask:
        task = HabitTask(
            id=str(uuid4()),
            user_id=user_id,
            habit_id=habit_id,
            streak_id=streak_id,
            task_date=task_date,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._scope() as session:
                session.execute(
                    insert(habit_tasks).values(
                        id=task.id,
                        user_id=user_id,
                        habit_id=habit_id,
                        streak_id=streak_id,
                        task_date=task_date,
                        is_completed=False,
                        completed_at=None,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            raise ConflictError(f"Task already exists for habit {habit_id} on {task_date.isoformat()}") from exc
        return task

    def mark_complete(self, task_id: str, completed_at: datetime) -> Optional[HabitTask]:
        with self._scope() as session:
            result = session.execute(
                update(habit_tasks)
                .where(and_(habit_tasks.c.id == task_id, habit_tasks.c.is_completed.is_(False)))
                .values(is_completed=True, completed_at=completed_at, updated_at=completed_at)
            )
            row = session.execute(select(habit_tasks).where(habit_tasks.c.id == task_id)).first()
        if row is None:
            raise NotFoundError(f"Habit task {task_id} not found")
        if result.rowcount == 0:
            return None
        return _task_from_row(row)

    # Streaks --------------------------------------------------------------
    def find_streak_by_id(self, streak_id: str) -> Optional[Streak]:
        with self._scope() as session:
            row = session.execute(select(streaks).where(streaks.c.id == streak_id)).first()
        return _streak_from_row(row) if row else None

    def find_active_streak(self, user_id: str, habit_id: str) -> Optional[Streak]:
        with self._scope() as session:
            row = session.execute(
                select(streaks)
                .where(and_(streaks.c.user_id == user_id, streaks.c.habit_id == habit_id, streaks.c.is_active.is_(True)))
                .order_by(streaks.c.created_at.desc())
            ).first()
        return _streak_from_row(row) if row else None

    def find_all_streaks(self, user_id: str, habit_id: str) -> List[Streak]:
        with self._scope() as session:
            rows = session.execute(
                select(streaks)
                .where(and_(streaks.c.user_id == user_id, streaks.c.habit_id == habit_id))
                .order_by(streaks.c.created_at.desc(), streaks.c.id)
            ).all()
        return [_streak_from_row(row) for row in rows]

    def _insert_streak(self, session, *, user_id: str, habit_id: str, start_date: date, now: datetime) -> Streak:
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
        session.execute(
            insert(streaks).values(
                id=streak.id,
                user_id=user_id,
                habit_id=habit_id,
                start_date=start_date,
                end_date=None,
                count=0,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
        )
        return streak

    def create_streak(self, *, user_id: str, habit_id: str, start_date: date, now: datetime) -> Streak:
        try:
            with self._scope() as session:
                return self._insert_streak(session, user_id=user_id, habit_id=habit_id, start_date=start_date, now=now)
        except IntegrityError as exc:
            raise ConflictError(f"Active streak already exists for habit {habit_id}") from exc

    def update_streak(self, streak_id: str, *, now: datetime, **fields) -> Streak:
        with self._scope() as session:
            result = session.execute(
                update(streaks).where(streaks.c.id == streak_id).values(**fields, updated_at=now)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Streak {streak_id} not found")
            row = session.execute(select(streaks).where(streaks.c.id == streak_id)).first()
        return _streak_from_row(row)

    def retire_streak(self, streak_id: str, end_date: date, *, now: datetime) -> Streak:
        return self.update_streak(streak_id, now=now, is_active=False, end_date=end_date)

    def rollover_streak(
        self, *, expected_active_id: str, user_id: str, habit_id: str, end_date: date, start_date: date, now: datetime
    ) -> Optional[Streak]:
        try:
            with self._scope() as session:
                result = session.execute(
                    update(streaks)
                    .where(and_(streaks.c.id == expected_active_id, streaks.c.is_active.is_(True)))
                    .values(is_active=False, end_date=end_date, updated_at=now)
                )
                if result.rowcount == 0:
                    return None
                return self._insert_streak(session, user_id=user_id, habit_id=habit_id, start_date=start_date, now=now)
        except IntegrityError:
            return None

    def increment_streak(self, streak_id: str, *, now: datetime) -> Streak:
        with self._scope() as session:
            result = session.execute(
                update(streaks).where(streaks.c.id == streak_id).values(count=streaks.c.count + 1, updated_at=now)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Streak {streak_id} not found")
            row = session.execute(select(streaks).where(streaks.c.id == streak_id)).first()
        return _streak_from_row(row)

    # Leaderboard reads ----------------------------------------------------
    def list_top_streaks(self, *, category_id: Optional[str], limit: int) -> List[Tuple[Streak, Habit]]:
        query = (
            select(
                streaks,
                habits.c.name.label("habit_name"),
                habits.c.status.label("habit_status"),
                habits.c.start_date.label("habit_start_date"),
                habits.c.created_at.label("habit_created_at"),
                categories.c.id.label("category_id"),
                categories.c.name.label("category_name"),
                categories.c.active.label("category_active"),
            )
            .select_from(
                streaks.join(habits, streaks.c.habit_id == habits.c.id).join(
                    categories, habits.c.category_id == categories.c.id
                )
            )
            .where(streaks.c.count > 0)
        )
        if category_id:
            query = query.where(categories.c.id == category_id)
        query = query.order_by(streaks.c.count.desc(), streaks.c.created_at.desc()).limit(limit)

        with self._scope() as session:
            rows = session.execute(query).all()

        results: List[Tuple[Streak, Habit]] = []
        for row in rows:
            habit = Habit(
                id=row.habit_id,
                name=row.habit_name,
                user_id=row.user_id,
                status=HabitStatus(row.habit_status),
                category=Category(id=row.category_id, name=row.category_name, active=bool(row.category_active)),
                start_date=row.habit_start_date,
                created_at=_aware(row.habit_created_at),
            )
            results.append((_streak_from_row(row), habit))
        return results
