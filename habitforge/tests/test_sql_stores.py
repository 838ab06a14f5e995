"""The SQL stores against in-memory SQLite: same behavior as the in-memory ones."""

from datetime import timedelta

import pytest

from habitforge.conftest import seed_basics
from habitforge.core.config import Settings
from habitforge.core.errors import ConflictError, NotFoundError
from habitforge.features.engine import build_habit_engine
from habitforge.models.experience import TransactionType
from habitforge.models.habit import HabitStatus, User
from habitforge.models.profile import Relationship, RelationshipStatus


@pytest.fixture
def sql_engine(sql_session_factory, clock):
    engine = build_habit_engine(Settings(DATABASE_URL=None), session_factory=sql_session_factory, clock=clock)
    seed_basics(engine.store)
    return engine


def test_engine_uses_sql_backend(sql_engine):
    assert sql_engine.backend == "sql"
    habit = sql_engine.store.find_habit_by_id("habit-run")
    assert habit.status == HabitStatus.ACTIVE
    assert habit.category.name == "Fitness"


def test_daily_cycle_and_awards(sql_engine, advance):
    first = sql_engine.streaks.ensure_daily_task("user-1", "habit-run")
    assert first.created is True
    assert first.habit_task.created_at.tzinfo is not None

    again = sql_engine.streaks.ensure_daily_task("user-1", "habit-run")
    assert again.created is False
    assert again.habit_task.id == first.habit_task.id

    result = sql_engine.completion.complete_task(first.habit_task.id)
    assert result.experience_gained.total_experience == 11
    assert result.current_streak.count == 1
    assert result.habit_task.completed_at is not None

    advance(1)
    second = sql_engine.streaks.ensure_daily_task("user-1", "habit-run")
    assert second.current_streak.id == first.current_streak.id
    sql_engine.completion.complete_task(second.habit_task.id)

    summary = sql_engine.experience.user_experience("user-1")
    assert summary.total_experience == 23
    assert summary.today_experience == 12

    history = sql_engine.experience.history("user-1")
    assert [t.experience_gained for t in history.transactions] == [12, 11]
    assert history.transactions[0].type == TransactionType.HABIT_COMPLETION
    assert history.transactions[0].multiplier == pytest.approx(1.2)
    assert history.transactions[0].habit.name == "Morning run"


def test_missed_day_rolls_over(sql_engine, advance):
    first = sql_engine.streaks.ensure_daily_task("user-1", "habit-run")
    today = advance(2)

    result = sql_engine.streaks.ensure_daily_task("user-1", "habit-run")

    old = sql_engine.store.find_streak_by_id(first.current_streak.id)
    assert old.is_active is False
    assert old.end_date == today - timedelta(days=1)
    assert result.current_streak.id != old.id
    assert [s.id for s in result.all_streaks] == [result.current_streak.id, old.id]


def test_double_completion(sql_engine):
    task = sql_engine.streaks.ensure_daily_task("user-1", "habit-run").habit_task
    store = sql_engine.store
    assert store.mark_complete(task.id, sql_engine.clock.now()) is not None
    assert store.mark_complete(task.id, sql_engine.clock.now()) is None
    with pytest.raises(NotFoundError):
        store.mark_complete("missing", sql_engine.clock.now())


def test_constraints_surface_as_conflicts(sql_engine, clock):
    store = sql_engine.store
    streak = store.create_streak(user_id="user-1", habit_id="habit-run", start_date=clock.today(), now=clock.now())
    with pytest.raises(ConflictError):
        store.create_streak(user_id="user-1", habit_id="habit-run", start_date=clock.today(), now=clock.now())

    store.create_task(user_id="user-1", habit_id="habit-run", streak_id=streak.id, task_date=clock.today(), now=clock.now())
    with pytest.raises(ConflictError):
        store.create_task(
            user_id="user-1", habit_id="habit-run", streak_id=streak.id, task_date=clock.today(), now=clock.now()
        )


def test_rollover_compare_and_swap(sql_engine, clock):
    store = sql_engine.store
    streak = store.create_streak(user_id="user-1", habit_id="habit-run", start_date=clock.today(), now=clock.now())
    kwargs = dict(user_id="user-1", habit_id="habit-run", end_date=clock.today(), start_date=clock.today(), now=clock.now())

    fresh = store.rollover_streak(expected_active_id=streak.id, **kwargs)
    assert fresh is not None
    assert store.rollover_streak(expected_active_id=streak.id, **kwargs) is None
    assert store.find_active_streak("user-1", "habit-run").id == fresh.id


def test_increment_is_additive(sql_engine, clock):
    store = sql_engine.store
    streak = store.create_streak(user_id="user-1", habit_id="habit-run", start_date=clock.today(), now=clock.now())
    for _ in range(3):
        store.increment_streak(streak.id, now=clock.now())
    assert store.find_streak_by_id(streak.id).count == 3
    with pytest.raises(NotFoundError):
        store.increment_streak("missing", now=clock.now())


def test_ledger_stats_and_reconcile(sql_engine, advance, clock):
    for day in range(2):
        if day:
            advance(1)
        task = sql_engine.streaks.ensure_daily_task("user-1", "habit-run").habit_task
        sql_engine.completion.complete_task(task.id)

    stats = sql_engine.experience.category_stats("user-1", "cat-fitness")
    assert stats.stats.total_transactions == 2
    assert stats.stats.average_experience == pytest.approx(11.5)
    assert stats.streak_stats.total_streak_bonuses == 2
    assert stats.streak_stats.highest_streak_bonus == pytest.approx(2.0)

    sql_engine.ledger.set_total("user-1", "cat-fitness", 5, now=clock.now())
    report = sql_engine.experience.reconcile("user-1")
    assert [(d.ledger_sum, d.running_total) for d in report.mismatches] == [(23, 5)]
    assert sql_engine.ledger.get_total("user-1") == 23


def test_running_total_never_negative(sql_engine, clock):
    ledger = sql_engine.ledger
    ledger.add_experience("user-1", "cat-fitness", 10, now=clock.now())
    assert ledger.add_experience("user-1", "cat-fitness", -25, now=clock.now()).total_experience == 0


def test_leaderboards(sql_engine):
    task = sql_engine.streaks.ensure_daily_task("user-1", "habit-run").habit_task
    sql_engine.completion.complete_task(task.id)

    streaks = sql_engine.leaderboard.get("streak-by-category", category_id="cat-fitness")
    assert [(e.username, e.streak_count, e.category_name) for e in streaks.entries] == [("alice", 1, "Fitness")]

    levels = sql_engine.leaderboard.get("level-by-user")
    assert [(e.username, e.total_experience) for e in levels.entries] == [("alice", 11)]


def test_friend_directory(sql_engine):
    sql_engine.store.add_user(User(id="user-2", username="bob", email="bob@example.com"))
    directory = sql_engine.friends
    directory.add_relationship(
        Relationship(id="r1", user_id="user-2", target_user_id="user-1", status=RelationshipStatus.PENDING)
    )
    with pytest.raises(ConflictError):
        directory.add_relationship(
            Relationship(id="r2", user_id="user-2", target_user_id="user-1", status=RelationshipStatus.ACCEPTED)
        )

    assert [r.id for r in directory.pending_requests("user-1")] == ["r1"]
    assert [r.id for r in directory.sent_requests("user-2")] == ["r1"]
    assert directory.friends("user-1") == []


def test_habit_updates(sql_engine, clock):
    updated = sql_engine.habits.update_status("habit-run", HabitStatus.COMPLETED)
    assert updated.status == HabitStatus.COMPLETED
    with pytest.raises(NotFoundError):
        sql_engine.store.update_habit("missing", status=HabitStatus.ACTIVE)
