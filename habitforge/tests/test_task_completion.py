from datetime import timedelta

import pytest

from habitforge.conftest import seed_basics
from habitforge.core.errors import (
    AlreadyCompletedError,
    ConfigurationError,
    HabitNotActiveError,
    NotFoundError,
    OutOfWindowError,
)
from habitforge.features.experience.ledger import InMemoryExperienceLedger
from habitforge.features.experience.service import ExperienceService
from habitforge.features.streaks.completion import CompletionService
from habitforge.features.streaks.store import InMemoryTrackingStore
from habitforge.models.experience import TransactionType
from habitforge.models.habit import HabitStatus


def _today_task(engine):
    return engine.streaks.ensure_daily_task("user-1", "habit-run").habit_task


def test_complete_task_awards_experience(engine, seeded, ledger, clock):
    task = _today_task(engine)

    result = engine.completion.complete_task(task.id)

    assert result.message == "Habit task completed successfully"
    assert result.habit_task.is_completed is True
    assert result.habit_task.completed_at == clock.now()
    assert result.current_streak.count == 1
    assert result.experience_recorded is True

    gained = result.experience_gained
    assert gained.base_experience == 10
    assert gained.multiplier == pytest.approx(1.1)
    assert gained.total_experience == 11
    assert gained.streak_bonus == 1
    assert gained.category == "Fitness"

    assert ledger.get_category_experience("user-1", "cat-fitness").total_experience == 11
    [tx] = ledger.query_history("user-1", limit=10)
    assert tx.type == TransactionType.HABIT_COMPLETION
    assert tx.habit_task_id == task.id
    assert tx.experience_gained == 11
    assert tx.streak_count == 1
    assert tx.multiplier == pytest.approx(1.1)
    assert tx.description == "Completed habit: Morning run (Streak: 1)"


def test_consecutive_days_grow_the_award(engine, seeded, ledger, advance):
    totals = []
    for day in range(5):
        if day:
            advance(1)
        result = engine.completion.complete_task(_today_task(engine).id)
        totals.append(result.experience_gained.total_experience)

    assert totals == [11, 12, 13, 14, 15]
    assert result.current_streak.count == 5
    assert ledger.get_category_experience("user-1", "cat-fitness").total_experience == 65
    assert ledger.query_history("user-1", limit=1)[0].description == "Completed habit: Morning run (Streak: 5)"


def test_unknown_task(engine, seeded):
    with pytest.raises(NotFoundError):
        engine.completion.complete_task("missing")


def test_double_completion_rejected(engine, seeded, ledger):
    task = _today_task(engine)
    engine.completion.complete_task(task.id)

    with pytest.raises(AlreadyCompletedError):
        engine.completion.complete_task(task.id)
    assert ledger.get_category_experience("user-1", "cat-fitness").total_experience == 11


def test_yesterdays_task_is_out_of_window(engine, seeded, store, advance):
    task = _today_task(engine)
    advance(1)

    with pytest.raises(OutOfWindowError):
        engine.completion.complete_task(task.id)
    assert store.find_task_by_id(task.id).is_completed is False


def test_tomorrows_task_is_out_of_window(engine, seeded, store, clock):
    streak = _today_task(engine).streak_id
    tomorrow = store.create_task(
        user_id="user-1",
        habit_id="habit-run",
        streak_id=streak,
        task_date=clock.today() + timedelta(days=1),
        now=clock.now(),
    )
    with pytest.raises(OutOfWindowError):
        engine.completion.complete_task(tomorrow.id)


def test_inactive_habit_cannot_complete(engine, seeded, store):
    task = _today_task(engine)
    store.update_habit("habit-run", status=HabitStatus.CANCELLED)

    with pytest.raises(HabitNotActiveError):
        engine.completion.complete_task(task.id)
    assert store.find_task_by_id(task.id).is_completed is False


def test_missing_category_is_configuration_error(engine, store, ledger):
    seed_basics(store, with_category=False)
    task = _today_task(engine)

    with pytest.raises(ConfigurationError):
        engine.completion.complete_task(task.id)

    # The completion itself is not rolled back
    assert store.find_task_by_id(task.id).is_completed is True
    assert store.find_streak_by_id(task.streak_id).count == 1
    assert ledger.get_category_experiences("user-1") == []


class RacingCompleteStore(InMemoryTrackingStore):
    """Another request completes the task between validation and the conditional update."""

    def mark_complete(self, task_id, completed_at):
        super().mark_complete(task_id, completed_at)
        return super().mark_complete(task_id, completed_at)


def test_losing_completion_race_is_already_completed(clock):
    store = RacingCompleteStore()
    seed_basics(store)
    ledger = InMemoryExperienceLedger()
    streak = store.create_streak(user_id="user-1", habit_id="habit-run", start_date=clock.today(), now=clock.now())
    task = store.create_task(
        user_id="user-1", habit_id="habit-run", streak_id=streak.id, task_date=clock.today(), now=clock.now()
    )

    with pytest.raises(AlreadyCompletedError):
        CompletionService(store, ledger, clock=clock).complete_task(task.id)
    assert store.find_streak_by_id(streak.id).count == 0
    assert ledger.query_history("user-1", limit=10) == []


class FlakyLedger(InMemoryExperienceLedger):
    def __init__(self):
        super().__init__()
        self.fail_appends = True

    def append(self, transaction):
        if self.fail_appends:
            raise RuntimeError("ledger unavailable")
        return super().append(transaction)


def test_ledger_failure_does_not_roll_back_completion(store, clock, caplog):
    seed_basics(store)
    ledger = FlakyLedger()
    streak = store.create_streak(user_id="user-1", habit_id="habit-run", start_date=clock.today(), now=clock.now())
    task = store.create_task(
        user_id="user-1", habit_id="habit-run", streak_id=streak.id, task_date=clock.today(), now=clock.now()
    )
    service = CompletionService(store, ledger, clock=clock)

    result = service.complete_task(task.id)

    assert result.experience_recorded is False
    assert result.experience_gained.total_experience == 11
    assert store.find_task_by_id(task.id).is_completed is True
    assert len(service.pending) == 1
    assert any(r.getMessage() == "experience.record_failed" for r in caplog.records)

    # Retry only appends the ledger entry; the running total was already applied
    ledger.fail_appends = False
    assert service.retry_pending_awards() == 1
    assert len(service.pending) == 0
    assert ledger.get_category_experience("user-1", "cat-fitness").total_experience == 11
    assert len(ledger.query_history("user-1", limit=10)) == 1


def test_retry_gives_up_after_max_attempts(store, clock):
    seed_basics(store)
    ledger = FlakyLedger()
    streak = store.create_streak(user_id="user-1", habit_id="habit-run", start_date=clock.today(), now=clock.now())
    task = store.create_task(
        user_id="user-1", habit_id="habit-run", streak_id=streak.id, task_date=clock.today(), now=clock.now()
    )
    service = CompletionService(store, ledger, clock=clock, max_attempts=2)
    service.complete_task(task.id)

    assert service.retry_pending_awards() == 0
    assert len(service.pending) == 1
    assert service.pending.snapshot()[0].attempt_count == 2

    assert service.retry_pending_awards() == 0
    assert len(service.pending) == 0


def test_reconcile_keeps_awards_waiting_for_the_ledger(store, clock):
    seed_basics(store)
    ledger = FlakyLedger()
    streak = store.create_streak(user_id="user-1", habit_id="habit-run", start_date=clock.today(), now=clock.now())
    task = store.create_task(
        user_id="user-1", habit_id="habit-run", streak_id=streak.id, task_date=clock.today(), now=clock.now()
    )
    service = CompletionService(store, ledger, clock=clock)
    experience = ExperienceService(store, ledger, clock=clock, pending=service.pending)
    service.complete_task(task.id)

    # Total applied, ledger entry still queued: nothing to correct
    report = experience.reconcile("user-1")
    assert report.mismatches == []
    assert ledger.get_category_experience("user-1", "cat-fitness").total_experience == 11

    ledger.fail_appends = False
    assert service.retry_pending_awards() == 1
    assert ledger.get_category_experience("user-1", "cat-fitness").total_experience == 11
    assert ledger.sum_by_category("user-1") == {"cat-fitness": 11}
    assert experience.reconcile("user-1").mismatches == []


def test_reconcile_still_corrects_drift_beside_queued_awards(store, clock):
    seed_basics(store)
    ledger = FlakyLedger()
    streak = store.create_streak(user_id="user-1", habit_id="habit-run", start_date=clock.today(), now=clock.now())
    task = store.create_task(
        user_id="user-1", habit_id="habit-run", streak_id=streak.id, task_date=clock.today(), now=clock.now()
    )
    service = CompletionService(store, ledger, clock=clock)
    experience = ExperienceService(store, ledger, clock=clock, pending=service.pending)
    service.complete_task(task.id)
    ledger.set_total("user-1", "cat-fitness", 40, now=clock.now())

    report = experience.reconcile("user-1")

    assert [(d.ledger_sum, d.running_total, d.difference) for d in report.mismatches] == [(0, 40, -29)]
    assert ledger.get_category_experience("user-1", "cat-fitness").total_experience == 11
