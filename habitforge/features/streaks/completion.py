"""
Task completion workflow.

Validate the task, mark it complete, advance the bound streak, compute the
award and record it. Recording the award (running total + ledger entry) is
best-effort: a store failure there does not undo the completion. The award is
parked on an in-process pending queue and can be replayed with
``CompletionService.retry_pending_awards``.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional
from uuid import uuid4

from habitforge.core.clock import Clock
from habitforge.core.errors import (
    AlreadyCompletedError,
    ConfigurationError,
    HabitNotActiveError,
    NotFoundError,
    OutOfWindowError,
)
from habitforge.core.logging import log_event
from habitforge.features.experience.awards import AwardCalculator
from habitforge.features.experience.ledger import ExperienceLedger
from habitforge.features.streaks.store import TrackingStore
from habitforge.models.experience import ExperienceTransaction, TransactionType
from habitforge.models.streak import CompletionResult, ExperienceGained

MAX_ATTEMPTS_DEFAULT = 10


@dataclass
class PendingAward:
    """An award whose running-total or ledger write has not gone through yet."""

    transaction: ExperienceTransaction
    total_applied: bool = False
    attempt_count: int = 0
    last_error: Optional[str] = None


class PendingAwardQueue:
    def __init__(self):
        self._lock = threading.Lock()
        self._items: List[PendingAward] = []

    def push(self, award: PendingAward) -> None:
        with self._lock:
            self._items.append(award)

    def drain(self) -> List[PendingAward]:
        with self._lock:
            items, self._items = self._items, []
            return items

    def snapshot(self) -> List[PendingAward]:
        with self._lock:
            return list(self._items)

    def applied_totals(self, user_id: str) -> Dict[str, int]:
        """Per-category experience already in the running total but not yet in the ledger."""
        totals: Dict[str, int] = {}
        for award in self.snapshot():
            tx = award.transaction
            if award.total_applied and tx.user_id == user_id:
                totals[tx.category_id] = totals.get(tx.category_id, 0) + tx.experience_gained
        return totals

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class CompletionService:
    def __init__(
        self,
        store: TrackingStore,
        ledger: ExperienceLedger,
        awards: Optional[AwardCalculator] = None,
        clock: Optional[Clock] = None,
        pending: Optional[PendingAwardQueue] = None,
        max_attempts: int = MAX_ATTEMPTS_DEFAULT,
    ):
        self._store = store
        self._ledger = ledger
        self._awards = awards or AwardCalculator()
        self._clock = clock or Clock()
        self.pending = pending or PendingAwardQueue()
        self._max_attempts = max_attempts

    def complete_task(self, task_id: str, today: Optional[date] = None) -> CompletionResult:
        today = today or self._clock.today()

        task = self._store.find_task_by_id(task_id)
        if task is None:
            raise NotFoundError(f"Habit task {task_id} not found")
        if task.is_completed:
            raise AlreadyCompletedError("Habit task already completed")
        if task.task_date != today:
            raise OutOfWindowError("Habit tasks can only be completed on the day they were created for")

        habit = self._store.find_habit_by_id(task.habit_id)
        if habit is None:
            raise NotFoundError(f"Habit {task.habit_id} not found")
        if not habit.is_active:
            raise HabitNotActiveError(
                f"Cannot complete {habit.status.value} habit. Only Active habits can be completed."
            )

        now = self._clock.now()
        completed = self._store.mark_complete(task.id, now)
        if completed is None:
            raise AlreadyCompletedError("Habit task already completed")

        streak = self._store.increment_streak(task.streak_id, now=now)
        award = self._awards.award_for_streak(streak.count)

        if habit.category is None:
            log_event(
                "error",
                "habit_task.award_skipped",
                user_id=task.user_id,
                habit_id=habit.id,
                error_code="configuration_error",
                extra={"task_id": task.id, "streak_count": streak.count},
            )
            raise ConfigurationError("Habit category not found - cannot award experience")

        transaction = ExperienceTransaction(
            id=str(uuid4()),
            user_id=task.user_id,
            category_id=habit.category.id,
            habit_task_id=task.id,
            type=TransactionType.HABIT_COMPLETION,
            experience_gained=award.total_experience,
            streak_count=streak.count,
            multiplier=award.multiplier,
            description=f"Completed habit: {habit.name} (Streak: {streak.count})",
            created_at=now,
        )
        recorded = self._record_award(PendingAward(transaction=transaction))

        log_event(
            "info",
            "habit_task.completed",
            user_id=task.user_id,
            habit_id=habit.id,
            event_type="habit_task.completed",
            extra={
                "task_id": task.id,
                "streak_count": streak.count,
                "experience_gained": award.total_experience,
                "experience_recorded": recorded,
            },
        )

        return CompletionResult(
            habit_task=completed,
            current_streak=self._store.find_active_streak(task.user_id, habit.id),
            experience_gained=ExperienceGained(
                base_experience=award.base_experience,
                streak_bonus=award.streak_bonus,
                total_experience=award.total_experience,
                multiplier=award.multiplier,
                category=habit.category.name,
            ),
            experience_recorded=recorded,
        )

    def retry_pending_awards(self) -> int:
        """Replay queued awards. Returns how many were recorded on this pass."""
        recorded = 0
        for award in self.pending.drain():
            if award.attempt_count >= self._max_attempts:
                log_event(
                    "error",
                    "experience.award_abandoned",
                    user_id=award.transaction.user_id,
                    error_code="award_retry_exhausted",
                    extra={"transaction_id": award.transaction.id, "last_error": award.last_error},
                )
                continue
            if self._record_award(award):
                recorded += 1
        return recorded

    def _record_award(self, award: PendingAward) -> bool:
        tx = award.transaction
        try:
            if not award.total_applied:
                self._ledger.add_experience(tx.user_id, tx.category_id, tx.experience_gained, now=tx.created_at)
                award.total_applied = True
            self._ledger.append(tx)
            return True
        except Exception as exc:
            award.attempt_count += 1
            award.last_error = str(exc)
            log_event(
                "error",
                "experience.record_failed",
                user_id=tx.user_id,
                error_code="experience_record_failed",
                extra={
                    "transaction_id": tx.id,
                    "habit_task_id": tx.habit_task_id,
                    "category_id": tx.category_id,
                    "experience_gained": tx.experience_gained,
                    "total_applied": award.total_applied,
                    "attempt_count": award.attempt_count,
                    "error": str(exc),
                },
                exc_info=True,
            )
            self.pending.push(award)
            return False
