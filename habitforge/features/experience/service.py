"""
Experience read model and ledger maintenance.

Levels are always derived from the running totals; the ledger backs history,
stats and reconciliation.
"""
from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional
from uuid import uuid4

from habitforge.core.clock import Clock
from habitforge.core.errors import NotFoundError, ValidationError
from habitforge.core.logging import log_event
from habitforge.features.experience.ledger import ExperienceLedger
from habitforge.features.experience.levels import LevelCurve
from habitforge.features.streaks.completion import PendingAwardQueue
from habitforge.features.streaks.store import TrackingStore
from habitforge.models.experience import (
    CategoryDrift,
    CategoryExperience,
    CategoryLevelDetail,
    CategoryStats,
    ExperienceHistory,
    ExperienceTransaction,
    HistoryEntry,
    NamedRef,
    Pagination,
    ReconcileReport,
    TransactionType,
    UserExperience,
    UserLevels,
)
from habitforge.models.habit import User

HISTORY_DEFAULT_LIMIT = 50
HISTORY_MAX_LIMIT = 100


class ExperienceService:
    def __init__(
        self,
        store: TrackingStore,
        ledger: ExperienceLedger,
        curve: Optional[LevelCurve] = None,
        clock: Optional[Clock] = None,
        pending: Optional[PendingAwardQueue] = None,
    ):
        self._store = store
        self._ledger = ledger
        self._curve = curve or LevelCurve()
        self._clock = clock or Clock()
        self._pending = pending

    def user_levels(self, user_id: str) -> UserLevels:
        user = self._require_user(user_id)
        experiences = self._named(self._ledger.get_category_experiences(user_id))
        summary = self._curve.calculate_user_level(experiences)

        details = []
        for entry in experiences:
            info = self._curve.level_info(entry.total_experience)
            details.append(
                CategoryLevelDetail(
                    category_id=entry.category_id,
                    category_name=entry.category_name,
                    level=info.current_level,
                    experience=entry.total_experience,
                    experience_to_next_level=info.experience_to_next_level,
                    progress=info.progress,
                )
            )

        return UserLevels(
            user_id=user_id,
            username=user.username,
            total_level=summary.total_level,
            total_experience=summary.total_experience,
            category_levels=details,
        )

    def user_experience(self, user_id: str, today: Optional[date] = None) -> UserExperience:
        user = self._require_user(user_id)
        start, end = self._clock.day_bounds(today or self._clock.today())
        return UserExperience(
            user_id=user_id,
            username=user.username,
            total_experience=self._ledger.get_total(user_id),
            today_experience=self._ledger.total_gained_between(user_id, start, end),
            category_breakdown=self._named(self._ledger.get_category_experiences(user_id)),
        )

    def history(
        self,
        user_id: str,
        limit: Optional[int] = HISTORY_DEFAULT_LIMIT,
        offset: Optional[int] = 0,
        category_id: Optional[str] = None,
    ) -> ExperienceHistory:
        self._require_user(user_id)
        limit = min(max(limit or HISTORY_DEFAULT_LIMIT, 1), HISTORY_MAX_LIMIT)
        offset = max(offset or 0, 0)

        rows = self._ledger.query_history(user_id, limit=limit, offset=offset, category_id=category_id)
        return ExperienceHistory(
            user_id=user_id,
            transactions=[self._history_entry(tx) for tx in rows],
            pagination=Pagination(limit=limit, offset=offset, count=len(rows)),
        )

    def category_stats(self, user_id: str, category_id: str) -> CategoryStats:
        self._require_user(user_id)
        entry = self._ledger.get_category_experience(user_id, category_id)
        if entry is None:
            raise NotFoundError("No experience found for this category")

        category = self._store.find_category_by_id(category_id)
        info = self._curve.level_info(entry.total_experience)
        return CategoryStats(
            user_id=user_id,
            category=NamedRef(id=category_id, name=category.name if category else None),
            level=info.current_level,
            experience=entry.total_experience,
            experience_to_next_level=info.experience_to_next_level,
            progress=info.progress,
            stats=self._ledger.aggregate_stats(user_id, category_id),
            streak_stats=self._ledger.streak_bonus_stats(user_id),
        )

    def reconcile(self, user_id: str) -> ReconcileReport:
        """
        Recompute running totals from the ledger.

        The expected running total of a category is its ledger sum plus any
        queued award already applied to the total but not yet appended to the
        ledger. Categories that differ are reset to that value (floored at 0)
        and reported.
        """
        self._require_user(user_id)
        now = self._clock.now()
        ledger_sums = self._ledger.sum_by_category(user_id)
        in_flight = self._pending.applied_totals(user_id) if self._pending is not None else {}
        running = {e.category_id: e.total_experience for e in self._ledger.get_category_experiences(user_id)}
        categories = set(ledger_sums) | set(running) | set(in_flight)

        mismatches: List[CategoryDrift] = []
        for category_id in sorted(categories):
            ledger_sum = ledger_sums.get(category_id, 0)
            expected = max(0, ledger_sum + in_flight.get(category_id, 0))
            running_total = running.get(category_id, 0)
            if expected == running_total:
                continue
            self._ledger.set_total(user_id, category_id, expected, now=now)
            mismatches.append(
                CategoryDrift(
                    category_id=category_id,
                    ledger_sum=ledger_sum,
                    running_total=running_total,
                    difference=expected - running_total,
                )
            )

        if mismatches:
            log_event(
                "warning",
                "experience.reconciled",
                user_id=user_id,
                event_type="experience.reconciled",
                extra={"mismatches": len(mismatches), "in_flight_categories": len(in_flight)},
            )
        return ReconcileReport(
            user_id=user_id,
            mismatches=mismatches,
            categories_checked=len(categories),
        )

    def adjust(
        self, user_id: str, category_id: str, amount: int, description: Optional[str] = None
    ) -> ExperienceTransaction:
        """Apply a manual correction; a negative amount never takes the total below 0."""
        self._require_user(user_id)
        if self._store.find_category_by_id(category_id) is None:
            raise NotFoundError(f"Category {category_id} not found")
        if amount == 0:
            raise ValidationError("Adjustment amount must be non-zero")

        now = self._clock.now()
        current = self._ledger.get_or_create(user_id, category_id, now=now).total_experience
        applied = max(amount, -current)
        self._ledger.add_experience(user_id, category_id, applied, now=now)
        transaction = self._ledger.append(
            ExperienceTransaction(
                id=str(uuid4()),
                user_id=user_id,
                category_id=category_id,
                type=TransactionType.ADMIN_ADJUSTMENT,
                experience_gained=applied,
                description=description or "Manual adjustment",
                created_at=now,
            )
        )
        log_event(
            "info",
            "experience.adjusted",
            user_id=user_id,
            event_type="experience.adjusted",
            extra={"category_id": category_id, "requested": amount, "applied": applied},
        )
        return transaction

    # Internal helpers -------------------------------------------------
    def _require_user(self, user_id: str) -> User:
        user = self._store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def _named(self, entries: List[CategoryExperience]) -> List[CategoryExperience]:
        names: Dict[str, Optional[str]] = {}
        named = []
        for entry in entries:
            if entry.category_id not in names:
                category = self._store.find_category_by_id(entry.category_id)
                names[entry.category_id] = category.name if category else None
            named.append(entry.model_copy(update={"category_name": names[entry.category_id]}))
        return named

    def _history_entry(self, tx: ExperienceTransaction) -> HistoryEntry:
        category = self._store.find_category_by_id(tx.category_id)
        habit_ref = None
        if tx.habit_task_id:
            task = self._store.find_task_by_id(tx.habit_task_id)
            habit = self._store.find_habit_by_id(task.habit_id) if task else None
            if habit is not None:
                habit_ref = NamedRef(id=habit.id, name=habit.name)
        return HistoryEntry(
            id=tx.id,
            type=tx.type,
            experience_gained=tx.experience_gained,
            category=NamedRef(id=tx.category_id, name=category.name if category else None),
            habit=habit_ref,
            streak_count=tx.streak_count,
            multiplier=tx.multiplier,
            description=tx.description,
            created_at=tx.created_at,
        )
