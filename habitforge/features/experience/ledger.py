"""
Experience ledger: append-only transactions plus per-(user, category) running totals.

The running total is a cache of the transaction sum; ``reconcile`` in the
experience service recomputes it from the transactions when the two drift
(a completion whose running-total write failed, or a manual fix).
"""
from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Tuple

from habitforge.models.experience import (
    CategoryExperience,
    ExperienceTransaction,
    LedgerStats,
    StreakBonusStats,
)


class ExperienceLedger(Protocol):
    # Running totals
    def get_or_create(self, user_id: str, category_id: str, *, now: datetime) -> CategoryExperience: ...
    def add_experience(self, user_id: str, category_id: str, amount: int, *, now: datetime) -> CategoryExperience: ...
    def set_total(self, user_id: str, category_id: str, total: int, *, now: datetime) -> CategoryExperience: ...
    def get_category_experience(self, user_id: str, category_id: str) -> Optional[CategoryExperience]: ...
    def get_total(self, user_id: str) -> int: ...
    def get_category_experiences(self, user_id: str) -> List[CategoryExperience]: ...
    def list_category_totals(self, category_id: Optional[str] = None) -> List[CategoryExperience]: ...

    # Transactions
    def append(self, transaction: ExperienceTransaction) -> ExperienceTransaction: ...
    def query_history(
        self, user_id: str, *, limit: int, offset: int = 0, category_id: Optional[str] = None
    ) -> List[ExperienceTransaction]: ...
    def aggregate_stats(self, user_id: str, category_id: str) -> LedgerStats: ...
    def streak_bonus_stats(self, user_id: str, category_id: Optional[str] = None) -> StreakBonusStats: ...
    def total_gained_between(self, user_id: str, start: datetime, end: datetime) -> int: ...
    def sum_by_category(self, user_id: str) -> Dict[str, int]: ...


def _bonus_portion(tx: ExperienceTransaction) -> float:
    # Share of a transaction attributable to its streak multiplier
    if not tx.multiplier:
        return 0.0
    return tx.experience_gained - (tx.experience_gained / tx.multiplier)


class InMemoryExperienceLedger:
    """Process-local ledger. Used when DATABASE_URL is unset and by tests."""

    def __init__(self):
        self._lock = threading.RLock()
        self._totals: Dict[Tuple[str, str], CategoryExperience] = {}
        self._transactions: List[ExperienceTransaction] = []

    # Running totals -------------------------------------------------------
    def get_or_create(self, user_id: str, category_id: str, *, now: datetime) -> CategoryExperience:
        with self._lock:
            key = (user_id, category_id)
            if key not in self._totals:
                self._totals[key] = CategoryExperience(user_id=user_id, category_id=category_id, total_experience=0)
            return self._totals[key]

    def add_experience(self, user_id: str, category_id: str, amount: int, *, now: datetime) -> CategoryExperience:
        with self._lock:
            current = self.get_or_create(user_id, category_id, now=now)
            return self.set_total(user_id, category_id, current.total_experience + amount, now=now)

    def set_total(self, user_id: str, category_id: str, total: int, *, now: datetime) -> CategoryExperience:
        with self._lock:
            updated = CategoryExperience(user_id=user_id, category_id=category_id, total_experience=max(0, total))
            self._totals[(user_id, category_id)] = updated
            return updated

    def get_category_experience(self, user_id: str, category_id: str) -> Optional[CategoryExperience]:
        return self._totals.get((user_id, category_id))

    def get_total(self, user_id: str) -> int:
        return sum(entry.total_experience for (uid, _), entry in self._totals.items() if uid == user_id)

    def get_category_experiences(self, user_id: str) -> List[CategoryExperience]:
        owned = [entry for (uid, _), entry in self._totals.items() if uid == user_id]
        return sorted(owned, key=lambda e: e.total_experience, reverse=True)

    def list_category_totals(self, category_id: Optional[str] = None) -> List[CategoryExperience]:
        entries = list(self._totals.values())
        if category_id:
            entries = [e for e in entries if e.category_id == category_id]
        return sorted(entries, key=lambda e: e.total_experience, reverse=True)

    # Transactions ---------------------------------------------------------
    def append(self, transaction: ExperienceTransaction) -> ExperienceTransaction:
        with self._lock:
            self._transactions.append(transaction)
            return transaction

    def _user_transactions(self, user_id: str, category_id: Optional[str] = None) -> List[ExperienceTransaction]:
        return [
            tx
            for tx in self._transactions
            if tx.user_id == user_id and (category_id is None or tx.category_id == category_id)
        ]

    def query_history(
        self, user_id: str, *, limit: int, offset: int = 0, category_id: Optional[str] = None
    ) -> List[ExperienceTransaction]:
        rows = sorted(self._user_transactions(user_id, category_id), key=lambda tx: tx.created_at, reverse=True)
        return rows[offset:offset + limit]

    def aggregate_stats(self, user_id: str, category_id: str) -> LedgerStats:
        gained = [tx.experience_gained for tx in self._user_transactions(user_id, category_id)]
        if not gained:
            return LedgerStats()
        return LedgerStats(
            total_experience=sum(gained),
            total_transactions=len(gained),
            average_experience=sum(gained) / len(gained),
            max_experience=max(gained),
            min_experience=min(gained),
        )

    def streak_bonus_stats(self, user_id: str, category_id: Optional[str] = None) -> StreakBonusStats:
        bonus_rows = [
            tx
            for tx in self._user_transactions(user_id, category_id)
            if tx.streak_count is not None and tx.multiplier is not None and tx.multiplier > 1
        ]
        if not bonus_rows:
            return StreakBonusStats()
        return StreakBonusStats(
            highest_streak_bonus=max(_bonus_portion(tx) for tx in bonus_rows),
            average_streak_count=sum(tx.streak_count for tx in bonus_rows) / len(bonus_rows),
            total_streak_bonuses=len(bonus_rows),
        )

    def total_gained_between(self, user_id: str, start: datetime, end: datetime) -> int:
        return sum(
            tx.experience_gained
            for tx in self._user_transactions(user_id)
            if start <= tx.created_at < end
        )

    def sum_by_category(self, user_id: str) -> Dict[str, int]:
        sums: Dict[str, int] = {}
        for tx in self._user_transactions(user_id):
            sums[tx.category_id] = sums.get(tx.category_id, 0) + tx.experience_gained
        return sums
