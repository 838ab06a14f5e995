from __future__ import annotations

from typing import Dict, List, Optional

from habitforge.core.errors import NotFoundError, ValidationError
from habitforge.features.experience.ledger import ExperienceLedger
from habitforge.features.experience.levels import LevelCurve
from habitforge.features.streaks.store import TrackingStore
from habitforge.models.experience import CategoryExperience
from habitforge.models.leaderboard import (
    CategoryLevelEntry,
    Leaderboard,
    LeaderboardType,
    StreakEntry,
    TopCategory,
    TopStreakHabit,
    UserLevelEntry,
    UserStreakEntry,
)

DEFAULT_LIMIT = 10
MAX_LIMIT = 50


class LeaderboardService:
    """Ranked views over streak counts and category experience."""

    def __init__(self, store: TrackingStore, ledger: ExperienceLedger, curve: Optional[LevelCurve] = None):
        self._store = store
        self._ledger = ledger
        self._curve = curve or LevelCurve()

    def get(
        self,
        leaderboard_type: LeaderboardType | str,
        category_id: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> Leaderboard:
        try:
            kind = LeaderboardType(leaderboard_type)
        except ValueError as exc:
            raise ValidationError("Invalid leaderboard type") from exc
        if not 1 <= limit <= MAX_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")

        if category_id and self._store.find_category_by_id(category_id) is None:
            raise NotFoundError("Category not found")
        if kind.needs_category and not category_id:
            raise ValidationError(f"category_id is required for {kind.value} leaderboard")

        if kind == LeaderboardType.STREAK_BY_CATEGORY:
            entries = self._streaks_by_category(category_id, limit)
        elif kind == LeaderboardType.STREAK_BY_USER:
            entries = self._streaks_by_user(limit)
        elif kind == LeaderboardType.LEVEL_BY_CATEGORY:
            entries = self._levels_by_category(category_id, limit)
        else:
            entries = self._levels_by_user(limit)

        return Leaderboard(
            type=kind.title,
            leaderboard_type=kind,
            category_id=category_id or None,
            limit=limit,
            entries=entries,
            count=len(entries),
        )

    # Internal helpers -------------------------------------------------
    def _username(self, user_id: str) -> Optional[str]:
        user = self._store.find_user_by_id(user_id)
        return user.username if user else None

    def _category_name(self, category_id: str) -> Optional[str]:
        category = self._store.find_category_by_id(category_id)
        return category.name if category else None

    def _streaks_by_category(self, category_id: str, limit: int) -> List[StreakEntry]:
        rows = self._store.list_top_streaks(category_id=category_id, limit=limit)
        return [
            StreakEntry(
                rank=rank,
                user_id=streak.user_id,
                username=self._username(streak.user_id),
                habit_id=habit.id,
                habit_name=habit.name,
                category_id=habit.category.id,
                category_name=habit.category.name,
                streak_count=streak.count,
                is_active=streak.is_active,
            )
            for rank, (streak, habit) in enumerate(rows, start=1)
        ]

    def _streaks_by_user(self, limit: int) -> List[UserStreakEntry]:
        # One row per streak; a user with several long streaks appears once per streak
        rows = self._store.list_top_streaks(category_id=None, limit=limit)
        return [
            UserStreakEntry(
                rank=rank,
                user_id=streak.user_id,
                username=self._username(streak.user_id),
                streak_count=streak.count,
                top_streak_habit=TopStreakHabit(
                    habit_id=habit.id,
                    habit_name=habit.name,
                    category_id=habit.category.id,
                    category_name=habit.category.name,
                ),
                is_active=streak.is_active,
            )
            for rank, (streak, habit) in enumerate(rows, start=1)
        ]

    def _levels_by_category(self, category_id: str, limit: int) -> List[CategoryLevelEntry]:
        rows = self._ledger.list_category_totals(category_id)[:limit]
        category_name = self._category_name(category_id)
        return [
            CategoryLevelEntry(
                rank=rank,
                user_id=entry.user_id,
                username=self._username(entry.user_id),
                category_id=entry.category_id,
                category_name=category_name,
                total_experience=entry.total_experience,
                level=self._curve.level_info(entry.total_experience).current_level,
            )
            for rank, entry in enumerate(rows, start=1)
        ]

    def _levels_by_user(self, limit: int) -> List[UserLevelEntry]:
        per_user: Dict[str, List[CategoryExperience]] = {}
        for entry in self._ledger.list_category_totals():
            per_user.setdefault(entry.user_id, []).append(entry)

        ranked = sorted(
            per_user.items(),
            key=lambda item: sum(e.total_experience for e in item[1]),
            reverse=True,
        )[:limit]

        entries = []
        for rank, (user_id, experiences) in enumerate(ranked, start=1):
            summary = self._curve.calculate_user_level(experiences)
            top = max(experiences, key=lambda e: e.total_experience) if experiences else None
            top_category = None
            if top is not None:
                top_category = TopCategory(
                    category_id=top.category_id,
                    category_name=self._category_name(top.category_id),
                    level=self._curve.level_info(top.total_experience).current_level,
                    experience=top.total_experience,
                )
            entries.append(
                UserLevelEntry(
                    rank=rank,
                    user_id=user_id,
                    username=self._username(user_id),
                    total_experience=summary.total_experience,
                    total_level=summary.total_level,
                    categories_count=len(experiences),
                    top_category=top_category,
                )
            )
        return entries
