"""
Level curve: cumulative experience <-> level/progress.

Each level's requirement grows geometrically from ``base_level_experience``
by ``level_experience_growth`` per level and is capped at
``max_experience_per_level_step``, so the cumulative curve is sub-exponential.
Levels saturate at ``max_level``.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Union

from habitforge.core.config import Settings
from habitforge.models.experience import CategoryExperience, CategoryLevel, LevelInfo, UserLevelSummary


@dataclass(frozen=True)
class LevelCurveConfig:
    base_level_experience: int = 10
    level_experience_growth: float = 1.05
    max_experience_per_level_step: int = 250
    max_level: int = 100

    @classmethod
    def from_settings(cls, cfg: Settings) -> "LevelCurveConfig":
        return cls(
            base_level_experience=cfg.LEVEL_EXPERIENCE_BASE,
            level_experience_growth=cfg.LEVEL_EXPERIENCE_MULTIPLIER,
            max_experience_per_level_step=cfg.MAX_EXP_PER_LEVEL,
            max_level=cfg.MAX_LEVEL_CAP,
        )


class LevelCurve:
    def __init__(self, config: LevelCurveConfig | None = None):
        self.config = config or LevelCurveConfig()

    def level_step(self, level: int) -> int:
        """Experience needed to go from ``level`` to ``level + 1``."""
        cfg = self.config
        cap = cfg.max_experience_per_level_step
        try:
            raw = cfg.base_level_experience * cfg.level_experience_growth ** (level - 1)
        except OverflowError:
            return cap
        # Far past the cap the growth term overflows to inf
        if math.isinf(raw):
            return cap
        return min(math.floor(raw), cap)

    def experience_required_for_level(self, level: int) -> int:
        """Cumulative experience needed to reach ``level`` (0 for level <= 1)."""
        if level <= 1:
            return 0
        return sum(self.level_step(i) for i in range(1, level))

    def level_info(self, total_experience: int) -> LevelInfo:
        max_level = self.config.max_level
        current_level = 1
        needed_for_current = 0
        needed_for_next = self.level_step(1)

        while total_experience >= needed_for_next and current_level < max_level:
            current_level += 1
            needed_for_current = needed_for_next
            needed_for_next += self.level_step(current_level)

        if current_level >= max_level:
            return LevelInfo(
                current_level=max_level,
                current_experience=total_experience,
                experience_to_next_level=0,
                total_experience_for_next_level=needed_for_current,
                progress=1.0,
            )

        span = needed_for_next - needed_for_current
        earned = total_experience - needed_for_current
        progress = earned / span if span > 0 else 0.0

        return LevelInfo(
            current_level=current_level,
            current_experience=total_experience,
            experience_to_next_level=max(0, needed_for_next - total_experience),
            total_experience_for_next_level=needed_for_next,
            progress=min(1.0, max(0.0, progress)),
        )

    def validate_level(self, level: int) -> bool:
        return 1 <= level <= self.config.max_level

    def calculate_user_level(
        self,
        category_experiences: Iterable[Union[CategoryExperience, Mapping[str, object]]],
    ) -> UserLevelSummary:
        """Sum per-category levels and experience into a user-wide total."""
        total_level = 0
        total_experience = 0
        category_levels: List[CategoryLevel] = []

        for entry in category_experiences:
            if isinstance(entry, CategoryExperience):
                category_id, experience = entry.category_id, entry.total_experience
            else:
                category_id, experience = str(entry["category_id"]), int(entry["total_experience"])
            level = self.level_info(experience).current_level
            total_level += level
            total_experience += experience
            category_levels.append(CategoryLevel(category_id=category_id, level=level, experience=experience))

        return UserLevelSummary(
            total_level=total_level,
            total_experience=total_experience,
            category_levels=category_levels,
        )
