from __future__ import annotations

import math
from dataclasses import dataclass

from habitforge.core.config import Settings
from habitforge.core.errors import ValidationError
from habitforge.models.experience import AwardBreakdown


@dataclass(frozen=True)
class AwardConfig:
    base_experience_points: int = 10
    streak_multiplier_per_count: float = 0.1

    @classmethod
    def from_settings(cls, cfg: Settings) -> "AwardConfig":
        return cls(
            base_experience_points=cfg.BASE_EXPERIENCE_POINTS,
            streak_multiplier_per_count=cfg.STREAK_MULTIPLIER,
        )


class AwardCalculator:
    """Experience for one completed task: base points scaled linearly by streak length."""

    def __init__(self, config: AwardConfig | None = None):
        self.config = config or AwardConfig()

    def award_for_streak(self, streak_count: int) -> AwardBreakdown:
        if streak_count < 0:
            raise ValidationError(f"streak_count must be >= 0, got {streak_count}")

        base = self.config.base_experience_points
        multiplier = 1 + self.config.streak_multiplier_per_count * streak_count
        total = math.floor(base * multiplier)
        return AwardBreakdown(
            base_experience=base,
            multiplier=multiplier,
            total_experience=total,
            streak_bonus=total - base,
        )
