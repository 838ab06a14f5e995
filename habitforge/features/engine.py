"""
HabitEngine - service container for the streak & experience engine.

Stores are injected; services are wired once so they share the same stores,
clock and pending-award queue.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from habitforge.core.clock import Clock
from habitforge.core.config import Settings, settings as default_settings
from habitforge.features.experience.awards import AwardCalculator, AwardConfig
from habitforge.features.experience.ledger import ExperienceLedger, InMemoryExperienceLedger
from habitforge.features.experience.levels import LevelCurve, LevelCurveConfig
from habitforge.features.experience.service import ExperienceService
from habitforge.features.habits.service import HabitService
from habitforge.features.leaderboard.service import LeaderboardService
from habitforge.features.profile.friends import FriendDirectory, InMemoryFriendDirectory
from habitforge.features.profile.service import ProfileService
from habitforge.features.streaks.completion import CompletionService
from habitforge.features.streaks.service import StreakService
from habitforge.features.streaks.store import InMemoryTrackingStore, TrackingStore

logger = logging.getLogger("habitforge")


@dataclass
class HabitEngine:
    store: TrackingStore
    ledger: ExperienceLedger
    friends: FriendDirectory
    clock: Clock
    curve: LevelCurve = field(default_factory=LevelCurve)
    awards: AwardCalculator = field(default_factory=AwardCalculator)
    backend: str = "memory"

    streaks: StreakService = field(init=False, repr=False)
    completion: CompletionService = field(init=False, repr=False)
    experience: ExperienceService = field(init=False, repr=False)
    habits: HabitService = field(init=False, repr=False)
    leaderboard: LeaderboardService = field(init=False, repr=False)
    profile: ProfileService = field(init=False, repr=False)

    def __post_init__(self):
        self.streaks = StreakService(self.store, self.clock)
        self.completion = CompletionService(self.store, self.ledger, self.awards, self.clock)
        self.experience = ExperienceService(self.store, self.ledger, self.curve, self.clock, self.completion.pending)
        self.habits = HabitService(self.store, self.clock)
        self.leaderboard = LeaderboardService(self.store, self.ledger, self.curve)
        self.profile = ProfileService(self.store, self.streaks, self.experience, self.friends, self.clock)


def build_habit_engine(
    cfg: Optional[Settings] = None,
    *,
    session_factory=None,
    clock: Optional[Clock] = None,
) -> HabitEngine:
    """
    Wire an engine from settings.

    With a session factory (or DATABASE_URL set) the SQL stores are used;
    otherwise everything lives in process memory.
    """
    cfg = cfg or default_settings
    clock = clock or Clock(cfg.APP_TIMEZONE)
    curve = LevelCurve(LevelCurveConfig.from_settings(cfg))
    awards = AwardCalculator(AwardConfig.from_settings(cfg))

    if session_factory is None and cfg.DATABASE_URL:
        from habitforge.core.database import get_session_factory, init_engine

        init_engine(cfg.DATABASE_URL)
        session_factory = get_session_factory()

    if session_factory is not None:
        from habitforge.features.experience.persistence import SqlExperienceLedger
        from habitforge.features.profile.friends import SqlFriendDirectory
        from habitforge.features.streaks.persistence import SqlTrackingStore

        engine = HabitEngine(
            store=SqlTrackingStore(session_factory),
            ledger=SqlExperienceLedger(session_factory),
            friends=SqlFriendDirectory(session_factory),
            clock=clock,
            curve=curve,
            awards=awards,
            backend="sql",
        )
    else:
        engine = HabitEngine(
            store=InMemoryTrackingStore(),
            ledger=InMemoryExperienceLedger(),
            friends=InMemoryFriendDirectory(),
            clock=clock,
            curve=curve,
            awards=awards,
        )

    logger.info("Habit engine initialized", extra={"backend": engine.backend, "timezone": cfg.APP_TIMEZONE})
    return engine


# Global engine instance (initialized at app startup)
_habit_engine: Optional[HabitEngine] = None


def init_habit_engine(cfg: Optional[Settings] = None, **kwargs) -> HabitEngine:
    global _habit_engine
    _habit_engine = build_habit_engine(cfg, **kwargs)
    return _habit_engine


def get_habit_engine() -> HabitEngine:
    """Return the global engine, building an in-process one on first use."""
    global _habit_engine
    if _habit_engine is None:
        _habit_engine = build_habit_engine()
    return _habit_engine


def reset_habit_engine() -> None:
    global _habit_engine
    _habit_engine = None
