# habitforge/conftest.py
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add repo root to PYTHONPATH
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from habitforge.core.clock import FixedClock
from habitforge.features.engine import HabitEngine
from habitforge.features.experience.ledger import InMemoryExperienceLedger
from habitforge.features.profile.friends import InMemoryFriendDirectory
from habitforge.features.streaks.store import InMemoryTrackingStore
from habitforge.models.habit import Category, Habit, HabitStatus, User

START = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def advance(clock):
    """Move the fixed clock forward by whole days."""

    def _advance(days: int = 1) -> date:
        clock.set(clock.now() + timedelta(days=days))
        return clock.today()

    return _advance


@pytest.fixture
def store():
    return InMemoryTrackingStore()


@pytest.fixture
def ledger():
    return InMemoryExperienceLedger()


@pytest.fixture
def friends():
    return InMemoryFriendDirectory()


@pytest.fixture
def engine(store, ledger, friends, clock):
    return HabitEngine(store=store, ledger=ledger, friends=friends, clock=clock)


def seed_basics(store, *, status=HabitStatus.ACTIVE, with_category=True, now=START):
    """User, category and one habit; returns them as a namespace."""
    user = store.add_user(User(id="user-1", username="alice", email="alice@example.com"))
    category = store.add_category(Category(id="cat-fitness", name="Fitness"))
    habit = store.create_habit(
        Habit(
            id="habit-run",
            name="Morning run",
            user_id=user.id,
            status=status,
            category=category if with_category else None,
            start_date=now.date(),
            created_at=now,
        )
    )
    return SimpleNamespace(user=user, category=category, habit=habit)


@pytest.fixture
def seeded(store):
    return seed_basics(store)


@pytest.fixture
def sql_session_factory():
    """Fresh in-memory SQLite database with every table created."""
    from sqlalchemy.orm import sessionmaker

    from habitforge.core.database import build_engine, create_all_tables

    db_engine = build_engine("sqlite://")
    create_all_tables(db_engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    yield factory
    db_engine.dispose()


@pytest.fixture
def client(engine):
    """TestClient whose routes run against the fixture engine."""
    from fastapi.testclient import TestClient

    from habitforge.features.engine import get_habit_engine
    from habitforge.main import app

    app.dependency_overrides[get_habit_engine] = lambda: engine
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
