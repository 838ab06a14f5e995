import pytest

from habitforge.core.errors import NotFoundError, ValidationError
from habitforge.models.habit import Category, Habit, HabitStatus, User
from habitforge.models.leaderboard import LeaderboardType


@pytest.fixture
def board(engine, store, ledger, clock):
    now, today = clock.now(), clock.today()
    fitness = store.add_category(Category(id="cat-fitness", name="Fitness"))
    mind = store.add_category(Category(id="cat-mind", name="Mind"))
    for user_id, name in (("user-1", "alice"), ("user-2", "bob"), ("user-3", "carol")):
        store.add_user(User(id=user_id, username=name, email=f"{name}@example.com"))

    def habit_with_streak(habit_id, user_id, category, count):
        store.create_habit(
            Habit(id=habit_id, name=habit_id.title(), user_id=user_id, status=HabitStatus.ACTIVE, category=category)
        )
        streak = store.create_streak(user_id=user_id, habit_id=habit_id, start_date=today, now=now)
        store.update_streak(streak.id, now=now, count=count)

    habit_with_streak("run", "user-1", fitness, 4)
    habit_with_streak("lift", "user-2", fitness, 9)
    habit_with_streak("read", "user-2", mind, 2)
    habit_with_streak("swim", "user-3", fitness, 0)

    ledger.add_experience("user-1", "cat-fitness", 25, now=now)
    ledger.add_experience("user-2", "cat-fitness", 10, now=now)
    ledger.add_experience("user-2", "cat-mind", 31, now=now)
    return engine.leaderboard


def test_streak_by_category(board):
    result = board.get("streak-by-category", category_id="cat-fitness")

    assert result.type == "Streak by Category"
    assert result.leaderboard_type == LeaderboardType.STREAK_BY_CATEGORY
    assert [(e.rank, e.username, e.streak_count) for e in result.entries] == [(1, "bob", 9), (2, "alice", 4)]
    assert result.entries[0].habit_name == "Lift"
    assert result.count == 2


def test_streak_by_user_spans_categories(board):
    result = board.get(LeaderboardType.STREAK_BY_USER, limit=2)

    assert [e.streak_count for e in result.entries] == [9, 4]
    assert result.entries[0].top_streak_habit.category_name == "Fitness"
    assert result.limit == 2


def test_level_by_category(board):
    result = board.get("level-by-category", category_id="cat-fitness")

    assert [(e.username, e.total_experience, e.level) for e in result.entries] == [("alice", 25, 3), ("bob", 10, 2)]
    assert result.entries[0].category_name == "Fitness"


def test_level_by_user(board):
    result = board.get("level-by-user")

    first, second = result.entries
    assert (first.username, first.total_experience, first.categories_count) == ("bob", 41, 2)
    assert first.total_level == 2 + 4
    assert first.top_category.category_name == "Mind"
    assert first.top_category.level == 4
    assert (second.username, second.total_experience, second.total_level) == ("alice", 25, 3)


def test_category_types_need_category(board):
    with pytest.raises(ValidationError):
        board.get("streak-by-category")
    with pytest.raises(ValidationError):
        board.get("level-by-category")


def test_unknown_category(board):
    with pytest.raises(NotFoundError):
        board.get("streak-by-category", category_id="cat-nope")


@pytest.mark.parametrize("limit", [0, 51])
def test_limit_bounds(board, limit):
    with pytest.raises(ValidationError):
        board.get("streak-by-user", limit=limit)


def test_invalid_type(board):
    with pytest.raises(ValidationError):
        board.get("fastest-runner")
