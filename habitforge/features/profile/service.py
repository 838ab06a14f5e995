"""
Profile aggregator: one read-mostly view of a user.

Building a profile also ensures today's task for each habit, so opening the
profile is what rolls streaks forward. One habit failing to evaluate does not
fail the whole profile.
"""
from __future__ import annotations

from datetime import date
from typing import List, Optional

from habitforge.core.clock import Clock
from habitforge.core.errors import NotFoundError
from habitforge.core.logging import log_event
from habitforge.features.experience.service import ExperienceService
from habitforge.features.profile.friends import FriendDirectory
from habitforge.features.streaks.service import StreakService
from habitforge.features.streaks.store import TrackingStore
from habitforge.models.profile import FriendSummary, HabitStatusView, Profile

HABIT_STATUS_ERROR_MESSAGE = "Error processing habit status"


class ProfileService:
    def __init__(
        self,
        store: TrackingStore,
        streaks: StreakService,
        experience: ExperienceService,
        friends: FriendDirectory,
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._streaks = streaks
        self._experience = experience
        self._friends = friends
        self._clock = clock or Clock()

    def build_profile(self, user_id: str, today: Optional[date] = None) -> Profile:
        today = today or self._clock.today()
        user = self._store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        return Profile(
            user=user,
            habits=self._habit_statuses(user_id, today),
            levels=self._experience.user_levels(user_id),
            friends=FriendSummary(
                friends=self._friends.friends(user_id),
                pending_requests=self._friends.pending_requests(user_id),
                sent_requests=self._friends.sent_requests(user_id),
            ),
            experience=self._experience.user_experience(user_id, today),
        )

    def _habit_statuses(self, user_id: str, today: date) -> List[HabitStatusView]:
        views = []
        for habit in self._store.find_habits_by_user(user_id):
            try:
                status = self._streaks.ensure_daily_task(user_id, habit.id, today)
            except Exception as exc:
                log_event(
                    "error",
                    "profile.habit_status_failed",
                    user_id=user_id,
                    habit_id=habit.id,
                    error_code=getattr(exc, "code", "internal_error"),
                    extra={"error": str(exc)},
                    exc_info=True,
                )
                views.append(
                    HabitStatusView(
                        habit_id=habit.id,
                        habit_name=habit.name,
                        habit_details=habit,
                        message=HABIT_STATUS_ERROR_MESSAGE,
                    )
                )
                continue

            views.append(
                HabitStatusView(
                    habit_id=habit.id,
                    habit_name=habit.name,
                    habit_details=habit,
                    message=status.message,
                    habit_task=status.habit_task,
                    current_streak=status.current_streak,
                    all_streaks=status.all_streaks,
                    created=status.created,
                )
            )
        return views
