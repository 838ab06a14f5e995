"""
Single authoritative clock.

"today" is a calendar date (no time component) in APP_TIMEZONE; "now" is a
timezone-aware instant. Services take a Clock so tests can pin both.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Clock:
    def __init__(self, tz_name: str = "UTC"):
        self._tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return datetime.now(self._tz).date()

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """UTC instants [start, end) covering ``day`` in the clock's timezone."""
        start = datetime(day.year, day.month, day.day, tzinfo=self._tz)
        end = datetime.fromordinal(day.toordinal() + 1).replace(tzinfo=self._tz)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant. Used by tests and replay scripts."""

    def __init__(self, moment: datetime, tz_name: str = "UTC"):
        super().__init__(tz_name)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self._moment = moment

    def now(self) -> datetime:
        return self._moment

    def today(self) -> date:
        return self._moment.astimezone(self._tz).date()

    def set(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self._moment = moment
