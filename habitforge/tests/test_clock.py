from datetime import date, datetime, timezone

from habitforge.core.clock import Clock, FixedClock


def test_day_bounds_follow_timezone_across_dst():
    clock = Clock("America/New_York")
    start, end = clock.day_bounds(date(2024, 3, 10))
    assert start == datetime(2024, 3, 10, 5, 0, tzinfo=timezone.utc)
    # DST starts that morning, so the day is 23 hours long
    assert end == datetime(2024, 3, 11, 4, 0, tzinfo=timezone.utc)


def test_fixed_clock_today_uses_timezone():
    moment = datetime(2024, 3, 10, 3, 30, tzinfo=timezone.utc)
    assert FixedClock(moment).today() == date(2024, 3, 10)
    assert FixedClock(moment, "America/Los_Angeles").today() == date(2024, 3, 9)


def test_fixed_clock_assumes_utc_for_naive_moments():
    clock = FixedClock(datetime(2024, 1, 1, 12, 0))
    assert clock.now().tzinfo is timezone.utc
    clock.set(datetime(2024, 1, 2, 0, 30))
    assert clock.today() == date(2024, 1, 2)
