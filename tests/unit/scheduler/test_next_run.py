"""Unit tests for NextRunCalculator.

Tests verify:
- Daily, weekly, monthly and custom-interval occurrences
- Results are always strictly in the future
- Wall-clock times follow the configured timezone across DST changes
"""

from datetime import datetime, timedelta

import pytest
from hypothesis import given, settings, strategies as st

from sweeper.models.triggers import (
    CustomFrequency,
    DailyFrequency,
    IdleTrigger,
    MonthlyFrequency,
    StartupTrigger,
    TimeTrigger,
    WeeklyFrequency,
)
from sweeper.scheduler.next_run import NextRunCalculator


def daily(time: str) -> TimeTrigger:
    return TimeTrigger(schedule=DailyFrequency(time=time))


def weekly(day_of_week: int, time: str) -> TimeTrigger:
    return TimeTrigger(schedule=WeeklyFrequency(day_of_week=day_of_week, time=time))


def monthly(day_of_month: int, time: str) -> TimeTrigger:
    return TimeTrigger(schedule=MonthlyFrequency(day_of_month=day_of_month, time=time))


def custom(minutes: int) -> TimeTrigger:
    return TimeTrigger(schedule=CustomFrequency(interval_minutes=minutes))


@pytest.fixture
def calculator() -> NextRunCalculator:
    return NextRunCalculator()


class TestDaily:
    """Daily occurrences."""

    def test_later_today(self, calculator):
        now = datetime(2024, 1, 15, 10, 0)
        assert calculator.compute_next_run(daily("14:00"), now) == datetime(2024, 1, 15, 14, 0)

    def test_passed_today_rolls_to_tomorrow(self, calculator):
        now = datetime(2024, 1, 15, 15, 0)
        assert calculator.compute_next_run(daily("14:00"), now) == datetime(2024, 1, 16, 14, 0)

    def test_exactly_now_is_not_due_again(self, calculator):
        now = datetime(2024, 1, 15, 14, 0)
        assert calculator.compute_next_run(daily("14:00"), now) == datetime(2024, 1, 16, 14, 0)

    def test_year_boundary(self, calculator):
        now = datetime(2023, 12, 31, 23, 30)
        assert calculator.compute_next_run(daily("00:15"), now) == datetime(2024, 1, 1, 0, 15)

    def test_last_run_is_ignored(self, calculator):
        now = datetime(2024, 1, 15, 10, 0)
        result = calculator.compute_next_run(
            daily("14:00"), now, last_run=datetime(2024, 1, 15, 9, 0)
        )
        assert result == datetime(2024, 1, 15, 14, 0)


class TestWeekly:
    """Weekly occurrences (0 = Sunday)."""

    def test_same_weekday_time_passed_goes_to_next_week(self, calculator):
        # 2024-01-15 is a Monday
        now = datetime(2024, 1, 15, 10, 0)
        assert calculator.compute_next_run(weekly(1, "09:00"), now) == datetime(2024, 1, 22, 9, 0)

    def test_same_weekday_time_ahead_is_today(self, calculator):
        now = datetime(2024, 1, 15, 8, 0)
        assert calculator.compute_next_run(weekly(1, "09:00"), now) == datetime(2024, 1, 15, 9, 0)

    def test_sunday(self, calculator):
        now = datetime(2024, 1, 15, 10, 0)
        assert calculator.compute_next_run(weekly(0, "18:30"), now) == datetime(2024, 1, 21, 18, 30)

    def test_saturday_from_sunday(self, calculator):
        now = datetime(2024, 1, 14, 12, 0)
        assert calculator.compute_next_run(weekly(6, "07:00"), now) == datetime(2024, 1, 20, 7, 0)


class TestMonthly:
    """Monthly occurrences with day-of-month clamping."""

    def test_later_this_month(self, calculator):
        now = datetime(2024, 1, 10, 10, 0)
        assert calculator.compute_next_run(monthly(15, "08:00"), now) == datetime(2024, 1, 15, 8, 0)

    def test_passed_this_month(self, calculator):
        now = datetime(2024, 1, 20, 10, 0)
        assert calculator.compute_next_run(monthly(15, "08:00"), now) == datetime(2024, 2, 15, 8, 0)

    def test_day_31_clamps_to_leap_february(self, calculator):
        now = datetime(2024, 2, 10, 10, 0)
        assert calculator.compute_next_run(monthly(31, "08:00"), now) == datetime(2024, 2, 29, 8, 0)

    def test_day_31_clamps_to_february(self, calculator):
        now = datetime(2023, 2, 1, 0, 0)
        assert calculator.compute_next_run(monthly(31, "08:00"), now) == datetime(2023, 2, 28, 8, 0)

    def test_clamped_day_passed_moves_to_next_month(self, calculator):
        now = datetime(2023, 2, 28, 9, 0)
        assert calculator.compute_next_run(monthly(31, "08:00"), now) == datetime(2023, 3, 31, 8, 0)

    def test_day_30_in_april(self, calculator):
        now = datetime(2024, 4, 1, 0, 0)
        assert calculator.compute_next_run(monthly(31, "12:00"), now) == datetime(2024, 4, 30, 12, 0)

    def test_december_rolls_into_january(self, calculator):
        now = datetime(2024, 12, 20, 10, 0)
        assert calculator.compute_next_run(monthly(15, "08:00"), now) == datetime(2025, 1, 15, 8, 0)


class TestCustomInterval:
    """Custom intervals measured from the last run."""

    def test_no_last_run_starts_from_now(self, calculator):
        now = datetime(2024, 1, 15, 10, 0)
        assert calculator.compute_next_run(custom(90), now) == now + timedelta(minutes=90)

    def test_from_last_run(self, calculator):
        now = datetime(2024, 1, 15, 10, 0)
        last_run = now - timedelta(minutes=30)
        assert calculator.compute_next_run(custom(60), now, last_run) == now + timedelta(minutes=30)

    def test_missed_intervals_keep_phase(self, calculator):
        now = datetime(2024, 1, 15, 10, 0)
        last_run = now - timedelta(minutes=150)
        result = calculator.compute_next_run(custom(60), now, last_run)
        assert result == now + timedelta(minutes=30)

    def test_missed_exactly_on_boundary_is_strictly_future(self, calculator):
        now = datetime(2024, 1, 15, 10, 0)
        last_run = now - timedelta(minutes=120)
        result = calculator.compute_next_run(custom(60), now, last_run)
        assert result == now + timedelta(minutes=60)

    def test_last_run_in_future_restarts_from_now(self, calculator):
        now = datetime(2024, 1, 15, 10, 0)
        last_run = now + timedelta(hours=3)
        result = calculator.compute_next_run(custom(60), now, last_run)
        assert result == now + timedelta(minutes=60)


class TestEventTriggers:
    """Startup and idle triggers are not time-based."""

    def test_startup_has_no_next_run(self, calculator):
        assert calculator.compute_next_run(StartupTrigger(), datetime(2024, 1, 15)) is None

    def test_idle_has_no_next_run(self, calculator):
        assert calculator.compute_next_run(IdleTrigger(idle_minutes=10), datetime(2024, 1, 15)) is None


class TestTimezones:
    """Wall-clock fields are interpreted in the configured timezone."""

    def test_daily_in_local_time(self):
        calculator = NextRunCalculator("America/New_York")
        # 10:00 UTC is 05:00 EST
        now = datetime(2024, 1, 15, 10, 0)
        assert calculator.compute_next_run(daily("14:00"), now) == datetime(2024, 1, 15, 19, 0)

    def test_spring_forward_gap_is_resolved(self):
        calculator = NextRunCalculator("Europe/Berlin")
        # 02:30 does not exist on 2024-03-31 in Berlin
        now = datetime(2024, 3, 30, 12, 0)
        result = calculator.compute_next_run(daily("02:30"), now)
        assert result == datetime(2024, 3, 31, 1, 30)
        assert result > now

    def test_fall_back_overlap_fires_once(self):
        calculator = NextRunCalculator("Europe/Berlin")
        # 00:45 UTC is 02:45 CEST, after the first 02:30 of 2024-10-27.
        now = datetime(2024, 10, 27, 0, 45)
        result = calculator.compute_next_run(daily("02:30"), now)
        assert result == datetime(2024, 10, 28, 1, 30)

    def test_fall_back_first_occurrence(self):
        calculator = NextRunCalculator("Europe/Berlin")
        now = datetime(2024, 10, 27, 0, 15)
        assert calculator.compute_next_run(daily("02:30"), now) == datetime(2024, 10, 27, 0, 30)

    def test_daily_keeps_local_time_across_dst(self):
        calculator = NextRunCalculator("Europe/Berlin")
        before = calculator.compute_next_run(daily("14:00"), datetime(2024, 3, 30, 0, 0))
        after = calculator.compute_next_run(daily("14:00"), datetime(2024, 3, 31, 0, 0))
        assert before == datetime(2024, 3, 30, 13, 0)
        assert after == datetime(2024, 3, 31, 12, 0)


moments = st.datetimes(min_value=datetime(2001, 1, 1), max_value=datetime(2099, 12, 31))
times = st.builds(
    lambda h, m: f"{h:02d}:{m:02d}",
    st.integers(min_value=0, max_value=23),
    st.integers(min_value=0, max_value=59),
)


class TestStrictlyFutureProperty:
    """For any time trigger and any now, the next run is strictly after now."""

    @settings(max_examples=200)
    @given(now=moments, time=times)
    def test_daily_within_one_day(self, now, time):
        result = NextRunCalculator().compute_next_run(daily(time), now)
        assert now < result <= now + timedelta(days=1)

    @settings(max_examples=200)
    @given(now=moments, time=times, day=st.integers(min_value=0, max_value=6))
    def test_weekly_within_one_week(self, now, time, day):
        result = NextRunCalculator().compute_next_run(weekly(day, time), now)
        assert now < result <= now + timedelta(days=7)
        # croniter weekday 0 is Sunday, Python's isoweekday 7 is Sunday
        assert result.isoweekday() % 7 == day

    @settings(max_examples=200)
    @given(now=moments, time=times, day=st.integers(min_value=1, max_value=31))
    def test_monthly_within_two_months(self, now, time, day):
        result = NextRunCalculator().compute_next_run(monthly(day, time), now)
        assert now < result <= now + timedelta(days=62)
        assert result.day <= day

    @settings(max_examples=200)
    @given(
        now=moments,
        minutes=st.integers(min_value=1, max_value=60 * 24 * 30),
        offset=st.integers(min_value=0, max_value=60 * 24 * 365),
    )
    def test_custom_keeps_phase(self, now, minutes, offset):
        last_run = now - timedelta(minutes=offset)
        result = NextRunCalculator().compute_next_run(custom(minutes), now, last_run)
        interval = timedelta(minutes=minutes)
        assert now < result <= now + interval
        assert (result - last_run) % interval == timedelta(0)

    @settings(max_examples=100)
    @given(now=moments, time=times)
    def test_zoned_daily_is_future(self, now, time):
        result = NextRunCalculator("Europe/Berlin").compute_next_run(daily(time), now)
        assert now < result <= now + timedelta(days=1, hours=1)
