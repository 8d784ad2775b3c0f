"""Next-run calculation for time-triggered schedules.

Timestamps in and out are naive UTC, matching the storage convention.
Wall-clock fields (``time``, weekday, day of month) are interpreted in the
calculator's timezone, so "daily at 14:00" means 14:00 local time across
DST changes.

Daily and weekly occurrences are resolved with croniter on local wall-clock
time. Monthly occurrences need day-of-month clamping that cron cannot
express and are computed directly.
"""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable
from zoneinfo import ZoneInfo

from croniter import croniter

from sweeper.models.triggers import (
    CustomFrequency,
    DailyFrequency,
    MonthlyFrequency,
    TimeTrigger,
    WeeklyFrequency,
)

logger = logging.getLogger(__name__)


class NextRunCalculator:
    """Computes when a schedule is next due.

    Pure: the result depends only on the trigger, ``now`` and ``last_run``.
    For time triggers the result is always strictly after ``now``.
    """

    # Fall-back overlaps can make at most a couple of wall-clock candidates
    # resolve to instants that are not in the future.
    MAX_WALL_CLOCK_ATTEMPTS = 4

    def __init__(self, tz: str | tzinfo = "UTC") -> None:
        self.tz: tzinfo = ZoneInfo(tz) if isinstance(tz, str) else tz

    def compute_next_run(
        self,
        trigger: Any,
        now: datetime,
        last_run: datetime | None = None,
    ) -> datetime | None:
        """Compute the next due time.

        Args:
            trigger: Trigger variant of the schedule.
            now: Reference time (naive UTC).
            last_run: When the schedule last ran (naive UTC), if ever.

        Returns:
            Next due time (naive UTC), or None for event-driven triggers.
        """
        if not isinstance(trigger, TimeTrigger):
            return None

        freq = trigger.schedule
        if isinstance(freq, CustomFrequency):
            return self._next_interval(freq, now, last_run)
        if isinstance(freq, DailyFrequency):
            expression = f"{freq.minute} {freq.hour} * * *"
            return self._next_wall_clock(now, lambda ref: _cron_after(expression, ref))
        if isinstance(freq, WeeklyFrequency):
            expression = f"{freq.minute} {freq.hour} * * {freq.day_of_week}"
            return self._next_wall_clock(now, lambda ref: _cron_after(expression, ref))
        if isinstance(freq, MonthlyFrequency):
            return self._next_wall_clock(now, lambda ref: _monthly_after(freq, ref))

        raise TypeError(f"Unknown frequency variant: {type(freq).__name__}")

    def _next_interval(
        self,
        freq: CustomFrequency,
        now: datetime,
        last_run: datetime | None,
    ) -> datetime:
        interval = timedelta(minutes=freq.interval_minutes)

        # No history, or history from the future after the clock moved back.
        if last_run is None or last_run > now:
            return now + interval

        candidate = last_run + interval
        if candidate > now:
            return candidate

        # Missed one or more intervals: keep the phase, skip the backlog.
        missed = (now - last_run) // interval
        return last_run + interval * (missed + 1)

    def _next_wall_clock(
        self,
        now: datetime,
        step: Callable[[datetime], datetime],
    ) -> datetime:
        """Walk local wall-clock candidates until one lands after ``now``.

        ``step(reference)`` returns the first local candidate strictly after
        ``reference``.
        """
        reference = self._to_local(now)
        for _ in range(self.MAX_WALL_CLOCK_ATTEMPTS):
            candidate = step(reference)
            resolved = self._to_utc(candidate)
            if resolved > now:
                return resolved
            logger.debug(
                "Wall-clock candidate %s resolves to %s, not after %s; skipping",
                candidate,
                resolved,
                now,
            )
            reference = candidate

        raise RuntimeError(f"Could not find a future occurrence after {now}")

    def _to_local(self, moment: datetime) -> datetime:
        return (
            moment.replace(tzinfo=timezone.utc)
            .astimezone(self.tz)
            .replace(tzinfo=None)
        )

    def _to_utc(self, wall_clock: datetime) -> datetime:
        return (
            wall_clock.replace(tzinfo=self.tz)
            .astimezone(timezone.utc)
            .replace(tzinfo=None)
        )


def _cron_after(expression: str, reference: datetime) -> datetime:
    return croniter(expression, reference).get_next(datetime)


def _monthly_after(freq: MonthlyFrequency, reference: datetime) -> datetime:
    """First monthly occurrence strictly after ``reference`` (local time)."""
    year, month = reference.year, reference.month

    # This month's occurrence, or next month's; never more than two tries.
    for _ in range(2):
        last_day = calendar.monthrange(year, month)[1]
        candidate = datetime(
            year,
            month,
            min(freq.day_of_month, last_day),
            freq.hour,
            freq.minute,
        )
        if candidate > reference:
            return candidate
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)

    raise RuntimeError(f"No monthly occurrence found after {reference}")
