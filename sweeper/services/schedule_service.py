"""Schedule business logic service.

This service is the schedule store seen by both the UI collaborator and the
scheduler loop. It validates schedule definitions, keeps ``next_run``
consistent with the trigger and the enabled flag, and serializes every
mutation behind one lock so a user edit and a tick-driven recompute never
interleave. Data access is delegated to ScheduleDAO.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from sweeper.dao.schedule_dao import ScheduleDAO
from sweeper.enums import TriggerType
from sweeper.models.domain import Schedule, ScheduleConfig, ScheduleUpdate
from sweeper.models.triggers import TimeTrigger, trigger_to_fields
from sweeper.scheduler.execution_guard import ExecutionGuard
from sweeper.scheduler.idle_monitor import IdleMonitor
from sweeper.scheduler.next_run import NextRunCalculator
from sweeper.utils import utcnow

logger = logging.getLogger(__name__)


class ScheduleValidationError(Exception):
    """Raised when a schedule definition is malformed."""

    pass


class ScheduleNotFoundError(Exception):
    """Raised when a schedule is not found."""

    pass


class SchedulePersistenceError(Exception):
    """Raised when a schedule mutation could not be stored."""

    pass


# Flat trigger keys accepted in partial updates, in both spellings.
_FLAT_TRIGGER_KEYS = {
    "trigger": "trigger",
    "frequency": "frequency",
    "time": "time",
    "day_of_week": "day_of_week",
    "dayOfWeek": "day_of_week",
    "day_of_month": "day_of_month",
    "dayOfMonth": "day_of_month",
    "interval_minutes": "interval_minutes",
    "intervalMinutes": "interval_minutes",
    "idle_minutes": "idle_minutes",
    "idleMinutes": "idle_minutes",
}


def format_validation_error(error: ValidationError) -> str:
    """Render a pydantic ValidationError as one readable line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        message = item.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or str(error)


@contextmanager
def _persistence_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Failed to %s: %s", action, e)
        raise SchedulePersistenceError(f"Failed to {action}: {e}") from e


class ScheduleService:
    """Schedule CRUD, toggling and next-run bookkeeping.

    Invariant kept by every method: an enabled time-triggered schedule has a
    ``next_run``; disabled and event-triggered schedules have none.
    """

    def __init__(
        self,
        schedule_dao: ScheduleDAO,
        calculator: NextRunCalculator | None = None,
        guard: ExecutionGuard | None = None,
        idle_monitor: IdleMonitor | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the schedule service.

        Args:
            schedule_dao: Data access object for schedules.
            calculator: Next-run calculator (UTC if not given).
            guard: Execution guard shared with the scheduler; deleting a
                schedule releases its entry.
            idle_monitor: Idle monitor shared with the scheduler; deleting
                or re-configuring a schedule forgets its idle state.
            clock: Source of "now" as naive UTC.
        """
        self.schedule_dao = schedule_dao
        self.calculator = calculator or NextRunCalculator()
        self.guard = guard
        self.idle_monitor = idle_monitor
        self._clock = clock
        self._lock = asyncio.Lock()

    def validate_config(self, config: ScheduleConfig | dict[str, Any]) -> ScheduleConfig:
        """Validate a schedule definition.

        Raises:
            ScheduleValidationError: If the definition is malformed.
        """
        if isinstance(config, ScheduleConfig):
            return config
        try:
            return ScheduleConfig.model_validate(config)
        except ValidationError as e:
            raise ScheduleValidationError(
                f"Invalid schedule: {format_validation_error(e)}"
            ) from e

    async def create_schedule(
        self,
        config: ScheduleConfig | dict[str, Any],
    ) -> Schedule:
        """Create a new schedule.

        Nothing is stored unless the whole definition validates.

        Raises:
            ScheduleValidationError: If the definition is malformed.
            SchedulePersistenceError: If the schedule could not be stored.
        """
        config = self.validate_config(config)
        next_run = None
        if config.enabled:
            next_run = self.calculator.compute_next_run(config.trigger, self._clock())

        async with self._lock:
            with _persistence_errors("create schedule"):
                schedule = await self.schedule_dao.create(
                    profile_id=config.profile_id,
                    trigger=config.trigger,
                    enabled=config.enabled,
                    next_run=next_run,
                )

        logger.info(
            "Created schedule %s (%s) for profile '%s', next run: %s",
            schedule.id,
            schedule.trigger_type,
            schedule.profile_id,
            next_run,
        )
        return schedule

    async def get_schedule(self, schedule_id: str) -> Schedule:
        """Get a schedule by ID.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist.
        """
        schedule = await self.schedule_dao.get_by_id(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(f"Schedule '{schedule_id}' not found")
        return schedule

    async def update_schedule(
        self,
        schedule_id: str,
        changes: ScheduleUpdate | dict[str, Any],
    ) -> Schedule:
        """Apply a partial update.

        Changing the trigger or re-enabling recomputes ``next_run`` from now,
        so an edit to a time that already passed today rolls forward instead
        of firing.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist.
            ScheduleValidationError: If the resulting definition is malformed.
            SchedulePersistenceError: If the update could not be stored.
        """
        async with self._lock:
            existing = await self.get_schedule(schedule_id)
            update = self._parse_update(existing, changes)

            trigger = update.trigger if update.trigger is not None else existing.trigger
            enabled = update.enabled if update.enabled is not None else existing.enabled
            trigger_changed = update.trigger is not None and update.trigger != existing.trigger

            next_run = None
            clear_next_run = False
            if not enabled or not isinstance(trigger, TimeTrigger):
                clear_next_run = True
            elif trigger_changed or not existing.enabled or existing.next_run is None:
                next_run = self.calculator.compute_next_run(
                    trigger, self._clock(), existing.last_run
                )

            with _persistence_errors("update schedule"):
                updated = await self.schedule_dao.update(
                    schedule_id,
                    profile_id=update.profile_id,
                    trigger=update.trigger,
                    enabled=update.enabled,
                    next_run=next_run,
                    clear_next_run=clear_next_run,
                )

        if updated is None:
            raise ScheduleNotFoundError(f"Schedule '{schedule_id}' not found")

        if trigger_changed and self.idle_monitor is not None:
            self.idle_monitor.forget(schedule_id)

        logger.info(
            "Updated schedule %s, next run: %s",
            schedule_id,
            updated.next_run,
        )
        return updated

    async def delete_schedule(self, schedule_id: str) -> None:
        """Delete a schedule and release any in-flight guard entry.

        Execution history is kept.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist.
            SchedulePersistenceError: If the deletion could not be stored.
        """
        async with self._lock:
            with _persistence_errors("delete schedule"):
                deleted = await self.schedule_dao.delete(schedule_id)

        if not deleted:
            raise ScheduleNotFoundError(f"Schedule '{schedule_id}' not found")

        if self.guard is not None and self.guard.release(schedule_id):
            logger.info("Released in-flight guard entry of deleted schedule %s", schedule_id)
        if self.idle_monitor is not None:
            self.idle_monitor.forget(schedule_id)

        logger.info("Deleted schedule %s", schedule_id)

    async def toggle_schedule(self, schedule_id: str, enabled: bool) -> Schedule:
        """Enable or disable a schedule.

        Enabling recomputes ``next_run`` from now without executing;
        disabling clears it and leaves ``last_run`` alone.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist.
            SchedulePersistenceError: If the change could not be stored.
        """
        async with self._lock:
            existing = await self.get_schedule(schedule_id)

            next_run = None
            if enabled:
                next_run = self.calculator.compute_next_run(
                    existing.trigger, self._clock(), existing.last_run
                )

            with _persistence_errors("toggle schedule"):
                updated = await self.schedule_dao.update(
                    schedule_id,
                    enabled=enabled,
                    next_run=next_run,
                    clear_next_run=next_run is None,
                )

        if updated is None:
            raise ScheduleNotFoundError(f"Schedule '{schedule_id}' not found")

        logger.info(
            "Schedule %s %s, next run: %s",
            schedule_id,
            "enabled" if enabled else "disabled",
            updated.next_run,
        )
        return updated

    async def list_schedules(self, enabled_only: bool = False) -> list[Schedule]:
        """List schedules, newest first."""
        return await self.schedule_dao.list_all(enabled_only=enabled_only)

    async def list_enabled(self) -> list[Schedule]:
        return await self.schedule_dao.list_all(enabled_only=True)

    async def list_upcoming(self) -> list[Schedule]:
        """Enabled time-triggered schedules, soonest ``next_run`` first."""
        return await self.schedule_dao.list_upcoming()

    async def list_by_profile(self, profile_id: str) -> list[Schedule]:
        return await self.schedule_dao.list_by_profile(profile_id)

    async def get_due_schedules(self, now: datetime | None = None) -> list[Schedule]:
        """Enabled time schedules whose ``next_run`` is at or before now."""
        return await self.schedule_dao.get_due(now or self._clock())

    async def list_event_schedules(self, trigger: TriggerType) -> list[Schedule]:
        """Enabled schedules of an event-driven trigger type."""
        with _persistence_errors("list event schedules"):
            return await self.schedule_dao.list_enabled_by_trigger(trigger)

    async def mark_dispatched(
        self,
        schedule_id: str,
        dispatched_at: datetime,
    ) -> datetime | None:
        """Arm the next occurrence of a schedule that was just dispatched.

        Called at dispatch time, not completion, so a long cleaning run
        neither delays the next occurrence nor leaves the schedule due.

        Returns:
            The new ``next_run``, or None if the schedule is gone, disabled
            or not time-based.
        """
        async with self._lock:
            schedule = await self.schedule_dao.get_by_id(schedule_id)
            if schedule is None or not schedule.enabled or not schedule.is_time_based:
                return None

            next_run = self.calculator.compute_next_run(
                schedule.trigger, self._clock(), dispatched_at
            )
            with _persistence_errors("store next run"):
                await self.schedule_dao.update_next_run(schedule_id, next_run)

        logger.debug("Schedule %s dispatched, next run: %s", schedule_id, next_run)
        return next_run

    async def mark_completed(self, schedule_id: str, last_run: datetime) -> bool:
        """Record a finished execution.

        Also arms a missing ``next_run`` in case the dispatch-time update
        did not land.

        Returns:
            False if the schedule was deleted while executing.
        """
        async with self._lock:
            schedule = await self.schedule_dao.get_by_id(schedule_id)
            if schedule is None:
                return False

            with _persistence_errors("store last run"):
                await self.schedule_dao.update_last_run(schedule_id, last_run)

                if schedule.enabled and schedule.is_time_based and schedule.next_run is None:
                    next_run = self.calculator.compute_next_run(
                        schedule.trigger, self._clock(), last_run
                    )
                    await self.schedule_dao.update_next_run(schedule_id, next_run)

        return True

    async def repair_next_runs(self, now: datetime | None = None) -> int:
        """Restore the ``next_run`` invariant across all schedules.

        Arms enabled time schedules that lack a ``next_run`` and clears
        stray values elsewhere. A ``next_run`` already in the past is left
        alone: it fires once as the catch-up run.

        Returns:
            Number of schedules changed.
        """
        now = now or self._clock()
        changed = 0

        async with self._lock:
            for schedule in await self.schedule_dao.list_all():
                armed = schedule.enabled and schedule.is_time_based
                with _persistence_errors("repair next run"):
                    if armed and schedule.next_run is None:
                        next_run = self.calculator.compute_next_run(
                            schedule.trigger, now, schedule.last_run
                        )
                        await self.schedule_dao.update_next_run(schedule.id, next_run)
                        changed += 1
                    elif not armed and schedule.next_run is not None:
                        await self.schedule_dao.update_next_run(schedule.id, None)
                        changed += 1

        if changed:
            logger.info("Repaired next run of %d schedule(s)", changed)
        return changed

    def _parse_update(
        self,
        existing: Schedule,
        changes: ScheduleUpdate | dict[str, Any],
    ) -> ScheduleUpdate:
        if isinstance(changes, ScheduleUpdate):
            return changes

        data = dict(changes)
        flat = {
            _FLAT_TRIGGER_KEYS[key]: data.pop(key)
            for key in list(data)
            if key in _FLAT_TRIGGER_KEYS and not isinstance(data[key], dict)
        }
        if flat:
            # Partial flat edits (e.g. only "time") inherit the other fields.
            merged = trigger_to_fields(existing.trigger)
            if flat.get("trigger", merged["trigger"]) != merged["trigger"]:
                merged = {"trigger": flat["trigger"]}
            merged.update(flat)
            data.update(merged)

        try:
            return ScheduleUpdate.model_validate(data)
        except ValidationError as e:
            raise ScheduleValidationError(
                f"Invalid schedule update: {format_validation_error(e)}"
            ) from e
