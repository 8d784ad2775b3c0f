"""Schedule data access operations."""

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import select

from sweeper.dao.base import BaseDAO
from sweeper.enums import TriggerType
from sweeper.models.domain import Schedule
from sweeper.models.orm import ScheduleModel
from sweeper.models.triggers import (
    trigger_from_fields,
    trigger_to_fields,
)
from sweeper.utils import utcnow


def _to_domain(model: ScheduleModel) -> Schedule:
    """Convert a ScheduleModel row into a Schedule domain model."""
    trigger = trigger_from_fields(
        trigger=model.trigger,
        frequency=model.frequency,
        time=model.time,
        day_of_week=model.day_of_week,
        day_of_month=model.day_of_month,
        interval_minutes=model.interval_minutes,
        idle_minutes=model.idle_minutes,
    )
    return Schedule(
        id=model.id,
        profile_id=model.profile_id,
        trigger=trigger,
        enabled=model.enabled,
        next_run=model.next_run,
        last_run=model.last_run,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class ScheduleDAO(BaseDAO[Schedule]):
    """Data access object for Schedule operations.

    All methods return Pydantic Schedule models, never SQLAlchemy objects.
    Validation and next-run arithmetic belong to ScheduleService.
    """

    async def create(
        self,
        profile_id: str,
        trigger: Any,
        enabled: bool,
        next_run: datetime | None,
    ) -> Schedule:
        """Create a new schedule.

        Args:
            profile_id: Cleaning profile the schedule runs.
            trigger: Validated trigger variant.
            enabled: Whether the schedule starts armed.
            next_run: Precomputed next due time, or None.

        Returns:
            Created Schedule domain model.
        """
        now = utcnow()

        async with self._db.session() as session:
            model = ScheduleModel(
                id=str(uuid4()),
                profile_id=profile_id,
                enabled=enabled,
                next_run=next_run,
                last_run=None,
                created_at=now,
                updated_at=now,
                **trigger_to_fields(trigger),
            )
            session.add(model)
            await session.flush()

            return _to_domain(model)

    async def get_by_id(self, schedule_id: str) -> Schedule | None:
        """Get schedule by ID.

        Args:
            schedule_id: Schedule identifier.

        Returns:
            Schedule domain model if found, None otherwise.
        """
        async with self._db.session() as session:
            model = await self._get_row(session, ScheduleModel, schedule_id)

            if model is None:
                return None

            return _to_domain(model)

    async def list_all(self, enabled_only: bool = False) -> list[Schedule]:
        """List schedules, newest first.

        Args:
            enabled_only: Only return enabled schedules.

        Returns:
            List of Schedule domain models.
        """
        async with self._db.session() as session:
            query = select(ScheduleModel)
            if enabled_only:
                query = query.where(ScheduleModel.enabled == True)  # noqa: E712
            query = query.order_by(ScheduleModel.created_at.desc())

            result = await session.execute(query)
            return [_to_domain(m) for m in result.scalars().all()]

    async def list_by_profile(self, profile_id: str) -> list[Schedule]:
        """List schedules that run a given profile."""
        async with self._db.session() as session:
            result = await session.execute(
                select(ScheduleModel)
                .where(ScheduleModel.profile_id == profile_id)
                .order_by(ScheduleModel.created_at.desc())
            )
            return [_to_domain(m) for m in result.scalars().all()]

    async def list_enabled_by_trigger(
        self,
        trigger: TriggerType,
    ) -> list[Schedule]:
        """List enabled schedules of one trigger type, oldest first."""
        async with self._db.session() as session:
            result = await session.execute(
                select(ScheduleModel)
                .where(ScheduleModel.trigger == trigger.value)
                .where(ScheduleModel.enabled == True)  # noqa: E712
                .order_by(ScheduleModel.created_at.asc())
            )
            return [_to_domain(m) for m in result.scalars().all()]

    async def list_upcoming(self) -> list[Schedule]:
        """List enabled time schedules ordered by next_run ascending."""
        async with self._db.session() as session:
            result = await session.execute(
                select(ScheduleModel)
                .where(ScheduleModel.enabled == True)  # noqa: E712
                .where(ScheduleModel.trigger == TriggerType.TIME.value)
                .where(ScheduleModel.next_run.is_not(None))
                .order_by(ScheduleModel.next_run.asc())
            )
            return [_to_domain(m) for m in result.scalars().all()]

    async def get_due(self, now: datetime) -> list[Schedule]:
        """Get time schedules due for execution.

        Returns schedules where enabled = true, trigger = time and
        next_run <= now, earliest first.

        Args:
            now: Current datetime to compare against.
        """
        async with self._db.session() as session:
            result = await session.execute(
                select(ScheduleModel)
                .where(ScheduleModel.enabled == True)  # noqa: E712
                .where(ScheduleModel.trigger == TriggerType.TIME.value)
                .where(ScheduleModel.next_run <= now)
                .order_by(ScheduleModel.next_run.asc())
            )
            return [_to_domain(m) for m in result.scalars().all()]

    async def update(
        self,
        schedule_id: str,
        *,
        profile_id: str | None = None,
        trigger: Any | None = None,
        enabled: bool | None = None,
        next_run: datetime | None = None,
        clear_next_run: bool = False,
    ) -> Schedule | None:
        """Update schedule definition fields.

        Only the arguments that are given change. ``next_run`` cannot be
        cleared with None alone; pass ``clear_next_run=True``.

        Returns:
            Updated Schedule, or None if the schedule does not exist.
        """
        async with self._db.session() as session:
            model = await self._get_row(session, ScheduleModel, schedule_id)

            if model is None:
                return None

            if profile_id is not None:
                model.profile_id = profile_id
            if trigger is not None:
                for column, value in trigger_to_fields(trigger).items():
                    setattr(model, column, value)
            if enabled is not None:
                model.enabled = enabled
            if clear_next_run:
                model.next_run = None
            elif next_run is not None:
                model.next_run = next_run
            model.updated_at = utcnow()
            await session.flush()

            return _to_domain(model)

    async def update_next_run(
        self,
        schedule_id: str,
        next_run: datetime | None,
    ) -> bool:
        """Set (or clear) next_run.

        Returns:
            True if schedule was found and updated, False otherwise.
        """
        async with self._db.session() as session:
            model = await self._get_row(session, ScheduleModel, schedule_id)

            if model is None:
                return False

            model.next_run = next_run
            model.updated_at = utcnow()
            return True

    async def update_last_run(
        self,
        schedule_id: str,
        last_run: datetime,
    ) -> bool:
        """Record when the schedule last ran.

        Returns:
            True if schedule was found and updated, False otherwise.
        """
        async with self._db.session() as session:
            model = await self._get_row(session, ScheduleModel, schedule_id)

            if model is None:
                return False

            model.last_run = last_run
            model.updated_at = utcnow()
            return True

    async def delete(self, schedule_id: str) -> bool:
        """Delete a schedule by ID.

        Execution logs are kept.

        Returns:
            True if schedule was found and deleted, False otherwise.
        """
        async with self._db.session() as session:
            model = await self._get_row(session, ScheduleModel, schedule_id)

            if model is None:
                return False

            await session.delete(model)
            return True
