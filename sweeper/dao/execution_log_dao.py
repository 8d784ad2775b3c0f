"""Execution log data access operations."""

from datetime import datetime

from sqlalchemy import case, delete, func, select

from sweeper.dao.base import BaseDAO
from sweeper.enums import DispatchSource, ExecutionStatus
from sweeper.models.domain import ExecutionLogEntry, ExecutionStats
from sweeper.models.orm import ExecutionLogModel


def _to_domain(model: ExecutionLogModel) -> ExecutionLogEntry:
    return ExecutionLogEntry(
        id=model.id,
        schedule_id=model.schedule_id,
        profile_id=model.profile_id,
        source=DispatchSource(model.source),
        started_at=model.started_at,
        finished_at=model.finished_at,
        duration_seconds=model.duration_seconds,
        status=ExecutionStatus(model.status),
        items_cleaned=model.items_cleaned,
        space_freed=model.space_freed,
        error=model.error,
        skip_reason=model.skip_reason,
    )


class ExecutionLogDAO(BaseDAO[ExecutionLogEntry]):
    """Data access object for execution history.

    All methods return Pydantic models, never SQLAlchemy objects.
    """

    async def create(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        """Append an execution log entry.

        Args:
            entry: Validated entry; its ``id`` is ignored.

        Returns:
            The stored entry with its assigned id.
        """
        async with self._db.session() as session:
            model = ExecutionLogModel(
                schedule_id=entry.schedule_id,
                profile_id=entry.profile_id,
                source=entry.source.value,
                started_at=entry.started_at,
                finished_at=entry.finished_at,
                duration_seconds=entry.duration_seconds,
                status=entry.status.value,
                items_cleaned=entry.items_cleaned,
                space_freed=entry.space_freed,
                error=entry.error,
                skip_reason=entry.skip_reason,
            )
            session.add(model)
            await session.flush()

            return _to_domain(model)

    async def list_by_schedule(
        self,
        schedule_id: str,
        limit: int = 50,
    ) -> list[ExecutionLogEntry]:
        """Get the most recent entries of one schedule, newest first."""
        async with self._db.session() as session:
            result = await session.execute(
                select(ExecutionLogModel)
                .where(ExecutionLogModel.schedule_id == schedule_id)
                .order_by(
                    ExecutionLogModel.started_at.desc(),
                    ExecutionLogModel.id.desc(),
                )
                .limit(limit)
            )
            return [_to_domain(m) for m in result.scalars().all()]

    async def list_recent(self, limit: int = 100) -> list[ExecutionLogEntry]:
        """Get the most recent entries across all schedules, newest first."""
        async with self._db.session() as session:
            result = await session.execute(
                select(ExecutionLogModel)
                .order_by(
                    ExecutionLogModel.started_at.desc(),
                    ExecutionLogModel.id.desc(),
                )
                .limit(limit)
            )
            return [_to_domain(m) for m in result.scalars().all()]

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete entries that started before ``cutoff``.

        Returns:
            Number of deleted entries.
        """
        async with self._db.session() as session:
            result = await session.execute(
                delete(ExecutionLogModel).where(
                    ExecutionLogModel.started_at < cutoff
                )
            )
            return result.rowcount or 0

    async def trim_schedule(self, schedule_id: str, keep: int) -> int:
        """Keep only the ``keep`` most recent entries of one schedule.

        Returns:
            Number of deleted entries.
        """
        async with self._db.session() as session:
            keep_ids = (
                select(ExecutionLogModel.id)
                .where(ExecutionLogModel.schedule_id == schedule_id)
                .order_by(
                    ExecutionLogModel.started_at.desc(),
                    ExecutionLogModel.id.desc(),
                )
                .limit(keep)
            )
            result = await session.execute(
                delete(ExecutionLogModel)
                .where(ExecutionLogModel.schedule_id == schedule_id)
                .where(ExecutionLogModel.id.not_in(keep_ids))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    async def schedule_ids(self) -> list[str]:
        """Distinct schedule ids that have history."""
        async with self._db.session() as session:
            result = await session.execute(
                select(ExecutionLogModel.schedule_id).distinct()
            )
            return list(result.scalars().all())

    async def get_stats(self, schedule_id: str | None = None) -> ExecutionStats:
        """Aggregate statistics for one schedule, or globally when None."""

        def _count(status: ExecutionStatus):
            return func.coalesce(
                func.sum(case((ExecutionLogModel.status == status.value, 1), else_=0)),
                0,
            )

        aggregate = select(
            func.count(ExecutionLogModel.id),
            _count(ExecutionStatus.SUCCESS),
            _count(ExecutionStatus.FAILURE),
            _count(ExecutionStatus.SKIPPED),
            func.coalesce(func.sum(ExecutionLogModel.space_freed), 0),
            func.coalesce(func.sum(ExecutionLogModel.items_cleaned), 0),
            func.coalesce(func.avg(ExecutionLogModel.duration_seconds), 0.0),
        )
        latest = select(ExecutionLogModel).order_by(
            ExecutionLogModel.started_at.desc(),
            ExecutionLogModel.id.desc(),
        ).limit(1)

        if schedule_id is not None:
            aggregate = aggregate.where(ExecutionLogModel.schedule_id == schedule_id)
            latest = latest.where(ExecutionLogModel.schedule_id == schedule_id)

        async with self._db.session() as session:
            row = (await session.execute(aggregate)).one()
            last = (await session.execute(latest)).scalar_one_or_none()

            (
                total,
                successes,
                failures,
                skipped,
                space_freed,
                items_cleaned,
                avg_duration,
            ) = row

            return ExecutionStats(
                schedule_id=schedule_id,
                total_runs=int(total or 0),
                success_count=int(successes or 0),
                failure_count=int(failures or 0),
                skipped_count=int(skipped or 0),
                total_space_freed=int(space_freed or 0),
                total_items_cleaned=int(items_cleaned or 0),
                average_duration_seconds=round(float(avg_duration or 0.0), 3),
                last_run_at=last.started_at if last else None,
                last_status=ExecutionStatus(last.status) if last else None,
            )
