"""Execution history service.

Turns finished cleaning runs into log entries, applies the retention policy
after each write, and serves history and statistics. Data access is
delegated to ExecutionLogDAO.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sweeper.dao.execution_log_dao import ExecutionLogDAO
from sweeper.enums import DispatchSource, ExecutionStatus
from sweeper.models.domain import ExecutionLogEntry, ExecutionResult, ExecutionStats
from sweeper.utils import format_bytes, utcnow

logger = logging.getLogger(__name__)

REPORTED_FAILURE_MESSAGE = "Cleaning run reported failure"


@dataclass(frozen=True)
class RetentionPolicy:
    """How much execution history to keep.

    Attributes:
        max_entries_per_schedule: Newest N entries kept per schedule, or None.
        max_age_days: Entries older than this are dropped, or None.
    """

    max_entries_per_schedule: int | None = 100
    max_age_days: int | None = 90

    @property
    def enabled(self) -> bool:
        return self.max_entries_per_schedule is not None or self.max_age_days is not None


def build_entry(
    schedule_id: str,
    profile_id: str,
    source: DispatchSource,
    started_at: datetime,
    finished_at: datetime,
    result: ExecutionResult | None = None,
    error: BaseException | str | None = None,
) -> ExecutionLogEntry:
    """Map an executor outcome onto a log entry.

    A raised exception (``error``) wins over any result. A skipped result
    keeps its reason in ``skip_reason``; an unsuccessful one without a
    message still gets a generic error.
    """
    finished_at = max(finished_at, started_at)
    duration = round((finished_at - started_at).total_seconds(), 3)
    fields = dict(
        schedule_id=schedule_id,
        profile_id=profile_id,
        source=source,
        started_at=started_at,
        finished_at=finished_at,
        duration_seconds=duration,
    )

    if error is not None or result is None:
        if isinstance(error, BaseException):
            message = str(error) or type(error).__name__
        else:
            message = error or "Cleaning run produced no result"
        return ExecutionLogEntry(status=ExecutionStatus.FAILURE, error=message, **fields)

    if result.skipped:
        return ExecutionLogEntry(
            status=ExecutionStatus.SKIPPED,
            skip_reason=result.error,
            **fields,
        )

    if result.success:
        return ExecutionLogEntry(
            status=ExecutionStatus.SUCCESS,
            items_cleaned=result.items_cleaned,
            space_freed=result.space_freed,
            **fields,
        )

    return ExecutionLogEntry(
        status=ExecutionStatus.FAILURE,
        items_cleaned=result.items_cleaned,
        space_freed=result.space_freed,
        error=result.error or REPORTED_FAILURE_MESSAGE,
        **fields,
    )


class ExecutionLogService:
    """Execution history business logic.

    Handles recording of finished runs, retention and statistics.
    All database operations are delegated to the ExecutionLogDAO.
    """

    def __init__(
        self,
        log_dao: ExecutionLogDAO,
        retention: RetentionPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the execution log service.

        Args:
            log_dao: Data access object for execution history.
            retention: Retention policy applied after every write.
            clock: Source of "now" as naive UTC.
        """
        self.log_dao = log_dao
        self.retention = retention or RetentionPolicy()
        self._clock = clock

    async def record(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        """Append an entry, then apply retention.

        Args:
            entry: Entry built with ``build_entry``.

        Returns:
            The stored entry with its id.
        """
        stored = await self.log_dao.create(entry)

        if stored.status == ExecutionStatus.SUCCESS:
            logger.info(
                "Schedule %s (%s): profile '%s' cleaned %d items, freed %s in %.1fs",
                stored.schedule_id,
                stored.source,
                stored.profile_id,
                stored.items_cleaned,
                format_bytes(stored.space_freed),
                stored.duration_seconds,
            )
        elif stored.status == ExecutionStatus.SKIPPED:
            logger.info(
                "Schedule %s (%s): profile '%s' skipped: %s",
                stored.schedule_id,
                stored.source,
                stored.profile_id,
                stored.skip_reason or "no reason given",
            )
        else:
            logger.warning(
                "Schedule %s (%s): profile '%s' failed: %s",
                stored.schedule_id,
                stored.source,
                stored.profile_id,
                stored.error,
            )

        await self.prune(schedule_id=stored.schedule_id)
        return stored

    async def prune(
        self,
        now: datetime | None = None,
        schedule_id: str | None = None,
    ) -> int:
        """Apply the retention policy.

        Args:
            now: Reference time for the age limit.
            schedule_id: Limit the count trim to one schedule; all schedules
                with history are trimmed when None.

        Returns:
            Number of deleted entries.
        """
        if not self.retention.enabled:
            return 0

        deleted = 0
        if self.retention.max_age_days is not None:
            cutoff = (now or self._clock()) - timedelta(days=self.retention.max_age_days)
            deleted += await self.log_dao.delete_older_than(cutoff)

        keep = self.retention.max_entries_per_schedule
        if keep is not None:
            ids = [schedule_id] if schedule_id is not None else await self.log_dao.schedule_ids()
            for sid in ids:
                deleted += await self.log_dao.trim_schedule(sid, keep)

        if deleted:
            logger.debug("Pruned %d execution log entries", deleted)
        return deleted

    async def get_logs(self, schedule_id: str, limit: int = 50) -> list[ExecutionLogEntry]:
        """Get one schedule's history, most recent first."""
        return await self.log_dao.list_by_schedule(schedule_id, limit)

    async def recent_across_all(self, limit: int = 100) -> list[ExecutionLogEntry]:
        """Get system-wide history, most recent first."""
        return await self.log_dao.list_recent(limit)

    async def stats_for(self, schedule_id: str) -> ExecutionStats:
        return await self.log_dao.get_stats(schedule_id)

    async def global_stats(self) -> ExecutionStats:
        return await self.log_dao.get_stats(None)
