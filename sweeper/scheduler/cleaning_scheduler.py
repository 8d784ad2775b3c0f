"""Background scheduler for cleaning schedules.

This module provides the CleaningScheduler that polls the schedule store
and dispatches cleaning runs for time, startup and idle triggers. Each
admitted run executes as its own asyncio task so a slow cleaning profile
never blocks the scan loop or other schedules.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from sweeper.enums import (
    DispatchSource,
    SchedulerEventType,
    SchedulerState,
    TriggerType,
)
from sweeper.models.domain import (
    ExecutionAccepted,
    ExecutionLogEntry,
    Schedule,
    SchedulerEvent,
    SchedulerStatus,
)
from sweeper.scheduler.events import SchedulerEventBus
from sweeper.scheduler.execution_guard import ExecutionGuard
from sweeper.scheduler.idle_monitor import IdleMonitor
from sweeper.services.execution_log_service import build_entry
from sweeper.services.schedule_service import SchedulePersistenceError
from sweeper.utils import utcnow

if TYPE_CHECKING:
    from sweeper.services.execution_log_service import ExecutionLogService
    from sweeper.services.executor import CleaningExecutor
    from sweeper.services.schedule_service import ScheduleService

logger = logging.getLogger(__name__)


class AlreadyRunningError(Exception):
    """Raised when a manual run is requested for a schedule that is executing."""

    pass


class ScheduleDisabledError(Exception):
    """Raised when a manual run is requested for a disabled schedule."""

    pass


class CleaningScheduler:
    """Background scheduler for cleaning runs.

    Polls every ``poll_interval_seconds`` for due time schedules, pending
    startup schedules and idle schedules whose threshold was crossed.
    Admission goes through the shared ExecutionGuard, so the loop and
    ``execute_now`` never run one schedule twice at once.
    """

    DEFAULT_POLL_INTERVAL_SECONDS = 30
    STOP_TIMEOUT_SECONDS = 10.0

    def __init__(
        self,
        schedule_service: "ScheduleService",
        log_service: "ExecutionLogService",
        executor: "CleaningExecutor",
        guard: ExecutionGuard | None = None,
        idle_monitor: IdleMonitor | None = None,
        events: SchedulerEventBus | None = None,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        startup_delay_seconds: float = 30,
        startup_min_interval_minutes: int = 60,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the cleaning scheduler.

        Args:
            schedule_service: Schedule store.
            log_service: Execution history service.
            executor: Runs cleaning profiles.
            guard: Overlap guard; defaults to the schedule service's guard.
            idle_monitor: Idle gate; defaults to the schedule service's
                monitor, or one that never reports idle.
            events: Event bus for execution lifecycle events.
            poll_interval_seconds: Seconds between scans.
            startup_delay_seconds: Settle time before startup schedules run.
            startup_min_interval_minutes: Startup schedules that ran more
                recently than this are not re-run.
            clock: Source of "now" as naive UTC.
        """
        self.schedule_service = schedule_service
        self.log_service = log_service
        self.executor = executor
        self.guard = guard or schedule_service.guard or ExecutionGuard()
        self.idle_monitor = idle_monitor or schedule_service.idle_monitor or IdleMonitor()
        self.events = events or SchedulerEventBus()
        self.poll_interval_seconds = poll_interval_seconds
        self.startup_delay = timedelta(seconds=startup_delay_seconds)
        self.startup_min_interval = timedelta(minutes=startup_min_interval_minutes)
        self._clock = clock

        self._running = False
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._executions: set[asyncio.Task] = set()

        self._startup_armed = False
        self._startup_pending: set[str] = set()
        self._startup_ready_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the scan loop.

        Repairs stored ``next_run`` values, arms startup schedules (once per
        scheduler instance) and begins polling. Schedules that became due
        while the service was down run once on the first scan.
        """
        if self._running:
            logger.warning("CleaningScheduler is already running")
            return

        now = self._clock()
        try:
            await self.schedule_service.repair_next_runs(now)
        except SchedulePersistenceError as e:
            logger.error("Could not repair schedules on start: %s", e)

        if not self._startup_armed:
            await self._try_arm_startup(now)

        self._stop_event.clear()
        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="cleaning-scheduler")
        self._publish(SchedulerEventType.SCHEDULER_STARTED)

        logger.info(
            "CleaningScheduler started, checking every %s seconds",
            self.poll_interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the scan loop gracefully.

        In-flight executions are not interrupted; use
        ``wait_for_executions`` to await them.
        """
        if not self._running:
            logger.warning("CleaningScheduler is not running")
            return

        logger.info("Stopping CleaningScheduler...")
        self._running = False
        self._stop_event.set()

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=self.STOP_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.warning(
                    "CleaningScheduler task did not stop gracefully, cancelling"
                )
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            except asyncio.CancelledError:
                pass
            finally:
                self._task = None

        self._publish(SchedulerEventType.SCHEDULER_STOPPED)
        logger.info(
            "CleaningScheduler stopped (%d execution(s) still in flight)",
            len(self._executions),
        )

    async def status(self) -> SchedulerStatus:
        """Snapshot of the loop state and the next scheduled run."""
        upcoming = await self.schedule_service.list_upcoming()
        enabled = await self.schedule_service.list_enabled()
        first = upcoming[0] if upcoming else None

        return SchedulerStatus(
            running=self._running,
            state=SchedulerState.RUNNING if self._running else SchedulerState.STOPPED,
            next_wake=first.next_run if first else None,
            upcoming=first,
            enabled_count=len(enabled),
            in_flight=self.guard.running_ids(),
        )

    async def tick(self, now: datetime | None = None) -> list[str]:
        """Run one scan.

        Args:
            now: Scan time; defaults to the scheduler clock.

        Returns:
            Ids of the schedules dispatched by this scan.
        """
        now = now or self._clock()
        dispatched: list[str] = []

        due = await self.schedule_service.get_due_schedules(now)
        if due:
            logger.info("Found %d due schedule(s)", len(due))
        for schedule in due:
            if await self._dispatch(schedule, DispatchSource.TIME, now):
                dispatched.append(schedule.id)

        if self._running and not self._startup_armed:
            await self._try_arm_startup(now)
        dispatched.extend(await self._dispatch_startup(now))
        dispatched.extend(await self._dispatch_idle(now))

        return dispatched

    async def execute_now(self, schedule_id: str) -> ExecutionAccepted:
        """Dispatch a schedule immediately, regardless of its trigger.

        Leaves ``next_run`` untouched. Works whether or not the loop is
        running.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist.
            ScheduleDisabledError: If the schedule is disabled.
            AlreadyRunningError: If the schedule is currently executing.
        """
        schedule = await self.schedule_service.get_schedule(schedule_id)
        if not schedule.enabled:
            raise ScheduleDisabledError(f"Schedule '{schedule_id}' is disabled")

        accepted_at = self._clock()
        if not await self._dispatch(schedule, DispatchSource.MANUAL, accepted_at):
            raise AlreadyRunningError(f"Schedule '{schedule_id}' is already running")

        return ExecutionAccepted(schedule_id=schedule_id, accepted_at=accepted_at)

    async def wait_for_executions(self, timeout: float | None = None) -> bool:
        """Wait for in-flight executions to finish.

        Returns:
            True if none is left running.
        """
        pending = set(self._executions)
        if not pending:
            return True

        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            logger.warning(
                "%d cleaning execution(s) still running after %ss",
                len(still_running),
                timeout,
            )
        return not still_running

    async def _run_loop(self) -> None:
        logger.info("CleaningScheduler loop started")

        while self._running:
            try:
                await self.tick()
            except Exception as e:
                logger.exception("Error in cleaning scheduler loop: %s", e)

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._next_wait_seconds(),
                )
                break
            except asyncio.TimeoutError:
                continue

        logger.info("CleaningScheduler loop ended")

    def _next_wait_seconds(self) -> float:
        wait = float(self.poll_interval_seconds)
        if self._startup_pending and self._startup_ready_at is not None:
            until_startup = (self._startup_ready_at - self._clock()).total_seconds()
            # Past the delay, busy startup schedules wait for the next poll.
            if until_startup > 0:
                wait = min(wait, until_startup)
        return wait

    async def _try_arm_startup(self, now: datetime) -> None:
        try:
            await self._arm_startup(now)
        except SchedulePersistenceError as e:
            logger.error("Could not load startup schedules, retrying next scan: %s", e)

    async def _arm_startup(self, now: datetime) -> None:
        schedules = await self.schedule_service.list_event_schedules(TriggerType.STARTUP)
        self._startup_pending = {schedule.id for schedule in schedules}
        self._startup_ready_at = now + self.startup_delay
        self._startup_armed = True

        if self._startup_pending:
            logger.info(
                "%d startup schedule(s) will run after %.0f seconds",
                len(self._startup_pending),
                self.startup_delay.total_seconds(),
            )

    async def _dispatch_startup(self, now: datetime) -> list[str]:
        if not self._startup_pending or self._startup_ready_at is None:
            return []
        if now < self._startup_ready_at:
            return []

        schedules = await self.schedule_service.list_event_schedules(TriggerType.STARTUP)
        # Deleted or disabled schedules drop out of this startup.
        self._startup_pending &= {schedule.id for schedule in schedules}
        dispatched = []

        for schedule in schedules:
            if schedule.id not in self._startup_pending:
                continue
            if schedule.last_run and now - schedule.last_run < self.startup_min_interval:
                logger.info(
                    "Startup schedule %s last ran at %s, skipping this startup",
                    schedule.id,
                    schedule.last_run,
                )
                self._startup_pending.discard(schedule.id)
                continue
            # Busy schedules stay pending and are retried next scan.
            if await self._dispatch(schedule, DispatchSource.STARTUP, now):
                self._startup_pending.discard(schedule.id)
                dispatched.append(schedule.id)

        return dispatched

    async def _dispatch_idle(self, now: datetime) -> list[str]:
        idle_seconds = await asyncio.to_thread(self.idle_monitor.poll)
        schedules = await self.schedule_service.list_event_schedules(TriggerType.IDLE)
        dispatched = []

        for schedule in schedules:
            if not self.idle_monitor.should_fire(schedule.id, schedule.trigger.idle_minutes):
                continue
            if await self._dispatch(schedule, DispatchSource.IDLE, now):
                self.idle_monitor.mark_fired(schedule.id)
                dispatched.append(schedule.id)
                logger.info(
                    "System idle for %.0f seconds, triggered schedule %s",
                    idle_seconds,
                    schedule.id,
                )

        return dispatched

    async def _dispatch(
        self,
        schedule: Schedule,
        source: DispatchSource,
        now: datetime,
    ) -> bool:
        """Admit a schedule through the guard and start its execution task.

        Returns:
            False if the schedule is already executing.
        """
        if not self.guard.try_admit(schedule.id):
            logger.debug(
                "Schedule %s is already executing, skipping %s dispatch",
                schedule.id,
                source,
            )
            return False

        try:
            if source == DispatchSource.TIME:
                try:
                    await self.schedule_service.mark_dispatched(schedule.id, now)
                except SchedulePersistenceError as e:
                    logger.error("Could not advance schedule %s: %s", schedule.id, e)

            task = asyncio.create_task(
                self._run_execution(schedule, source),
                name=f"cleaning-{schedule.id}",
            )
        except BaseException:
            self.guard.release(schedule.id)
            raise

        self._executions.add(task)
        task.add_done_callback(self._executions.discard)

        logger.info(
            "Dispatched schedule %s (%s) for profile '%s'",
            schedule.id,
            source,
            schedule.profile_id,
        )
        return True

    async def _run_execution(self, schedule: Schedule, source: DispatchSource) -> None:
        self._publish(
            SchedulerEventType.EXECUTION_STARTED,
            schedule_id=schedule.id,
            source=source,
        )

        try:
            entry, stored = await self._execute_and_record(schedule, source)
        finally:
            self.guard.release(schedule.id)

        self._publish(
            SchedulerEventType.EXECUTION_FINISHED,
            schedule_id=schedule.id,
            source=source,
            entry=stored or entry,
        )
        if stored is not None:
            self._publish(
                SchedulerEventType.LOG_APPENDED,
                schedule_id=schedule.id,
                source=source,
                entry=stored,
            )

    async def _execute_and_record(
        self,
        schedule: Schedule,
        source: DispatchSource,
    ) -> tuple[ExecutionLogEntry, ExecutionLogEntry | None]:
        started_at = self._clock()
        result = None
        error: Exception | None = None

        try:
            result = await self.executor.run_profile(schedule.profile_id)
        except Exception as e:
            logger.error(
                "Cleaning profile '%s' of schedule %s raised: %s",
                schedule.profile_id,
                schedule.id,
                e,
            )
            error = e

        entry = build_entry(
            schedule_id=schedule.id,
            profile_id=schedule.profile_id,
            source=source,
            started_at=started_at,
            finished_at=self._clock(),
            result=result,
            error=error,
        )

        stored = None
        try:
            stored = await self.log_service.record(entry)
        except Exception:
            logger.exception("Failed to record execution of schedule %s", schedule.id)

        try:
            if not await self.schedule_service.mark_completed(schedule.id, started_at):
                logger.info("Schedule %s was deleted while executing", schedule.id)
        except Exception:
            logger.exception("Failed to update last run of schedule %s", schedule.id)

        return entry, stored

    def _publish(
        self,
        event_type: SchedulerEventType,
        schedule_id: str | None = None,
        source: DispatchSource | None = None,
        entry: ExecutionLogEntry | None = None,
    ) -> None:
        self.events.publish(
            SchedulerEvent(
                type=event_type,
                timestamp=self._clock(),
                schedule_id=schedule_id,
                source=source,
                entry=entry,
            )
        )
