"""Scheduler control and history endpoints.

Routers handle HTTP concerns only - no business logic.
"""

from typing import TYPE_CHECKING

from fastapi import APIRouter, Query

from sweeper.models.domain import ExecutionLogEntry, ExecutionStats, SchedulerStatus

if TYPE_CHECKING:
    from sweeper.scheduler.cleaning_scheduler import CleaningScheduler
    from sweeper.services.execution_log_service import ExecutionLogService


def create_scheduler_router(
    scheduler: "CleaningScheduler",
    log_service: "ExecutionLogService",
) -> APIRouter:
    """Create scheduler router with injected services.

    Args:
        scheduler: CleaningScheduler instance to control
        log_service: ExecutionLogService instance for system-wide history

    Returns:
        APIRouter with scheduler and history endpoints configured
    """
    router = APIRouter(prefix="/api", tags=["scheduler"])

    @router.get("/scheduler", response_model=SchedulerStatus)
    async def get_status() -> SchedulerStatus:
        return await scheduler.status()

    @router.post("/scheduler/start", response_model=SchedulerStatus)
    async def start_scheduler() -> SchedulerStatus:
        """Start the scan loop; a no-op if it is already running."""
        await scheduler.start()
        return await scheduler.status()

    @router.post("/scheduler/stop", response_model=SchedulerStatus)
    async def stop_scheduler() -> SchedulerStatus:
        """Stop the scan loop; in-flight runs finish in the background."""
        await scheduler.stop()
        return await scheduler.status()

    @router.get("/logs/recent", response_model=list[ExecutionLogEntry])
    async def recent_logs(
        limit: int = Query(100, ge=1, le=1000),
    ) -> list[ExecutionLogEntry]:
        return await log_service.recent_across_all(limit)

    @router.get("/stats", response_model=ExecutionStats)
    async def global_stats() -> ExecutionStats:
        return await log_service.global_stats()

    return router
