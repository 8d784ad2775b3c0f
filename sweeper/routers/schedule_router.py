"""Schedule API endpoints.

Routers handle HTTP concerns only - no business logic.
All business logic is delegated to ScheduleService, ExecutionLogService
and CleaningScheduler.
"""

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Body, HTTPException, Query, status

from sweeper.models.base import JsonModel
from sweeper.models.domain import (
    ExecutionAccepted,
    ExecutionLogEntry,
    ExecutionStats,
    Schedule,
)
from sweeper.scheduler.cleaning_scheduler import (
    AlreadyRunningError,
    ScheduleDisabledError,
)
from sweeper.services.schedule_service import (
    ScheduleNotFoundError,
    SchedulePersistenceError,
    ScheduleValidationError,
)

if TYPE_CHECKING:
    from sweeper.scheduler.cleaning_scheduler import CleaningScheduler
    from sweeper.services.execution_log_service import ExecutionLogService
    from sweeper.services.schedule_service import ScheduleService


class ToggleScheduleRequest(JsonModel):
    """Request model for enabling or disabling a schedule."""

    enabled: bool


def to_http_error(error: Exception) -> HTTPException:
    """Map a service exception onto an HTTP error."""
    if isinstance(error, ScheduleValidationError):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, ScheduleNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (ScheduleDisabledError, AlreadyRunningError)):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, SchedulePersistenceError):
        return HTTPException(status_code=503, detail=str(error))
    raise error


SERVICE_ERRORS = (
    ScheduleValidationError,
    ScheduleNotFoundError,
    ScheduleDisabledError,
    AlreadyRunningError,
    SchedulePersistenceError,
)


def create_schedule_router(
    schedule_service: "ScheduleService",
    log_service: "ExecutionLogService",
    scheduler: "CleaningScheduler",
) -> APIRouter:
    """Create schedule router with injected services.

    Args:
        schedule_service: ScheduleService instance for schedule CRUD
        log_service: ExecutionLogService instance for history and stats
        scheduler: CleaningScheduler instance for manual runs

    Returns:
        APIRouter with schedule endpoints configured
    """
    router = APIRouter(prefix="/api/schedules", tags=["schedules"])

    @router.get("", response_model=list[Schedule])
    async def list_schedules(
        enabled_only: bool = Query(False, alias="enabledOnly"),
    ) -> list[Schedule]:
        return await schedule_service.list_schedules(enabled_only=enabled_only)

    @router.get("/upcoming", response_model=list[Schedule])
    async def list_upcoming() -> list[Schedule]:
        """Enabled time schedules, soonest first."""
        return await schedule_service.list_upcoming()

    @router.get("/profile/{profile_id}", response_model=list[Schedule])
    async def list_by_profile(profile_id: str) -> list[Schedule]:
        return await schedule_service.list_by_profile(profile_id)

    @router.post("", response_model=Schedule, status_code=status.HTTP_201_CREATED)
    async def create_schedule(body: dict[str, Any] = Body(...)) -> Schedule:
        """Create a schedule.

        Accepts the nested trigger layout or the flat one
        (``{"profileId", "trigger", "frequency", "time", ...}``).

        Raises:
            HTTPException: 422 if the definition is invalid
        """
        try:
            return await schedule_service.create_schedule(body)
        except SERVICE_ERRORS as e:
            raise to_http_error(e) from e

    @router.get("/{schedule_id}", response_model=Schedule)
    async def get_schedule(schedule_id: str) -> Schedule:
        try:
            return await schedule_service.get_schedule(schedule_id)
        except SERVICE_ERRORS as e:
            raise to_http_error(e) from e

    @router.patch("/{schedule_id}", response_model=Schedule)
    async def update_schedule(
        schedule_id: str,
        body: dict[str, Any] = Body(...),
    ) -> Schedule:
        """Apply a partial update.

        Raises:
            HTTPException: 404 if not found, 422 if the result is invalid
        """
        try:
            return await schedule_service.update_schedule(schedule_id, body)
        except SERVICE_ERRORS as e:
            raise to_http_error(e) from e

    @router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_schedule(schedule_id: str) -> None:
        try:
            await schedule_service.delete_schedule(schedule_id)
        except SERVICE_ERRORS as e:
            raise to_http_error(e) from e

    @router.post("/{schedule_id}/toggle", response_model=Schedule)
    async def toggle_schedule(
        schedule_id: str,
        request: ToggleScheduleRequest,
    ) -> Schedule:
        try:
            return await schedule_service.toggle_schedule(schedule_id, request.enabled)
        except SERVICE_ERRORS as e:
            raise to_http_error(e) from e

    @router.post(
        "/{schedule_id}/run",
        response_model=ExecutionAccepted,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def run_now(schedule_id: str) -> ExecutionAccepted:
        """Dispatch a schedule immediately.

        Raises:
            HTTPException: 404 if not found, 409 if disabled or already running
        """
        try:
            return await scheduler.execute_now(schedule_id)
        except SERVICE_ERRORS as e:
            raise to_http_error(e) from e

    @router.get("/{schedule_id}/logs", response_model=list[ExecutionLogEntry])
    async def get_logs(
        schedule_id: str,
        limit: int = Query(50, ge=1, le=1000),
    ) -> list[ExecutionLogEntry]:
        """Execution history of one schedule, newest first.

        History outlives deleted schedules, so unknown ids return an empty list.
        """
        return await log_service.get_logs(schedule_id, limit)

    @router.get("/{schedule_id}/stats", response_model=ExecutionStats)
    async def get_stats(schedule_id: str) -> ExecutionStats:
        return await log_service.stats_for(schedule_id)

    return router
