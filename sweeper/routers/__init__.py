"""HTTP routers package."""

from .schedule_router import (
    ToggleScheduleRequest,
    create_schedule_router,
    to_http_error,
)
from .scheduler_router import create_scheduler_router

__all__ = [
    "ToggleScheduleRequest",
    "create_schedule_router",
    "create_scheduler_router",
    "to_http_error",
]
