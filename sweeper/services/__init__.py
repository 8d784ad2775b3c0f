"""Business logic services package."""

from .execution_log_service import (
    ExecutionLogService,
    RetentionPolicy,
    build_entry,
)
from .executor import CallableExecutor, CleaningExecutor, DryRunExecutor
from .schedule_service import (
    ScheduleNotFoundError,
    SchedulePersistenceError,
    ScheduleService,
    ScheduleValidationError,
)

__all__ = [
    "CallableExecutor",
    "CleaningExecutor",
    "DryRunExecutor",
    "ExecutionLogService",
    "RetentionPolicy",
    "ScheduleNotFoundError",
    "SchedulePersistenceError",
    "ScheduleService",
    "ScheduleValidationError",
    "build_entry",
]
