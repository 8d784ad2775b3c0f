"""Data Access Objects package."""

from .base import BaseDAO
from .execution_log_dao import ExecutionLogDAO
from .schedule_dao import ScheduleDAO

__all__ = [
    "BaseDAO",
    "ExecutionLogDAO",
    "ScheduleDAO",
]
