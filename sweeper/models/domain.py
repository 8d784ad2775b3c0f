"""Pydantic domain models.

These models are returned by DAOs and used throughout the service layer.
SQLAlchemy ORM objects never leave the DAO layer - DAOs always convert to
these models.
"""

from datetime import datetime
from typing import Any

from pydantic import Field, model_validator

from sweeper.enums import (
    DispatchSource,
    ExecutionStatus,
    SchedulerEventType,
    SchedulerState,
    TriggerType,
)
from sweeper.models.base import JsonModel
from sweeper.models.triggers import (
    TimeTrigger,
    Trigger,
    coerce_trigger,
    trigger_type_of,
)


class Schedule(JsonModel):
    """Cleaning schedule domain model.

    Represents a persisted rule describing when a cleaning profile runs.
    ``next_run`` is only ever set for enabled time-triggered schedules.
    """

    id: str
    profile_id: str
    trigger: Trigger
    enabled: bool = True
    next_run: datetime | None = None
    last_run: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def trigger_type(self) -> TriggerType:
        return trigger_type_of(self.trigger)

    @property
    def is_time_based(self) -> bool:
        return isinstance(self.trigger, TimeTrigger)


class ScheduleConfig(JsonModel):
    """Input for creating a schedule.

    Accepts the nested trigger variant or the flat layout used by the UI:
    ``{"profileId": "deep-clean", "trigger": "time", "frequency": "daily",
    "time": "14:00"}``.
    """

    profile_id: str = Field(min_length=1)
    trigger: Trigger
    enabled: bool = True

    @model_validator(mode="before")
    @classmethod
    def _accept_flat_trigger(cls, data: Any) -> Any:
        return coerce_trigger(data)


class ScheduleUpdate(JsonModel):
    """Partial update for a schedule; unset fields are left unchanged.

    A new trigger replaces the old one as a whole.
    """

    profile_id: str | None = Field(default=None, min_length=1)
    trigger: Trigger | None = None
    enabled: bool | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_flat_trigger(cls, data: Any) -> Any:
        return coerce_trigger(data)


class ExecutionResult(JsonModel):
    """What the cleaning executor reports back for one profile run."""

    success: bool
    items_cleaned: int = Field(default=0, ge=0)
    space_freed: int = Field(default=0, ge=0)
    error: str | None = None
    skipped: bool = False


class ExecutionLogEntry(JsonModel):
    """Execution history entry.

    ``schedule_id`` is a weak reference: entries outlive their schedule for
    reporting. ``error`` is set exactly when the run failed.
    """

    id: int | None = None
    schedule_id: str
    profile_id: str
    source: DispatchSource = DispatchSource.TIME
    started_at: datetime
    finished_at: datetime
    duration_seconds: float = 0.0
    status: ExecutionStatus
    items_cleaned: int = 0
    space_freed: int = 0
    error: str | None = None
    skip_reason: str | None = None

    @model_validator(mode="after")
    def _check_error_matches_status(self) -> "ExecutionLogEntry":
        if self.status == ExecutionStatus.FAILURE and not self.error:
            raise ValueError("failed executions must carry an error")
        if self.status != ExecutionStatus.FAILURE and self.error:
            raise ValueError("only failed executions may carry an error")
        if self.finished_at < self.started_at:
            raise ValueError("finished_at precedes started_at")
        return self


class ExecutionStats(JsonModel):
    """Aggregated execution statistics for one schedule or all of them."""

    schedule_id: str | None = None
    total_runs: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    total_space_freed: int = 0
    total_items_cleaned: int = 0
    average_duration_seconds: float = 0.0
    last_run_at: datetime | None = None
    last_status: ExecutionStatus | None = None


class ExecutionAccepted(JsonModel):
    """Acknowledgement that a manual execution was dispatched."""

    schedule_id: str
    accepted_at: datetime


class SchedulerStatus(JsonModel):
    """Snapshot of the scheduler loop."""

    running: bool
    state: SchedulerState
    next_wake: datetime | None = None
    upcoming: Schedule | None = None
    enabled_count: int = 0
    in_flight: list[str] = Field(default_factory=list)


class SchedulerEvent(JsonModel):
    """Event published to scheduler subscribers (e.g. the UI)."""

    type: SchedulerEventType
    timestamp: datetime
    schedule_id: str | None = None
    source: DispatchSource | None = None
    entry: ExecutionLogEntry | None = None
