"""StrEnum definitions for type-safe constants."""

from enum import StrEnum


class TriggerType(StrEnum):
    """What makes a schedule due."""

    TIME = "time"
    STARTUP = "startup"
    IDLE = "idle"


class Frequency(StrEnum):
    """Sub-kind of a time trigger."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class ExecutionStatus(StrEnum):
    """Outcome of a finished cleaning run."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class DispatchSource(StrEnum):
    """Path that dispatched an execution."""

    TIME = "time"
    STARTUP = "startup"
    IDLE = "idle"
    MANUAL = "manual"


class SchedulerState(StrEnum):
    """Scheduler loop lifecycle states."""

    STOPPED = "stopped"
    RUNNING = "running"


class SchedulerEventType(StrEnum):
    """Events published on the scheduler event stream."""

    SCHEDULER_STARTED = "scheduler_started"
    SCHEDULER_STOPPED = "scheduler_stopped"
    EXECUTION_STARTED = "execution_started"
    EXECUTION_FINISHED = "execution_finished"
    LOG_APPENDED = "log_appended"


class IdleSourceKind(StrEnum):
    """Supported system idle time sources."""

    NONE = "none"
    XPRINTIDLE = "xprintidle"
