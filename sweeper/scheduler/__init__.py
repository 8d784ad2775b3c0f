"""Scheduling primitives.

Next-run computation, idle tracking, the overlap guard and the event
stream. The loop itself lives in ``sweeper.scheduler.cleaning_scheduler``
because it depends on the services layer, which depends on these
primitives.
"""

from sweeper.scheduler.events import EventSubscription, SchedulerEventBus
from sweeper.scheduler.execution_guard import ExecutionGuard
from sweeper.scheduler.idle_monitor import (
    IdleMonitor,
    IdleTimeSource,
    NullIdleSource,
    StaticIdleSource,
    XprintidleSource,
    create_idle_source,
)
from sweeper.scheduler.next_run import NextRunCalculator

__all__ = [
    "EventSubscription",
    "ExecutionGuard",
    "IdleMonitor",
    "IdleTimeSource",
    "NextRunCalculator",
    "NullIdleSource",
    "SchedulerEventBus",
    "StaticIdleSource",
    "XprintidleSource",
    "create_idle_source",
]
