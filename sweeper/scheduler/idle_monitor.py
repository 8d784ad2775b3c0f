"""System idle tracking for idle-triggered schedules.

The monitor samples "seconds since last user input" once per scheduler tick
and gates idle schedules so each fires at most once per idle session. A new
session starts when the sampled idle time drops, which means the user was
active between two samples.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from typing import Protocol

from sweeper.enums import IdleSourceKind

logger = logging.getLogger(__name__)


class IdleTimeSource(Protocol):
    """Anything that can report seconds since the last user input.

    ``None`` means the reading failed; it is neither idle nor activity.
    """

    def idle_seconds(self) -> float | None: ...


class NullIdleSource:
    """Reports the system as permanently active; idle schedules never fire."""

    def idle_seconds(self) -> float:
        return 0.0


class StaticIdleSource:
    """Idle source driven by the embedding application (or tests)."""

    def __init__(self, seconds: float | None = 0.0) -> None:
        self.seconds = seconds

    def idle_seconds(self) -> float | None:
        return self.seconds


class XprintidleSource:
    """Reads X11 idle time through the ``xprintidle`` binary.

    A failed call returns None. The monitor keeps its previous sample, so a
    broken read neither fires idle schedules nor counts as user activity.
    """

    TIMEOUT_SECONDS = 2.0

    def __init__(self, binary: str = "xprintidle") -> None:
        self.binary = binary

    def idle_seconds(self) -> float | None:
        try:
            completed = subprocess.run(
                [self.binary],
                capture_output=True,
                text=True,
                timeout=self.TIMEOUT_SECONDS,
                check=True,
            )
            return int(completed.stdout.strip()) / 1000.0
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            logger.warning("xprintidle call failed: %s", e)
            return None


def create_idle_source(kind: IdleSourceKind) -> IdleTimeSource:
    """Build the configured idle source, falling back to NullIdleSource."""
    if kind == IdleSourceKind.XPRINTIDLE:
        if shutil.which("xprintidle") is None:
            logger.warning(
                "xprintidle not found on PATH; idle-triggered schedules will not fire"
            )
            return NullIdleSource()
        return XprintidleSource()
    return NullIdleSource()


class IdleMonitor:
    """Idle-session gate with once-per-session firing.

    ``poll()`` is called once per tick. ``should_fire`` answers whether an
    idle schedule crossed its threshold and has not fired this session;
    the scheduler calls ``mark_fired`` once the execution is admitted.
    """

    def __init__(self, source: IdleTimeSource | None = None) -> None:
        self.source: IdleTimeSource = source or NullIdleSource()
        self._idle_seconds = 0.0
        self._fired: set[str] = set()
        self._session = 0
        self._lock = threading.Lock()

    def poll(self) -> float:
        """Sample the idle source and roll the session on activity.

        A failed reading leaves the previous sample and session in place.

        Returns:
            Current idle duration in seconds.
        """
        reading = self.source.idle_seconds()
        if reading is None:
            return self._idle_seconds
        sample = max(0.0, float(reading))

        with self._lock:
            if sample < self._idle_seconds:
                self._session += 1
                if self._fired:
                    logger.info(
                        "User activity detected (idle %.0fs -> %.0fs), re-arming %d idle schedule(s)",
                        self._idle_seconds,
                        sample,
                        len(self._fired),
                    )
                self._fired.clear()
            self._idle_seconds = sample

        return sample

    @property
    def idle_seconds(self) -> float:
        """Idle duration from the latest poll."""
        return self._idle_seconds

    @property
    def session(self) -> int:
        """Counter bumped every time a new idle session starts."""
        return self._session

    def should_fire(self, schedule_id: str, idle_minutes: int) -> bool:
        """True if the threshold is crossed and the schedule has not fired this session."""
        with self._lock:
            if schedule_id in self._fired:
                return False
            return self._idle_seconds >= idle_minutes * 60

    def mark_fired(self, schedule_id: str) -> None:
        """Record that the schedule fired during the current session."""
        with self._lock:
            self._fired.add(schedule_id)

    def forget(self, schedule_id: str) -> None:
        """Drop state for a schedule (deleted or re-configured)."""
        with self._lock:
            self._fired.discard(schedule_id)
