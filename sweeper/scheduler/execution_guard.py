"""Overlap guard for schedule executions."""

import threading


class ExecutionGuard:
    """Tracks schedules that are currently executing.

    Admission is an atomic test-and-set, so the tick loop and manual
    "execute now" requests can never run the same schedule twice at once.
    """

    def __init__(self) -> None:
        self._running: set[str] = set()
        self._lock = threading.Lock()

    def try_admit(self, schedule_id: str) -> bool:
        """Mark a schedule as executing.

        Args:
            schedule_id: Schedule to admit.

        Returns:
            True if admitted, False if it is already executing.
        """
        with self._lock:
            if schedule_id in self._running:
                return False
            self._running.add(schedule_id)
            return True

    def release(self, schedule_id: str) -> bool:
        """Clear the executing mark.

        Returns:
            True if the schedule was marked, False otherwise.
        """
        with self._lock:
            if schedule_id not in self._running:
                return False
            self._running.remove(schedule_id)
            return True

    def is_running(self, schedule_id: str) -> bool:
        with self._lock:
            return schedule_id in self._running

    def running_ids(self) -> list[str]:
        """Sorted snapshot of executing schedule ids."""
        with self._lock:
            return sorted(self._running)

    def clear_all(self) -> None:
        """Clear all marks (useful for testing)."""
        with self._lock:
            self._running.clear()
