"""Cleaning executor contract.

The scheduler does not know how cleaning works. It hands a profile id to a
``CleaningExecutor`` and waits for an ``ExecutionResult``. Executors may
raise; the scheduler records that as a failed run.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Protocol

from sweeper.models.domain import ExecutionResult

logger = logging.getLogger(__name__)


class CleaningExecutor(Protocol):
    """Runs a cleaning profile to completion."""

    async def run_profile(self, profile_id: str) -> ExecutionResult: ...


class CallableExecutor:
    """Adapts an ``async def run(profile_id) -> ExecutionResult`` function."""

    def __init__(self, func: Callable[[str], Awaitable[ExecutionResult]]) -> None:
        self._func = func

    async def run_profile(self, profile_id: str) -> ExecutionResult:
        return await self._func(profile_id)


class DryRunExecutor:
    """Executor that cleans nothing.

    Lets the service run standalone: every profile run succeeds with zero
    items. Profiles listed in ``unknown_profiles`` are reported as skipped.
    """

    def __init__(self, unknown_profiles: set[str] | None = None) -> None:
        self.unknown_profiles = unknown_profiles or set()
        self.calls: list[str] = []

    async def run_profile(self, profile_id: str) -> ExecutionResult:
        self.calls.append(profile_id)

        if profile_id in self.unknown_profiles:
            logger.info("Dry run: profile '%s' not found, skipping", profile_id)
            return ExecutionResult(
                success=False,
                skipped=True,
                error=f"Profile '{profile_id}' not found",
            )

        logger.info("Dry run: would execute cleaning profile '%s'", profile_id)
        return ExecutionResult(success=True, items_cleaned=0, space_freed=0)
