"""
Concurrency Guard: at most one non-forced execution in flight per tool id.

Non-forced callers that arrive while a run is outstanding attach to it and
receive the very same RunResult. Forced callers always start a fresh run and
never consult or update the shared map, so a forced run may race with an
in-flight non-forced one; whichever finishes last is what the Result Store keeps.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict

from triagecore.toolkit.models import RunResult

logger = logging.getLogger(__name__)

Executor = Callable[[], Awaitable[RunResult]]


class ConcurrencyGuard:

    def __init__(self):
        self._pending: Dict[str, asyncio.Task] = {}

    def in_flight(self, tool_id: str) -> bool:
        return tool_id in self._pending

    async def run_deduped(self, tool_id: str, executor: Executor, force: bool = False) -> RunResult:
        if force:
            return await executor()

        task = self._pending.get(tool_id)
        if task is None:
            task = asyncio.ensure_future(executor())
            self._pending[tool_id] = task
            task.add_done_callback(lambda t: self._release(tool_id, t))
        else:
            logger.debug(f"[ConcurrencyGuard] Joining in-flight run for {tool_id}")

        # A waiter being cancelled must not cancel the run other callers share.
        return await asyncio.shield(task)

    def _release(self, tool_id: str, task: asyncio.Task) -> None:
        if self._pending.get(tool_id) is task:
            del self._pending[tool_id]
        # Retrieve the exception so an unobserved failure is not reported twice.
        if not task.cancelled():
            task.exception()
