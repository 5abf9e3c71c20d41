"""
Result Store: latest RunResult per tool id, mirrored to workspace state.

The in-memory map is authoritative for the session. put() overwrites and
schedules a background write of the whole map; a failed write is logged and
leaves the in-memory value untouched. Rehydration at startup tolerates
records written by older or newer versions (every field is optional).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Set

from triagecore.base.exceptions import TriageError
from triagecore.data.state import StateStore
from triagecore.toolkit.models import RunResult
from triagecore.utils.async_helpers import create_safe_task

logger = logging.getLogger(__name__)

RESULT_STATE_KEY = "cliToolResults"


class ResultStore:

    def __init__(self, state: StateStore, key: str = RESULT_STATE_KEY):
        self._state = state
        self._key = key
        self._results: Dict[str, RunResult] = {}
        self._pending_writes: Set[asyncio.Task] = set()

    def get(self, tool_id: str) -> Optional[RunResult]:
        return self._results.get(tool_id)

    def all(self) -> List[RunResult]:
        return list(self._results.values())

    def __len__(self) -> int:
        return len(self._results)

    def put(self, result: RunResult) -> None:
        """Overwrite the cached result for result.id and persist in the background."""
        self._results[result.id] = result
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[ResultStore] No event loop for async persist")
            return
        task = create_safe_task(self.persist_all(), name="persist_cli_results")
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def load_all(self) -> None:
        """Rehydrate the map from durable state. Unreadable records are skipped."""
        try:
            persisted = await self._state.get(self._key, [])
        except (TriageError, OSError) as e:
            logger.error(f"[ResultStore] Failed to load persisted CLI results: {e}")
            return

        if not isinstance(persisted, list):
            logger.warning(f"[ResultStore] Ignoring persisted CLI results of type {type(persisted).__name__}")
            return

        restored = 0
        for item in persisted:
            result = RunResult.from_dict(item)
            if result is None:
                continue
            # Results produced during this session win over stale persisted ones.
            self._results.setdefault(result.id, result)
            restored += 1
        logger.info(f"[ResultStore] Restored {restored} CLI result(s)")

    async def persist_all(self) -> None:
        """Write the whole map. Never raises; failures are logged."""
        serialized = [result.to_dict() for result in self._results.values()]
        try:
            await self._state.update(self._key, serialized)
        except (TriageError, OSError) as e:
            logger.error(f"[ResultStore] Failed to persist CLI results: {e}")

    async def flush(self) -> None:
        """Wait for every scheduled background write to finish."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)
