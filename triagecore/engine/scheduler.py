"""
Auto-Run Scheduler: refreshes auto-run tools whose cached result is stale.

There is no background timer. The assessment pipeline calls ensure_fresh()
right before it assembles model-facing context.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional

from triagecore.data.result_store import ResultStore
from triagecore.toolkit.models import RunReason, RunResult, ToolDescriptor
from triagecore.toolkit.registry import DescriptorRegistry

logger = logging.getLogger(__name__)

RunTool = Callable[..., Awaitable[RunResult]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AutoRunScheduler:

    def __init__(
        self,
        registry: DescriptorRegistry,
        results: ResultStore,
        run_tool: RunTool,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.registry = registry
        self.results = results
        self.run_tool = run_tool
        self.now = now

    def is_stale(self, descriptor: ToolDescriptor) -> bool:
        """Stale = never run, older than its refresh interval, or last run failed."""
        existing = self.results.get(descriptor.id)
        if existing is None or not existing.success:
            return True
        last_run = existing.run_at_datetime
        if last_run is None:
            return True
        if last_run.tzinfo is None:
            last_run = last_run.replace(tzinfo=timezone.utc)
        age_ms = (self.now() - last_run).total_seconds() * 1000
        return age_ms >= descriptor.refresh_interval_ms

    async def ensure_fresh(self) -> List[str]:
        """
        Run every stale auto-run tool (forced, reason=auto) and wait for all of them.

        A failure for one tool is logged and does not stop the others; it will be
        retried on the next call because a missing or failed result stays stale.
        Returns the ids that produced a new RunResult.
        """
        stale = [d for d in self.registry.auto_run_tools() if self.is_stale(d)]
        if not stale:
            return []

        logger.info(f"[AutoRunScheduler] Refreshing {len(stale)} stale tool(s): {[d.id for d in stale]}")
        outcomes = await asyncio.gather(
            *(self.run_tool(d.id, reason=RunReason.AUTO, force=True) for d in stale),
            return_exceptions=True,
        )

        refreshed: List[str] = []
        for descriptor, outcome in zip(stale, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.warning(f"[AutoRunScheduler] Auto-run failed for {descriptor.id}: {outcome}")
                continue
            if not outcome.success:
                logger.warning(
                    f"[AutoRunScheduler] Auto-run for {descriptor.id} finished unsuccessfully "
                    f"(exit {outcome.exit_code}, timed_out={outcome.timed_out})"
                )
            refreshed.append(descriptor.id)
        return refreshed

    def next_due(self, descriptor: ToolDescriptor) -> Optional[datetime]:
        """When the cached result for descriptor goes stale (None if already stale)."""
        if self.is_stale(descriptor):
            return None
        last_run = self.results.get(descriptor.id).run_at_datetime
        return last_run + timedelta(milliseconds=descriptor.refresh_interval_ms)
