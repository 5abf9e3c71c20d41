"""
CLI Tool Service: the API other components use.

Wires the Descriptor Registry, Concurrency Guard, Execution Engine, Result
Store, Auto-Run Scheduler and Prompt Composer together:

    list_tools()          -> resolved descriptors sorted by title
    run_tool(id, ...)     -> RunResult (ConfigurationError / ProcessLaunchError)
    get_result(id)        -> last RunResult or None
    ensure_fresh()        -> refresh stale auto-run tools
    compose_context(n)    -> size-bounded prompt text or None

Configuration changes are not watched: whoever notices them calls reload().
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, Sequence

from triagecore.base.config import TriageConfig, get_config, load_user_tools
from triagecore.base.exceptions import ConfigurationError
from triagecore.data.result_store import ResultStore
from triagecore.data.state import MemoryStateStore, StateStore
from triagecore.engine.executor import ExecutionEngine
from triagecore.engine.guard import ConcurrencyGuard
from triagecore.engine.scheduler import AutoRunScheduler
from triagecore.reporting.composer import PromptComposer
from triagecore.telemetry import LoggingTelemetry, TelemetrySink
from triagecore.toolkit.models import ExecutionRequest, RunReason, RunResult, ToolDescriptor
from triagecore.toolkit.registry import BUILTIN_TOOL_DEFINITIONS, DescriptorRegistry
from triagecore.toolkit.tokens import WorkspaceContext

logger = logging.getLogger(__name__)


class CliToolService:

    def __init__(
        self,
        workspace: WorkspaceContext,
        state: Optional[StateStore] = None,
        telemetry: Optional[TelemetrySink] = None,
        config: Optional[TriageConfig] = None,
        builtin_definitions: Sequence[ToolDescriptor] = BUILTIN_TOOL_DEFINITIONS,
    ):
        self.config = config or get_config()
        self.workspace = workspace
        self.builtin_definitions = tuple(builtin_definitions)
        self.telemetry = telemetry or LoggingTelemetry(
            enabled=self.config.telemetry.enabled,
            history_size=self.config.telemetry.history_size,
        )

        self.registry = DescriptorRegistry(self.config.tools)
        self.state = state if state is not None else MemoryStateStore()
        self.results = ResultStore(self.state)
        self.guard = ConcurrencyGuard()
        self.engine = ExecutionEngine(workspace, self.config.tools, self.results, self.telemetry)
        self.scheduler = AutoRunScheduler(self.registry, self.results, self.run_tool)
        self.composer = PromptComposer(self.results)
        self._user_config: List[Any] = []
        self._last_requested_at: Optional[datetime] = None

    async def start(self, user_config: Optional[Iterable[Any]] = None) -> None:
        """Rehydrate persisted results, then resolve descriptors."""
        await self.results.load_all()
        self.reload(user_config)

    def reload(self, user_config: Optional[Iterable[Any]] = None) -> None:
        """
        Rebuild the registry. With no argument the settings file is re-read
        (falling back to the last known declarations if it is unreadable).
        """
        if user_config is None:
            user_config = self._read_settings()
        self._user_config = list(user_config)
        self.registry.reload(self.builtin_definitions, self._user_config, self.workspace)

    def list_tools(self) -> List[ToolDescriptor]:
        return self.registry.list()

    def get_result(self, tool_id: str) -> Optional[RunResult]:
        return self.results.get(tool_id)

    async def run_tool(
        self,
        tool_id: str,
        reason: RunReason = RunReason.MANUAL,
        force: bool = False,
    ) -> RunResult:
        """
        Run a tool by id.

        Raises:
            ConfigurationError: unknown or disabled id (nothing is spawned).
            ProcessLaunchError: the OS could not create the process.
        """
        descriptor = self.registry.resolve(tool_id)
        request = ExecutionRequest(tool_id, RunReason(reason), force, self._request_timestamp())
        return await self.guard.run_deduped(
            tool_id,
            lambda: self.engine.execute(descriptor, request),
            force=force,
        )

    async def ensure_fresh(self) -> List[str]:
        return await self.scheduler.ensure_fresh()

    def compose_context(self, max_chars: Optional[int] = None) -> Optional[str]:
        budget = self.config.tools.prompt_max_chars if max_chars is None else max_chars
        return self.composer.compose(budget)

    async def close(self) -> None:
        """Wait for outstanding persistence and release the state store."""
        await self.results.flush()
        close = getattr(self.state, "close", None)
        if close is not None:
            await close()

    def _request_timestamp(self) -> datetime:
        """Start time for a new request; strictly later than any previously issued one."""
        now = datetime.now(timezone.utc)
        last = self._last_requested_at
        if last is not None and now <= last:
            now = last + timedelta(microseconds=1)
        self._last_requested_at = now
        return now

    def _read_settings(self) -> List[Any]:
        path = self.config.tools.resolve_tools_file(self.workspace.workspace_root)
        try:
            return load_user_tools(path)
        except ConfigurationError as e:
            logger.error(f"[CliToolService] {e.message}; keeping previous tool declarations")
            return self._user_config
