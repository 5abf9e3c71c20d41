# ============================================================================
# triagecore/engine/executor.py
# Execution Engine - one external process per run
# ============================================================================
#
# PURPOSE:
# Spawns the resolved command, bounds what it can cost us (wall-clock timeout,
# per-stream character caps) and turns whatever happened into a RunResult.
#
# FAILURE SEMANTICS:
# - OS cannot create the process  -> ProcessLaunchError (nothing recorded)
# - timeout                       -> RunResult(timed_out=True, exit_code=None)
# - non-zero exit                 -> RunResult(success=False, exit_code=N)
# - structured output not JSON    -> RunResult(success=False, parse_error=...)
#
# KEY CONCEPTS:
# - Both pipes are drained concurrently so a chatty stderr can never block
#   a process that is waiting on stdout (and vice versa).
# - Overflow beyond a cap is decoded and dropped, never queued, so memory per
#   run is bounded no matter how much the tool prints.
# - On POSIX the child leads its own session; a timeout signals the whole
#   process group so shell pipelines and grandchildren die with it.
#
# ============================================================================

from __future__ import annotations

import asyncio
import codecs
import json
import logging
import os
import signal
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from triagecore.base.config import ToolsConfig
from triagecore.base.exceptions import ProcessLaunchError
from triagecore.data.result_store import ResultStore
from triagecore.telemetry import TelemetrySink
from triagecore.toolkit.models import ExecutionRequest, OutputType, RunResult, ToolDescriptor
from triagecore.toolkit.tokens import WorkspaceContext

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


class CappedText:
    """Accumulates decoded text up to max_chars; everything after that is dropped."""

    def __init__(self, max_chars: int):
        self.max_chars = max_chars
        self.truncated = False
        self._parts: List[str] = []
        self._length = 0
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes) -> None:
        self._append(self._decoder.decode(chunk))

    def finish(self) -> None:
        self._append(self._decoder.decode(b"", final=True))

    def _append(self, text: str) -> None:
        if not text:
            return
        remaining = self.max_chars - self._length
        if remaining <= 0:
            self.truncated = True
            return
        if len(text) > remaining:
            text = text[:remaining]
            self.truncated = True
        self._parts.append(text)
        self._length += len(text)

    @property
    def text(self) -> str:
        return "".join(self._parts)


def _clean(text: str) -> str:
    return text.replace("\r\n", "\n").strip()


class ExecutionEngine:
    """Runs descriptors. Holds no per-run state between calls."""

    def __init__(
        self,
        workspace: WorkspaceContext,
        config: Optional[ToolsConfig] = None,
        result_store: Optional[ResultStore] = None,
        telemetry: Optional[TelemetrySink] = None,
    ):
        self.workspace = workspace
        self.config = config or ToolsConfig()
        self.result_store = result_store
        self.telemetry = telemetry

    async def execute(self, descriptor: ToolDescriptor, request: ExecutionRequest) -> RunResult:
        """
        Run one descriptor to completion.

        Raises:
            ProcessLaunchError: if the process could not be created.
        """
        loop = asyncio.get_running_loop()
        started_at = request.requested_at or datetime.now(timezone.utc)
        started = loop.time()

        command = descriptor.command
        args = list(descriptor.args)
        env = self._build_environment(descriptor.env)
        cwd = self._resolve_cwd(descriptor.cwd)
        timeout_ms = descriptor.timeout_ms

        logger.info(
            f"[ExecutionEngine] Running CLI tool {descriptor.id} ({descriptor.title}) "
            f"reason={request.reason.value} force={request.force}"
        )

        proc = await self._spawn(descriptor, command, args, cwd, env)

        stdout = CappedText(self.config.max_stdout_chars)
        stderr = CappedText(self.config.max_stderr_chars)
        completion = asyncio.gather(
            self._drain(proc.stdout, stdout),
            self._drain(proc.stderr, stderr),
            proc.wait(),
        )

        timed_out = False
        exit_code: Optional[int] = None
        try:
            if timeout_ms:
                _, _, exit_code = await asyncio.wait_for(asyncio.shield(completion), timeout_ms / 1000)
            else:
                _, _, exit_code = await asyncio.shield(completion)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(f"[ExecutionEngine] {descriptor.id} exceeded {timeout_ms}ms; terminating")
            await self._terminate(proc, descriptor.id)
            await self._settle(completion, descriptor.id)
        except asyncio.CancelledError:
            logger.warning(f"[ExecutionEngine] {descriptor.id} cancelled; terminating")
            await self._terminate(proc, descriptor.id)
            await self._settle(completion, descriptor.id)
            raise

        duration_ms = int(round((loop.time() - started) * 1000))
        stdout.finish()
        stderr.finish()
        cleaned_stdout = _clean(stdout.text)
        cleaned_stderr = _clean(stderr.text)

        result = RunResult(
            id=descriptor.id,
            title=descriptor.title,
            command=command,
            args=args,
            cwd=cwd,
            stdout=cleaned_stdout,
            stderr=cleaned_stderr,
            output_type=descriptor.output_type,
            exit_code=None if timed_out else exit_code,
            success=not timed_out and exit_code == 0,
            stdout_truncated=stdout.truncated,
            stderr_truncated=stderr.truncated,
            timed_out=timed_out,
            run_at=started_at.isoformat(),
            duration_ms=duration_ms,
            source=descriptor.source,
        )

        if descriptor.output_type is OutputType.STRUCTURED and cleaned_stdout:
            try:
                result.structured = json.loads(cleaned_stdout)
            except json.JSONDecodeError as e:
                result.parse_error = str(e)
                result.success = False

        self._emit(result, request)
        return result

    # ----------------------------------------------------------------------
    # Process lifecycle
    # ----------------------------------------------------------------------
    async def _spawn(
        self,
        descriptor: ToolDescriptor,
        command: str,
        args: List[str],
        cwd: str,
        env: Dict[str, str],
    ) -> asyncio.subprocess.Process:
        kwargs = dict(
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
        )
        if os.name == "posix":
            kwargs["start_new_session"] = True

        try:
            if descriptor.shell:
                return await asyncio.create_subprocess_shell(" ".join([command, *args]), **kwargs)
            return await asyncio.create_subprocess_exec(command, *args, **kwargs)
        except OSError as e:
            logger.error(f"[ExecutionEngine] {descriptor.id} failed to start: {e}")
            raise ProcessLaunchError(
                f"CLI tool {descriptor.id} could not be started: {e}",
                descriptor.id,
                command,
            ) from e

    @staticmethod
    async def _drain(stream: Optional[asyncio.StreamReader], capture: CappedText) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                break
            capture.feed(chunk)

    async def _terminate(self, proc: asyncio.subprocess.Process, tool_id: str) -> None:
        """SIGTERM, then SIGKILL after the grace period."""
        self._signal(proc, signal.SIGTERM, tool_id)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.config.kill_grace_seconds)
            return
        except asyncio.TimeoutError:
            logger.warning(f"[ExecutionEngine] {tool_id} ignored SIGTERM; killing")
        self._signal(proc, getattr(signal, "SIGKILL", signal.SIGTERM), tool_id)

    @staticmethod
    def _signal(proc: asyncio.subprocess.Process, sig: int, tool_id: str) -> None:
        if proc.returncode is not None:
            return
        try:
            if os.name == "posix":
                os.killpg(proc.pid, sig)
            elif sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.warning(f"[ExecutionEngine] Failed to signal {tool_id}: {e}")

    async def _settle(self, completion: asyncio.Future, tool_id: str) -> None:
        """Collect the close after a timeout. Pipes still held open are abandoned."""
        try:
            await asyncio.wait_for(asyncio.shield(completion), timeout=self.config.kill_grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"[ExecutionEngine] {tool_id} pipes still open after kill; abandoning output")
            completion.cancel()
            await asyncio.gather(completion, return_exceptions=True)

    # ----------------------------------------------------------------------
    # Helpers
    # ----------------------------------------------------------------------
    def _build_environment(self, overrides: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = dict(self.workspace.environ)
        if overrides:
            merged.update({k: v for k, v in overrides.items() if isinstance(v, str)})
        return merged

    def _resolve_cwd(self, cwd: Optional[str]) -> str:
        root = self.workspace.workspace_root
        if cwd and cwd.strip():
            path = Path(cwd)
            if not path.is_absolute():
                path = Path(root or os.getcwd()) / path
            if path.is_dir():
                return str(path)
            logger.warning(f"[ExecutionEngine] Working directory {path} does not exist; falling back")
        if root and Path(root).is_dir():
            return root
        return os.getcwd()

    def _emit(self, result: RunResult, request: ExecutionRequest) -> None:
        if self.result_store is not None:
            self.result_store.put(result)

        if self.telemetry is not None:
            try:
                self.telemetry.track_event(
                    "cliTool.run",
                    {
                        "id": result.id,
                        "reason": request.reason.value,
                        "source": result.source.value,
                        "success": "true" if result.success else "false",
                    },
                    {"durationMs": float(result.duration_ms)},
                )
            except Exception as e:
                logger.warning(f"[ExecutionEngine] Telemetry failed for {result.id}: {e}")

        exit_label = "n/a" if result.exit_code is None else result.exit_code
        logger.info(
            f"[ExecutionEngine] CLI tool {result.id} completed in {result.duration_ms}ms "
            f"(exit {exit_label}, success={result.success})"
        )
        if result.stderr:
            log = logger.info if result.success else logger.warning
            log(f"[ExecutionEngine] {result.id} stderr: {result.stderr}")
