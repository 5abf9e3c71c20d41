"""
Data records for the CLI context engine.

ToolDescriptor  - resolved, immutable definition of a runnable tool
ExecutionRequest - one call to run a tool (reason + force flag)
RunResult       - normalized outcome of one execution, cached per tool id
UserToolConfig  - validated shape of one user declaration from settings
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OutputType(str, Enum):
    RAW = "raw"
    STRUCTURED = "structured"


class ToolSource(str, Enum):
    BUILTIN = "builtin"
    USER = "user"


class RunReason(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"


# Older settings files used "text"/"json"
_OUTPUT_TYPE_ALIASES = {"text": OutputType.RAW, "json": OutputType.STRUCTURED}


@dataclass(frozen=True)
class ToolDescriptor:
    """A tool after token substitution. Never mutated once resolved."""
    id: str
    title: str
    command: str
    args: Tuple[str, ...] = ()
    description: Optional[str] = None
    cwd: Optional[str] = None
    env: Optional[Dict[str, str]] = None
    shell: bool = False
    enabled: bool = True
    auto_run: bool = False
    refresh_interval_ms: int = 300_000
    timeout_ms: Optional[int] = 120_000
    output_type: OutputType = OutputType.RAW
    source: ToolSource = ToolSource.USER

    def command_preview(self, limit: int = 80) -> str:
        preview = " ".join([self.command, *self.args]).strip()
        if len(preview) > limit:
            return preview[: limit - 3] + "..."
        return preview

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["args"] = list(self.args)
        data["output_type"] = self.output_type.value
        data["source"] = self.source.value
        return data


@dataclass(frozen=True)
class ExecutionRequest:
    tool_id: str
    reason: RunReason = RunReason.MANUAL
    force: bool = False
    # Set by the caller when the run is requested; becomes RunResult.run_at
    requested_at: Optional[datetime] = None


@dataclass
class RunResult:
    id: str
    title: str
    command: str
    args: list = field(default_factory=list)
    cwd: Optional[str] = None
    stdout: str = ""
    stderr: str = ""
    output_type: OutputType = OutputType.RAW
    structured: Any = None
    parse_error: Optional[str] = None
    exit_code: Optional[int] = None
    success: bool = False
    stdout_truncated: bool = False
    stderr_truncated: bool = False
    timed_out: bool = False
    run_at: str = ""
    duration_ms: int = 0
    source: ToolSource = ToolSource.USER

    @property
    def truncated(self) -> bool:
        return self.stdout_truncated or self.stderr_truncated

    @property
    def run_at_datetime(self) -> Optional[datetime]:
        if not self.run_at:
            return None
        try:
            return datetime.fromisoformat(self.run_at)
        except ValueError:
            return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "command": self.command,
            "args": list(self.args),
            "cwd": self.cwd,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "output_type": self.output_type.value,
            "structured": self.structured,
            "parse_error": self.parse_error,
            "exit_code": self.exit_code,
            "success": self.success,
            "truncated": self.truncated,
            "stdout_truncated": self.stdout_truncated,
            "stderr_truncated": self.stderr_truncated,
            "timed_out": self.timed_out,
            "run_at": self.run_at,
            "duration_ms": self.duration_ms,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["RunResult"]:
        """
        Rebuild a result from its persisted form.

        Every field is optional so records written by older or newer versions
        still load; unknown fields are ignored. Returns None when the record
        has no usable id.
        """
        if not isinstance(data, dict):
            return None
        tool_id = data.get("id")
        if not isinstance(tool_id, str) or not tool_id:
            return None

        output_type = _coerce_output_type(data.get("output_type"))
        try:
            source = ToolSource(data.get("source", ToolSource.USER.value))
        except ValueError:
            source = ToolSource.USER

        exit_code = data.get("exit_code")
        truncated = bool(data.get("truncated", False))
        return cls(
            id=tool_id,
            title=str(data.get("title") or tool_id),
            command=str(data.get("command") or ""),
            args=[str(a) for a in data.get("args") or []],
            cwd=data.get("cwd"),
            stdout=str(data.get("stdout") or ""),
            stderr=str(data.get("stderr") or ""),
            output_type=output_type,
            structured=data.get("structured"),
            parse_error=data.get("parse_error"),
            exit_code=exit_code if isinstance(exit_code, int) else None,
            success=bool(data.get("success", False)),
            stdout_truncated=bool(data.get("stdout_truncated", truncated)),
            stderr_truncated=bool(data.get("stderr_truncated", False)),
            timed_out=bool(data.get("timed_out", False)),
            run_at=str(data.get("run_at") or ""),
            duration_ms=int(data.get("duration_ms") or 0),
            source=source,
        )


def _coerce_output_type(value: Any) -> OutputType:
    if isinstance(value, OutputType):
        return value
    if isinstance(value, str):
        if value in _OUTPUT_TYPE_ALIASES:
            return _OUTPUT_TYPE_ALIASES[value]
        try:
            return OutputType(value)
        except ValueError:
            pass
    return OutputType.RAW


class UserToolConfig(BaseModel):
    """One entry of the user's cliTools setting (camelCase keys as written in settings)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    command: Optional[str] = None
    args: list[str] = Field(default_factory=list)
    cwd: Optional[str] = None
    env: Optional[Dict[str, Any]] = None
    enabled: Optional[bool] = None
    auto_run: Optional[bool] = Field(default=None, alias="autoRun")
    refresh_interval_ms: Optional[int] = Field(default=None, alias="refreshIntervalMs")
    timeout_ms: Optional[int] = Field(default=None, alias="timeoutMs")
    shell: Optional[bool] = None
    output_type: Optional[OutputType] = Field(default=None, alias="outputType")

    @field_validator("id", "title", "description", "command", "cwd", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("args", mode="before")
    @classmethod
    def _stringify_args(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value]
        return []

    @field_validator("env", mode="before")
    @classmethod
    def _env_mapping(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("refresh_interval_ms", "timeout_ms", mode="before")
    @classmethod
    def _non_negative_ms(cls, value: Any) -> Any:
        # Unusable values fall back to the configured default
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if not math.isfinite(value) or value < 0:
            return None
        return int(value)

    @field_validator("output_type", mode="before")
    @classmethod
    def _legacy_output_type(cls, value: Any) -> Any:
        if isinstance(value, str) and value in _OUTPUT_TYPE_ALIASES:
            return _OUTPUT_TYPE_ALIASES[value]
        return value

    @property
    def is_disable_directive(self) -> bool:
        return self.enabled is False and not self.command

    def string_env(self) -> Optional[Dict[str, str]]:
        if not self.env:
            return None
        normalized = {k: v for k, v in self.env.items() if isinstance(v, str)}
        return normalized or None
