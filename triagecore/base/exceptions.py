# ============================================================================
# triagecore/base/exceptions.py
# Structured error taxonomy for the CLI context engine
# ============================================================================
#
# PURPOSE:
# Only two kinds of failure ever reach a caller as an exception:
# - ConfigurationError: the tool id is unknown or disabled (nothing spawned)
# - ProcessLaunchError: the OS refused to create the process
#
# Every other outcome (timeout, non-zero exit, unparseable JSON) is delivered
# as a normal RunResult so callers can inspect a failed run without try/except.
# PersistenceError is raised by state stores and always caught by the
# Result Store.
#
# ERROR CODE FORMAT:
# - TOOL_XXX: Tool resolution / launch errors
# - CONFIG_XXX: Settings input errors
# - STATE_XXX: Durable state errors
#
# ============================================================================

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    # Tool Errors
    TOOL_NOT_REGISTERED = "TOOL_001"
    TOOL_DISABLED = "TOOL_002"
    TOOL_LAUNCH_FAILED = "TOOL_003"

    # Config Errors
    CONFIG_INVALID = "CONFIG_001"
    CONFIG_PARSE_ERROR = "CONFIG_002"

    # State Errors
    STATE_LOAD_FAILED = "STATE_001"
    STATE_PERSIST_FAILED = "STATE_002"


class TriageError(Exception):
    """
    Base exception with structured error information.

    Attributes:
        code: ErrorCode enum value (e.g., "TOOL_001")
        message: Human-readable error message
        details: Optional dictionary with additional context
        http_status: Suggested HTTP status code for API responses
    """

    HTTP_STATUS_MAP: Dict[ErrorCode, int] = {
        ErrorCode.TOOL_NOT_REGISTERED: 404,  # Not Found
        ErrorCode.TOOL_DISABLED: 409,        # Conflict
        ErrorCode.TOOL_LAUNCH_FAILED: 502,   # Bad Gateway
        ErrorCode.CONFIG_INVALID: 500,
        ErrorCode.CONFIG_PARSE_ERROR: 500,
        ErrorCode.STATE_LOAD_FAILED: 500,
        ErrorCode.STATE_PERSIST_FAILED: 500,
    }

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        http_status: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.http_status = http_status or self.HTTP_STATUS_MAP.get(code, 500)
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "http_status": self.http_status,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class ConfigurationError(TriageError):
    """Raised when a tool id cannot be resolved to a runnable descriptor."""

    def __init__(
        self,
        message: str,
        tool_id: Optional[str] = None,
        code: ErrorCode = ErrorCode.TOOL_NOT_REGISTERED,
    ):
        details = {"tool_id": tool_id} if tool_id else {}
        super().__init__(code, message, details)
        self.tool_id = tool_id


class ProcessLaunchError(TriageError):
    """Raised when the operating system cannot create the child process."""

    def __init__(self, message: str, tool_id: str, command: str):
        super().__init__(
            ErrorCode.TOOL_LAUNCH_FAILED,
            message,
            {"tool_id": tool_id, "command": command},
        )
        self.tool_id = tool_id
        self.command = command


class PersistenceError(TriageError):
    """Raised by state stores when a durable read or write fails."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        code: ErrorCode = ErrorCode.STATE_PERSIST_FAILED,
    ):
        super().__init__(code, message, {"key": key} if key else {})
        self.key = key
