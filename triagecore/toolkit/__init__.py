"""Tool definitions: records, token substitution and the descriptor registry."""

from triagecore.toolkit.models import (
    ExecutionRequest,
    OutputType,
    RunReason,
    RunResult,
    ToolDescriptor,
    ToolSource,
    UserToolConfig,
)
from triagecore.toolkit.registry import BUILTIN_TOOL_DEFINITIONS, DescriptorRegistry
from triagecore.toolkit.tokens import WorkspaceContext, replace_tokens

__all__ = [
    "BUILTIN_TOOL_DEFINITIONS",
    "DescriptorRegistry",
    "ExecutionRequest",
    "OutputType",
    "RunReason",
    "RunResult",
    "ToolDescriptor",
    "ToolSource",
    "UserToolConfig",
    "WorkspaceContext",
    "replace_tokens",
]
