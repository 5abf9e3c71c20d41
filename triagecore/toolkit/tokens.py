"""Placeholder substitution for command, argument, cwd and env strings."""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

# Install root: parents[0] = triagecore/toolkit, parents[1] = triagecore,
# parents[2] = the directory that holds the triagecore package.
EXTENSION_ROOT = str(Path(__file__).resolve().parents[2])

_WORKSPACE_TOKEN = re.compile(r"\$\{workspaceRoot\}|\$\{workspaceFolder\}")
_EXTENSION_TOKEN = re.compile(r"\$\{extensionRoot\}")
_INTERPRETER_TOKEN = re.compile(r"\$\{node\}|\$\{python\}")


@dataclass(frozen=True)
class WorkspaceContext:
    """Ambient host state, passed in explicitly rather than read from globals."""
    workspace_root: Optional[str] = None
    extension_root: str = EXTENSION_ROOT
    interpreter: str = sys.executable
    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))

    @property
    def effective_root(self) -> str:
        return self.workspace_root or os.getcwd()


def replace_tokens(value: Optional[str], ctx: WorkspaceContext) -> str:
    """
    Resolve ${workspaceRoot}/${workspaceFolder}, ${extensionRoot} and
    ${node} (alias ${python}). Anything else, ${nope} included, is left as-is.
    """
    if not value:
        return value or ""
    # Callables keep backslashes in Windows paths from being read as escapes.
    replaced = _WORKSPACE_TOKEN.sub(lambda _: ctx.effective_root, value)
    replaced = _EXTENSION_TOKEN.sub(lambda _: ctx.extension_root, replaced)
    replaced = _INTERPRETER_TOKEN.sub(lambda _: ctx.interpreter, replaced)
    return replaced
