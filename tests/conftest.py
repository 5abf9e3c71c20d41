"""Pytest configuration for the triage CLI context engine."""
import os
import sys
from pathlib import Path

import pytest

from triagecore.base.config import LogConfig, StorageConfig, TelemetryConfig, TriageConfig, set_config
from triagecore.data.state import MemoryStateStore
from triagecore.engine.service import CliToolService
from triagecore.telemetry import LoggingTelemetry
from triagecore.toolkit.models import OutputType, ToolDescriptor, ToolSource
from triagecore.toolkit.tokens import WorkspaceContext


def pytest_configure():
    # Keep tests from writing log files under the real home directory.
    os.environ.setdefault("TRIAGE_LOG_FILE", "false")


@pytest.fixture(autouse=True)
def triage_config(tmp_path):
    config = TriageConfig(
        storage=StorageConfig(base_dir=tmp_path / "data"),
        log=LogConfig(file_enabled=False),
        telemetry=TelemetryConfig(enabled=True, history_size=50),
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def workspace_root(tmp_path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def workspace(workspace_root) -> WorkspaceContext:
    return WorkspaceContext(workspace_root=str(workspace_root))


@pytest.fixture
def state():
    return MemoryStateStore()


@pytest.fixture
def telemetry():
    return LoggingTelemetry(enabled=True, history_size=50)


@pytest.fixture
def service(workspace, state, telemetry, triage_config):
    return CliToolService(workspace, state=state, telemetry=telemetry, config=triage_config)


def python_tool(code: str, tool_id: str = "test.tool", **overrides) -> ToolDescriptor:
    """Descriptor that runs `python -c code` with the test interpreter."""
    fields = dict(
        id=tool_id,
        title=overrides.pop("title", tool_id),
        command=sys.executable,
        args=("-c", code),
        timeout_ms=10_000,
        output_type=OutputType.RAW,
        source=ToolSource.USER,
    )
    fields.update(overrides)
    return ToolDescriptor(**fields)


def python_declaration(code: str, tool_id: str = "test.tool", **overrides) -> dict:
    """User settings entry (camelCase, as written in cli_tools.json) running `python -c code`."""
    entry = {"id": tool_id, "command": "${python}", "args": ["-c", code]}
    entry.update(overrides)
    return entry


@pytest.fixture
def make_tool():
    return python_tool


@pytest.fixture
def make_declaration():
    return python_declaration
