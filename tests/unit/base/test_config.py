"""
Unit tests for configuration, settings input and the error taxonomy.
"""
import json
import logging

import pytest

from triagecore.base.config import (
    LogConfig,
    StorageConfig,
    ToolsConfig,
    TriageConfig,
    get_config,
    load_user_tools,
    set_config,
    setup_logging,
)
from triagecore.base.exceptions import (
    ConfigurationError,
    ErrorCode,
    PersistenceError,
    ProcessLaunchError,
    TriageError,
)


def test_defaults():
    config = TriageConfig()
    assert config.tools.default_timeout_ms == 120_000
    assert config.tools.default_refresh_interval_ms == 300_000
    assert config.tools.max_stdout_chars == 20_000
    assert config.tools.max_stderr_chars == 5_000
    assert config.tools.prompt_max_chars == 6_000


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TRIAGE_TOOL_TIMEOUT_MS", "1500")
    monkeypatch.setenv("TRIAGE_TOOL_REFRESH_MS", "2500")
    monkeypatch.setenv("TRIAGE_TOOLS_FILE", str(tmp_path / "tools.json"))
    monkeypatch.setenv("TRIAGE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("TRIAGE_TELEMETRY", "false")
    monkeypatch.setenv("TRIAGE_API_PORT", "9999")

    config = TriageConfig.from_env()
    assert config.tools.default_timeout_ms == 1500
    assert config.tools.default_refresh_interval_ms == 2500
    assert config.tools.tools_file == tmp_path / "tools.json"
    assert config.storage.db_path == tmp_path / "data" / "state.db"
    assert config.telemetry.enabled is False
    assert config.api_port == 9999


def test_get_config_is_cached(monkeypatch):
    set_config(None)
    monkeypatch.setenv("TRIAGE_TOOL_TIMEOUT_MS", "777")
    first = get_config()
    assert first.tools.default_timeout_ms == 777
    assert get_config() is first


def test_resolve_tools_file(tmp_path):
    assert ToolsConfig().resolve_tools_file(str(tmp_path)) == tmp_path / ".issuetriage" / "cli_tools.json"
    explicit = tmp_path / "mine.json"
    assert ToolsConfig(tools_file=explicit).resolve_tools_file(str(tmp_path)) == explicit


def test_setup_logging_writes_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    config = TriageConfig(
        storage=StorageConfig(base_dir=tmp_path / "logs"),
        log=LogConfig(file_enabled=True),
    )
    setup_logging(config)
    logging.getLogger("triagecore.test").info("hello log")
    for handler in logging.getLogger().handlers:
        handler.flush()

    try:
        assert "hello log" in (tmp_path / "logs" / "triage.log").read_text()
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


# ============================================================================
# Settings input
# ============================================================================

def test_missing_settings_file(tmp_path):
    assert load_user_tools(tmp_path / "absent.json") == []


def test_settings_as_list(tmp_path):
    path = tmp_path / "tools.json"
    path.write_text(json.dumps([{"id": "a", "command": "true"}]))
    assert load_user_tools(path) == [{"id": "a", "command": "true"}]


def test_settings_as_object(tmp_path):
    path = tmp_path / "tools.json"
    path.write_text(json.dumps({"cliTools": [{"id": "a"}], "other": 1}))
    assert load_user_tools(path) == [{"id": "a"}]


def test_settings_parse_error(tmp_path):
    path = tmp_path / "tools.json"
    path.write_text("{ nope")
    with pytest.raises(ConfigurationError) as exc:
        load_user_tools(path)
    assert exc.value.code is ErrorCode.CONFIG_PARSE_ERROR


def test_settings_wrong_shape(tmp_path):
    path = tmp_path / "tools.json"
    path.write_text(json.dumps({"cliTools": "a"}))
    with pytest.raises(ConfigurationError) as exc:
        load_user_tools(path)
    assert exc.value.code is ErrorCode.CONFIG_INVALID


# ============================================================================
# Errors
# ============================================================================

def test_error_serialization():
    error = ProcessLaunchError("could not start", "lint", "ruff")
    assert error.http_status == 502
    assert error.to_dict() == {
        "code": "TOOL_003",
        "message": "could not start",
        "details": {"tool_id": "lint", "command": "ruff"},
        "http_status": 502,
    }
    assert json.loads(error.to_json())["code"] == "TOOL_003"
    assert str(error) == "[TOOL_003] could not start"


def test_error_hierarchy():
    assert issubclass(ConfigurationError, TriageError)
    assert PersistenceError("x", "k").code is ErrorCode.STATE_PERSIST_FAILED
    assert TriageError(ErrorCode.CONFIG_INVALID, "bad", http_status=418).http_status == 418
