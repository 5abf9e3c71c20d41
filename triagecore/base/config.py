# ============================================================================
# triagecore/base/config.py
# Application Configuration Management
# ============================================================================
#
# PURPOSE:
# Every tunable of the CLI context engine lives here: execution defaults,
# output caps, where durable state is stored, logging and telemetry.
#
# KEY CONCEPTS:
# 1. Frozen dataclasses: one immutable section per concern
# 2. Environment variables: TRIAGE_* overrides, read once in from_env()
# 3. Singleton access: get_config() / set_config() (tests inject their own)
# 4. Settings input: load_user_tools() reads the user's tool declarations
#
# ============================================================================

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from triagecore.base.exceptions import ConfigurationError, ErrorCode

logger = logging.getLogger(__name__)


# ============================================================================
# Tool Execution Configuration
# ============================================================================

@dataclass(frozen=True)
class ToolsConfig:
    # Applied when a declaration does not carry timeoutMs (2 minutes)
    default_timeout_ms: int = 120_000

    # Applied when a declaration does not carry refreshIntervalMs (5 minutes)
    default_refresh_interval_ms: int = 300_000

    # Per-stream capture caps, counted in characters after UTF-8 decoding
    max_stdout_chars: int = 20_000
    max_stderr_chars: int = 5_000

    # Seconds between SIGTERM and SIGKILL once a run has timed out
    kill_grace_seconds: float = 2.0

    # Budget used by compose_context() when the caller passes none
    prompt_max_chars: int = 6_000

    # Explicit path to the JSON tool declarations; None means
    # <workspace>/.issuetriage/cli_tools.json
    tools_file: Optional[Path] = None

    def resolve_tools_file(self, workspace_root: Optional[str]) -> Path:
        if self.tools_file is not None:
            return self.tools_file
        base = Path(workspace_root) if workspace_root else Path.cwd()
        return base / ".issuetriage" / "cli_tools.json"


# ============================================================================
# File Storage Configuration
# ============================================================================

@dataclass(frozen=True)
class StorageConfig:
    base_dir: Path = field(default_factory=lambda: Path.home() / ".issuetriage")
    db_name: str = "state.db"

    @property
    def db_path(self) -> Path:
        return self.base_dir / self.db_name


# ============================================================================
# Logging Configuration
# ============================================================================

@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    file_enabled: bool = True
    file_name: str = "triage.log"
    max_file_size_mb: int = 10
    backup_count: int = 5


@dataclass(frozen=True)
class TelemetryConfig:
    enabled: bool = True
    # How many recent events LoggingTelemetry keeps for inspection
    history_size: int = 200


# ============================================================================
# Master Configuration Container
# ============================================================================

@dataclass
class TriageConfig:
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log: LogConfig = field(default_factory=LogConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    debug: bool = False
    api_host: str = "127.0.0.1"
    api_port: int = 8767

    @classmethod
    def from_env(cls) -> "TriageConfig":
        tools_file = os.getenv("TRIAGE_TOOLS_FILE")
        tools = ToolsConfig(
            default_timeout_ms=int(os.getenv("TRIAGE_TOOL_TIMEOUT_MS", "120000")),
            default_refresh_interval_ms=int(os.getenv("TRIAGE_TOOL_REFRESH_MS", "300000")),
            max_stdout_chars=int(os.getenv("TRIAGE_MAX_STDOUT_CHARS", "20000")),
            max_stderr_chars=int(os.getenv("TRIAGE_MAX_STDERR_CHARS", "5000")),
            prompt_max_chars=int(os.getenv("TRIAGE_PROMPT_MAX_CHARS", "6000")),
            tools_file=Path(tools_file) if tools_file else None,
        )

        base_dir = Path(os.getenv("TRIAGE_DATA_DIR", str(Path.home() / ".issuetriage")))
        storage = StorageConfig(base_dir=base_dir)

        log = LogConfig(
            level=os.getenv("TRIAGE_LOG_LEVEL", "INFO"),
            file_enabled=os.getenv("TRIAGE_LOG_FILE", "true").lower() == "true",
        )
        telemetry = TelemetryConfig(
            enabled=os.getenv("TRIAGE_TELEMETRY", "true").lower() == "true",
        )

        return cls(
            tools=tools,
            storage=storage,
            log=log,
            telemetry=telemetry,
            debug=os.getenv("TRIAGE_DEBUG", "false").lower() == "true",
            api_host=os.getenv("TRIAGE_API_HOST", "127.0.0.1"),
            api_port=int(os.getenv("TRIAGE_API_PORT", "8767")),
        )


# ============================================================================
# Global Configuration Singleton
# ============================================================================

_config: Optional[TriageConfig] = None


def get_config() -> TriageConfig:
    """Get the global configuration instance (created from the environment on first use)."""
    global _config
    if _config is None:
        _config = TriageConfig.from_env()
    return _config


def set_config(config: Optional[TriageConfig]) -> None:
    """Replace the global configuration (mainly used for testing)."""
    global _config
    _config = config


def setup_logging(config: Optional[TriageConfig] = None) -> None:
    """
    Configure Python's logging system based on our settings.

    Sets up console logging and, when enabled, a rotating file under the
    data directory. Call this once at application startup.
    """
    cfg = config or get_config()

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if cfg.log.file_enabled:
        from logging.handlers import RotatingFileHandler
        cfg.storage.base_dir.mkdir(parents=True, exist_ok=True)
        log_path = cfg.storage.base_dir / cfg.log.file_name
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=cfg.log.max_file_size_mb * 1024 * 1024,
            backupCount=cfg.log.backup_count,
        )
        handlers.append(file_handler)

    level = "DEBUG" if cfg.debug else cfg.log.level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=cfg.log.format,
        handlers=handlers,
        force=True,
    )


# ============================================================================
# Settings Input
# ============================================================================

def load_user_tools(path: Path) -> List[Any]:
    """
    Read user tool declarations from a JSON settings file.

    Accepts either a bare list of declarations or an object carrying them
    under "cliTools". A missing file means "no user tools".

    Raises:
        ConfigurationError: if the file exists but is not valid JSON or has
            the wrong shape.
    """
    if not path.exists():
        logger.debug(f"[Config] No tool settings at {path}")
        return []

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Could not read tool settings {path}: {e}",
            code=ErrorCode.CONFIG_PARSE_ERROR,
        ) from e

    if isinstance(raw, dict):
        raw = raw.get("cliTools", [])
    if not isinstance(raw, list):
        raise ConfigurationError(
            f"Tool settings {path} must be a list or an object with a 'cliTools' list",
            code=ErrorCode.CONFIG_INVALID,
        )

    logger.info(f"[Config] Loaded {len(raw)} tool declaration(s) from {path}")
    return raw
