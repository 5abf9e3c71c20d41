"""
Descriptor Registry: merges the built-in tool table with user declarations.

Each tool is a ToolDescriptor. Built-ins and user tools go through the same
resolution path (token substitution included); the only difference is their
provenance tag. A user entry such as {"id": "builtin.workspaceSnapshot",
"enabled": false} soft-disables a built-in without touching the table below.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Sequence

from pydantic import ValidationError

from triagecore.base.config import ToolsConfig
from triagecore.base.exceptions import ConfigurationError, ErrorCode
from triagecore.toolkit.models import OutputType, ToolDescriptor, ToolSource, UserToolConfig
from triagecore.toolkit.tokens import WorkspaceContext, replace_tokens

logger = logging.getLogger(__name__)

WORKSPACE_SNAPSHOT_ID = "builtin.workspaceSnapshot"

BUILTIN_TOOL_DEFINITIONS: Sequence[ToolDescriptor] = (
    ToolDescriptor(
        id=WORKSPACE_SNAPSHOT_ID,
        title="Workspace Snapshot",
        description="Collects git status, recent commits, and manifest metadata for the workspace.",
        command="${node}",
        args=("${extensionRoot}/triagecore/toolkit/workspace_snapshot.py",),
        env={"ISSUETRIAGE_WORKSPACE_ROOT": "${workspaceRoot}"},
        shell=False,
        auto_run=True,
        refresh_interval_ms=5 * 60 * 1000,
        timeout_ms=60 * 1000,
        output_type=OutputType.STRUCTURED,
        source=ToolSource.BUILTIN,
    ),
)


class _Snapshot(NamedTuple):
    descriptors: Dict[str, ToolDescriptor]
    disabled: FrozenSet[str]


class DescriptorRegistry:
    """Holds the resolved id -> ToolDescriptor map. Replaced wholesale on reload()."""

    def __init__(self, defaults: Optional[ToolsConfig] = None):
        self._defaults = defaults or ToolsConfig()
        self._snapshot = _Snapshot({}, frozenset())

    def reload(
        self,
        builtin_definitions: Iterable[ToolDescriptor],
        user_config: Optional[Iterable[Any]],
        workspace: WorkspaceContext,
    ) -> None:
        """
        Rebuild the resolved set from scratch.

        The new maps are assembled privately and swapped in with a single
        assignment, so readers never observe a half-built registry. Calling
        this twice with the same input yields the same resolved set.
        """
        descriptors: Dict[str, ToolDescriptor] = {}
        disabled = set()

        for definition in builtin_definitions:
            descriptors[definition.id] = self._substitute(definition, workspace)

        for entry in user_config or []:
            config = self._parse_entry(entry)
            if config is None:
                continue
            tool_id = config.id
            if not tool_id:
                logger.warning("[DescriptorRegistry] Skipping tool declaration without an id")
                continue

            if config.enabled is False:
                # A bare {"id", "enabled": false} is a disable directive; a full
                # declaration that is disabled is dropped the same way.
                descriptors.pop(tool_id, None)
                disabled.add(tool_id)
                continue

            if not config.command:
                logger.warning(f"[DescriptorRegistry] Skipping tool {tool_id}: no command declared")
                continue

            descriptors[tool_id] = self._substitute(self._from_user(config), workspace)
            disabled.discard(tool_id)

        self._snapshot = _Snapshot(descriptors, frozenset(disabled))
        logger.info(
            f"[DescriptorRegistry] Resolved {len(descriptors)} tool(s), {len(disabled)} disabled"
        )

    def list(self) -> List[ToolDescriptor]:
        """Resolved descriptors ordered by title (then id)."""
        return sorted(
            self._snapshot.descriptors.values(),
            key=lambda d: (d.title.casefold(), d.id),
        )

    def get(self, tool_id: str) -> Optional[ToolDescriptor]:
        return self._snapshot.descriptors.get(tool_id)

    def resolve(self, tool_id: str) -> ToolDescriptor:
        snapshot = self._snapshot
        descriptor = snapshot.descriptors.get(tool_id)
        if descriptor is not None and descriptor.enabled:
            return descriptor
        if tool_id in snapshot.disabled or descriptor is not None:
            raise ConfigurationError(
                f"CLI tool {tool_id} is disabled.", tool_id, code=ErrorCode.TOOL_DISABLED
            )
        raise ConfigurationError(f"CLI tool {tool_id} is not registered.", tool_id)

    def disabled_ids(self) -> FrozenSet[str]:
        return self._snapshot.disabled

    def auto_run_tools(self) -> List[ToolDescriptor]:
        return [d for d in self._snapshot.descriptors.values() if d.enabled and d.auto_run]

    # ----------------------------------------------------------------------
    # Helpers
    # ----------------------------------------------------------------------
    def _parse_entry(self, entry: Any) -> Optional[UserToolConfig]:
        if isinstance(entry, UserToolConfig):
            return entry
        if not isinstance(entry, dict):
            logger.warning(f"[DescriptorRegistry] Ignoring non-object tool declaration: {entry!r}")
            return None
        try:
            return UserToolConfig.model_validate(entry)
        except ValidationError as e:
            logger.warning(
                f"[DescriptorRegistry] Ignoring invalid tool declaration {entry.get('id')!r}: "
                f"{e.error_count()} validation error(s)"
            )
            return None

    def _from_user(self, config: UserToolConfig) -> ToolDescriptor:
        return ToolDescriptor(
            id=config.id,
            title=config.title or config.id,
            description=config.description,
            command=config.command,
            args=tuple(config.args),
            cwd=config.cwd,
            env=config.string_env(),
            shell=bool(config.shell),
            enabled=True,
            auto_run=bool(config.auto_run),
            refresh_interval_ms=(
                config.refresh_interval_ms
                if config.refresh_interval_ms is not None
                else self._defaults.default_refresh_interval_ms
            ),
            timeout_ms=(
                config.timeout_ms
                if config.timeout_ms is not None
                else self._defaults.default_timeout_ms
            ),
            output_type=config.output_type or OutputType.RAW,
            source=ToolSource.USER,
        )

    @staticmethod
    def _substitute(descriptor: ToolDescriptor, workspace: WorkspaceContext) -> ToolDescriptor:
        env = None
        if descriptor.env:
            env = {key: replace_tokens(value, workspace) for key, value in descriptor.env.items()}
        return replace(
            descriptor,
            command=replace_tokens(descriptor.command, workspace),
            args=tuple(replace_tokens(arg, workspace) for arg in descriptor.args),
            cwd=replace_tokens(descriptor.cwd, workspace) if descriptor.cwd else None,
            env=env,
        )
