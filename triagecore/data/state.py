# ============================================================================
# triagecore/data/state.py
# Workspace-scoped key/value state
# ============================================================================
#
# PURPOSE:
# The persistence collaborator behind the Result Store. Values are JSON
# documents stored under (scope, key); the scope identifies one workspace so
# two projects never see each other's cached tool results.
#
# IMPLEMENTATIONS:
# - MemoryStateStore: in-process dict (tests, ephemeral sessions)
# - SqliteStateStore: aiosqlite file in WAL mode, one shared connection
#
# ============================================================================

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import aiosqlite

from triagecore.base.exceptions import ErrorCode, PersistenceError, TriageError

logger = logging.getLogger(__name__)


def workspace_scope(workspace_root: Optional[str]) -> str:
    """Stable scope name for a workspace root ("global" when there is none)."""
    if not workspace_root:
        return "global"
    resolved = str(Path(workspace_root).resolve())
    return "ws-" + hashlib.sha1(resolved.encode("utf-8")).hexdigest()[:16]


class StateStore(Protocol):
    async def get(self, key: str, default: Any = None) -> Any:
        ...

    async def update(self, key: str, value: Any) -> None:
        ...


class MemoryStateStore:
    """Dict-backed store. Values are round-tripped through JSON like the durable store."""

    def __init__(self):
        self._values: Dict[str, str] = {}

    async def get(self, key: str, default: Any = None) -> Any:
        if key not in self._values:
            return default
        return json.loads(self._values[key])

    async def update(self, key: str, value: Any) -> None:
        if value is None:
            self._values.pop(key, None)
            return
        try:
            self._values[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Value for {key} is not JSON serializable: {e}", key) from e

    def keys(self):
        return list(self._values)


class SqliteStateStore:
    """
    aiosqlite-backed store for one workspace scope.

    The connection is opened lazily on first use under an asyncio.Lock
    (double-checked), so the store can be constructed outside a running loop.
    """

    def __init__(self, db_path: Path, scope: str = "global"):
        self.db_path = Path(db_path)
        self.scope = scope
        self._initialized = False
        self._init_lock: Optional[asyncio.Lock] = None
        self._db_lock: Optional[asyncio.Lock] = None
        self._db_connection: Optional[aiosqlite.Connection] = None

    async def init(self) -> None:
        if self._initialized:
            return

        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        if self._db_lock is None:
            self._db_lock = asyncio.Lock()

        async with self._init_lock:
            if self._initialized:
                return
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._db_connection = await aiosqlite.connect(str(self.db_path), timeout=5.0)
                await self._db_connection.execute("PRAGMA journal_mode=WAL;")
                await self._db_connection.execute("PRAGMA synchronous=NORMAL;")
                await self._db_connection.execute("PRAGMA busy_timeout=5000;")
                await self._db_connection.execute("""
                    CREATE TABLE IF NOT EXISTS workspace_state (
                        scope TEXT NOT NULL,
                        key TEXT NOT NULL,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL DEFAULT (datetime('now')),
                        PRIMARY KEY (scope, key)
                    )
                """)
                await self._db_connection.commit()
                self._initialized = True
                logger.info(f"[StateStore] Initialized at {self.db_path} (WAL mode, scope={self.scope})")
            except (OSError, sqlite3.Error) as e:
                logger.error(f"[StateStore] Init failed: {e}")
                raise TriageError(
                    ErrorCode.STATE_LOAD_FAILED, f"Could not open state database {self.db_path}: {e}"
                ) from e

    async def get(self, key: str, default: Any = None) -> Any:
        await self.init()
        try:
            async with self._db_lock:
                async with self._db_connection.execute(
                    "SELECT value FROM workspace_state WHERE scope = ? AND key = ?",
                    (self.scope, key),
                ) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read {key}: {e}", key, code=ErrorCode.STATE_LOAD_FAILED) from e
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            logger.warning(f"[StateStore] Discarding unreadable value for {key}: {e}")
            return default

    async def update(self, key: str, value: Any) -> None:
        await self.init()
        try:
            async with self._db_lock:
                if value is None:
                    await self._db_connection.execute(
                        "DELETE FROM workspace_state WHERE scope = ? AND key = ?",
                        (self.scope, key),
                    )
                else:
                    await self._db_connection.execute(
                        """
                        INSERT INTO workspace_state (scope, key, value, updated_at)
                        VALUES (?, ?, ?, datetime('now'))
                        ON CONFLICT(scope, key) DO UPDATE SET
                            value = excluded.value,
                            updated_at = excluded.updated_at
                        """,
                        (self.scope, key, json.dumps(value)),
                    )
                await self._db_connection.commit()
        except (TypeError, ValueError, sqlite3.Error) as e:
            raise PersistenceError(f"Failed to write {key}: {e}", key) from e

    async def close(self) -> None:
        if self._db_connection:
            try:
                await self._db_connection.close()
                logger.info("[StateStore] Connection closed.")
            except sqlite3.Error as e:
                logger.error(f"[StateStore] Error closing connection: {e}")
            finally:
                self._db_connection = None
                self._initialized = False
