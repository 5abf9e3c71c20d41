"""
Unit tests for the Result Store and workspace state.
Covers:
- background persistence and rehydration (memory and SQLite)
- tolerant loading of old / partial records
- persistence failures never lose the in-memory value
"""
import pytest

from triagecore.base.exceptions import ErrorCode, PersistenceError
from triagecore.data.result_store import RESULT_STATE_KEY, ResultStore
from triagecore.data.state import MemoryStateStore, SqliteStateStore, workspace_scope
from triagecore.toolkit.models import OutputType, RunResult, ToolSource


def _result(tool_id="t", **overrides):
    fields = dict(
        id=tool_id,
        title=tool_id.upper(),
        command="echo",
        args=["hi"],
        stdout="hi",
        exit_code=0,
        success=True,
        run_at="2026-01-01T12:00:00+00:00",
        duration_ms=12,
    )
    fields.update(overrides)
    return RunResult(**fields)


class FailingState:
    async def get(self, key, default=None):
        return default

    async def update(self, key, value):
        raise PersistenceError("disk full", key)


@pytest.mark.asyncio
async def test_put_overwrites_and_persists(state):
    store = ResultStore(state)
    store.put(_result(stdout="first"))
    store.put(_result(stdout="second"))
    await store.flush()

    assert store.get("t").stdout == "second"
    assert len(store) == 1
    persisted = await state.get(RESULT_STATE_KEY)
    assert [record["stdout"] for record in persisted] == ["second"]


@pytest.mark.asyncio
async def test_rehydrate_from_state(state):
    original = _result(output_type=OutputType.STRUCTURED, structured={"a": [1, 2]}, source=ToolSource.BUILTIN)
    writer = ResultStore(state)
    writer.put(original)
    await writer.flush()

    reader = ResultStore(state)
    await reader.load_all()
    restored = reader.get("t")

    assert restored == original


@pytest.mark.asyncio
async def test_tolerant_loading(state):
    await state.update(RESULT_STATE_KEY, [
        {"id": "minimal"},
        {"id": "legacy", "output_type": "json", "exit_code": "not-a-number", "truncated": True},
        {"id": "future", "success": True, "some_new_field": 1, "source": "marketplace"},
        {"title": "no id"},
        "garbage",
    ])
    store = ResultStore(state)
    await store.load_all()

    assert sorted(r.id for r in store.all()) == ["future", "legacy", "minimal"]
    minimal = store.get("minimal")
    assert minimal.title == "minimal"
    assert minimal.success is False
    legacy = store.get("legacy")
    assert legacy.output_type is OutputType.STRUCTURED
    assert legacy.exit_code is None
    assert legacy.truncated is True
    assert store.get("future").source is ToolSource.USER


@pytest.mark.asyncio
async def test_non_list_state_is_ignored(state):
    await state.update(RESULT_STATE_KEY, {"id": "t"})
    store = ResultStore(state)
    await store.load_all()
    assert store.all() == []


@pytest.mark.asyncio
async def test_session_results_win_over_persisted(state):
    await state.update(RESULT_STATE_KEY, [_result(stdout="old").to_dict()])
    store = ResultStore(state)
    store.put(_result(stdout="new"))
    await store.load_all()
    assert store.get("t").stdout == "new"


@pytest.mark.asyncio
async def test_persistence_failure_keeps_memory_value():
    store = ResultStore(FailingState())
    store.put(_result())
    await store.flush()
    assert store.get("t").stdout == "hi"


# ============================================================================
# State stores
# ============================================================================

@pytest.mark.asyncio
async def test_memory_state_round_trips_json():
    state = MemoryStateStore()
    await state.update("k", {"a": (1, 2)})
    assert await state.get("k") == {"a": [1, 2]}
    await state.update("k", None)
    assert await state.get("k", "missing") == "missing"


@pytest.mark.asyncio
async def test_memory_state_rejects_unserializable():
    with pytest.raises(PersistenceError):
        await MemoryStateStore().update("k", {"a": object()})


@pytest.mark.asyncio
async def test_sqlite_results_survive_restart(tmp_path):
    db_path = tmp_path / "state.db"
    state = SqliteStateStore(db_path, scope="ws-one")
    store = ResultStore(state)
    store.put(_result())
    await store.flush()
    await state.close()

    reopened = SqliteStateStore(db_path, scope="ws-one")
    restored = ResultStore(reopened)
    await restored.load_all()
    await reopened.close()

    assert restored.get("t") == _result()


@pytest.mark.asyncio
async def test_sqlite_scopes_are_isolated(tmp_path):
    db_path = tmp_path / "state.db"
    one = SqliteStateStore(db_path, scope="ws-one")
    two = SqliteStateStore(db_path, scope="ws-two")
    await one.update("k", [1])

    assert await two.get("k", []) == []
    assert await one.get("k") == [1]

    await one.update("k", None)
    assert await one.get("k") is None
    await one.close()
    await two.close()


@pytest.mark.asyncio
async def test_sqlite_read_failure_is_a_persistence_error(tmp_path):
    state = SqliteStateStore(tmp_path / "state.db", scope="ws-one")
    await state.init()
    await state._db_connection.execute("DROP TABLE workspace_state")

    with pytest.raises(PersistenceError) as exc:
        await state.get(RESULT_STATE_KEY, [])
    assert exc.value.code is ErrorCode.STATE_LOAD_FAILED

    store = ResultStore(state)
    await store.load_all()
    assert store.all() == []
    await state.close()


def test_workspace_scope(tmp_path):
    assert workspace_scope(None) == "global"
    scope = workspace_scope(str(tmp_path))
    assert scope.startswith("ws-")
    assert scope == workspace_scope(str(tmp_path / "."))
    assert scope != workspace_scope(str(tmp_path / "other"))
