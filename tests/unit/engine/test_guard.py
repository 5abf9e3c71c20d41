"""
Unit tests for the Concurrency Guard.
"""
import asyncio

import pytest

from triagecore.engine.guard import ConcurrencyGuard
from triagecore.toolkit.models import RunResult


def _counting_executor(calls, delay=0.05):
    async def executor():
        calls.append(1)
        await asyncio.sleep(delay)
        return RunResult(id="t", title="t", command="true", success=True, run_at=str(len(calls)))
    return executor


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_run():
    guard = ConcurrencyGuard()
    calls = []
    executor = _counting_executor(calls)

    first, second = await asyncio.gather(
        guard.run_deduped("t", executor),
        guard.run_deduped("t", executor),
    )

    assert len(calls) == 1
    assert first is second
    assert guard.in_flight("t") is False


@pytest.mark.asyncio
async def test_different_ids_run_independently():
    guard = ConcurrencyGuard()
    calls = []
    executor = _counting_executor(calls)

    await asyncio.gather(guard.run_deduped("a", executor), guard.run_deduped("b", executor))
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_forced_call_bypasses_shared_run():
    guard = ConcurrencyGuard()
    calls = []
    executor = _counting_executor(calls)

    shared = asyncio.create_task(guard.run_deduped("t", executor))
    await asyncio.sleep(0)
    assert guard.in_flight("t") is True

    forced = await guard.run_deduped("t", executor, force=True)
    joined = await shared

    assert len(calls) == 2
    assert forced is not joined


@pytest.mark.asyncio
async def test_sequential_calls_start_new_runs():
    guard = ConcurrencyGuard()
    calls = []
    executor = _counting_executor(calls, delay=0)

    first = await guard.run_deduped("t", executor)
    second = await guard.run_deduped("t", executor)
    assert len(calls) == 2
    assert first is not second


@pytest.mark.asyncio
async def test_failure_is_shared_and_released():
    guard = ConcurrencyGuard()

    async def failing():
        await asyncio.sleep(0.01)
        raise RuntimeError("spawn failed")

    outcomes = await asyncio.gather(
        guard.run_deduped("t", failing),
        guard.run_deduped("t", failing),
        return_exceptions=True,
    )
    assert all(isinstance(o, RuntimeError) for o in outcomes)
    assert guard.in_flight("t") is False


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_run():
    guard = ConcurrencyGuard()
    calls = []
    executor = _counting_executor(calls, delay=0.1)

    impatient = asyncio.create_task(guard.run_deduped("t", executor))
    patient = asyncio.create_task(guard.run_deduped("t", executor))
    await asyncio.sleep(0.01)
    impatient.cancel()

    result = await patient
    assert result.success is True
    assert len(calls) == 1
    with pytest.raises(asyncio.CancelledError):
        await impatient
