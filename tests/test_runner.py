from __future__ import annotations

import asyncio

import pytest

from lanca.errors import RouteNotConfiguredError
from lanca.pools.registry import PoolHandle
from lanca.runtime.locks import is_pool_locked, pool_lock
from lanca.runtime.runner import ChainLimiter, CycleResult, PoolLoopRunner


class _RecordingRunner(PoolLoopRunner):
    name = "recording"

    def __init__(self, registry, **kwargs) -> None:
        super().__init__(registry, interval=0.05, **kwargs)
        self.seen: list[str] = []
        self.locked_during: dict[str, bool] = {}

    async def process_pool(self, handle: PoolHandle) -> CycleResult:
        self.locked_during[handle.name] = is_pool_locked(handle.name)
        await asyncio.sleep(0.01)
        self.seen.append(handle.name)
        return CycleResult(state="OK", action="noop")


class _FailingRunner(_RecordingRunner):
    name = "failing"

    async def process_pool(self, handle: PoolHandle) -> CycleResult:
        if handle.name == "child":
            raise RouteNotConfiguredError(2, 1, "missing reverse route")
        if handle.is_parent:
            raise ValueError("boom")
        return await super().process_pool(handle)


@pytest.mark.asyncio
async def test_run_once_holds_pool_lock_and_records_status(registry) -> None:
    runner = _RecordingRunner(registry)

    statuses = await runner.run_once()

    assert sorted(runner.seen) == ["child", "parent"]
    assert runner.locked_during == {"parent": True, "child": True}
    assert statuses["parent"].state == "OK"
    assert statuses["parent"].last_action == "noop"
    assert runner.cycles == 1


@pytest.mark.asyncio
async def test_failures_are_recorded_per_pool(registry) -> None:
    runner = _FailingRunner(registry)

    statuses = await runner.run_once()

    assert statuses["child"].state == "ERROR"
    assert "missing reverse route" in statuses["child"].last_error
    assert statuses["parent"].state == "ERROR"
    assert statuses["parent"].last_error == "ValueError: boom"


@pytest.mark.asyncio
async def test_chain_limiter_bounds_concurrency() -> None:
    limiter = ChainLimiter(1)
    active = 0
    peak = 0

    async def worker() -> None:
        nonlocal active, peak
        async with limiter.slot("localhost1"):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(worker() for _ in range(3)))

    assert peak == 1


@pytest.mark.asyncio
async def test_busy_pool_waits_for_lock(registry) -> None:
    runner = _RecordingRunner(registry)

    async with pool_lock("parent"):
        task = asyncio.create_task(runner.run_once())
        await asyncio.sleep(0.05)
        assert runner.seen == ["child"]
    await task

    assert sorted(runner.seen) == ["child", "parent"]


@pytest.mark.asyncio
async def test_start_and_stop_loop(registry) -> None:
    runner = _RecordingRunner(registry)

    await runner.start()
    await asyncio.sleep(0.1)
    assert runner.running
    await runner.stop()

    assert not runner.running
    assert runner.cycles >= 1


@pytest.mark.asyncio
async def test_disabled_runner_does_not_start(registry) -> None:
    runner = _RecordingRunner(registry, enabled=False)

    await runner.start()

    assert not runner.running
