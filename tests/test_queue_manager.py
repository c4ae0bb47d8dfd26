from __future__ import annotations

import asyncio

import pytest

from lanca.errors import BatchFailedError, BatchInProgressError, MinAmountError
from lanca.pools.models import PoolSnapshot
from lanca.queue.manager import BatchState, QueueLimits, QueueManager


def _manager(**limits: int) -> QueueManager:
    return QueueManager({"parent": QueueLimits(**limits)})


def _snapshot(deposits: int, withdrawals: int) -> PoolSnapshot:
    return PoolSnapshot(
        pool="parent",
        block_number=1,
        active_balance=0,
        target_balance=0,
        deposit_queue_length=deposits,
        withdrawal_queue_length=withdrawals,
    )


def test_enqueue_rejects_amount_below_minimum() -> None:
    manager = _manager(min_deposit_amount=100, min_withdrawal_amount=99)

    with pytest.raises(MinAmountError):
        manager.enqueue_deposit("parent", "0xa", 99)
    with pytest.raises(MinAmountError):
        manager.enqueue_withdrawal("parent", "0xa", 98)

    manager.enqueue_deposit("parent", "0xa", 100)
    manager.enqueue_withdrawal("parent", "0xa", 99)
    assert len(manager.deposits("parent")) == 1
    assert len(manager.withdrawals("parent")) == 1


def test_zero_minimum_is_always_eligible() -> None:
    manager = _manager()

    assert manager.is_ready_to_batch("parent")
    assert manager.is_ready_to_batch("parent", _snapshot(0, 0))


def test_batch_threshold_uses_either_side() -> None:
    manager = _manager(min_deposit_queue_length=3, min_withdrawal_queue_length=2)

    assert not manager.is_ready_to_batch("parent", _snapshot(2, 1))
    assert manager.is_ready_to_batch("parent", _snapshot(3, 0))
    assert manager.is_ready_to_batch("parent", _snapshot(0, 2))


def test_blocked_deposit_side_is_not_eligible() -> None:
    manager = _manager(min_deposit_queue_length=1, min_withdrawal_queue_length=5)

    assert not manager.is_ready_to_batch("parent", _snapshot(4, 0), deposit_blocked=True)
    assert manager.is_ready_to_batch("parent", _snapshot(0, 5), deposit_blocked=True)


def test_blocked_queued_deposits_hold_back_withdrawals() -> None:
    manager = _manager()

    assert not manager.is_ready_to_batch("parent", _snapshot(1, 3), deposit_blocked=True)
    assert manager.is_ready_to_batch("parent", _snapshot(1, 3))


@pytest.mark.asyncio
async def test_drain_returns_entries_and_empties_queue() -> None:
    manager = _manager()
    manager.enqueue_deposit("parent", "0xa", 10)
    manager.enqueue_withdrawal("parent", "0xb", 5)

    result = await manager.drain_batch("parent")

    assert [entry.user for entry in result.deposits] == ["0xa"]
    assert [entry.user for entry in result.withdrawals] == ["0xb"]
    assert manager.deposits("parent") == ()
    assert manager.state("parent") is BatchState.IDLE


@pytest.mark.asyncio
async def test_second_drain_while_draining_is_rejected() -> None:
    manager = _manager()
    release = asyncio.Event()

    async def _slow_submit() -> str:
        await release.wait()
        return "ok"

    first = asyncio.create_task(manager.drain_batch("parent", _slow_submit))
    await asyncio.sleep(0)
    assert manager.state("parent") is BatchState.DRAINING
    assert not manager.is_ready_to_batch("parent")

    with pytest.raises(BatchInProgressError):
        await manager.drain_batch("parent")

    release.set()
    result = await first
    assert result.outcome == "ok"
    assert manager.state("parent") is BatchState.IDLE


@pytest.mark.asyncio
async def test_failed_drain_halts_pool_without_restoring_entries() -> None:
    manager = _manager()
    manager.enqueue_deposit("parent", "0xa", 10)

    async def _failing_submit() -> None:
        raise RuntimeError("rpc dropped")

    with pytest.raises(BatchFailedError):
        await manager.drain_batch("parent", _failing_submit)

    assert manager.state("parent") is BatchState.IDLE
    assert manager.is_halted("parent")
    assert manager.deposits("parent") == ()
    assert not manager.is_ready_to_batch("parent")
    with pytest.raises(BatchFailedError):
        await manager.drain_batch("parent")

    manager.resume("parent")
    assert manager.is_ready_to_batch("parent")
    assert manager.status("parent")["last_failure"] == "rpc dropped"
