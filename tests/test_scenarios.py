"""End-to-end keeper and rebalancer flows against the in-memory network."""

from __future__ import annotations

import asyncio

import pytest

from lanca.daemon import EngineDaemon
from lanca.events import wait_for_event

from tests.helpers import USDC

EVENT_TIMEOUT_MS = 10_000


@pytest.fixture
def daemon(engine_config, network, registry) -> EngineDaemon:
    return EngineDaemon(engine_config, registry, network=network)


async def _run_and_wait(run, client, event: str):
    start = await client.block_number()
    waiter = asyncio.create_task(
        wait_for_event(client, event, timeout_ms=EVENT_TIMEOUT_MS, from_block=start, polling_interval_ms=10)
    )
    await run()
    return await waiter


@pytest.mark.asyncio
async def test_rebalancer_fills_deficit(daemon, network, registry, operator) -> None:
    child = network.pools["child"]
    child.target_balance = child.active_balance() + 100 * USDC
    network.liquidity_tokens["localhost2"].faucet(operator, 100 * USDC)

    event = await _run_and_wait(daemon.rebalancer.run_once, registry.get("child").pool, "DeficitFilled")

    assert event.args["amount"] == 100 * USDC
    assert await registry.get("child").pool.call("getDeficit") == 0


@pytest.mark.asyncio
async def test_rebalancer_takes_surplus(daemon, network, registry, operator) -> None:
    child = network.pools["child"]
    network.iou_tokens["localhost2"].faucet(operator, 100 * USDC)
    network.liquidity_tokens["localhost2"].faucet(child.address, 100 * USDC)

    event = await _run_and_wait(daemon.rebalancer.run_once, registry.get("child").pool, "SurplusTaken")

    assert event.args["amount"] == 100 * USDC
    assert await registry.get("child").pool.call("getSurplus") == 0


@pytest.mark.asyncio
async def test_keeper_sends_snapshot_when_parent_queues_full(daemon, registry) -> None:
    parent = registry.get("parent").pool
    await parent.transact("setQueuesFull", True)

    event = await _run_and_wait(daemon.keeper.run_once, registry.get("child").pool, "SnapshotSent")

    assert event.args["dstChainSelector"] == 1
    assert daemon.keeper.statuses()["child"].last_action == "sendSnapshotToParentPool"


@pytest.mark.asyncio
async def test_keeper_triggers_batch_when_parent_ready(daemon, registry) -> None:
    parent = registry.get("parent").pool
    await parent.transact("setReadyToTriggerDepositWithdrawProcess", True)

    event = await _run_and_wait(daemon.keeper.run_once, parent, "DepositWithdrawTriggered")

    assert event.name == "DepositWithdrawTriggered"
    assert not await parent.call("isReadyToTriggerDepositWithdrawProcess")


@pytest.mark.asyncio
async def test_keeper_processes_pending_withdrawals(daemon, registry) -> None:
    parent = registry.get("parent").pool
    await parent.transact("setReadyToProcessPendingWithdrawals", True)

    event = await _run_and_wait(daemon.keeper.run_once, parent, "PendingWithdrawalsProcessed")

    assert event.name == "PendingWithdrawalsProcessed"


@pytest.mark.asyncio
async def test_deposit_and_withdrawal_round_trip(daemon, network) -> None:
    user = "0x00000000000000000000000000000000000000b7"
    parent = network.pools["parent"]
    usdc = network.liquidity_tokens["localhost1"]
    lp = network.lp_token
    assert lp is not None
    parent.target_deposit_queue_length = 1
    parent.target_withdrawal_queue_length = 1
    usdc.faucet(user, 100 * USDC)
    await usdc.bind(user).transact("approve", parent.address, 100 * USDC)
    await parent.bind(user).transact("enterDepositQueue", 100 * USDC)

    for _ in range(4):
        await daemon.keeper.run_once()
        if lp.balance_of(user):
            break
    assert lp.balance_of(user) == 100 * USDC
    assert parent.active_balance() == 100 * USDC

    await lp.bind(user).transact("approve", parent.address, 100 * USDC)
    await parent.bind(user).transact("enterWithdrawalQueue", 100 * USDC)
    for _ in range(4):
        await daemon.keeper.run_once()
        if usdc.balance_of(user):
            break

    # lp fee of 5 bps stays in the pool
    assert usdc.balance_of(user) == 100 * USDC - 50_000
    assert lp.total_supply() == 0
    assert parent.pending_withdrawals_total() == 0
    assert usdc.balance_of(parent.address) == 50_000
    assert parent.accrued_fees == 50_000
    assert parent.active_balance() == 0
