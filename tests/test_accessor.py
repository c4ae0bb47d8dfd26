from __future__ import annotations

import pytest

from lanca.chain.memory import QueuedRequest
from lanca.errors import PoolUnobservableError
from lanca.pools.accessor import PoolStateAccessor

from tests.helpers import USDC


@pytest.mark.asyncio
async def test_snapshot_derives_deficit(network, registry) -> None:
    child = network.pools["child"]
    child.target_balance = 150 * USDC
    network.liquidity_tokens["localhost2"].faucet(child.address, 100 * USDC)

    snapshot = await PoolStateAccessor().snapshot(registry.get("child"))

    assert snapshot.active_balance == 100 * USDC
    assert snapshot.deficit == 50 * USDC
    assert snapshot.surplus == 0
    assert snapshot.block_number == child.chain.block_number


@pytest.mark.asyncio
async def test_snapshot_derives_surplus(network, registry) -> None:
    child = network.pools["child"]
    network.liquidity_tokens["localhost2"].faucet(child.address, 30 * USDC)

    snapshot = await PoolStateAccessor().snapshot(registry.get("child"))

    assert snapshot.surplus == 30 * USDC
    assert snapshot.deficit == 0


@pytest.mark.asyncio
async def test_snapshot_excludes_queued_deposits(network, registry) -> None:
    parent = network.pools["parent"]
    network.liquidity_tokens["localhost1"].faucet(parent.address, 500 * USDC)
    parent.deposit_queue.append(QueuedRequest(user="0xuser", amount=200 * USDC))

    snapshot = await PoolStateAccessor().snapshot(registry.get("parent"))

    assert snapshot.active_balance == 300 * USDC
    assert snapshot.deposit_queue_length == 1


@pytest.mark.asyncio
async def test_failed_read_marks_pool_unobservable(network, registry) -> None:
    network.pools["child"].fail_reads = True

    with pytest.raises(PoolUnobservableError) as excinfo:
        await PoolStateAccessor().snapshot(registry.get("child"))

    assert excinfo.value.pool == "child"


@pytest.mark.asyncio
async def test_parameters_reads_configured_defaults(registry) -> None:
    params = await PoolStateAccessor().parameters(registry.get("parent"))

    assert params.lur_score_sensitivity == 5 * USDC
    assert params.lur_score_weight + params.ndr_score_weight == USDC
    assert params.rebalancer_fee_bps == 5
    assert params.lanca_bridge_fee_bps == 50
    assert params.min_deposit_amount == 100 * USDC
    assert params.min_withdrawal_amount == 99 * USDC
