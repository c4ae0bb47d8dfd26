from __future__ import annotations

import pytest

from lanca.chain.memory import ADDRESS_ZERO, InMemoryNetwork
from lanca.errors import ReceiptTimeoutError, TransactionRevertedError

from tests.helpers import USDC

USER = "0x00000000000000000000000000000000000000b0"


def _network(auto_mine: bool = True) -> InMemoryNetwork:
    network = InMemoryNetwork(parent_chain="hub", parent_selector=1)
    network.add_chain("hub", 1, auto_mine=auto_mine)
    network.add_chain("spoke", 2, auto_mine=auto_mine)
    network.deploy_pool("parent", "hub", kind="parent")
    network.deploy_pool("child", "spoke", kind="child")
    network.link("parent", "child")
    return network


@pytest.mark.asyncio
async def test_revert_rolls_back_state() -> None:
    network = _network()
    parent = network.pools["parent"]
    client = parent.bind(USER)

    with pytest.raises(TransactionRevertedError) as excinfo:
        await client.transact("setScoresWeights", 1, 2)

    assert "InvalidScoreWeights" in excinfo.value.reason
    assert parent.get_scores_weights() == (700_000, 300_000)


@pytest.mark.asyncio
async def test_forced_revert_is_consumed_once() -> None:
    network = _network()
    parent = network.pools["parent"]
    parent.revert_next["setTargetBalance"] = "boom"
    client = parent.bind(USER)

    with pytest.raises(TransactionRevertedError):
        await client.transact("setTargetBalance", 10)
    await client.transact("setTargetBalance", 10)

    assert parent.target_balance == 10


@pytest.mark.asyncio
async def test_set_dst_pool_rejects_own_chain() -> None:
    network = _network()
    child = network.pools["child"]

    with pytest.raises(TransactionRevertedError):
        await child.bind(USER).transact("setDstPool", 2, network.pools["parent"].address)

    assert await child.bind(USER).call("getDstPool", 5) == ADDRESS_ZERO


@pytest.mark.asyncio
async def test_deposit_below_minimum_reverts() -> None:
    network = _network()
    parent = network.pools["parent"]
    usdc = network.liquidity_tokens["hub"]
    usdc.faucet(USER, 1_000 * USDC)
    await usdc.bind(USER).transact("approve", parent.address, 1_000 * USDC)

    with pytest.raises(TransactionRevertedError) as excinfo:
        await parent.bind(USER).transact("enterDepositQueue", 50 * USDC)

    assert "DepositAmountTooLow" in excinfo.value.reason
    assert parent.deposit_queue_length() == 0
    assert usdc.balance_of(USER) == 1_000 * USDC


@pytest.mark.asyncio
async def test_unmined_transaction_times_out() -> None:
    network = _network(auto_mine=False)
    client = network.pools["parent"].bind(USER)

    tx_hash = await client.transact("setTargetBalance", 5)
    with pytest.raises(ReceiptTimeoutError):
        await client.wait_for_receipt(tx_hash, timeout_ms=50)

    network.chains["hub"].mine()
    receipt = await client.wait_for_receipt(tx_hash, timeout_ms=50)
    assert receipt.status


@pytest.mark.asyncio
async def test_mined_revert_surfaces_on_receipt_wait() -> None:
    network = _network(auto_mine=False)
    client = network.pools["child"].bind(USER)

    tx_hash = await client.transact("fillDeficit", 10)
    network.chains["spoke"].mine()

    with pytest.raises(TransactionRevertedError) as excinfo:
        await client.wait_for_receipt(tx_hash, timeout_ms=50)
    assert excinfo.value.function == "fillDeficit"
    assert "NoDeficitToFill" in excinfo.value.reason


@pytest.mark.asyncio
async def test_fill_is_clamped_to_outstanding_deficit() -> None:
    network = _network()
    child = network.pools["child"]
    child.target_balance = 40 * USDC
    usdc = network.liquidity_tokens["spoke"]
    usdc.faucet(USER, 100 * USDC)
    await usdc.bind(USER).transact("approve", child.address, 100 * USDC)

    tx_hash = await child.bind(USER).transact("fillDeficit", 100 * USDC)
    receipt = await child.bind(USER).wait_for_receipt(tx_hash, timeout_ms=100)

    event = receipt.event("DeficitFilled")
    assert event is not None
    assert event.args["amount"] == 40 * USDC
    assert child.deficit() == 0
    assert usdc.balance_of(USER) == 60 * USDC
    assert network.iou_tokens["spoke"].balance_of(USER) == 40 * USDC - 40 * USDC * 5 // 10_000
