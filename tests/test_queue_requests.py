from __future__ import annotations

import pytest

from lanca.daemon import EngineDaemon
from lanca.errors import ConfigurationError, MinAmountError, TransactionRevertedError

from tests.helpers import USDC


@pytest.fixture
def daemon(engine_config, network, registry) -> EngineDaemon:
    return EngineDaemon(engine_config, registry, network=network)


def _approvals(network, chain: str) -> list:
    return [event for event in network.chains[chain].events if event.name == "Approval"]


@pytest.mark.asyncio
async def test_deposit_enters_pool_queue(daemon, network, registry, operator) -> None:
    parent = network.pools["parent"]
    usdc = network.liquidity_tokens["localhost1"]
    usdc.faucet(operator, 150 * USDC)

    request = await daemon.requests.deposit(registry.parent, 150 * USDC)

    assert request.side == "deposit"
    assert [(entry.user, entry.amount) for entry in parent.deposit_queue] == [(operator, 150 * USDC)]
    assert usdc.balance_of(parent.address) == 150 * USDC
    assert [entry.amount for entry in daemon.queues.deposits("parent")] == [150 * USDC]
    assert len(_approvals(network, "localhost1")) == 1


@pytest.mark.asyncio
async def test_existing_allowance_skips_approve(daemon, network, registry, operator) -> None:
    parent = network.pools["parent"]
    usdc = network.liquidity_tokens["localhost1"]
    usdc.faucet(operator, 150 * USDC)
    usdc.set_allowance(operator, parent.address, 500 * USDC)

    await daemon.requests.deposit(registry.parent, 150 * USDC)

    assert _approvals(network, "localhost1") == []
    assert len(parent.deposit_queue) == 1


@pytest.mark.asyncio
async def test_deposit_below_minimum_sends_nothing(daemon, network, registry, operator) -> None:
    network.liquidity_tokens["localhost1"].faucet(operator, 150 * USDC)
    sent = len(network.chains["localhost1"].receipts)

    with pytest.raises(MinAmountError):
        await daemon.requests.deposit(registry.parent, 50 * USDC)

    assert len(network.chains["localhost1"].receipts) == sent
    assert daemon.queues.deposits("parent") == ()


@pytest.mark.asyncio
async def test_reverted_deposit_is_dropped_locally(daemon, network, registry, operator) -> None:
    parent = network.pools["parent"]
    parent.target_deposit_queue_length = 0
    network.liquidity_tokens["localhost1"].faucet(operator, 150 * USDC)

    with pytest.raises(TransactionRevertedError) as excinfo:
        await daemon.requests.deposit(registry.parent, 150 * USDC)

    assert "DepositQueueIsFull" in excinfo.value.reason
    assert daemon.queues.deposits("parent") == ()
    assert parent.deposit_queue == []


@pytest.mark.asyncio
async def test_withdraw_enters_pool_queue(daemon, network, registry, operator) -> None:
    parent = network.pools["parent"]
    lp = network.lp_token
    assert lp is not None
    lp.faucet(operator, 120 * USDC)

    request = await daemon.requests.withdraw(registry.parent, 120 * USDC)

    assert request.side == "withdrawal"
    assert [entry.amount for entry in parent.withdrawal_queue] == [120 * USDC]
    assert lp.balance_of(operator) == 0
    assert [entry.amount for entry in daemon.queues.withdrawals("parent")] == [120 * USDC]


@pytest.mark.asyncio
async def test_child_pool_has_no_queues(daemon, registry) -> None:
    with pytest.raises(ConfigurationError):
        await daemon.requests.deposit(registry.get("child"), 150 * USDC)


@pytest.mark.asyncio
async def test_batch_drains_requested_entries(daemon, network, registry, operator) -> None:
    parent = network.pools["parent"]
    network.liquidity_tokens["localhost1"].faucet(operator, 150 * USDC)
    await daemon.requests.deposit(registry.parent, 150 * USDC)
    parent.ready_to_trigger_override = True

    statuses = await daemon.keeper.run_once()

    assert statuses["parent"].state == "OK"
    assert daemon.queues.deposits("parent") == ()
    assert parent.deposit_queue == []
    assert network.lp_token.balance_of(operator) == 150 * USDC
