from __future__ import annotations

import logging

import pytest

from lanca.chain.factory import build_memory_network, memory_registry
from lanca.config.loader import build_config
from lanca.pools.parameters import ParameterSync

from tests.helpers import CHILD_ADDRESS, make_payload


def _setup(payload):
    config = build_config(payload)
    network = build_memory_network(config)
    return config, network, memory_registry(config, network)


@pytest.mark.asyncio
async def test_sync_writes_only_drifted_values() -> None:
    payload = make_payload()
    payload["pools"][0]["liquidity_cap"] = 5_000_000_000
    payload["pools"][0]["fees"] = {"lp_fee_bps": 8}
    payload["pools"][1]["min_deposit_queue_length"] = 3
    config, network, registry = _setup(payload)

    changes = await ParameterSync(config, registry).sync_all()

    assert sorted((change.pool, change.setter) for change in changes) == [
        ("child", "setMinDepositQueueLength"),
        ("parent", "setLiquidityCap"),
        ("parent", "setLpFeeBps"),
    ]
    assert all(change.applied for change in changes)
    assert network.pools["parent"].liquidity_cap == 5_000_000_000
    assert network.pools["parent"].lp_fee_bps == 8
    assert network.pools["child"].min_deposit_queue_length == 3

    assert await ParameterSync(config, registry).sync_all() == []


@pytest.mark.asyncio
async def test_dry_run_reports_without_writing() -> None:
    payload = make_payload()
    payload["pools"][1]["scoring"] = {"lur_score_weight": 600_000, "ndr_score_weight": 400_000}
    config, network, registry = _setup(payload)

    changes = await ParameterSync(config, registry).sync_all(dry_run=True)

    assert [(change.setter, change.desired, change.applied) for change in changes] == [
        ("setScoresWeights", (600_000, 400_000), False)
    ]
    assert network.pools["child"].get_scores_weights() == (700_000, 300_000)


@pytest.mark.asyncio
async def test_sync_restores_missing_dst_pool() -> None:
    config, network, registry = _setup(make_payload())
    network.pools["parent"].dst_pools.clear()

    changes = await ParameterSync(config, registry).sync_pool(registry.get("parent"))

    assert [change.setter for change in changes] == ["setDstPool"]
    assert network.pools["parent"].get_dst_pool(2) == CHILD_ADDRESS


@pytest.mark.asyncio
async def test_zero_fee_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    payload = make_payload()
    payload["pools"][1]["fees"] = {"rebalancer_fee_bps": 0}
    config, network, registry = _setup(payload)

    with caplog.at_level(logging.ERROR, logger="lanca.pools.parameters"):
        await ParameterSync(config, registry).sync_pool(registry.get("child"))

    assert any(record.getMessage() == "params.zero_fee" for record in caplog.records)
    assert network.pools["child"].rebalancer_fee_bps == 0
