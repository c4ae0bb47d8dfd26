from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from lanca.api import create_app
from lanca.daemon import EngineDaemon

from tests.helpers import USDC


@pytest.fixture
def daemon(engine_config, network, registry) -> EngineDaemon:
    return EngineDaemon(engine_config, registry, network=network)


@pytest.fixture
def client(daemon) -> TestClient:
    return TestClient(create_app(daemon, autostart=False))


def test_healthz(client: TestClient) -> None:
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_status_lists_every_pool(client: TestClient) -> None:
    payload = client.get("/api/status").json()

    assert payload["environment"] == "localhost"
    assert set(payload["pools"]) == {"parent", "child"}
    assert payload["pools"]["parent"]["kind"] == "parent"
    assert payload["pools"]["child"]["queue"]["halted"] is False


def test_resume_unknown_pool_is_404(client: TestClient) -> None:
    assert client.post("/api/pools/nope/resume").status_code == 404


def test_resume_clears_halt(client: TestClient, daemon: EngineDaemon) -> None:
    daemon.queues._queues("parent").halted = True

    response = client.post("/api/pools/parent/resume")

    assert response.status_code == 200
    assert response.json()["queue"]["halted"] is False


def test_metrics_exposes_engine_series(client: TestClient) -> None:
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "lanca_last_cycle_ts" in response.text


def test_deposit_enters_parent_queue(client: TestClient, daemon: EngineDaemon, network, operator) -> None:
    network.liquidity_tokens["localhost1"].faucet(operator, 200 * USDC)

    response = client.post("/api/pools/parent/deposit", json={"amount": 200 * USDC})

    assert response.status_code == 200
    payload = response.json()
    assert payload["side"] == "deposit"
    assert payload["queue"]["deposits"] == 1
    assert len(network.pools["parent"].deposit_queue) == 1


def test_deposit_below_minimum_is_400(client: TestClient, network) -> None:
    response = client.post("/api/pools/parent/deposit", json={"amount": 1 * USDC})

    assert response.status_code == 400
    assert network.pools["parent"].deposit_queue == []


def test_withdraw_without_lp_balance_is_409(client: TestClient) -> None:
    response = client.post("/api/pools/parent/withdraw", json={"amount": 100 * USDC})

    assert response.status_code == 409


def test_deposit_rejects_non_positive_amount(client: TestClient) -> None:
    assert client.post("/api/pools/parent/deposit", json={"amount": 0}).status_code == 422


def test_deposit_unknown_pool_is_404(client: TestClient) -> None:
    assert client.post("/api/pools/nope/deposit", json={"amount": 100 * USDC}).status_code == 404
