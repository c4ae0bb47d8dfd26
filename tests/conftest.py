from __future__ import annotations

import pytest

from lanca.chain.factory import DEFAULT_OPERATOR, build_memory_network, memory_registry
from lanca.config.loader import build_config
from lanca.config.schema import EngineConfig
from lanca.runtime.locks import reset_locks_for_tests
from tests.helpers import make_payload


@pytest.fixture(autouse=True)
def _reset_locks() -> None:
    reset_locks_for_tests()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "LANCA_CONFIG",
        "KEEPER_POLLING_INTERVAL",
        "REBALANCER_POLLING_INTERVAL",
        "OPERATOR_ADDRESS",
        "OPERATOR_PRIVATE_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def engine_config() -> EngineConfig:
    return build_config(make_payload())


@pytest.fixture
def network(engine_config: EngineConfig):
    return build_memory_network(engine_config)


@pytest.fixture
def registry(engine_config: EngineConfig, network):
    return memory_registry(engine_config, network)


@pytest.fixture
def operator() -> str:
    return DEFAULT_OPERATOR
