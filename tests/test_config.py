from __future__ import annotations

import logging
from pathlib import Path

import pytest

from lanca.config import build_config, load_engine_config, validate_payload
from lanca.config.schema import SCORE_SCALE
from lanca.errors import ConfigurationError

from tests.helpers import make_payload

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_repo_localhost_config_is_valid() -> None:
    loaded = load_engine_config(REPO_ROOT / "configs" / "localhost.yaml")

    assert loaded.data.parent_pool.name == "parent"
    assert [pool.name for pool in loaded.data.child_pools] == ["child-2"]
    assert loaded.data.keeper.polling_interval_ms == 2000


def test_defaults_follow_deployment_variables() -> None:
    config = build_config(make_payload())
    pool = config.pool("parent")

    assert pool.min_deposit_amount == 100 * SCORE_SCALE
    assert pool.min_withdrawal_amount == 99 * SCORE_SCALE
    assert pool.fees.lanca_bridge_fee_bps == 50
    assert pool.scoring.lur_score_weight == 700_000
    assert config.rebalancer.receipt_timeout_ms == 10_000


def test_exactly_one_parent_required() -> None:
    payload = make_payload()
    payload["pools"][1]["kind"] = "parent"

    errors = validate_payload(payload)

    assert any("exactly one parent" in error for error in errors)
    with pytest.raises(ConfigurationError):
        build_config(payload)


def test_unknown_chain_is_rejected() -> None:
    payload = make_payload()
    payload["pools"][1]["chain"] = "nowhere"

    with pytest.raises(ConfigurationError):
        build_config(payload)


def test_score_weights_must_sum_to_scale() -> None:
    payload = make_payload()
    payload["pools"][0]["scoring"] = {"lur_score_weight": 500_000, "ndr_score_weight": 400_000}

    with pytest.raises(ConfigurationError):
        build_config(payload)


def test_zero_fee_is_only_a_warning(caplog: pytest.LogCaptureFixture) -> None:
    payload = make_payload()
    payload["pools"][0]["fees"] = {"rebalancer_fee_bps": 0}

    with caplog.at_level(logging.WARNING, logger="lanca.config.loader"):
        config = build_config(payload)

    assert config.pool("parent").fees.rebalancer_fee_bps == 0
    assert any(record.getMessage() == "config.zero_fee" for record in caplog.records)


def test_env_overrides_polling_interval(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KEEPER_POLLING_INTERVAL", "750")
    monkeypatch.setenv("OPERATOR_ADDRESS", "0x00000000000000000000000000000000000000c1")

    config = build_config(make_payload())

    assert config.keeper.polling_interval_ms == 750
    assert config.rebalancer.operator == "0x00000000000000000000000000000000000000c1"


def test_missing_config_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LANCA_CONFIG", str(tmp_path / "absent.yaml"))

    with pytest.raises(ConfigurationError):
        load_engine_config()
