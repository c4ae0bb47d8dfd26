from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schema import EngineConfig, LoadedConfig

LOGGER = logging.getLogger(__name__)

CONFIG_PATH_ENV = "LANCA_CONFIG"
DEFAULT_CONFIG_PATH = "configs/localhost.yaml"


def load_yaml(path: Path | str) -> dict[str, Any]:
    cfg_path = Path(path)
    with cfg_path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    if not isinstance(payload, dict):
        raise TypeError(f"Configuration root must be a mapping, got {type(payload)!r}")
    return payload


def _apply_env_overrides(payload: dict[str, Any]) -> dict[str, Any]:
    keeper_interval = os.getenv("KEEPER_POLLING_INTERVAL")
    if keeper_interval:
        payload.setdefault("keeper", {})["polling_interval_ms"] = int(keeper_interval)
    rebalancer_interval = os.getenv("REBALANCER_POLLING_INTERVAL")
    if rebalancer_interval:
        payload.setdefault("rebalancer", {})["polling_interval_ms"] = int(rebalancer_interval)
    operator = os.getenv("OPERATOR_ADDRESS")
    if operator:
        payload.setdefault("rebalancer", {})["operator"] = operator
    return payload


def warn_misconfiguration(config: EngineConfig) -> list[str]:
    """Log non-fatal misconfigurations and return them.

    Zero fee basis points are legal on-chain but never intended in production.
    """

    warnings: list[str] = []
    for pool in config.pools:
        for field_name in pool.fees.zero_fields():
            message = f"{field_name} is set to 0 for pool {pool.name}"
            warnings.append(message)
            LOGGER.warning(
                "config.zero_fee",
                extra={"pool": pool.name, "field": field_name, "environment": config.network.environment},
            )
    return warnings


def build_config(payload: dict[str, Any]) -> EngineConfig:
    try:
        config = EngineConfig.model_validate(_apply_env_overrides(payload))
    except ValidationError as exc:
        raise ConfigurationError("; ".join(validate_payload(payload)) or str(exc)) from exc
    warn_misconfiguration(config)
    return config


def load_engine_config(path: str | Path | None = None) -> LoadedConfig:
    cfg_path = Path(path or os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    if not cfg_path.exists():
        raise ConfigurationError(f"config file not found: {cfg_path}")
    raw = load_yaml(cfg_path)
    return LoadedConfig(path=cfg_path, data=build_config(raw))


def validate_payload(payload: Any) -> list[str]:
    """Return a list of validation errors for ``payload``.

    The function returns an empty list when the payload is valid.
    """

    errors: list[str] = []
    try:
        EngineConfig.model_validate(payload)
    except ValidationError as exc:
        for entry in exc.errors():
            location = ".".join(str(part) for part in entry.get("loc", ()))
            message = str(entry.get("msg") or "invalid")
            if location:
                errors.append(f"{location}: {message}")
            else:
                errors.append(message)
    return errors


__all__ = [
    "CONFIG_PATH_ENV",
    "build_config",
    "load_engine_config",
    "load_yaml",
    "validate_payload",
    "warn_misconfiguration",
]
