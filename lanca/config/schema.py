from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

LOGGER = logging.getLogger(__name__)

LIQ_TOKEN_DECIMALS = 6
SCORE_SCALE = 10**LIQ_TOKEN_DECIMALS
BPS_DENOMINATOR = 10_000

PoolKind = Literal["parent", "child"]
Environment = Literal["localhost", "testnet", "mainnet"]


class KeeperConfig(BaseModel):
    polling_interval_ms: int = Field(2000, ge=50)
    snapshot_resend_interval_sec: float = Field(30.0, ge=0.0)
    route_refresh_interval_sec: float = Field(60.0, ge=0.0)


class RebalancerConfig(BaseModel):
    enabled: bool = True
    polling_interval_ms: int = Field(2000, ge=50)
    operator: str | None = None
    receipt_timeout_ms: int = Field(10_000, ge=100)
    in_flight_ttl_sec: float = Field(120.0, gt=0.0)


class NetworkConfig(BaseModel):
    environment: Environment = "localhost"
    max_concurrent_rpc_per_chain: int = Field(4, ge=1)


class ChainConfig(BaseModel):
    name: str
    chain_selector: int = Field(..., ge=1)
    rpc_urls: List[str] = Field(default_factory=list)
    liquidity_token: str | None = None
    iou_token: str | None = None
    lp_token: str | None = None
    confirmations: int = Field(1, ge=0)


class FeeConfig(BaseModel):
    rebalancer_fee_bps: int = Field(5, ge=0, le=BPS_DENOMINATOR)
    lp_fee_bps: int = Field(5, ge=0, le=BPS_DENOMINATOR)
    lanca_bridge_fee_bps: int = Field(50, ge=0, le=BPS_DENOMINATOR)

    def zero_fields(self) -> list[str]:
        return [name for name, value in self.model_dump().items() if value == 0]


class ScoringConfig(BaseModel):
    lur_score_sensitivity: int = Field(5 * SCORE_SCALE, ge=0)
    lur_score_weight: int = Field(7 * SCORE_SCALE // 10, ge=0)
    ndr_score_weight: int = Field(3 * SCORE_SCALE // 10, ge=0)
    min_deposit_score: int = Field(0, ge=0, le=SCORE_SCALE)
    ndr_window_blocks: int = Field(7200, ge=1)

    @model_validator(mode="after")
    def _validate_weights(self) -> "ScoringConfig":
        total = self.lur_score_weight + self.ndr_score_weight
        if total != SCORE_SCALE:
            raise ValueError(
                f"lur_score_weight + ndr_score_weight must equal {SCORE_SCALE}, got {total}"
            )
        return self


class PoolConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    kind: PoolKind
    chain: str
    address: str
    target_balance: int | None = Field(None, ge=0)
    liquidity_cap: int = Field(100_000_000 * SCORE_SCALE, ge=0)
    min_deposit_queue_length: int = Field(0, ge=0)
    min_withdrawal_queue_length: int = Field(0, ge=0)
    target_deposit_queue_length: int = Field(100, ge=1)
    target_withdrawal_queue_length: int = Field(100, ge=1)
    min_deposit_amount: int = Field(100 * SCORE_SCALE, ge=0)
    min_withdrawal_amount: int = Field(99 * SCORE_SCALE, ge=0)
    fees: FeeConfig = Field(default_factory=FeeConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)

    @field_validator("address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        if not value or not value.startswith("0x"):
            raise ValueError("pool address must be a 0x-prefixed hex string")
        return value


class RouteSeed(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    src: str = Field(alias="from")
    dst: str = Field(alias="to")
    address: str


class EngineConfig(BaseModel):
    keeper: KeeperConfig = Field(default_factory=KeeperConfig)
    rebalancer: RebalancerConfig = Field(default_factory=RebalancerConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    chains: List[ChainConfig]
    pools: List[PoolConfig]
    routes: List[RouteSeed] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_topology(self) -> "EngineConfig":
        chain_names = [chain.name for chain in self.chains]
        if len(set(chain_names)) != len(chain_names):
            raise ValueError("duplicate chain names")
        selectors = [chain.chain_selector for chain in self.chains]
        if len(set(selectors)) != len(selectors):
            raise ValueError("duplicate chain selectors")
        pool_names = [pool.name for pool in self.pools]
        if len(set(pool_names)) != len(pool_names):
            raise ValueError("duplicate pool names")
        known = set(chain_names)
        for pool in self.pools:
            if pool.chain not in known:
                raise ValueError(f"pool {pool.name} references unknown chain {pool.chain}")
        pool_chains = [pool.chain for pool in self.pools]
        if len(set(pool_chains)) != len(pool_chains):
            raise ValueError("at most one pool per chain")
        parents = [pool for pool in self.pools if pool.kind == "parent"]
        if len(parents) != 1:
            raise ValueError(f"exactly one parent pool required, got {len(parents)}")
        for route in self.routes:
            if route.src not in known or route.dst not in known:
                raise ValueError(f"route {route.src}->{route.dst} references unknown chain")
        return self

    def chain(self, name: str) -> ChainConfig:
        for chain in self.chains:
            if chain.name == name:
                return chain
        raise KeyError(name)

    def pool(self, name: str) -> PoolConfig:
        for pool in self.pools:
            if pool.name == name:
                return pool
        raise KeyError(name)

    @property
    def parent_pool(self) -> PoolConfig:
        return next(pool for pool in self.pools if pool.kind == "parent")

    @property
    def child_pools(self) -> list[PoolConfig]:
        return [pool for pool in self.pools if pool.kind == "child"]

    def chain_selectors(self) -> Dict[str, int]:
        return {chain.name: chain.chain_selector for chain in self.chains}


@dataclass
class LoadedConfig:
    path: Path | None
    data: EngineConfig


__all__ = [
    "LIQ_TOKEN_DECIMALS",
    "SCORE_SCALE",
    "BPS_DENOMINATOR",
    "PoolKind",
    "KeeperConfig",
    "RebalancerConfig",
    "NetworkConfig",
    "ChainConfig",
    "FeeConfig",
    "ScoringConfig",
    "PoolConfig",
    "RouteSeed",
    "EngineConfig",
    "LoadedConfig",
]
