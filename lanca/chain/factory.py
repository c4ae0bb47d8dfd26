"""Build pool handles for the configured environment."""

from __future__ import annotations

import logging
from functools import partial
from typing import Dict

from eth_account import Account

from ..config.schema import EngineConfig
from ..errors import ConfigurationError
from ..pools.registry import PoolHandle, PoolRegistry
from ..util.env import operator_private_key
from .abi import ERC20_ABI, POOL_ABI
from .memory import InMemoryNetwork
from .web3_client import Web3ContractClient, build_web3

LOGGER = logging.getLogger(__name__)

DEFAULT_OPERATOR = "0x00000000000000000000000000000000000000a1"


def build_memory_network(config: EngineConfig) -> InMemoryNetwork:
    """Deploy the configured topology onto a fresh in-memory network."""

    parent = config.parent_pool
    selectors = config.chain_selectors()
    network = InMemoryNetwork(parent_chain=parent.chain, parent_selector=selectors[parent.chain])
    for chain in config.chains:
        network.add_chain(chain.name, chain.chain_selector)
    for pool in config.pools:
        deployed = network.deploy_pool(pool.name, pool.chain, kind=pool.kind, address=pool.address)
        if pool.target_balance is not None:
            deployed.target_balance = pool.target_balance
    by_chain = {pool.chain: pool.name for pool in config.pools}
    for route in config.routes:
        source = by_chain.get(route.src)
        if source is not None:
            network.pools[source].dst_pools[selectors[route.dst]] = route.address
    return network


def memory_registry(
    config: EngineConfig, network: InMemoryNetwork, *, operator: str | None = None
) -> PoolRegistry:
    sender = operator or config.rebalancer.operator or DEFAULT_OPERATOR
    handles: Dict[str, PoolHandle] = {}
    for pool in config.pools:
        deployed = network.pools[pool.name]
        handles[pool.name] = PoolHandle(
            config=pool,
            chain=config.chain(pool.chain),
            pool=deployed.bind(sender),
            liquidity_token=deployed.liquidity.bind(sender),
            iou_token=deployed.iou.bind(sender),
            operator=sender,
            lp_token=deployed.lp.bind(sender) if deployed.lp is not None else None,
        )
    return PoolRegistry(handles)


def web3_registry(config: EngineConfig, private_key: str) -> PoolRegistry:
    account = Account.from_key(private_key)
    if config.rebalancer.operator and config.rebalancer.operator.lower() != account.address.lower():
        raise ConfigurationError(
            f"OPERATOR_ADDRESS {config.rebalancer.operator} does not match the signing key"
        )
    handles: Dict[str, PoolHandle] = {}
    for pool in config.pools:
        chain = config.chain(pool.chain)
        if not chain.rpc_urls:
            raise ConfigurationError(f"chain {chain.name} has no rpc_urls")
        if not chain.liquidity_token or not chain.iou_token:
            raise ConfigurationError(f"chain {chain.name} is missing liquidity_token/iou_token")
        w3 = build_web3(chain.rpc_urls[0])
        client = partial(
            Web3ContractClient,
            w3,
            account=account,
            chain_name=chain.name,
            confirmations=chain.confirmations,
        )
        handles[pool.name] = PoolHandle(
            config=pool,
            chain=chain,
            pool=client(pool.address, POOL_ABI),
            liquidity_token=client(chain.liquidity_token, ERC20_ABI),
            iou_token=client(chain.iou_token, ERC20_ABI),
            operator=account.address,
            lp_token=client(chain.lp_token, ERC20_ABI) if chain.lp_token else None,
        )
    return PoolRegistry(handles)


def build_registry(
    config: EngineConfig, *, network: InMemoryNetwork | None = None
) -> tuple[PoolRegistry, InMemoryNetwork | None]:
    """Return pool handles and, for localhost, the in-memory network behind them."""

    if config.network.environment == "localhost":
        network = network or build_memory_network(config)
        LOGGER.info("chain.memory_network", extra={"pools": len(config.pools)})
        return memory_registry(config, network), network
    key = operator_private_key(required=True) or ""
    LOGGER.info(
        "chain.web3_network",
        extra={"environment": config.network.environment, "pools": len(config.pools)},
    )
    return web3_registry(config, key), None


__all__ = [
    "DEFAULT_OPERATOR",
    "build_memory_network",
    "build_registry",
    "memory_registry",
    "web3_registry",
]
