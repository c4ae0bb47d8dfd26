"""Idempotent sync of configured pool parameters onto deployed pools.

Each parameter is read first and written only when it differs, so repeated
runs converge without sending redundant transactions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from ..chain.base import ContractClient
from ..config.schema import EngineConfig, PoolConfig
from ..errors import RouteNotConfiguredError
from .registry import PoolHandle, PoolRegistry

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ParameterChange:
    pool: str
    setter: str
    previous: Any
    desired: Any
    applied: bool


def _desired_values(config: PoolConfig) -> list[tuple[str, str, tuple[Any, ...]]]:
    """Return ``(getter, setter, desired args)`` triples for ``config``."""

    values: list[tuple[str, str, tuple[Any, ...]]] = [
        ("getMinDepositQueueLength", "setMinDepositQueueLength", (config.min_deposit_queue_length,)),
        ("getMinWithdrawalQueueLength", "setMinWithdrawalQueueLength", (config.min_withdrawal_queue_length,)),
        ("getTargetDepositQueueLength", "setTargetDepositQueueLength", (config.target_deposit_queue_length,)),
        (
            "getTargetWithdrawalQueueLength",
            "setTargetWithdrawalQueueLength",
            (config.target_withdrawal_queue_length,),
        ),
        ("getLurScoreSensitivity", "setLurScoreSensitivity", (config.scoring.lur_score_sensitivity,)),
        (
            "getScoresWeights",
            "setScoresWeights",
            (config.scoring.lur_score_weight, config.scoring.ndr_score_weight),
        ),
        ("getRebalancerFeeBps", "setRebalancerFeeBps", (config.fees.rebalancer_fee_bps,)),
        ("getLpFeeBps", "setLpFeeBps", (config.fees.lp_fee_bps,)),
        ("getLancaBridgeFeeBps", "setLancaBridgeFeeBps", (config.fees.lanca_bridge_fee_bps,)),
    ]
    if config.kind == "parent":
        values.extend(
            [
                ("getLiquidityCap", "setLiquidityCap", (config.liquidity_cap,)),
                ("getMinDepositAmount", "setMinDepositAmount", (config.min_deposit_amount,)),
                ("getMinWithdrawalAmount", "setMinWithdrawalAmount", (config.min_withdrawal_amount,)),
            ]
        )
    if config.target_balance is not None:
        values.append(("getTargetBalance", "setTargetBalance", (config.target_balance,)))
    return values


def _normalise(value: Any) -> tuple[Any, ...]:
    items = value if isinstance(value, (list, tuple)) else (value,)
    return tuple(item.lower() if isinstance(item, str) else int(item) for item in items)


class ParameterSync:
    def __init__(
        self,
        config: EngineConfig,
        registry: PoolRegistry,
        *,
        receipt_timeout_ms: int | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._timeout_ms = receipt_timeout_ms or config.rebalancer.receipt_timeout_ms

    async def _apply(
        self,
        handle: PoolHandle,
        getter: str,
        setter: str,
        desired: tuple[Any, ...],
        *,
        dry_run: bool,
        getter_args: tuple[Any, ...] = (),
    ) -> ParameterChange | None:
        client: ContractClient = handle.pool
        current = await client.call(getter, *getter_args)
        if _normalise(current) == _normalise(desired):
            return None
        applied = False
        if not dry_run:
            tx_hash = await client.transact(setter, *getter_args, *desired)
            await client.wait_for_receipt(tx_hash, self._timeout_ms)
            applied = True
        LOGGER.info(
            "params.updated" if applied else "params.drift",
            extra={"pool": handle.name, "setter": setter, "previous": current, "desired": list(desired)},
        )
        return ParameterChange(
            pool=handle.name,
            setter=setter,
            previous=current,
            desired=desired if len(desired) > 1 else desired[0],
            applied=applied,
        )

    def _warn_zero_fees(self, handle: PoolHandle) -> None:
        for field_name in handle.config.fees.zero_fields():
            LOGGER.error(
                "params.zero_fee",
                extra={"pool": handle.name, "field": field_name},
            )

    async def sync_pool(self, handle: PoolHandle, *, dry_run: bool = False) -> list[ParameterChange]:
        self._warn_zero_fees(handle)
        changes: list[ParameterChange] = []
        for getter, setter, desired in _desired_values(handle.config):
            change = await self._apply(handle, getter, setter, desired, dry_run=dry_run)
            if change is not None:
                changes.append(change)
        for change in await self._sync_routes(handle, dry_run=dry_run):
            changes.append(change)
        return changes

    async def _sync_routes(self, handle: PoolHandle, *, dry_run: bool) -> Iterable[ParameterChange]:
        selectors = self._config.chain_selectors()
        changes: list[ParameterChange] = []
        for route in self._config.routes:
            if route.src != handle.config.chain:
                continue
            dst_selector = selectors[route.dst]
            if dst_selector == handle.chain_selector:
                error = RouteNotConfiguredError(dst_selector, dst_selector, "destination is the source chain")
                LOGGER.error("params.route_invalid", extra={"pool": handle.name, "error": str(error)})
                continue
            change = await self._apply(
                handle,
                "getDstPool",
                "setDstPool",
                (route.address,),
                dry_run=dry_run,
                getter_args=(dst_selector,),
            )
            if change is not None:
                changes.append(change)
        return changes

    async def sync_all(self, *, dry_run: bool = False) -> list[ParameterChange]:
        changes: list[ParameterChange] = []
        for handle in self._registry:
            changes.extend(await self.sync_pool(handle, dry_run=dry_run))
        LOGGER.info(
            "params.sync_complete",
            extra={"changes": len(changes), "dry_run": dry_run},
        )
        return changes


__all__ = ["ParameterChange", "ParameterSync"]
