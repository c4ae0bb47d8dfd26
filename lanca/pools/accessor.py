"""Block-consistent reads of pool state.

Every read of a snapshot is pinned to the block number fetched first, so the
derived deficit and surplus always come from one consistent view. A failed
read surfaces as :class:`PoolUnobservableError`; there is no stale fallback.
"""

from __future__ import annotations

import asyncio
import logging

from ..errors import ChainUnavailableError, PoolUnobservableError
from ..metrics import POOL_DEFICIT_GAUGE, POOL_SURPLUS_GAUGE, POOL_UNOBSERVABLE_TOTAL
from .models import PoolParameters, PoolSnapshot
from .registry import PoolHandle

LOGGER = logging.getLogger(__name__)

_SNAPSHOT_FUNCTIONS = (
    "getActiveBalance",
    "getTargetBalance",
    "getDepositQueueLength",
    "getWithdrawalQueueLength",
)


class PoolStateAccessor:
    async def snapshot(self, handle: PoolHandle) -> PoolSnapshot:
        client = handle.pool
        try:
            block = await client.block_number()
            active, target, deposits, withdrawals = await asyncio.gather(
                *(client.call(function, block=block) for function in _SNAPSHOT_FUNCTIONS)
            )
        except ChainUnavailableError as exc:
            POOL_UNOBSERVABLE_TOTAL.labels(pool=handle.name).inc()
            LOGGER.warning(
                "pool.unobservable",
                extra={"pool": handle.name, "error": str(exc)},
            )
            raise PoolUnobservableError(handle.name, str(exc)) from exc
        snapshot = PoolSnapshot(
            pool=handle.name,
            block_number=int(block),
            active_balance=int(active),
            target_balance=int(target),
            deposit_queue_length=int(deposits),
            withdrawal_queue_length=int(withdrawals),
        )
        POOL_DEFICIT_GAUGE.labels(pool=handle.name).set(snapshot.deficit)
        POOL_SURPLUS_GAUGE.labels(pool=handle.name).set(snapshot.surplus)
        return snapshot

    async def parameters(self, handle: PoolHandle) -> PoolParameters:
        client = handle.pool
        try:
            block = await client.block_number()
            (
                sensitivity,
                weights,
                cap,
                min_deposit_queue,
                min_withdrawal_queue,
                rebalancer_fee,
                lp_fee,
                bridge_fee,
                min_deposit,
                min_withdrawal,
            ) = await asyncio.gather(
                client.call("getLurScoreSensitivity", block=block),
                client.call("getScoresWeights", block=block),
                client.call("getLiquidityCap", block=block),
                client.call("getMinDepositQueueLength", block=block),
                client.call("getMinWithdrawalQueueLength", block=block),
                client.call("getRebalancerFeeBps", block=block),
                client.call("getLpFeeBps", block=block),
                client.call("getLancaBridgeFeeBps", block=block),
                client.call("getMinDepositAmount", block=block),
                client.call("getMinWithdrawalAmount", block=block),
            )
        except ChainUnavailableError as exc:
            POOL_UNOBSERVABLE_TOTAL.labels(pool=handle.name).inc()
            raise PoolUnobservableError(handle.name, str(exc)) from exc
        lur_weight, ndr_weight = weights
        return PoolParameters(
            pool=handle.name,
            lur_score_sensitivity=int(sensitivity),
            lur_score_weight=int(lur_weight),
            ndr_score_weight=int(ndr_weight),
            liquidity_cap=int(cap),
            min_deposit_queue_length=int(min_deposit_queue),
            min_withdrawal_queue_length=int(min_withdrawal_queue),
            rebalancer_fee_bps=int(rebalancer_fee),
            lp_fee_bps=int(lp_fee),
            lanca_bridge_fee_bps=int(bridge_fee),
            min_deposit_amount=int(min_deposit),
            min_withdrawal_amount=int(min_withdrawal),
        )

    async def pending_withdrawals(self, handle: PoolHandle) -> int:
        try:
            return int(await handle.pool.call("getPendingWithdrawalsTotal"))
        except ChainUnavailableError as exc:
            raise PoolUnobservableError(handle.name, str(exc)) from exc

    async def queued_deposits(self, handle: PoolHandle) -> int:
        try:
            return int(await handle.pool.call("getQueuedDepositsTotal"))
        except ChainUnavailableError as exc:
            raise PoolUnobservableError(handle.name, str(exc)) from exc

    async def flag(self, handle: PoolHandle, function: str) -> bool:
        """Read one of the boolean readiness views of a pool."""

        try:
            return bool(await handle.pool.call(function))
        except ChainUnavailableError as exc:
            raise PoolUnobservableError(handle.name, str(exc)) from exc


__all__ = ["PoolStateAccessor"]
