"""Keeper triggers: batch processing, pending withdrawals and child snapshots."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List

from ..chain.base import ChainEvent
from ..config.schema import KeeperConfig
from ..errors import ChainUnavailableError, RouteNotConfiguredError
from ..events import wait_for_event
from ..metrics import KEEPER_TRIGGERS_TOTAL, POOL_SCORE_GAUGE
from ..pools.accessor import PoolStateAccessor
from ..pools.models import PoolParameters, PoolSnapshot
from ..pools.registry import PoolHandle, PoolRegistry
from ..queue.manager import QueueManager
from ..routing import RoutingTable
from ..scoring import (
    HistorySource,
    PoolScores,
    effective_lp_fee_bps,
    is_deposit_blocked,
    score_pool,
)

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class KeeperReport:
    pool: str
    actions: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    scores: PoolScores | None = None
    lp_fee_bps: int | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "actions": list(self.actions),
            "skipped": list(self.skipped),
            "scores": self.scores.as_dict() if self.scores else None,
            "lp_fee_bps": self.lp_fee_bps,
        }


class KeeperOrchestrator:
    def __init__(
        self,
        registry: PoolRegistry,
        accessor: PoolStateAccessor,
        queues: QueueManager,
        routing: RoutingTable,
        history: HistorySource,
        config: KeeperConfig,
        *,
        receipt_timeout_ms: int = 10_000,
    ) -> None:
        self._registry = registry
        self._accessor = accessor
        self._queues = queues
        self._routing = routing
        self._history = history
        self._config = config
        self._timeout_ms = receipt_timeout_ms
        self._last_snapshot_sent: Dict[str, float] = {}

    async def _send(self, handle: PoolHandle, function: str, event: str) -> ChainEvent:
        tx_hash = await handle.pool.transact(function)
        LOGGER.info("keeper.tx_submitted", extra={"pool": handle.name, "function": function, "tx_hash": tx_hash})
        receipt = await handle.pool.wait_for_receipt(tx_hash, self._timeout_ms)
        observed = receipt.event(event)
        if observed is None:
            observed = await wait_for_event(
                handle.pool, event, timeout_ms=self._timeout_ms, from_block=receipt.block_number
            )
        KEEPER_TRIGGERS_TOTAL.labels(pool=handle.name, action=function).inc()
        LOGGER.info(
            "keeper.event_observed",
            extra={"pool": handle.name, "event": event, "block": observed.block_number},
        )
        return observed

    async def score(
        self, handle: PoolHandle
    ) -> tuple[PoolScores, PoolSnapshot, int, PoolParameters]:
        """Score ``handle`` and return ``(scores, snapshot, queued deposits, parameters)``."""

        snapshot = await self._accessor.snapshot(handle)
        params = await self._accessor.parameters(handle)
        self._queues.apply_parameters(params)
        queued = await self._accessor.queued_deposits(handle)
        history = await self._history.flows(
            handle.pool, window_blocks=handle.config.scoring.ndr_window_blocks
        )
        scores = score_pool(
            active_balance=snapshot.active_balance,
            target_balance=snapshot.target_balance,
            history=history,
            sensitivity=params.lur_score_sensitivity,
            lur_weight=params.lur_score_weight,
            ndr_weight=params.ndr_score_weight,
        )
        for name, value in scores.as_dict().items():
            POOL_SCORE_GAUGE.labels(pool=handle.name, score=name).set(value)
        return scores, snapshot, queued, params

    async def trigger_batch(self, handle: PoolHandle, report: KeeperReport) -> None:
        ready = await self._accessor.flag(handle, "isReadyToTriggerDepositWithdrawProcess")
        if not ready:
            return
        scores, snapshot, queued, params = await self.score(handle)
        report.scores = scores
        report.lp_fee_bps = effective_lp_fee_bps(params.lp_fee_bps, scores.composite)
        blocked = is_deposit_blocked(
            active_balance=snapshot.active_balance,
            queued_deposits=queued,
            liquidity_cap=params.liquidity_cap,
            composite=scores.composite,
            min_score=handle.config.scoring.min_deposit_score,
        )
        if not self._queues.is_ready_to_batch(handle.name, snapshot, deposit_blocked=blocked):
            LOGGER.info(
                "keeper.batch_not_ready",
                extra={"pool": handle.name, "deposit_blocked": blocked, **snapshot.as_dict()},
            )
            report.skipped.append("batch")
            return
        result = await self._queues.drain_batch(
            handle.name,
            lambda: self._send(handle, "triggerDepositWithdrawProcess", "DepositWithdrawTriggered"),
        )
        LOGGER.info(
            "keeper.batch_settled",
            extra={
                "pool": handle.name,
                "deposits": len(result.deposits),
                "withdrawals": len(result.withdrawals),
            },
        )
        # children snapshot again for the next batch round
        self._last_snapshot_sent.clear()
        report.actions.append("triggerDepositWithdrawProcess")

    async def process_pending(self, handle: PoolHandle, report: KeeperReport) -> None:
        ready = await self._accessor.flag(handle, "isReadyToProcessPendingWithdrawals")
        if not ready:
            return
        pending = await self._accessor.pending_withdrawals(handle)
        snapshot = await self._accessor.snapshot(handle)
        if pending > snapshot.active_balance:
            LOGGER.info(
                "keeper.pending_uncovered",
                extra={"pool": handle.name, "pending": pending, "active": snapshot.active_balance},
            )
            report.skipped.append("pending_withdrawals")
            return
        await self._send(handle, "processPendingWithdrawals", "PendingWithdrawalsProcessed")
        report.actions.append("processPendingWithdrawals")

    async def _parent_has_capacity(self, parent: PoolHandle) -> bool:
        snapshot = await self._accessor.snapshot(parent)
        cap = int(await parent.pool.call("getLiquidityCap"))
        return snapshot.active_balance < cap

    async def send_snapshot(self, handle: PoolHandle, report: KeeperReport) -> None:
        parent = self._registry.parent
        try:
            parent_full = await self._accessor.flag(parent, "areQueuesFull")
        except ChainUnavailableError as exc:
            LOGGER.warning("keeper.parent_unobservable", extra={"pool": handle.name, "error": str(exc)})
            report.skipped.append("snapshot")
            return
        if not parent_full:
            return
        if not await self._parent_has_capacity(parent):
            LOGGER.info("keeper.parent_at_cap", extra={"pool": handle.name})
            report.skipped.append("snapshot")
            return
        try:
            self._routing.get_route(handle.chain_selector, parent.chain_selector)
        except RouteNotConfiguredError as exc:
            LOGGER.error("keeper.route_missing", extra={"pool": handle.name, "reason": exc.reason})
            report.skipped.append("snapshot")
            return
        last = self._last_snapshot_sent.get(handle.name)
        if last is not None and time.time() - last < self._config.snapshot_resend_interval_sec:
            return
        await self._send(handle, "sendSnapshotToParentPool", "SnapshotSent")
        self._last_snapshot_sent[handle.name] = time.time()
        report.actions.append("sendSnapshotToParentPool")

    async def run_for_pool(self, handle: PoolHandle) -> KeeperReport:
        report = KeeperReport(pool=handle.name)
        if handle.is_parent:
            await self.trigger_batch(handle, report)
            await self.process_pending(handle, report)
        else:
            await self.send_snapshot(handle, report)
        return report


__all__ = ["KeeperOrchestrator", "KeeperReport"]
