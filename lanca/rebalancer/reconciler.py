"""Deficit fills and surplus sweeps against each pool's target balance.

Every decision is recomputed from a fresh snapshot, so a retry after any
failure acts on current state rather than on a remembered plan. Only one
correction per pool may be in flight at a time.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, Literal

from ..chain.base import ContractClient, TxReceipt
from ..config.schema import BPS_DENOMINATOR
from ..errors import (
    ChainUnavailableError,
    EventTimeoutError,
    ReceiptTimeoutError,
    RouteNotConfiguredError,
    TransactionRevertedError,
)
from ..events import wait_for_event
from ..metrics import REBALANCER_ACTIONS_TOTAL
from ..pools.accessor import PoolStateAccessor
from ..pools.registry import PoolHandle
from ..routing import RoutingTable

LOGGER = logging.getLogger(__name__)

Action = Literal["fill", "sweep", "none"]
Outcome = Literal["confirmed", "skipped", "in_flight", "lost_race", "reverted", "error"]

_LOST_RACE_REASONS = ("NoDeficitToFill", "NoSurplusToTake")

_EVENTS = {"fill": "DeficitFilled", "sweep": "SurplusTaken"}
_FUNCTIONS = {"fill": "fillDeficit", "sweep": "takeSurplus"}


@dataclass(slots=True)
class InFlight:
    action: Action
    tx_hash: str
    amount: int
    submitted_at: float


@dataclass(slots=True)
class Correction:
    pool: str
    action: Action
    outcome: Outcome
    amount: int = 0
    fee: int = 0
    tx_hash: str | None = None
    reason: str | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "action": self.action,
            "outcome": self.outcome,
            "amount": self.amount,
            "fee": self.fee,
            "tx_hash": self.tx_hash,
            "reason": self.reason,
        }


def rebalancer_fee(amount: int, fee_bps: int) -> int:
    return amount * fee_bps // BPS_DENOMINATOR


class DeficitSurplusReconciler:
    def __init__(
        self,
        accessor: PoolStateAccessor,
        routing: RoutingTable,
        *,
        parent_selector: int,
        receipt_timeout_ms: int = 10_000,
        in_flight_ttl_sec: float = 120.0,
    ) -> None:
        self._accessor = accessor
        self._routing = routing
        self._parent_selector = parent_selector
        self._timeout_ms = receipt_timeout_ms
        self._ttl = in_flight_ttl_sec
        self._in_flight: Dict[str, InFlight] = {}

    def in_flight(self, pool: str) -> InFlight | None:
        return self._in_flight.get(pool)

    async def _resolve_in_flight(self, handle: PoolHandle) -> InFlight | None:
        """Drop the pool's in-flight entry once confirmed, reverted or expired."""

        entry = self._in_flight.get(handle.name)
        if entry is None:
            return None
        receipt = await handle.pool.get_receipt(entry.tx_hash)
        if receipt is not None:
            LOGGER.info(
                "rebalancer.in_flight_resolved",
                extra={"pool": handle.name, "tx_hash": entry.tx_hash, "status": receipt.status},
            )
            self._in_flight.pop(handle.name, None)
            return None
        if time.time() - entry.submitted_at >= self._ttl:
            LOGGER.warning(
                "rebalancer.in_flight_expired",
                extra={"pool": handle.name, "tx_hash": entry.tx_hash, "ttl_sec": self._ttl},
            )
            self._in_flight.pop(handle.name, None)
            return None
        return entry

    async def _ensure_allowance(self, handle: PoolHandle, token: ContractClient, amount: int) -> None:
        current = int(await token.call("allowance", handle.operator, handle.pool.address))
        if current >= amount:
            return
        tx_hash = await token.transact("approve", handle.pool.address, amount)
        await token.wait_for_receipt(tx_hash, self._timeout_ms)
        LOGGER.info(
            "rebalancer.allowance_raised",
            extra={"pool": handle.name, "token": token.address, "amount": amount},
        )

    async def _confirm(self, handle: PoolHandle, action: Action, tx_hash: str) -> TxReceipt:
        receipt = await handle.pool.wait_for_receipt(tx_hash, self._timeout_ms)
        if receipt.event(_EVENTS[action]) is None:
            # some RPCs return receipts before logs are indexed
            await wait_for_event(
                handle.pool,
                _EVENTS[action],
                timeout_ms=self._timeout_ms,
                from_block=receipt.block_number,
            )
        return receipt

    def _plan(self, outstanding: int, balance: int, fee_bps: int) -> tuple[int, int]:
        amount = min(outstanding, balance)
        if amount <= 0:
            return 0, 0
        fee = rebalancer_fee(amount, fee_bps)
        if amount - fee <= 0:
            return 0, fee
        return amount, fee

    async def reconcile(self, handle: PoolHandle) -> Correction:
        """Issue at most one correction for ``handle`` and report what happened."""

        pending = await self._resolve_in_flight(handle)
        if pending is not None:
            return Correction(
                handle.name, pending.action, "in_flight", amount=pending.amount, tx_hash=pending.tx_hash
            )

        if not handle.is_parent:
            try:
                self._routing.get_route(handle.chain_selector, self._parent_selector)
            except RouteNotConfiguredError as exc:
                LOGGER.error(
                    "rebalancer.route_missing",
                    extra={"pool": handle.name, "reason": exc.reason},
                )
                return Correction(handle.name, "none", "skipped", reason=str(exc))

        snapshot = await self._accessor.snapshot(handle)
        if snapshot.deficit > 0:
            action: Action = "fill"
            token = handle.liquidity_token
            outstanding = snapshot.deficit
        elif snapshot.surplus > 0:
            action = "sweep"
            token = handle.iou_token
            outstanding = snapshot.surplus
        else:
            return Correction(handle.name, "none", "skipped", reason="balanced")

        fee_bps = int(await handle.pool.call("getRebalancerFeeBps"))
        if fee_bps == 0:
            LOGGER.warning("rebalancer.zero_fee", extra={"pool": handle.name})
        balance = int(await token.call("balanceOf", handle.operator))
        amount, fee = self._plan(outstanding, balance, fee_bps)
        if amount == 0:
            LOGGER.info(
                "rebalancer.insufficient_balance",
                extra={"pool": handle.name, "action": action, "outstanding": outstanding, "balance": balance},
            )
            REBALANCER_ACTIONS_TOTAL.labels(pool=handle.name, action=action, outcome="skipped").inc()
            return Correction(handle.name, action, "skipped", fee=fee, reason="net amount is zero")

        return await self._submit(handle, action, token, amount, fee)

    async def _submit(
        self, handle: PoolHandle, action: Action, token: ContractClient, amount: int, fee: int
    ) -> Correction:
        function = _FUNCTIONS[action]
        tx_hash: str | None = None
        try:
            await self._ensure_allowance(handle, token, amount)
            tx_hash = await handle.pool.transact(function, amount)
            self._in_flight[handle.name] = InFlight(action, tx_hash, amount, time.time())
            LOGGER.info(
                "rebalancer.%s_submitted" % action,
                extra={"pool": handle.name, "amount": amount, "fee": fee, "tx_hash": tx_hash},
            )
            await self._confirm(handle, action, tx_hash)
        except TransactionRevertedError as exc:
            self._in_flight.pop(handle.name, None)
            if any(marker in exc.reason for marker in _LOST_RACE_REASONS):
                LOGGER.info(
                    "rebalancer.lost_race",
                    extra={"pool": handle.name, "action": action, "reason": exc.reason},
                )
                REBALANCER_ACTIONS_TOTAL.labels(pool=handle.name, action=action, outcome="lost_race").inc()
                return Correction(handle.name, action, "lost_race", amount, fee, exc.tx_hash, exc.reason)
            LOGGER.error(
                "rebalancer.reverted",
                extra={"pool": handle.name, "action": action, "reason": exc.reason},
            )
            REBALANCER_ACTIONS_TOTAL.labels(pool=handle.name, action=action, outcome="reverted").inc()
            return Correction(handle.name, action, "reverted", amount, fee, exc.tx_hash, exc.reason)
        except ReceiptTimeoutError as exc:
            if tx_hash is None:
                LOGGER.warning(
                    "rebalancer.approve_timeout",
                    extra={"pool": handle.name, "action": action, "tx_hash": exc.tx_hash},
                )
                REBALANCER_ACTIONS_TOTAL.labels(pool=handle.name, action=action, outcome="error").inc()
                return Correction(handle.name, action, "error", amount, fee, exc.tx_hash, str(exc))
            # entry stays in flight until the receipt resolves or the TTL expires
            LOGGER.warning(
                "rebalancer.receipt_timeout",
                extra={"pool": handle.name, "action": action, "tx_hash": exc.tx_hash},
            )
            REBALANCER_ACTIONS_TOTAL.labels(pool=handle.name, action=action, outcome="in_flight").inc()
            return Correction(handle.name, action, "in_flight", amount, fee, exc.tx_hash, str(exc))
        except EventTimeoutError:
            self._in_flight.pop(handle.name, None)
            REBALANCER_ACTIONS_TOTAL.labels(pool=handle.name, action=action, outcome="error").inc()
            raise
        except ChainUnavailableError:
            if tx_hash is None:
                self._in_flight.pop(handle.name, None)
            REBALANCER_ACTIONS_TOTAL.labels(pool=handle.name, action=action, outcome="error").inc()
            raise
        self._in_flight.pop(handle.name, None)
        REBALANCER_ACTIONS_TOTAL.labels(pool=handle.name, action=action, outcome="confirmed").inc()
        LOGGER.info(
            "rebalancer.%s_confirmed" % action,
            extra={"pool": handle.name, "amount": amount, "fee": fee, "tx_hash": tx_hash},
        )
        return Correction(handle.name, action, "confirmed", amount, fee, tx_hash)


__all__ = ["Correction", "DeficitSurplusReconciler", "InFlight", "rebalancer_fee"]
