"""Pool health scoring.

Scores are fixed-point integers with ``SCORE_SCALE`` (1e6) meaning fully
healthy. The liquidity utilisation ratio (LUR) score decays as the active
balance drifts from its target; the net deposit ratio (NDR) score rewards
pools whose recent flows are net inflows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .chain.base import ContractClient
from .config.schema import SCORE_SCALE
from .errors import ChainUnavailableError

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class FlowHistory:
    deposits: int = 0
    withdrawals: int = 0

    @property
    def net(self) -> int:
        return self.deposits - self.withdrawals

    @property
    def total(self) -> int:
        return self.deposits + self.withdrawals


@dataclass(slots=True, frozen=True)
class PoolScores:
    lur: int
    ndr: int
    composite: int

    def as_dict(self) -> dict[str, int]:
        return {"lur": self.lur, "ndr": self.ndr, "composite": self.composite}


def _clamp(value: int, low: int = 0, high: int = SCORE_SCALE) -> int:
    return max(low, min(high, value))


def lur_ratio(active_balance: int, target_balance: int) -> int:
    """Return active/target in fixed point; a zero target counts as balanced."""

    if target_balance <= 0:
        return SCORE_SCALE
    return active_balance * SCORE_SCALE // target_balance


def lur_score(active_balance: int, target_balance: int, sensitivity: int) -> int:
    deviation = abs(lur_ratio(active_balance, target_balance) - SCORE_SCALE)
    # scale / (1 + s * d) with s and d both in fixed point
    denominator = SCORE_SCALE + sensitivity * deviation // SCORE_SCALE
    return _clamp(SCORE_SCALE * SCORE_SCALE // denominator)


def ndr_ratio(history: FlowHistory) -> int:
    """Net deposits over total flow in fixed point, in ``[-scale, scale]``."""

    if history.total <= 0:
        return 0
    return history.net * SCORE_SCALE // history.total


def ndr_score(history: FlowHistory) -> int:
    return _clamp((ndr_ratio(history) + SCORE_SCALE) // 2)


def composite_score(lur: int, ndr: int, lur_weight: int, ndr_weight: int) -> int:
    total_weight = lur_weight + ndr_weight
    if total_weight <= 0:
        return _clamp(lur)
    return _clamp((lur_weight * lur + ndr_weight * ndr) // total_weight)


def score_pool(
    *,
    active_balance: int,
    target_balance: int,
    history: FlowHistory,
    sensitivity: int,
    lur_weight: int,
    ndr_weight: int,
) -> PoolScores:
    lur = lur_score(active_balance, target_balance, sensitivity)
    ndr = ndr_score(history)
    return PoolScores(lur=lur, ndr=ndr, composite=composite_score(lur, ndr, lur_weight, ndr_weight))


def is_deposit_blocked(
    *,
    active_balance: int,
    queued_deposits: int,
    liquidity_cap: int,
    composite: int | None = None,
    min_score: int = 0,
) -> bool:
    if active_balance + queued_deposits >= liquidity_cap:
        return True
    if composite is not None and min_score > 0 and composite < min_score:
        return True
    return False


def effective_lp_fee_bps(base_fee_bps: int, composite: int) -> int:
    """Scale the LP fee from ``base`` at full health to ``2 * base`` at zero."""

    composite = _clamp(composite)
    numerator = base_fee_bps * (2 * SCORE_SCALE - composite)
    return -(-numerator // SCORE_SCALE)


class HistorySource(Protocol):
    async def flows(self, pool: ContractClient, *, window_blocks: int) -> FlowHistory: ...


class EventFlowHistory:
    """Sum deposit and withdrawal flows from recent batch events."""

    async def flows(self, pool: ContractClient, *, window_blocks: int) -> FlowHistory:
        head = await pool.block_number()
        from_block = max(head - window_blocks, 0)
        try:
            events = await pool.get_events("DepositWithdrawTriggered", from_block)
        except ChainUnavailableError:
            LOGGER.warning("scoring.history_unavailable", extra={"pool": pool.address})
            raise
        deposits = sum(int(event.args.get("totalDeposited", 0)) for event in events)
        withdrawals = sum(int(event.args.get("totalWithdrawn", 0)) for event in events)
        return FlowHistory(deposits=deposits, withdrawals=withdrawals)


__all__ = [
    "EventFlowHistory",
    "FlowHistory",
    "HistorySource",
    "PoolScores",
    "composite_score",
    "effective_lp_fee_bps",
    "is_deposit_blocked",
    "lur_ratio",
    "lur_score",
    "ndr_ratio",
    "ndr_score",
    "score_pool",
]
