from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class PoolSnapshot:
    """Pool balances and queue lengths read at a single block."""

    pool: str
    block_number: int
    active_balance: int
    target_balance: int
    deposit_queue_length: int
    withdrawal_queue_length: int

    @property
    def deficit(self) -> int:
        return max(self.target_balance - self.active_balance, 0)

    @property
    def surplus(self) -> int:
        return max(self.active_balance - self.target_balance, 0)

    def as_dict(self) -> dict[str, int | str]:
        return {
            "pool": self.pool,
            "block_number": self.block_number,
            "active_balance": self.active_balance,
            "target_balance": self.target_balance,
            "deficit": self.deficit,
            "surplus": self.surplus,
            "deposit_queue_length": self.deposit_queue_length,
            "withdrawal_queue_length": self.withdrawal_queue_length,
        }


@dataclass(slots=True, frozen=True)
class PoolParameters:
    pool: str
    lur_score_sensitivity: int
    lur_score_weight: int
    ndr_score_weight: int
    liquidity_cap: int
    min_deposit_queue_length: int
    min_withdrawal_queue_length: int
    rebalancer_fee_bps: int
    lp_fee_bps: int
    lanca_bridge_fee_bps: int
    min_deposit_amount: int
    min_withdrawal_amount: int


@dataclass(slots=True, frozen=True)
class QueueEntry:
    user: str
    amount: int
    enqueued_at: float = field(default_factory=time.time)


__all__ = ["PoolSnapshot", "PoolParameters", "QueueEntry"]
