"""Per-pool deposit/withdrawal queues and the batch drain state machine."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from ..config.schema import EngineConfig, PoolConfig
from ..errors import BatchFailedError, BatchInProgressError, MinAmountError
from ..metrics import BATCH_HALTED_GAUGE
from ..pools.models import PoolParameters, PoolSnapshot, QueueEntry

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class BatchState(str, enum.Enum):
    IDLE = "IDLE"
    DRAINING = "DRAINING"


@dataclass(slots=True)
class QueueLimits:
    min_deposit_queue_length: int = 0
    min_withdrawal_queue_length: int = 0
    min_deposit_amount: int = 0
    min_withdrawal_amount: int = 0


@dataclass(slots=True)
class BatchResult:
    pool: str
    deposits: List[QueueEntry]
    withdrawals: List[QueueEntry]
    outcome: object = None


@dataclass
class _PoolQueues:
    limits: QueueLimits
    deposits: List[QueueEntry] = field(default_factory=list)
    withdrawals: List[QueueEntry] = field(default_factory=list)
    state: BatchState = BatchState.IDLE
    halted: bool = False
    last_failure: Optional[str] = None
    last_failure_ts: Optional[float] = None


class QueueManager:
    def __init__(self, limits: Dict[str, QueueLimits] | None = None) -> None:
        self._pools: Dict[str, _PoolQueues] = {
            name: _PoolQueues(limits=value) for name, value in (limits or {}).items()
        }

    @classmethod
    def from_config(cls, config: EngineConfig) -> "QueueManager":
        return cls({pool.name: limits_from_config(pool) for pool in config.pools})

    def _queues(self, pool: str) -> _PoolQueues:
        queues = self._pools.get(pool)
        if queues is None:
            queues = _PoolQueues(limits=QueueLimits())
            self._pools[pool] = queues
        return queues

    def apply_parameters(self, params: PoolParameters) -> None:
        """Adopt the queue minimums currently set on-chain."""

        self._queues(params.pool).limits = QueueLimits(
            min_deposit_queue_length=params.min_deposit_queue_length,
            min_withdrawal_queue_length=params.min_withdrawal_queue_length,
            min_deposit_amount=params.min_deposit_amount,
            min_withdrawal_amount=params.min_withdrawal_amount,
        )

    def enqueue_deposit(self, pool: str, user: str, amount: int) -> QueueEntry:
        queues = self._queues(pool)
        if amount < queues.limits.min_deposit_amount:
            raise MinAmountError(amount, queues.limits.min_deposit_amount)
        entry = QueueEntry(user=user, amount=amount)
        queues.deposits.append(entry)
        return entry

    def enqueue_withdrawal(self, pool: str, user: str, amount: int) -> QueueEntry:
        queues = self._queues(pool)
        if amount < queues.limits.min_withdrawal_amount:
            raise MinAmountError(amount, queues.limits.min_withdrawal_amount)
        entry = QueueEntry(user=user, amount=amount)
        queues.withdrawals.append(entry)
        return entry

    def discard(self, pool: str, entry: QueueEntry) -> None:
        """Drop ``entry`` if it is still queued locally."""

        queues = self._queues(pool)
        for side in (queues.deposits, queues.withdrawals):
            if any(item is entry for item in side):
                side[:] = [item for item in side if item is not entry]
                return

    def deposits(self, pool: str) -> tuple[QueueEntry, ...]:
        return tuple(self._queues(pool).deposits)

    def withdrawals(self, pool: str) -> tuple[QueueEntry, ...]:
        return tuple(self._queues(pool).withdrawals)

    def state(self, pool: str) -> BatchState:
        return self._queues(pool).state

    def is_halted(self, pool: str) -> bool:
        return self._queues(pool).halted

    def is_ready_to_batch(
        self,
        pool: str,
        snapshot: PoolSnapshot | None = None,
        *,
        deposit_blocked: bool = False,
    ) -> bool:
        """Return whether ``pool``'s queues may be batched.

        Queue lengths come from ``snapshot`` when given, otherwise from the
        locally tracked entries. A side with a minimum of zero is always
        eligible unless blocked. A batch settles both queues at once, so
        queued deposits that are blocked hold back the whole batch.
        """

        queues = self._queues(pool)
        if queues.halted or queues.state is BatchState.DRAINING:
            return False
        if snapshot is not None:
            deposit_len = snapshot.deposit_queue_length
            withdrawal_len = snapshot.withdrawal_queue_length
        else:
            deposit_len = len(queues.deposits)
            withdrawal_len = len(queues.withdrawals)
        if deposit_blocked and deposit_len > 0:
            return False
        deposit_ready = deposit_len >= queues.limits.min_deposit_queue_length and not deposit_blocked
        withdrawal_ready = withdrawal_len >= queues.limits.min_withdrawal_queue_length
        return deposit_ready or withdrawal_ready

    async def drain_batch(
        self,
        pool: str,
        submit: Callable[[], Awaitable[T]] | None = None,
    ) -> BatchResult:
        """Drain ``pool``'s queues through ``submit``.

        Entries are taken off the queue before ``submit`` runs and are not put
        back on failure; the pool is halted until :meth:`resume` is called.
        """

        queues = self._queues(pool)
        if queues.state is BatchState.DRAINING:
            raise BatchInProgressError(f"batch already draining for pool {pool}")
        if queues.halted:
            raise BatchFailedError(f"batching halted for pool {pool}: {queues.last_failure}")
        queues.state = BatchState.DRAINING
        deposits, queues.deposits = queues.deposits, []
        withdrawals, queues.withdrawals = queues.withdrawals, []
        LOGGER.info(
            "queue.drain_started",
            extra={"pool": pool, "deposits": len(deposits), "withdrawals": len(withdrawals)},
        )
        try:
            outcome = await submit() if submit is not None else None
        except Exception as exc:
            queues.halted = True
            queues.last_failure = str(exc)
            queues.last_failure_ts = time.time()
            BATCH_HALTED_GAUGE.labels(pool=pool).set(1.0)
            LOGGER.error(
                "queue.drain_failed",
                extra={"pool": pool, "error": str(exc)},
                exc_info=exc,
            )
            raise BatchFailedError(f"batch failed for pool {pool}: {exc}") from exc
        finally:
            queues.state = BatchState.IDLE
        LOGGER.info("queue.drain_completed", extra={"pool": pool})
        return BatchResult(pool=pool, deposits=deposits, withdrawals=withdrawals, outcome=outcome)

    def resume(self, pool: str) -> None:
        queues = self._queues(pool)
        if not queues.halted:
            return
        queues.halted = False
        BATCH_HALTED_GAUGE.labels(pool=pool).set(0.0)
        LOGGER.warning(
            "queue.resumed",
            extra={"pool": pool, "last_failure": queues.last_failure},
        )

    def status(self, pool: str) -> dict[str, object]:
        queues = self._queues(pool)
        return {
            "state": queues.state.value,
            "halted": queues.halted,
            "last_failure": queues.last_failure,
            "last_failure_ts": queues.last_failure_ts,
            "deposits": len(queues.deposits),
            "withdrawals": len(queues.withdrawals),
        }


def limits_from_config(pool: PoolConfig) -> QueueLimits:
    return QueueLimits(
        min_deposit_queue_length=pool.min_deposit_queue_length,
        min_withdrawal_queue_length=pool.min_withdrawal_queue_length,
        min_deposit_amount=pool.min_deposit_amount,
        min_withdrawal_amount=pool.min_withdrawal_amount,
    )


__all__ = [
    "BatchResult",
    "BatchState",
    "QueueLimits",
    "QueueManager",
    "limits_from_config",
]
