"""Operator-submitted deposit and withdrawal queue requests on the parent pool."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from ..chain.base import ContractClient
from ..errors import ConfigurationError, LancaError
from ..pools.accessor import PoolStateAccessor
from ..pools.models import QueueEntry
from ..pools.registry import PoolHandle
from ..runtime.locks import pool_lock
from .manager import QueueManager

LOGGER = logging.getLogger(__name__)

Side = Literal["deposit", "withdrawal"]


@dataclass(slots=True)
class QueueRequest:
    pool: str
    side: Side
    entry: QueueEntry
    tx_hash: str

    def as_dict(self) -> dict[str, object]:
        return {
            "pool": self.pool,
            "side": self.side,
            "user": self.entry.user,
            "amount": self.entry.amount,
            "tx_hash": self.tx_hash,
        }


class QueueRequests:
    """Enter the parent pool's queues on behalf of the operator account.

    The amount is checked against the pool's current minimum before anything
    is sent. The queue token is approved for the pool, then the pool's
    ``enterDepositQueue`` / ``enterWithdrawalQueue`` is called. The local
    entry is dropped again if either transaction fails.
    """

    def __init__(
        self,
        accessor: PoolStateAccessor,
        queues: QueueManager,
        *,
        receipt_timeout_ms: int = 10_000,
    ) -> None:
        self._accessor = accessor
        self._queues = queues
        self._timeout_ms = receipt_timeout_ms

    async def deposit(self, handle: PoolHandle, amount: int) -> QueueRequest:
        return await self._enter(handle, "deposit", handle.liquidity_token, amount)

    async def withdraw(self, handle: PoolHandle, lp_amount: int) -> QueueRequest:
        if handle.lp_token is None:
            raise ConfigurationError(f"no LP token configured for pool {handle.name}")
        return await self._enter(handle, "withdrawal", handle.lp_token, lp_amount)

    async def _approve(self, handle: PoolHandle, token: ContractClient, amount: int) -> None:
        current = int(await token.call("allowance", handle.operator, handle.pool.address))
        if current >= amount:
            return
        tx_hash = await token.transact("approve", handle.pool.address, amount)
        await token.wait_for_receipt(tx_hash, self._timeout_ms)
        LOGGER.info(
            "queue.allowance_raised",
            extra={"pool": handle.name, "token": token.address, "amount": amount},
        )

    async def _enter(
        self, handle: PoolHandle, side: Side, token: ContractClient, amount: int
    ) -> QueueRequest:
        if not handle.is_parent:
            raise ConfigurationError(f"pool {handle.name} has no user queues")
        async with pool_lock(handle.name):
            self._queues.apply_parameters(await self._accessor.parameters(handle))
            if side == "deposit":
                entry = self._queues.enqueue_deposit(handle.name, handle.operator, amount)
                function = "enterDepositQueue"
            else:
                entry = self._queues.enqueue_withdrawal(handle.name, handle.operator, amount)
                function = "enterWithdrawalQueue"
            try:
                await self._approve(handle, token, amount)
                tx_hash = await handle.pool.transact(function, amount)
                await handle.pool.wait_for_receipt(tx_hash, self._timeout_ms)
            except LancaError as exc:
                self._queues.discard(handle.name, entry)
                LOGGER.error(
                    "queue.request_failed",
                    extra={"pool": handle.name, "side": side, "amount": amount, "error": str(exc)},
                )
                raise
        LOGGER.info(
            "queue.request_entered",
            extra={"pool": handle.name, "side": side, "amount": amount, "tx_hash": tx_hash},
        )
        return QueueRequest(handle.name, side, entry, tx_hash)


__all__ = ["QueueRequest", "QueueRequests"]
