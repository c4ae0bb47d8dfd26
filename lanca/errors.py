"""Exception taxonomy shared by the keeper and rebalancer."""

from __future__ import annotations


class LancaError(Exception):
    """Base class for engine errors."""


class ConfigurationError(LancaError):
    """Required configuration is missing or inconsistent."""


class ChainUnavailableError(LancaError):
    """Transient RPC failure (timeout, node unavailable)."""


class ReceiptTimeoutError(ChainUnavailableError):
    """A submitted transaction was not confirmed within the wait budget."""

    def __init__(self, tx_hash: str, timeout_ms: int) -> None:
        self.tx_hash = tx_hash
        self.timeout_ms = timeout_ms
        super().__init__(f"transaction {tx_hash} not confirmed after {timeout_ms} ms")


class PoolUnobservableError(ChainUnavailableError):
    """A pool snapshot could not be read for this cycle."""

    def __init__(self, pool: str, reason: str) -> None:
        self.pool = pool
        self.reason = reason
        super().__init__(f"pool {pool} unobservable: {reason}")


class TransactionRevertedError(LancaError):
    """The pool rejected a call on-chain."""

    def __init__(self, function: str, reason: str, tx_hash: str | None = None) -> None:
        self.function = function
        self.reason = reason
        self.tx_hash = tx_hash
        super().__init__(f"{function} reverted: {reason}")


class RouteNotConfiguredError(LancaError):
    """A route between two chains is missing, self-referencing or asymmetric."""

    def __init__(self, src: int, dst: int, reason: str) -> None:
        self.src = src
        self.dst = dst
        self.reason = reason
        super().__init__(f"route {src}->{dst} not configured: {reason}")


class MinAmountError(LancaError):
    """A queue request is below the pool's minimum amount."""

    def __init__(self, amount: int, minimum: int) -> None:
        self.amount = amount
        self.minimum = minimum
        super().__init__(f"amount {amount} below minimum {minimum}")


class BatchInProgressError(LancaError):
    """A batch drain was requested while another one is running."""


class BatchFailedError(LancaError):
    """A batch failed mid-settlement; the pool needs operator intervention."""


class EventTimeoutError(LancaError):
    """An awaited event was not observed in time."""

    def __init__(self, event: str, timeout_ms: int) -> None:
        self.event = event
        self.timeout_ms = timeout_ms
        super().__init__(f"Timeout waiting for {event} event after {timeout_ms} ms")


__all__ = [
    "LancaError",
    "ConfigurationError",
    "ChainUnavailableError",
    "PoolUnobservableError",
    "ReceiptTimeoutError",
    "TransactionRevertedError",
    "RouteNotConfiguredError",
    "MinAmountError",
    "BatchInProgressError",
    "BatchFailedError",
    "EventTimeoutError",
]
