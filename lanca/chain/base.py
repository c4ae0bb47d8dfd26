"""Contract client seam shared by the web3 adapter and the in-memory ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

EventName = str

ADDRESS_ZERO = "0x0000000000000000000000000000000000000000"

POOL_EVENTS: tuple[EventName, ...] = (
    "SnapshotSent",
    "DepositWithdrawTriggered",
    "PendingWithdrawalsProcessed",
    "DeficitFilled",
    "SurplusTaken",
)


@dataclass(slots=True, frozen=True)
class ChainEvent:
    """Decoded contract log."""

    name: EventName
    address: str
    block_number: int
    tx_hash: str
    args: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class TxReceipt:
    """Confirmed transaction outcome with the events it emitted."""

    tx_hash: str
    block_number: int
    status: bool
    events: Sequence[ChainEvent] = ()
    revert_reason: str | None = None

    def event(self, name: EventName) -> ChainEvent | None:
        for item in self.events:
            if item.name == name:
                return item
        return None


@runtime_checkable
class ContractClient(Protocol):
    """Minimal async surface the engine needs from a deployed contract.

    ``call`` reads a view function, optionally pinned to ``block``.
    ``transact`` submits a state-changing call from the bound account and
    returns its transaction hash without waiting for confirmation.
    """

    address: str

    async def block_number(self) -> int: ...

    async def call(self, function: str, *args: Any, block: int | None = None) -> Any: ...

    async def transact(self, function: str, *args: Any) -> str: ...

    async def get_receipt(self, tx_hash: str) -> TxReceipt | None: ...

    async def wait_for_receipt(self, tx_hash: str, timeout_ms: int) -> TxReceipt: ...

    async def get_events(self, event: EventName, from_block: int) -> list[ChainEvent]: ...


__all__ = ["ADDRESS_ZERO", "EventName", "POOL_EVENTS", "ChainEvent", "TxReceipt", "ContractClient"]
