"""web3.py-backed contract client for real RPC endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.logs import DISCARD

from ..errors import ChainUnavailableError, ReceiptTimeoutError, TransactionRevertedError
from ..runtime.locks import acquire
from .base import POOL_EVENTS, ChainEvent, TxReceipt
from .abi import Abi

LOGGER = logging.getLogger(__name__)

_TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    Web3Exception,
    OSError,
    asyncio.TimeoutError,
    ValueError,
)


def build_web3(rpc_url: str, *, request_timeout: float = 10.0) -> AsyncWeb3:
    return AsyncWeb3(
        AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout})
    )


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = value.hex() if hasattr(value, "hex") else str(value)
    return text if text.startswith("0x") else "0x" + text


class Web3ContractClient:
    """``ContractClient`` for a deployed contract, signing with a local key.

    Transactions from one account are serialised per chain so nonces are
    assigned in submission order.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        address: str,
        abi: Abi,
        *,
        account: LocalAccount | None = None,
        chain_name: str = "",
        event_names: Sequence[str] = POOL_EVENTS,
        confirmations: int = 1,
    ) -> None:
        self._w3 = w3
        self.address = AsyncWeb3.to_checksum_address(address)
        self._contract = w3.eth.contract(address=self.address, abi=abi)
        self._account = account
        self._chain_name = chain_name or self.address
        self._confirmations = max(1, confirmations)
        self._event_names = tuple(
            name for name in event_names if any(item.get("name") == name for item in abi)
        )

    async def block_number(self) -> int:
        try:
            return int(await self._w3.eth.block_number)
        except _TRANSIENT_ERRORS as exc:
            raise ChainUnavailableError(f"{self._chain_name}: {exc}") from exc

    async def call(self, function: str, *args: Any, block: int | None = None) -> Any:
        fn = self._contract.functions[function](*args)
        try:
            if block is None:
                return await fn.call()
            return await fn.call(block_identifier=block)
        except ContractLogicError as exc:
            raise TransactionRevertedError(function, str(exc)) from exc
        except _TRANSIENT_ERRORS as exc:
            raise ChainUnavailableError(f"{self._chain_name} {function}: {exc}") from exc

    async def transact(self, function: str, *args: Any) -> str:
        if self._account is None:
            raise ChainUnavailableError(f"no signing key configured for {self._chain_name}")
        sender = self._account.address
        async with acquire("nonce", self._chain_name, sender):
            try:
                nonce = await self._w3.eth.get_transaction_count(sender, "pending")
                tx = await self._contract.functions[function](*args).build_transaction(
                    {"from": sender, "nonce": nonce}
                )
                signed = self._account.sign_transaction(tx)
                tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            except ContractLogicError as exc:
                raise TransactionRevertedError(function, str(exc)) from exc
            except _TRANSIENT_ERRORS as exc:
                raise ChainUnavailableError(f"{self._chain_name} {function}: {exc}") from exc
        LOGGER.debug(
            "chain.tx_sent",
            extra={"chain": self._chain_name, "function": function, "nonce": nonce},
        )
        return _hex(tx_hash)

    def _decode(self, receipt: Any) -> TxReceipt:
        events: list[ChainEvent] = []
        for name in self._event_names:
            for log in self._contract.events[name]().process_receipt(receipt, errors=DISCARD):
                events.append(
                    ChainEvent(
                        name=name,
                        address=str(log["address"]),
                        block_number=int(log["blockNumber"]),
                        tx_hash=_hex(log["transactionHash"]),
                        args=dict(log["args"]),
                    )
                )
        return TxReceipt(
            tx_hash=_hex(receipt["transactionHash"]),
            block_number=int(receipt["blockNumber"]),
            status=bool(receipt["status"]),
            events=tuple(events),
            revert_reason=None if receipt["status"] else "reverted",
        )

    async def get_receipt(self, tx_hash: str) -> TxReceipt | None:
        try:
            receipt = await self._w3.eth.get_transaction_receipt(tx_hash)
        except Web3Exception:
            return None
        except (OSError, asyncio.TimeoutError, ValueError) as exc:
            raise ChainUnavailableError(f"{self._chain_name}: {exc}") from exc
        return self._decode(receipt)

    async def _await_depth(self, receipt: TxReceipt, deadline: float, timeout_ms: int) -> None:
        loop = asyncio.get_running_loop()
        while (await self.block_number()) - receipt.block_number + 1 < self._confirmations:
            if loop.time() >= deadline:
                raise ReceiptTimeoutError(receipt.tx_hash, timeout_ms)
            await asyncio.sleep(0.5)

    async def wait_for_receipt(self, tx_hash: str, timeout_ms: int) -> TxReceipt:
        deadline = asyncio.get_running_loop().time() + timeout_ms / 1000
        try:
            raw = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout_ms / 1000, poll_latency=0.2
            )
        except TimeExhausted as exc:
            raise ReceiptTimeoutError(tx_hash, timeout_ms) from exc
        except _TRANSIENT_ERRORS as exc:
            raise ChainUnavailableError(f"{self._chain_name}: {exc}") from exc
        receipt = self._decode(raw)
        if not receipt.status:
            raise TransactionRevertedError("transaction", "reverted", tx_hash)
        if self._confirmations > 1:
            await self._await_depth(receipt, deadline, timeout_ms)
        return receipt

    async def get_events(self, event: str, from_block: int) -> list[ChainEvent]:
        try:
            logs = await self._contract.events[event]().get_logs(from_block=from_block)
        except _TRANSIENT_ERRORS as exc:
            raise ChainUnavailableError(f"{self._chain_name} {event}: {exc}") from exc
        return [
            ChainEvent(
                name=event,
                address=str(log["address"]),
                block_number=int(log["blockNumber"]),
                tx_hash=_hex(log["transactionHash"]),
                args=dict(log["args"]),
            )
            for log in logs
        ]


__all__ = ["Web3ContractClient", "build_web3"]
