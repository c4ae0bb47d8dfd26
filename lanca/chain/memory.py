"""In-memory ledger executing the pool and token contract semantics.

Backs paper runs and tests. Each :class:`InMemoryChain` keeps its own block
counter, receipts and event log; contracts are reached through
:class:`BoundContract`, which implements the same ``ContractClient`` surface
as the web3 adapter. Reads always serve the latest state.
"""

from __future__ import annotations

import asyncio
import copy
import hashlib
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping

from ..config.schema import BPS_DENOMINATOR, SCORE_SCALE
from ..errors import ChainUnavailableError, ReceiptTimeoutError, TransactionRevertedError
from .base import ADDRESS_ZERO, ChainEvent, TxReceipt

LOGGER = logging.getLogger(__name__)

_TX_COUNTER = itertools.count(1)

# wiring and fault-injection knobs survive a reverted transaction
_UNVERSIONED_ATTRS = frozenset({"network", "chain", "liquidity", "iou", "lp", "fail_reads", "revert_next"})


class ContractRevert(Exception):
    """Raised inside contract execution; rolls the transaction back."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


def _tx_hash(chain_selector: int, sender: str, function: str) -> str:
    seed = f"{chain_selector}:{sender}:{function}:{next(_TX_COUNTER)}"
    return "0x" + hashlib.sha256(seed.encode("utf-8")).hexdigest()


@dataclass
class _PendingTx:
    tx_hash: str
    contract: "_Contract"
    sender: str
    function: str
    args: tuple[Any, ...]


class InMemoryChain:
    """Single chain: blocks, receipts, events and a pending-tx pool."""

    def __init__(self, name: str, chain_selector: int, *, auto_mine: bool = True) -> None:
        self.name = name
        self.chain_selector = chain_selector
        self.auto_mine = auto_mine
        self.block_number = 1
        self.events: List[ChainEvent] = []
        self.receipts: Dict[str, TxReceipt] = {}
        self.pending: List[_PendingTx] = []
        self.contracts: Dict[str, _Contract] = {}
        self.functions: Dict[str, str] = {}

    def register(self, contract: "_Contract") -> None:
        self.contracts[contract.address.lower()] = contract

    def submit(self, contract: "_Contract", sender: str, function: str, args: tuple[Any, ...]) -> str:
        tx_hash = _tx_hash(self.chain_selector, sender, function)
        pending = _PendingTx(tx_hash, contract, sender, function, args)
        self.functions[tx_hash] = function
        if not self.auto_mine:
            self.pending.append(pending)
            return tx_hash
        receipt = self._execute(pending)
        if not receipt.status:
            # mirrors gas estimation failing before broadcast
            self.receipts.pop(tx_hash, None)
            raise TransactionRevertedError(function, receipt.revert_reason or "reverted", tx_hash)
        return tx_hash

    def mine(self) -> list[TxReceipt]:
        """Execute every pending transaction in submission order."""

        pending, self.pending = self.pending, []
        return [self._execute(item) for item in pending]

    def _execute(self, pending: _PendingTx) -> TxReceipt:
        self.block_number += 1
        emitted: list[ChainEvent] = []

        def emit(name: str, **args: Any) -> None:
            emitted.append(
                ChainEvent(
                    name=name,
                    address=pending.contract.address,
                    block_number=self.block_number,
                    tx_hash=pending.tx_hash,
                    args=dict(args),
                )
            )

        checkpoint = pending.contract.network.checkpoint()
        try:
            pending.contract.execute(pending.sender, pending.function, pending.args, emit)
        except ContractRevert as exc:
            pending.contract.network.restore(checkpoint)
            receipt = TxReceipt(
                tx_hash=pending.tx_hash,
                block_number=self.block_number,
                status=False,
                revert_reason=exc.reason,
            )
            LOGGER.debug(
                "memory.tx_reverted",
                extra={"function": pending.function, "reason": exc.reason},
            )
        else:
            self.events.extend(emitted)
            receipt = TxReceipt(
                tx_hash=pending.tx_hash,
                block_number=self.block_number,
                status=True,
                events=tuple(emitted),
            )
        self.receipts[pending.tx_hash] = receipt
        return receipt


class _Contract:
    """Base for in-memory contracts: view/transaction dispatch by ABI name."""

    views: Mapping[str, str] = {}
    transactions: Mapping[str, str] = {}

    def __init__(self, network: "InMemoryNetwork", chain: InMemoryChain, address: str) -> None:
        self.network = network
        self.chain = chain
        self.address = address
        self.fail_reads = False
        self.revert_next: Dict[str, str] = {}
        chain.register(self)

    def view(self, function: str, args: tuple[Any, ...]) -> Any:
        if self.fail_reads:
            raise ChainUnavailableError(f"{self.chain.name} rpc unavailable")
        handler_name = self.views.get(function)
        if handler_name is None:
            raise ChainUnavailableError(f"{function} is not a view on {self.address}")
        return getattr(self, handler_name)(*args)

    def execute(self, sender: str, function: str, args: tuple[Any, ...], emit: Callable[..., None]) -> None:
        forced = self.revert_next.pop(function, None)
        if forced is not None:
            raise ContractRevert(forced)
        handler_name = self.transactions.get(function)
        if handler_name is None:
            raise ContractRevert(f"unknown function {function}")
        getattr(self, handler_name)(sender, emit, *args)

    def bind(self, sender: str) -> "BoundContract":
        return BoundContract(self, sender)


class InMemoryToken(_Contract):
    """ERC20 with a minter role (liquidity, LP share and IOU tokens)."""

    views = {
        "balanceOf": "balance_of",
        "allowance": "allowance",
        "totalSupply": "total_supply",
        "decimals": "get_decimals",
    }
    transactions = {
        "approve": "_tx_approve",
        "transfer": "_tx_transfer",
    }

    def __init__(
        self,
        network: "InMemoryNetwork",
        chain: InMemoryChain,
        address: str,
        symbol: str,
        decimals: int = 6,
    ) -> None:
        super().__init__(network, chain, address)
        self.symbol = symbol
        self.decimals = decimals
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[tuple[str, str], int] = {}
        self.minters: set[str] = set()
        self.supply = 0

    def balance_of(self, owner: str) -> int:
        return self.balances.get(owner.lower(), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner.lower(), spender.lower()), 0)

    def total_supply(self) -> int:
        return self.supply

    def get_decimals(self) -> int:
        return self.decimals

    def grant_minter(self, account: str) -> None:
        self.minters.add(account.lower())

    def faucet(self, to: str, amount: int) -> None:
        """Test helper: mint without role checks."""

        self._credit(to, amount)
        self.supply += amount

    def set_balance(self, owner: str, amount: int) -> None:
        current = self.balance_of(owner)
        self.supply += amount - current
        self.balances[owner.lower()] = amount

    def set_allowance(self, owner: str, spender: str, amount: int) -> None:
        self.allowances[(owner.lower(), spender.lower())] = amount

    def _credit(self, owner: str, amount: int) -> None:
        key = owner.lower()
        self.balances[key] = self.balances.get(key, 0) + amount

    def _debit(self, owner: str, amount: int) -> None:
        balance = self.balance_of(owner)
        if balance < amount:
            raise ContractRevert(f"{self.symbol}: insufficient balance")
        self.balances[owner.lower()] = balance - amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        self._debit(sender, amount)
        self._credit(to, amount)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        allowed = self.allowance(owner, spender)
        if allowed < amount:
            raise ContractRevert(f"{self.symbol}: insufficient allowance")
        self.allowances[(owner.lower(), spender.lower())] = allowed - amount
        self.transfer(owner, to, amount)

    def mint(self, minter: str, to: str, amount: int) -> None:
        if minter.lower() not in self.minters:
            raise ContractRevert(f"{self.symbol}: caller is not a minter")
        self._credit(to, amount)
        self.supply += amount

    def burn_from(self, minter: str, owner: str, amount: int) -> None:
        if minter.lower() not in self.minters:
            raise ContractRevert(f"{self.symbol}: caller is not a minter")
        allowed = self.allowance(owner, minter)
        if allowed < amount:
            raise ContractRevert(f"{self.symbol}: insufficient allowance")
        self._debit(owner, amount)
        self.allowances[(owner.lower(), minter.lower())] = allowed - amount
        self.supply -= amount

    def burn_held(self, minter: str, amount: int) -> None:
        if minter.lower() not in self.minters:
            raise ContractRevert(f"{self.symbol}: caller is not a minter")
        self._debit(minter, amount)
        self.supply -= amount

    def _tx_approve(self, sender: str, emit: Callable[..., None], spender: str, amount: int) -> None:
        self.set_allowance(sender, spender, int(amount))
        emit("Approval", owner=sender, spender=spender, value=int(amount))

    def _tx_transfer(self, sender: str, emit: Callable[..., None], to: str, amount: int) -> None:
        self.transfer(sender, to, int(amount))
        emit("Transfer", sender=sender, to=to, value=int(amount))


@dataclass
class QueuedRequest:
    user: str
    amount: int
    enqueued_at: float = field(default_factory=time.time)


class InMemoryPool(_Contract):
    """Parent or child pool contract, including the keeper test-wrapper setters."""

    views = {
        "getActiveBalance": "active_balance",
        "getTargetBalance": "get_target_balance",
        "getDeficit": "deficit",
        "getSurplus": "surplus",
        "getDepositQueueLength": "deposit_queue_length",
        "getWithdrawalQueueLength": "withdrawal_queue_length",
        "getMinDepositQueueLength": "get_min_deposit_queue_length",
        "getMinWithdrawalQueueLength": "get_min_withdrawal_queue_length",
        "getTargetDepositQueueLength": "get_target_deposit_queue_length",
        "getTargetWithdrawalQueueLength": "get_target_withdrawal_queue_length",
        "getLurScoreSensitivity": "get_lur_score_sensitivity",
        "getScoresWeights": "get_scores_weights",
        "getLiquidityCap": "get_liquidity_cap",
        "getDstPool": "get_dst_pool",
        "getRebalancerFeeBps": "get_rebalancer_fee_bps",
        "getLpFeeBps": "get_lp_fee_bps",
        "getLancaBridgeFeeBps": "get_lanca_bridge_fee_bps",
        "getMinDepositAmount": "get_min_deposit_amount",
        "getMinWithdrawalAmount": "get_min_withdrawal_amount",
        "getPendingWithdrawalsTotal": "pending_withdrawals_total",
        "getQueuedDepositsTotal": "queued_deposits_total",
        "getLancaKeeper": "get_lanca_keeper",
        "isReadyToTriggerDepositWithdrawProcess": "is_ready_to_trigger",
        "isReadyToProcessPendingWithdrawals": "is_ready_to_process_pending",
        "areQueuesFull": "are_queues_full",
    }
    transactions = {
        "setTargetBalance": "_tx_set_target_balance",
        "setLiquidityCap": "_tx_set_liquidity_cap",
        "setMinDepositQueueLength": "_tx_set_min_deposit_queue_length",
        "setMinWithdrawalQueueLength": "_tx_set_min_withdrawal_queue_length",
        "setTargetDepositQueueLength": "_tx_set_target_deposit_queue_length",
        "setTargetWithdrawalQueueLength": "_tx_set_target_withdrawal_queue_length",
        "setLurScoreSensitivity": "_tx_set_lur_score_sensitivity",
        "setScoresWeights": "_tx_set_scores_weights",
        "setDstPool": "_tx_set_dst_pool",
        "setRebalancerFeeBps": "_tx_set_rebalancer_fee_bps",
        "setLpFeeBps": "_tx_set_lp_fee_bps",
        "setLancaBridgeFeeBps": "_tx_set_lanca_bridge_fee_bps",
        "setMinDepositAmount": "_tx_set_min_deposit_amount",
        "setMinWithdrawalAmount": "_tx_set_min_withdrawal_amount",
        "setLancaKeeper": "_tx_set_lanca_keeper",
        "setQueuesFull": "_tx_set_queues_full",
        "setReadyToTriggerDepositWithdrawProcess": "_tx_set_ready_to_trigger",
        "setReadyToProcessPendingWithdrawals": "_tx_set_ready_to_process_pending",
        "enterDepositQueue": "_tx_enter_deposit_queue",
        "enterWithdrawalQueue": "_tx_enter_withdrawal_queue",
        "triggerDepositWithdrawProcess": "_tx_trigger_deposit_withdraw_process",
        "processPendingWithdrawals": "_tx_process_pending_withdrawals",
        "sendSnapshotToParentPool": "_tx_send_snapshot",
        "fillDeficit": "_tx_fill_deficit",
        "takeSurplus": "_tx_take_surplus",
    }

    def __init__(
        self,
        network: "InMemoryNetwork",
        chain: InMemoryChain,
        address: str,
        *,
        kind: str,
        liquidity: InMemoryToken,
        iou: InMemoryToken,
        lp: InMemoryToken | None = None,
        parent_chain_selector: int,
    ) -> None:
        super().__init__(network, chain, address)
        self.kind = kind
        self.liquidity = liquidity
        self.iou = iou
        self.lp = lp
        self.parent_chain_selector = parent_chain_selector
        self.target_balance = 0
        self.liquidity_cap = 100_000_000 * SCORE_SCALE
        self.min_deposit_queue_length = 0
        self.min_withdrawal_queue_length = 0
        self.target_deposit_queue_length = 100
        self.target_withdrawal_queue_length = 100
        self.lur_score_sensitivity = 5 * SCORE_SCALE
        self.lur_score_weight = 7 * SCORE_SCALE // 10
        self.ndr_score_weight = 3 * SCORE_SCALE // 10
        self.min_deposit_amount = 100 * SCORE_SCALE
        self.min_withdrawal_amount = 99 * SCORE_SCALE
        self.rebalancer_fee_bps = 5
        self.lp_fee_bps = 5
        self.lanca_bridge_fee_bps = 50
        self.lanca_keeper: str | None = None
        self.dst_pools: Dict[int, str] = {}
        self.deposit_queue: List[QueuedRequest] = []
        self.withdrawal_queue: List[QueuedRequest] = []
        self.pending_withdrawals: List[QueuedRequest] = []
        self.accrued_fees = 0
        self.child_snapshots: Dict[int, Dict[str, int]] = {}
        self.queues_full_override = False
        self.ready_to_trigger_override = False
        self.ready_to_process_pending_override = False

    @property
    def is_parent(self) -> bool:
        return self.kind == "parent"

    # -- views ---------------------------------------------------------------

    def queued_deposits_total(self) -> int:
        return sum(entry.amount for entry in self.deposit_queue)

    def pending_withdrawals_total(self) -> int:
        return sum(entry.amount for entry in self.pending_withdrawals)

    def active_balance(self) -> int:
        held = self.liquidity.balance_of(self.address)
        return max(held - self.queued_deposits_total() - self.accrued_fees, 0)

    def get_target_balance(self) -> int:
        return self.target_balance

    def deficit(self) -> int:
        return max(self.target_balance - self.active_balance(), 0)

    def surplus(self) -> int:
        return max(self.active_balance() - self.target_balance, 0)

    def deposit_queue_length(self) -> int:
        return len(self.deposit_queue)

    def withdrawal_queue_length(self) -> int:
        return len(self.withdrawal_queue)

    def get_min_deposit_queue_length(self) -> int:
        return self.min_deposit_queue_length

    def get_min_withdrawal_queue_length(self) -> int:
        return self.min_withdrawal_queue_length

    def get_target_deposit_queue_length(self) -> int:
        return self.target_deposit_queue_length

    def get_target_withdrawal_queue_length(self) -> int:
        return self.target_withdrawal_queue_length

    def get_lur_score_sensitivity(self) -> int:
        return self.lur_score_sensitivity

    def get_scores_weights(self) -> tuple[int, int]:
        return self.lur_score_weight, self.ndr_score_weight

    def get_liquidity_cap(self) -> int:
        return self.liquidity_cap

    def get_dst_pool(self, chain_selector: int) -> str:
        return self.dst_pools.get(int(chain_selector), ADDRESS_ZERO)

    def get_rebalancer_fee_bps(self) -> int:
        return self.rebalancer_fee_bps

    def get_lp_fee_bps(self) -> int:
        return self.lp_fee_bps

    def get_lanca_bridge_fee_bps(self) -> int:
        return self.lanca_bridge_fee_bps

    def get_min_deposit_amount(self) -> int:
        return self.min_deposit_amount

    def get_min_withdrawal_amount(self) -> int:
        return self.min_withdrawal_amount

    def get_lanca_keeper(self) -> str:
        return self.lanca_keeper or ADDRESS_ZERO

    def are_queues_full(self) -> bool:
        if self.queues_full_override:
            return True
        return (
            len(self.deposit_queue) >= self.target_deposit_queue_length
            or len(self.withdrawal_queue) >= self.target_withdrawal_queue_length
        )

    def _snapshots_complete(self) -> bool:
        children = set(self.dst_pools)
        return children.issubset(self.child_snapshots)

    def is_ready_to_trigger(self) -> bool:
        if not self.is_parent:
            return False
        if self.ready_to_trigger_override:
            return True
        has_entries = bool(self.deposit_queue or self.withdrawal_queue)
        return has_entries and self.are_queues_full() and self._snapshots_complete()

    def is_ready_to_process_pending(self) -> bool:
        if not self.is_parent:
            return False
        if self.ready_to_process_pending_override:
            return True
        total = self.pending_withdrawals_total()
        return 0 < total <= self.active_balance()

    # -- guards --------------------------------------------------------------

    def _only_parent(self) -> None:
        if not self.is_parent:
            raise ContractRevert("OnlyParentPool")

    def _only_child(self) -> None:
        if self.is_parent:
            raise ContractRevert("OnlyChildPool")

    def _only_keeper(self, sender: str) -> None:
        if self.lanca_keeper and sender.lower() != self.lanca_keeper.lower():
            raise ContractRevert("UnauthorizedCaller")

    # -- admin setters -------------------------------------------------------

    def _tx_set_target_balance(self, sender: str, emit: Callable[..., None], value: int) -> None:
        self.target_balance = int(value)

    def _tx_set_liquidity_cap(self, sender: str, emit: Callable[..., None], value: int) -> None:
        self._only_parent()
        self.liquidity_cap = int(value)

    def _tx_set_min_deposit_queue_length(self, sender: str, emit: Callable[..., None], value: int) -> None:
        self.min_deposit_queue_length = int(value)

    def _tx_set_min_withdrawal_queue_length(self, sender: str, emit: Callable[..., None], value: int) -> None:
        self.min_withdrawal_queue_length = int(value)

    def _tx_set_target_deposit_queue_length(self, sender: str, emit: Callable[..., None], value: int) -> None:
        self.target_deposit_queue_length = int(value)

    def _tx_set_target_withdrawal_queue_length(self, sender: str, emit: Callable[..., None], value: int) -> None:
        self.target_withdrawal_queue_length = int(value)

    def _tx_set_lur_score_sensitivity(self, sender: str, emit: Callable[..., None], value: int) -> None:
        self.lur_score_sensitivity = int(value)

    def _tx_set_scores_weights(
        self, sender: str, emit: Callable[..., None], lur_weight: int, ndr_weight: int
    ) -> None:
        if int(lur_weight) + int(ndr_weight) != SCORE_SCALE:
            raise ContractRevert("InvalidScoreWeights")
        self.lur_score_weight = int(lur_weight)
        self.ndr_score_weight = int(ndr_weight)

    def _tx_set_dst_pool(self, sender: str, emit: Callable[..., None], chain_selector: int, pool: str) -> None:
        if int(chain_selector) == self.chain.chain_selector:
            raise ContractRevert("InvalidChainSelector")
        if pool == ADDRESS_ZERO:
            raise ContractRevert("InvalidDstPool")
        self.dst_pools[int(chain_selector)] = pool

    def _tx_set_rebalancer_fee_bps(self, sender: str, emit: Callable[..., None], value: int) -> None:
        self.rebalancer_fee_bps = int(value)

    def _tx_set_lp_fee_bps(self, sender: str, emit: Callable[..., None], value: int) -> None:
        self.lp_fee_bps = int(value)

    def _tx_set_lanca_bridge_fee_bps(self, sender: str, emit: Callable[..., None], value: int) -> None:
        self.lanca_bridge_fee_bps = int(value)

    def _tx_set_min_deposit_amount(self, sender: str, emit: Callable[..., None], value: int) -> None:
        self.min_deposit_amount = int(value)

    def _tx_set_min_withdrawal_amount(self, sender: str, emit: Callable[..., None], value: int) -> None:
        self.min_withdrawal_amount = int(value)

    def _tx_set_lanca_keeper(self, sender: str, emit: Callable[..., None], keeper: str) -> None:
        self.lanca_keeper = keeper

    def _tx_set_queues_full(self, sender: str, emit: Callable[..., None], full: bool) -> None:
        self.queues_full_override = bool(full)

    def _tx_set_ready_to_trigger(self, sender: str, emit: Callable[..., None], ready: bool) -> None:
        self._only_parent()
        self.ready_to_trigger_override = bool(ready)

    def _tx_set_ready_to_process_pending(self, sender: str, emit: Callable[..., None], ready: bool) -> None:
        self._only_parent()
        self.ready_to_process_pending_override = bool(ready)

    # -- user queues ---------------------------------------------------------

    def _tx_enter_deposit_queue(self, sender: str, emit: Callable[..., None], amount: int) -> None:
        self._only_parent()
        amount = int(amount)
        if amount < self.min_deposit_amount:
            raise ContractRevert("DepositAmountTooLow")
        if len(self.deposit_queue) >= self.target_deposit_queue_length:
            raise ContractRevert("DepositQueueIsFull")
        self.liquidity.transfer_from(self.address, sender, self.address, amount)
        self.deposit_queue.append(QueuedRequest(user=sender, amount=amount))

    def _tx_enter_withdrawal_queue(self, sender: str, emit: Callable[..., None], lp_amount: int) -> None:
        self._only_parent()
        lp_amount = int(lp_amount)
        if self.lp is None:
            raise ContractRevert("LpTokenNotSet")
        if lp_amount < self.min_withdrawal_amount:
            raise ContractRevert("WithdrawalAmountTooLow")
        if len(self.withdrawal_queue) >= self.target_withdrawal_queue_length:
            raise ContractRevert("WithdrawalQueueIsFull")
        self.lp.transfer_from(self.address, sender, self.address, lp_amount)
        self.withdrawal_queue.append(QueuedRequest(user=sender, amount=lp_amount))

    # -- keeper actions ------------------------------------------------------

    def _tx_trigger_deposit_withdraw_process(self, sender: str, emit: Callable[..., None]) -> None:
        self._only_parent()
        self._only_keeper(sender)
        if not self.is_ready_to_trigger():
            raise ContractRevert("NotReadyToTriggerDepositWithdrawProcess")
        if self.lp is None:
            raise ContractRevert("LpTokenNotSet")

        total_liquidity = self.active_balance()
        supply = self.lp.total_supply()
        deposits_total = self.queued_deposits_total()
        if total_liquidity + deposits_total > self.liquidity_cap:
            raise ContractRevert("LiquidityCapReached")

        withdrawn_total = 0
        lp_fees = 0
        for entry in self.withdrawal_queue:
            gross = entry.amount * total_liquidity // supply if supply else 0
            fee = gross * self.lp_fee_bps // BPS_DENOMINATOR
            self.lp.burn_held(self.address, entry.amount)
            self.pending_withdrawals.append(QueuedRequest(user=entry.user, amount=gross - fee))
            withdrawn_total += gross - fee
            lp_fees += fee
        self.accrued_fees += lp_fees

        for entry in self.deposit_queue:
            if supply == 0 or total_liquidity == 0:
                shares = entry.amount
            else:
                shares = entry.amount * supply // total_liquidity
            self.lp.mint(self.address, entry.user, shares)

        emit(
            "DepositWithdrawTriggered",
            deposits=len(self.deposit_queue),
            withdrawals=len(self.withdrawal_queue),
            totalDeposited=deposits_total,
            totalWithdrawn=withdrawn_total,
            lpFees=lp_fees,
        )
        self.deposit_queue.clear()
        self.withdrawal_queue.clear()
        self.child_snapshots.clear()
        self.ready_to_trigger_override = False
        self.queues_full_override = False

    def _tx_process_pending_withdrawals(self, sender: str, emit: Callable[..., None]) -> None:
        self._only_parent()
        self._only_keeper(sender)
        if not self.is_ready_to_process_pending():
            raise ContractRevert("NotReadyToProcessPendingWithdrawals")
        total = self.pending_withdrawals_total()
        if total > self.active_balance():
            raise ContractRevert("InsufficientActiveBalance")
        for entry in self.pending_withdrawals:
            self.liquidity.transfer(self.address, entry.user, entry.amount)
        emit("PendingWithdrawalsProcessed", count=len(self.pending_withdrawals), total=total)
        self.pending_withdrawals.clear()
        self.ready_to_process_pending_override = False

    def _tx_send_snapshot(self, sender: str, emit: Callable[..., None]) -> None:
        self._only_child()
        self._only_keeper(sender)
        parent_address = self.dst_pools.get(self.parent_chain_selector)
        if not parent_address:
            raise ContractRevert("InvalidDstPool")
        snapshot = {
            "activeBalance": self.active_balance(),
            "targetBalance": self.target_balance,
            "iouTotalSupply": self.iou.total_supply(),
        }
        emit("SnapshotSent", dstChainSelector=self.parent_chain_selector, **snapshot)
        self.network.deliver_snapshot(
            src_selector=self.chain.chain_selector,
            dst_selector=self.parent_chain_selector,
            dst_address=parent_address,
            snapshot=snapshot,
        )

    def receive_snapshot(self, src_selector: int, snapshot: Dict[str, int]) -> None:
        self.child_snapshots[src_selector] = dict(snapshot)

    # -- rebalancing ---------------------------------------------------------

    def _tx_fill_deficit(self, sender: str, emit: Callable[..., None], amount: int) -> None:
        amount = int(amount)
        if amount <= 0:
            raise ContractRevert("AmountIsZero")
        outstanding = self.deficit()
        if outstanding == 0:
            raise ContractRevert("NoDeficitToFill")
        filled = min(amount, outstanding)
        self.liquidity.transfer_from(self.address, sender, self.address, filled)
        fee = filled * self.rebalancer_fee_bps // BPS_DENOMINATOR
        self.iou.mint(self.address, sender, filled - fee)
        emit("DeficitFilled", rebalancer=sender, amount=filled, iouMinted=filled - fee, fee=fee)

    def _tx_take_surplus(self, sender: str, emit: Callable[..., None], amount: int) -> None:
        amount = int(amount)
        if amount <= 0:
            raise ContractRevert("AmountIsZero")
        outstanding = self.surplus()
        if outstanding == 0:
            raise ContractRevert("NoSurplusToTake")
        taken = min(amount, outstanding)
        self.iou.burn_from(self.address, sender, taken)
        fee = taken * self.rebalancer_fee_bps // BPS_DENOMINATOR
        self.liquidity.transfer(self.address, sender, taken - fee)
        self.accrued_fees += fee
        emit("SurplusTaken", rebalancer=sender, amount=taken, liquidityPaid=taken - fee, fee=fee)


class BoundContract:
    """``ContractClient`` view of an in-memory contract for one sender."""

    def __init__(self, contract: _Contract, sender: str, *, receipt_poll_ms: int = 10) -> None:
        self._contract = contract
        self.sender = sender
        self.address = contract.address
        self._receipt_poll_ms = receipt_poll_ms

    @property
    def contract(self) -> _Contract:
        return self._contract

    async def block_number(self) -> int:
        if self._contract.fail_reads:
            raise ChainUnavailableError(f"{self._contract.chain.name} rpc unavailable")
        return self._contract.chain.block_number

    async def call(self, function: str, *args: Any, block: int | None = None) -> Any:
        return self._contract.view(function, args)

    async def transact(self, function: str, *args: Any) -> str:
        return self._contract.chain.submit(self._contract, self.sender, function, args)

    async def get_receipt(self, tx_hash: str) -> TxReceipt | None:
        return self._contract.chain.receipts.get(tx_hash)

    async def wait_for_receipt(self, tx_hash: str, timeout_ms: int) -> TxReceipt:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        while True:
            receipt = self._contract.chain.receipts.get(tx_hash)
            if receipt is not None:
                if not receipt.status:
                    function = self._contract.chain.functions.get(tx_hash, "transaction")
                    raise TransactionRevertedError(function, receipt.revert_reason or "reverted", tx_hash)
                return receipt
            if loop.time() >= deadline:
                raise ReceiptTimeoutError(tx_hash, timeout_ms)
            await asyncio.sleep(self._receipt_poll_ms / 1000)

    async def get_events(self, event: str, from_block: int) -> list[ChainEvent]:
        if self._contract.fail_reads:
            raise ChainUnavailableError(f"{self._contract.chain.name} rpc unavailable")
        return [
            item
            for item in self._contract.chain.events
            if item.name == event
            and item.address.lower() == self.address.lower()
            and item.block_number >= from_block
        ]


def _address(label: str) -> str:
    return "0x" + hashlib.sha256(label.encode("utf-8")).hexdigest()[:40]


class InMemoryNetwork:
    """A set of in-memory chains with one pool each and a snapshot relay."""

    def __init__(self, *, parent_chain: str = "localhost1", parent_selector: int = 1) -> None:
        self.chains: Dict[str, InMemoryChain] = {}
        self.pools: Dict[str, InMemoryPool] = {}
        self.liquidity_tokens: Dict[str, InMemoryToken] = {}
        self.iou_tokens: Dict[str, InMemoryToken] = {}
        self.lp_token: InMemoryToken | None = None
        self.parent_chain = parent_chain
        self.parent_selector = parent_selector

    def add_chain(self, name: str, chain_selector: int, *, auto_mine: bool = True) -> InMemoryChain:
        chain = InMemoryChain(name, chain_selector, auto_mine=auto_mine)
        self.chains[name] = chain
        self.liquidity_tokens[name] = InMemoryToken(self, chain, _address(f"usdc:{name}"), "USDC")
        self.iou_tokens[name] = InMemoryToken(self, chain, _address(f"iou:{name}"), "IOU")
        return chain

    def deploy_pool(
        self, name: str, chain_name: str, *, kind: str, address: str | None = None
    ) -> InMemoryPool:
        chain = self.chains[chain_name]
        lp: InMemoryToken | None = None
        address = address or _address(f"pool:{name}:{chain_name}")
        if kind == "parent":
            lp = InMemoryToken(self, chain, _address(f"lp:{chain_name}"), "LP")
            lp.grant_minter(address)
            self.lp_token = lp
        pool = InMemoryPool(
            self,
            chain,
            address,
            kind=kind,
            liquidity=self.liquidity_tokens[chain_name],
            iou=self.iou_tokens[chain_name],
            lp=lp,
            parent_chain_selector=self.parent_selector,
        )
        self.iou_tokens[chain_name].grant_minter(address)
        self.pools[name] = pool
        return pool

    def link(self, a: str, b: str) -> None:
        """Set symmetric destination-pool routes between two pools."""

        pool_a, pool_b = self.pools[a], self.pools[b]
        pool_a.dst_pools[pool_b.chain.chain_selector] = pool_b.address
        pool_b.dst_pools[pool_a.chain.chain_selector] = pool_a.address

    def pool_by_chain(self, chain_selector: int) -> InMemoryPool | None:
        for pool in self.pools.values():
            if pool.chain.chain_selector == chain_selector:
                return pool
        return None

    def deliver_snapshot(
        self, *, src_selector: int, dst_selector: int, dst_address: str, snapshot: Dict[str, int]
    ) -> None:
        target = self.pool_by_chain(dst_selector)
        if target is None or target.address.lower() != dst_address.lower():
            LOGGER.warning(
                "memory.snapshot_undeliverable",
                extra={"src": src_selector, "dst": dst_selector, "address": dst_address},
            )
            return
        target.receive_snapshot(src_selector, snapshot)

    def checkpoint(self) -> Dict[str, Any]:
        state: Dict[str, Any] = {}
        for contract in self._all_contracts():
            state[contract.address] = copy.deepcopy(
                {
                    key: value
                    for key, value in vars(contract).items()
                    if key not in _UNVERSIONED_ATTRS
                }
            )
        return state

    def restore(self, state: Dict[str, Any]) -> None:
        for contract in self._all_contracts():
            saved = state.get(contract.address)
            if saved is not None:
                vars(contract).update(saved)

    def _all_contracts(self) -> list[_Contract]:
        contracts: list[_Contract] = []
        for chain in self.chains.values():
            contracts.extend(chain.contracts.values())
        return contracts


__all__ = [
    "ADDRESS_ZERO",
    "BoundContract",
    "ContractRevert",
    "InMemoryChain",
    "InMemoryNetwork",
    "InMemoryPool",
    "InMemoryToken",
    "QueuedRequest",
]
