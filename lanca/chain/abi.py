"""ABI fragments for the pool and ERC20 functions the engine touches."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

Abi = List[Dict[str, Any]]


def _params(types: Sequence[tuple[str, str]]) -> list[dict[str, str]]:
    return [{"name": name, "type": kind, "internalType": kind} for name, kind in types]


def _view(name: str, outputs: Sequence[str], inputs: Sequence[tuple[str, str]] = ()) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": _params(inputs),
        "outputs": _params([("", kind) for kind in outputs]),
    }


def _tx(name: str, inputs: Sequence[tuple[str, str]] = ()) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "nonpayable",
        "inputs": _params(inputs),
        "outputs": [],
    }


def _event(name: str, fields: Sequence[tuple[str, str]]) -> dict[str, Any]:
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [{"name": field, "type": kind, "indexed": False} for field, kind in fields],
    }


_UINT_VIEWS = (
    "getActiveBalance",
    "getTargetBalance",
    "getDeficit",
    "getSurplus",
    "getDepositQueueLength",
    "getWithdrawalQueueLength",
    "getMinDepositQueueLength",
    "getMinWithdrawalQueueLength",
    "getTargetDepositQueueLength",
    "getTargetWithdrawalQueueLength",
    "getLurScoreSensitivity",
    "getLiquidityCap",
    "getRebalancerFeeBps",
    "getLpFeeBps",
    "getLancaBridgeFeeBps",
    "getMinDepositAmount",
    "getMinWithdrawalAmount",
    "getPendingWithdrawalsTotal",
    "getQueuedDepositsTotal",
)

_BOOL_VIEWS = (
    "isReadyToTriggerDepositWithdrawProcess",
    "isReadyToProcessPendingWithdrawals",
    "areQueuesFull",
)

_UINT_SETTERS = (
    "setTargetBalance",
    "setLiquidityCap",
    "setMinDepositQueueLength",
    "setMinWithdrawalQueueLength",
    "setTargetDepositQueueLength",
    "setTargetWithdrawalQueueLength",
    "setLurScoreSensitivity",
    "setRebalancerFeeBps",
    "setLpFeeBps",
    "setLancaBridgeFeeBps",
    "setMinDepositAmount",
    "setMinWithdrawalAmount",
)

_BOOL_SETTERS = (
    "setQueuesFull",
    "setReadyToTriggerDepositWithdrawProcess",
    "setReadyToProcessPendingWithdrawals",
)

POOL_ABI: Abi = (
    [_view(name, ["uint256"]) for name in _UINT_VIEWS]
    + [_view(name, ["bool"]) for name in _BOOL_VIEWS]
    + [
        _view("getScoresWeights", ["uint64", "uint64"]),
        _view("getDstPool", ["address"], [("chainSelector", "uint64")]),
        _view("getLancaKeeper", ["address"]),
    ]
    + [_tx(name, [("value", "uint256")]) for name in _UINT_SETTERS]
    + [_tx(name, [("value", "bool")]) for name in _BOOL_SETTERS]
    + [
        _tx("setScoresWeights", [("lurScoreWeight", "uint64"), ("ndrScoreWeight", "uint64")]),
        _tx("setDstPool", [("chainSelector", "uint64"), ("dstPool", "address")]),
        _tx("setLancaKeeper", [("keeper", "address")]),
        _tx("enterDepositQueue", [("amount", "uint256")]),
        _tx("enterWithdrawalQueue", [("lpAmount", "uint256")]),
        _tx("triggerDepositWithdrawProcess"),
        _tx("processPendingWithdrawals"),
        _tx("sendSnapshotToParentPool"),
        _tx("fillDeficit", [("amount", "uint256")]),
        _tx("takeSurplus", [("amount", "uint256")]),
        _event(
            "SnapshotSent",
            [
                ("dstChainSelector", "uint64"),
                ("activeBalance", "uint256"),
                ("targetBalance", "uint256"),
                ("iouTotalSupply", "uint256"),
            ],
        ),
        _event(
            "DepositWithdrawTriggered",
            [
                ("deposits", "uint256"),
                ("withdrawals", "uint256"),
                ("totalDeposited", "uint256"),
                ("totalWithdrawn", "uint256"),
                ("lpFees", "uint256"),
            ],
        ),
        _event("PendingWithdrawalsProcessed", [("count", "uint256"), ("total", "uint256")]),
        _event(
            "DeficitFilled",
            [("rebalancer", "address"), ("amount", "uint256"), ("iouMinted", "uint256"), ("fee", "uint256")],
        ),
        _event(
            "SurplusTaken",
            [
                ("rebalancer", "address"),
                ("amount", "uint256"),
                ("liquidityPaid", "uint256"),
                ("fee", "uint256"),
            ],
        ),
    ]
)

ERC20_ABI: Abi = [
    _view("balanceOf", ["uint256"], [("owner", "address")]),
    _view("allowance", ["uint256"], [("owner", "address"), ("spender", "address")]),
    _view("totalSupply", ["uint256"]),
    _view("decimals", ["uint8"]),
    _tx("approve", [("spender", "address"), ("amount", "uint256")]),
    _tx("transfer", [("to", "address"), ("amount", "uint256")]),
    _event("Approval", [("owner", "address"), ("spender", "address"), ("value", "uint256")]),
    _event("Transfer", [("sender", "address"), ("to", "address"), ("value", "uint256")]),
]

__all__ = ["Abi", "ERC20_ABI", "POOL_ABI"]
