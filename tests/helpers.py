from __future__ import annotations

import copy
from typing import Any

PARENT_ADDRESS = "0x1000000000000000000000000000000000000001"
CHILD_ADDRESS = "0x2000000000000000000000000000000000000002"
USDC = 10**6

BASE_PAYLOAD: dict[str, Any] = {
    "keeper": {"polling_interval_ms": 100},
    "rebalancer": {"polling_interval_ms": 100, "receipt_timeout_ms": 10_000},
    "network": {"environment": "localhost"},
    "chains": [
        {"name": "localhost1", "chain_selector": 1},
        {"name": "localhost2", "chain_selector": 2},
    ],
    "pools": [
        {"name": "parent", "kind": "parent", "chain": "localhost1", "address": PARENT_ADDRESS},
        {"name": "child", "kind": "child", "chain": "localhost2", "address": CHILD_ADDRESS},
    ],
    "routes": [
        {"from": "localhost1", "to": "localhost2", "address": CHILD_ADDRESS},
        {"from": "localhost2", "to": "localhost1", "address": PARENT_ADDRESS},
    ],
}


def make_payload(**sections: Any) -> dict[str, Any]:
    payload = copy.deepcopy(BASE_PAYLOAD)
    payload.update(sections)
    return payload
