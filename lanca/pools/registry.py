"""Resolved pool handles: configuration plus bound contract clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator

from ..chain.base import ContractClient
from ..config.schema import ChainConfig, PoolConfig


@dataclass(slots=True)
class PoolHandle:
    config: PoolConfig
    chain: ChainConfig
    pool: ContractClient
    liquidity_token: ContractClient
    iou_token: ContractClient
    operator: str
    lp_token: ContractClient | None = None

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def chain_selector(self) -> int:
        return self.chain.chain_selector

    @property
    def is_parent(self) -> bool:
        return self.config.kind == "parent"


class PoolRegistry:
    def __init__(self, handles: Dict[str, PoolHandle]) -> None:
        self._handles = dict(handles)

    def __iter__(self) -> Iterator[PoolHandle]:
        return iter(self._handles.values())

    def __len__(self) -> int:
        return len(self._handles)

    def get(self, name: str) -> PoolHandle:
        return self._handles[name]

    @property
    def parent(self) -> PoolHandle:
        return next(handle for handle in self._handles.values() if handle.is_parent)

    @property
    def children(self) -> list[PoolHandle]:
        return [handle for handle in self._handles.values() if not handle.is_parent]

    def by_selector(self, chain_selector: int) -> PoolHandle | None:
        for handle in self._handles.values():
            if handle.chain_selector == chain_selector:
                return handle
        return None


__all__ = ["PoolHandle", "PoolRegistry"]
