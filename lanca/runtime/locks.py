"""Async lock registry serializing keeper and rebalancer actions per pool."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class _LockRegistry:
    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._global_lock = asyncio.Lock()

    async def _ensure(self, key: Hashable) -> asyncio.Lock:
        async with self._global_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    @asynccontextmanager
    async def acquire(self, *parts: Hashable) -> AsyncIterator[None]:
        key = tuple(parts)
        lock = await self._ensure(key)
        await lock.acquire()
        try:
            yield
        finally:
            lock.release()

    def locked(self, *parts: Hashable) -> bool:
        lock = self._locks.get(tuple(parts))
        return bool(lock and lock.locked())

    def reset(self) -> None:
        self._locks.clear()
        self._global_lock = asyncio.Lock()


_REGISTRY = _LockRegistry()


def acquire(*parts: Hashable):
    return _REGISTRY.acquire(*parts)


def pool_lock(pool: str):
    return _REGISTRY.acquire("pool", pool)


def is_pool_locked(pool: str) -> bool:
    return _REGISTRY.locked("pool", pool)


def reset_locks_for_tests() -> None:
    _REGISTRY.reset()


__all__ = ["acquire", "pool_lock", "is_pool_locked", "reset_locks_for_tests"]
