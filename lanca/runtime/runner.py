"""Periodic per-pool loop shared by the keeper and the rebalancer."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import AsyncIterator, Dict, Literal

from ..errors import LancaError
from ..metrics import LAST_CYCLE_TS, record_runner_state
from ..pools.registry import PoolHandle, PoolRegistry
from .locks import pool_lock

LOGGER = logging.getLogger(__name__)

PoolState = Literal["OK", "IDLE", "ERROR", "SKIPPED"]


@dataclass(slots=True)
class PoolStatus:
    pool: str
    state: PoolState = "IDLE"
    last_action: str | None = None
    last_error: str | None = None
    last_run_ts: float | None = None
    detail: dict | None = None

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(slots=True)
class CycleResult:
    """What one pool's turn produced: state plus a short action label."""

    state: PoolState
    action: str | None = None
    error: str | None = None
    detail: dict | None = None


class ChainLimiter:
    """Bound concurrent pool tasks per chain."""

    def __init__(self, max_per_chain: int) -> None:
        self._max = max(1, int(max_per_chain))
        self._semaphores: Dict[str, asyncio.Semaphore] = {}

    @asynccontextmanager
    async def slot(self, chain: str) -> AsyncIterator[None]:
        semaphore = self._semaphores.get(chain)
        if semaphore is None:
            semaphore = asyncio.Semaphore(self._max)
            self._semaphores[chain] = semaphore
        async with semaphore:
            yield


class PoolLoopRunner:
    """Run ``process_pool`` for every pool each interval.

    Pools run concurrently, bounded per chain, and each pool's turn holds the
    pool lock so keeper and rebalancer actions never interleave on one pool.
    A failure in one pool is recorded on its status and never stops the
    others.
    """

    name = "runner"

    def __init__(
        self,
        registry: PoolRegistry,
        *,
        interval: float,
        limiter: ChainLimiter | None = None,
        enabled: bool = True,
    ) -> None:
        self._registry = registry
        self._interval = interval
        self._limiter = limiter or ChainLimiter(4)
        self._enabled = enabled
        self._task: asyncio.Task[None] | None = None
        self._stop = asyncio.Event()
        self._statuses: Dict[str, PoolStatus] = {
            handle.name: PoolStatus(pool=handle.name) for handle in registry
        }
        self._cycles = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def running(self) -> bool:
        return bool(self._task and not self._task.done())

    @property
    def cycles(self) -> int:
        return self._cycles

    def statuses(self) -> Dict[str, PoolStatus]:
        return dict(self._statuses)

    async def start(self) -> None:
        if not self._enabled:
            LOGGER.info("%s.disabled", self.name)
            return
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:  # pragma: no cover - lifecycle cleanup
            LOGGER.debug("%s.loop_cancelled", self.name)
        finally:
            self._task = None

    async def before_cycle(self) -> None:
        """Hook for work shared by every pool in a cycle."""

    async def process_pool(self, handle: PoolHandle) -> CycleResult:
        raise NotImplementedError

    async def _run_pool(self, handle: PoolHandle) -> PoolStatus:
        status = self._statuses.setdefault(handle.name, PoolStatus(pool=handle.name))
        async with self._limiter.slot(handle.chain.name):
            async with pool_lock(handle.name):
                try:
                    result = await self.process_pool(handle)
                except LancaError as exc:
                    LOGGER.warning(
                        "%s.pool_failed",
                        self.name,
                        extra={"pool": handle.name, "error": str(exc), "kind": type(exc).__name__},
                    )
                    result = CycleResult(state="ERROR", error=str(exc))
                except Exception as exc:  # noqa: BLE001
                    LOGGER.exception(
                        "%s.pool_crashed",
                        self.name,
                        extra={"pool": handle.name},
                    )
                    result = CycleResult(state="ERROR", error=f"{type(exc).__name__}: {exc}")
        status.state = result.state
        status.last_run_ts = time.time()
        status.detail = result.detail
        if result.action is not None:
            status.last_action = result.action
        status.last_error = result.error
        record_runner_state(self.name, handle.name, result.state)
        return status

    async def run_once(self) -> Dict[str, PoolStatus]:
        await self.before_cycle()
        statuses = await asyncio.gather(*(self._run_pool(handle) for handle in self._registry))
        self._cycles += 1
        LAST_CYCLE_TS.labels(runner=self.name).set(time.time())
        return {status.pool: status for status in statuses}

    async def _run(self) -> None:
        LOGGER.info("%s.started", self.name, extra={"interval_sec": self._interval})
        while not self._stop.is_set():
            try:
                await self.run_once()
            except Exception:  # noqa: BLE001
                LOGGER.exception("%s.cycle_failed", self.name)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
        LOGGER.info("%s.stopped", self.name)


__all__ = ["ChainLimiter", "CycleResult", "PoolLoopRunner", "PoolState", "PoolStatus"]
