from __future__ import annotations

import logging
import time

from ..config.schema import KeeperConfig
from ..errors import BatchFailedError
from ..metrics import KEEPER_ERRORS_TOTAL
from ..pools.registry import PoolHandle, PoolRegistry
from ..routing import RoutingTable
from ..runtime.runner import ChainLimiter, CycleResult, PoolLoopRunner
from .orchestrator import KeeperOrchestrator

LOGGER = logging.getLogger(__name__)


class KeeperRunner(PoolLoopRunner):
    """Poll every pool each ``polling_interval_ms`` and fire ready triggers."""

    name = "keeper"

    def __init__(
        self,
        registry: PoolRegistry,
        orchestrator: KeeperOrchestrator,
        routing: RoutingTable,
        config: KeeperConfig,
        *,
        limiter: ChainLimiter | None = None,
    ) -> None:
        super().__init__(registry, interval=config.polling_interval_ms / 1000, limiter=limiter)
        self._orchestrator = orchestrator
        self._routing = routing
        self._config = config
        self._routes_refreshed_at: float | None = None

    async def before_cycle(self) -> None:
        now = time.time()
        if (
            self._routes_refreshed_at is not None
            and now - self._routes_refreshed_at < self._config.route_refresh_interval_sec
        ):
            return
        await self._routing.refresh(self._registry)
        self._routes_refreshed_at = now

    async def process_pool(self, handle: PoolHandle) -> CycleResult:
        try:
            report = await self._orchestrator.run_for_pool(handle)
        except BatchFailedError as exc:
            KEEPER_ERRORS_TOTAL.labels(pool=handle.name, kind="batch_failed").inc()
            LOGGER.error("keeper.batch_halted", extra={"pool": handle.name, "error": str(exc)})
            return CycleResult(state="ERROR", action="batch_halted", error=str(exc))
        except Exception as exc:
            KEEPER_ERRORS_TOTAL.labels(pool=handle.name, kind=type(exc).__name__).inc()
            raise
        if report.actions:
            return CycleResult(state="OK", action=",".join(report.actions), detail=report.as_dict())
        if report.skipped:
            return CycleResult(state="SKIPPED", detail=report.as_dict())
        return CycleResult(state="IDLE", detail=report.as_dict())


__all__ = ["KeeperRunner"]
