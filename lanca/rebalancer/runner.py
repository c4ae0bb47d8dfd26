from __future__ import annotations

import logging

from ..config.schema import RebalancerConfig
from ..pools.registry import PoolHandle, PoolRegistry
from ..runtime.runner import ChainLimiter, CycleResult, PoolLoopRunner
from .reconciler import DeficitSurplusReconciler

LOGGER = logging.getLogger(__name__)

_STATES = {
    "confirmed": "OK",
    "skipped": "IDLE",
    "in_flight": "OK",
    "lost_race": "SKIPPED",
    "reverted": "ERROR",
    "error": "ERROR",
}


class RebalancerRunner(PoolLoopRunner):
    """Periodic deficit/surplus correction across every pool."""

    name = "rebalancer"

    def __init__(
        self,
        registry: PoolRegistry,
        reconciler: DeficitSurplusReconciler,
        config: RebalancerConfig,
        *,
        limiter: ChainLimiter | None = None,
    ) -> None:
        super().__init__(
            registry,
            interval=config.polling_interval_ms / 1000,
            limiter=limiter,
            enabled=config.enabled,
        )
        self._reconciler = reconciler

    async def process_pool(self, handle: PoolHandle) -> CycleResult:
        correction = await self._reconciler.reconcile(handle)
        action = None if correction.action == "none" else f"{correction.action}:{correction.outcome}"
        error = correction.reason if correction.outcome in {"reverted", "error"} else None
        return CycleResult(
            state=_STATES[correction.outcome],  # type: ignore[arg-type]
            action=action,
            error=error,
            detail=correction.as_dict(),
        )


__all__ = ["RebalancerRunner"]
