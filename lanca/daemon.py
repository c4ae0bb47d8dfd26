"""Long-running engine hosting the keeper and rebalancer loops."""

from __future__ import annotations

import logging
from typing import Any, Dict

from .chain.factory import build_registry
from .chain.memory import InMemoryNetwork
from .config.schema import EngineConfig
from .keeper import KeeperOrchestrator, KeeperRunner
from .pools.accessor import PoolStateAccessor
from .pools.registry import PoolRegistry
from .queue.manager import QueueManager
from .queue.requests import QueueRequests
from .rebalancer import DeficitSurplusReconciler, RebalancerRunner
from .routing import RoutingTable
from .runtime.runner import ChainLimiter
from .scoring import EventFlowHistory, HistorySource

LOGGER = logging.getLogger(__name__)


class EngineDaemon:
    """Compose the engine components for one configuration."""

    def __init__(
        self,
        config: EngineConfig,
        registry: PoolRegistry,
        *,
        network: InMemoryNetwork | None = None,
        history: HistorySource | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.network = network
        self.accessor = PoolStateAccessor()
        self.routing = RoutingTable.from_config(config)
        self.queues = QueueManager.from_config(config)
        limiter = ChainLimiter(config.network.max_concurrent_rpc_per_chain)
        timeout_ms = config.rebalancer.receipt_timeout_ms
        self.requests = QueueRequests(self.accessor, self.queues, receipt_timeout_ms=timeout_ms)
        self.reconciler = DeficitSurplusReconciler(
            self.accessor,
            self.routing,
            parent_selector=registry.parent.chain_selector,
            receipt_timeout_ms=timeout_ms,
            in_flight_ttl_sec=config.rebalancer.in_flight_ttl_sec,
        )
        self.orchestrator = KeeperOrchestrator(
            registry,
            self.accessor,
            self.queues,
            self.routing,
            history or EventFlowHistory(),
            config.keeper,
            receipt_timeout_ms=timeout_ms,
        )
        self.keeper = KeeperRunner(
            registry, self.orchestrator, self.routing, config.keeper, limiter=limiter
        )
        self.rebalancer = RebalancerRunner(
            registry, self.reconciler, config.rebalancer, limiter=limiter
        )

    @classmethod
    def from_config(
        cls, config: EngineConfig, *, network: InMemoryNetwork | None = None
    ) -> "EngineDaemon":
        registry, network = build_registry(config, network=network)
        return cls(config, registry, network=network)

    async def start(self) -> None:
        LOGGER.info(
            "engine.starting",
            extra={"pools": len(self.registry), "environment": self.config.network.environment},
        )
        await self.keeper.start()
        await self.rebalancer.start()

    async def stop(self) -> None:
        await self.keeper.stop()
        await self.rebalancer.stop()
        LOGGER.info("engine.stopped")

    async def run_once(self) -> Dict[str, Any]:
        keeper = await self.keeper.run_once()
        rebalancer = await self.rebalancer.run_once() if self.rebalancer.enabled else {}
        return {"keeper": keeper, "rebalancer": rebalancer}

    def resume(self, pool: str) -> None:
        self.queues.resume(pool)

    def status(self) -> Dict[str, Any]:
        keeper = self.keeper.statuses()
        rebalancer = self.rebalancer.statuses()
        pools: Dict[str, Any] = {}
        for handle in self.registry:
            pools[handle.name] = {
                "kind": handle.config.kind,
                "chain": handle.chain.name,
                "keeper": keeper[handle.name].as_dict() if handle.name in keeper else None,
                "rebalancer": rebalancer[handle.name].as_dict() if handle.name in rebalancer else None,
                "queue": self.queues.status(handle.name),
            }
        return {
            "environment": self.config.network.environment,
            "keeper_running": self.keeper.running,
            "rebalancer_running": self.rebalancer.running,
            "keeper_cycles": self.keeper.cycles,
            "rebalancer_cycles": self.rebalancer.cycles,
            "pools": pools,
        }


__all__ = ["EngineDaemon"]
