"""Cross-chain destination pool routes.

A route ``src -> dst`` is usable only when it points at the destination's
pool and the reverse route points back at the source's pool.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Mapping, Tuple

from .chain.base import ADDRESS_ZERO
from .config.schema import EngineConfig
from .errors import LancaError, RouteNotConfiguredError
from .pools.registry import PoolRegistry

LOGGER = logging.getLogger(__name__)

RouteKey = Tuple[int, int]


class RoutingTable:
    def __init__(
        self,
        pool_addresses: Mapping[int, str],
        routes: Mapping[RouteKey, str] | None = None,
    ) -> None:
        self._pools = {int(selector): address for selector, address in pool_addresses.items()}
        self._routes: Dict[RouteKey, str] = dict(routes or {})

    @classmethod
    def from_config(cls, config: EngineConfig) -> "RoutingTable":
        selectors = config.chain_selectors()
        pools = {selectors[pool.chain]: pool.address for pool in config.pools}
        routes = {
            (selectors[route.src], selectors[route.dst]): route.address for route in config.routes
        }
        return cls(pools, routes)

    def set_route(self, src: int, dst: int, address: str) -> None:
        self._routes[(src, dst)] = address

    def routes(self) -> Dict[RouteKey, str]:
        return dict(self._routes)

    def get_route(self, src: int, dst: int) -> str:
        if src == dst:
            raise RouteNotConfiguredError(src, dst, "source and destination are the same chain")
        dst_pool = self._pools.get(dst)
        src_pool = self._pools.get(src)
        if dst_pool is None or src_pool is None:
            raise RouteNotConfiguredError(src, dst, "no pool registered for chain")
        forward = self._routes.get((src, dst))
        if forward is None or forward.lower() != dst_pool.lower():
            raise RouteNotConfiguredError(src, dst, "forward route does not point at destination pool")
        backward = self._routes.get((dst, src))
        if backward is None or backward.lower() != src_pool.lower():
            raise RouteNotConfiguredError(src, dst, "route is not symmetric")
        return forward

    def has_route(self, src: int, dst: int) -> bool:
        try:
            self.get_route(src, dst)
        except RouteNotConfiguredError as exc:
            LOGGER.debug("routing.missing", extra={"src": src, "dst": dst, "reason": exc.reason})
            return False
        return True

    async def refresh(self, registry: PoolRegistry) -> None:
        """Reload every route from the pools' ``getDstPool`` views.

        A pool that cannot be read keeps its previous routes.
        """

        async def _read(handle, dst: int) -> tuple[RouteKey, str | None]:
            key = (handle.chain_selector, dst)
            try:
                address = await handle.pool.call("getDstPool", dst)
            except LancaError as exc:
                LOGGER.warning(
                    "routing.refresh_failed",
                    extra={"pool": handle.name, "dst": dst, "error": str(exc), "kind": type(exc).__name__},
                )
                return key, self._routes.get(key)
            return key, address

        tasks = []
        for handle in registry:
            for other in registry:
                if other.chain_selector != handle.chain_selector:
                    tasks.append(_read(handle, other.chain_selector))
        for key, address in await asyncio.gather(*tasks):
            if address is None or str(address).lower() == ADDRESS_ZERO:
                self._routes.pop(key, None)
            else:
                self._routes[key] = str(address)
        LOGGER.debug("routing.refreshed", extra={"routes": len(self._routes)})


__all__ = ["RouteKey", "RoutingTable"]
