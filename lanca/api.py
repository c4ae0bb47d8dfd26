"""HTTP ops surface: health, per-pool status, queue requests, operator resume and metrics."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from . import __version__
from .config import load_engine_config
from .daemon import EngineDaemon
from .errors import ConfigurationError, MinAmountError, TransactionRevertedError
from .pools.registry import PoolHandle

LOGGER = logging.getLogger(__name__)


class QueueRequestBody(BaseModel):
    amount: int = Field(..., gt=0)


def setup_engine(app: FastAPI, daemon: EngineDaemon, *, autostart: bool = True) -> None:
    app.state.engine = daemon

    if not autostart:
        return

    @app.on_event("startup")
    async def _start_engine() -> None:  # pragma: no cover - lifecycle wiring
        await daemon.start()

    @app.on_event("shutdown")
    async def _stop_engine() -> None:  # pragma: no cover - lifecycle wiring
        await daemon.stop()


def create_app(daemon: EngineDaemon | None = None, *, autostart: bool = True) -> FastAPI:
    if daemon is None:
        loaded = load_engine_config()
        daemon = EngineDaemon.from_config(loaded.data)
    app = FastAPI(title="Lanca liquidity engine", version=__version__)
    setup_engine(app, daemon, autostart=autostart)

    @app.get("/healthz")
    def healthz() -> dict[str, object]:
        return {"ok": True, "version": __version__}

    @app.get("/api/status")
    def status() -> dict[str, object]:
        return daemon.status()

    def _handle(pool: str) -> PoolHandle:
        try:
            return daemon.registry.get(pool)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"unknown pool {pool}") from exc

    @app.post("/api/pools/{pool}/resume")
    def resume(pool: str) -> dict[str, object]:
        _handle(pool)
        daemon.resume(pool)
        LOGGER.info("api.pool_resumed", extra={"pool": pool})
        return {"pool": pool, "queue": daemon.queues.status(pool)}

    async def _enter(pool: str, side: str, amount: int) -> dict[str, object]:
        handle = _handle(pool)
        try:
            if side == "deposit":
                request = await daemon.requests.deposit(handle, amount)
            else:
                request = await daemon.requests.withdraw(handle, amount)
        except (ConfigurationError, MinAmountError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except TransactionRevertedError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return {**request.as_dict(), "queue": daemon.queues.status(pool)}

    @app.post("/api/pools/{pool}/deposit")
    async def deposit(pool: str, body: QueueRequestBody) -> dict[str, object]:
        return await _enter(pool, "deposit", body.amount)

    @app.post("/api/pools/{pool}/withdraw")
    async def withdraw(pool: str, body: QueueRequestBody) -> dict[str, object]:
        return await _enter(pool, "withdrawal", body.amount)

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


__all__ = ["create_app", "setup_engine"]
