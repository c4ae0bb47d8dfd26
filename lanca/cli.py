from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import Any, Sequence

from .config import load_engine_config
from .config.loader import warn_misconfiguration
from .daemon import EngineDaemon
from .config.schema import LIQ_TOKEN_DECIMALS
from .errors import ConfigurationError, MinAmountError, TransactionRevertedError
from .pools.parameters import ParameterSync
from .util.env import load_env_file
from .util.logging import setup_logging

LOGGER = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Lanca keeper and rebalancer")
    parser.add_argument("--config", help="path to the engine YAML config (defaults to $LANCA_CONFIG)")
    parser.add_argument("--env-file", default=".env", help="dotenv file merged into the environment")
    parser.add_argument("--log-level", help="override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="run the keeper and rebalancer loops")
    run_parser.add_argument("--once", action="store_true", help="run a single cycle and print the status")
    run_parser.add_argument("--no-api", action="store_true", help="run the loops without the HTTP server")
    run_parser.add_argument("--host", default="127.0.0.1", help="bind host for uvicorn")
    run_parser.add_argument("--port", type=int, default=8000, help="bind port for uvicorn")

    sub.add_parser("check-config", help="validate the config file and report problems")

    sync_parser = sub.add_parser("sync-params", help="write configured parameters to the pools")
    sync_parser.add_argument("--dry-run", action="store_true", help="only report drift")

    for name, help_text in (
        ("deposit", "enter the parent pool deposit queue with the operator account"),
        ("withdraw", "enter the parent pool withdrawal queue with the operator account"),
    ):
        queue_parser = sub.add_parser(name, help=help_text)
        queue_parser.add_argument("--pool", help="pool name (defaults to the parent pool)")
        queue_parser.add_argument(
            "--amount", required=True, help="token amount in whole units, e.g. 150.5"
        )
    return parser


def _dump(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n")


def _check_config(args: argparse.Namespace) -> int:
    try:
        loaded = load_engine_config(args.config)
    except ConfigurationError as exc:
        LOGGER.error("config.rejected", extra={"error": str(exc)})
        return 1
    warnings = warn_misconfiguration(loaded.data)
    _dump({"path": str(loaded.path), "ok": True, "warnings": warnings})
    return 0


async def _run_once(daemon: EngineDaemon) -> None:
    await daemon.run_once()
    _dump(daemon.status())


async def _run_forever(daemon: EngineDaemon) -> None:
    await daemon.start()
    try:
        await asyncio.Event().wait()
    finally:
        await daemon.stop()


def _run(args: argparse.Namespace) -> int:
    loaded = load_engine_config(args.config)
    daemon = EngineDaemon.from_config(loaded.data)
    if args.once:
        asyncio.run(_run_once(daemon))
        return 0
    if args.no_api:
        try:
            asyncio.run(_run_forever(daemon))
        except KeyboardInterrupt:
            LOGGER.info("engine.interrupted")
        return 0

    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(daemon), host=args.host, port=args.port, log_config=None)
    return 0


async def _sync(daemon: EngineDaemon, dry_run: bool) -> list[dict[str, Any]]:
    sync = ParameterSync(daemon.config, daemon.registry)
    changes = await sync.sync_all(dry_run=dry_run)
    return [
        {
            "pool": change.pool,
            "setter": change.setter,
            "previous": change.previous,
            "desired": change.desired,
            "applied": change.applied,
        }
        for change in changes
    ]


def _sync_params(args: argparse.Namespace) -> int:
    loaded = load_engine_config(args.config)
    daemon = EngineDaemon.from_config(loaded.data)
    _dump(asyncio.run(_sync(daemon, args.dry_run)))
    return 0


def _parse_amount(text: str) -> int:
    try:
        value = Decimal(text) * 10**LIQ_TOKEN_DECIMALS
    except InvalidOperation as exc:
        raise ConfigurationError(f"invalid amount {text!r}") from exc
    if not value.is_finite() or value <= 0 or value != value.to_integral_value():
        raise ConfigurationError(f"invalid amount {text!r}")
    return int(value)


def _queue_request(args: argparse.Namespace) -> int:
    amount = _parse_amount(args.amount)
    loaded = load_engine_config(args.config)
    daemon = EngineDaemon.from_config(loaded.data)
    try:
        handle = daemon.registry.get(args.pool) if args.pool else daemon.registry.parent
    except KeyError as exc:
        raise ConfigurationError(f"unknown pool {args.pool}") from exc
    enter = daemon.requests.deposit if args.command == "deposit" else daemon.requests.withdraw
    try:
        request = asyncio.run(enter(handle, amount))
    except (MinAmountError, TransactionRevertedError) as exc:
        LOGGER.error("queue.request_rejected", extra={"pool": handle.name, "error": str(exc)})
        return 1
    _dump(request.as_dict())
    return 0


_COMMANDS = {
    "run": _run,
    "check-config": _check_config,
    "sync-params": _sync_params,
    "deposit": _queue_request,
    "withdraw": _queue_request,
}


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    load_env_file(args.env_file)
    setup_logging(args.log_level)
    try:
        return _COMMANDS[args.command](args)
    except ConfigurationError as exc:
        LOGGER.error("config.rejected", extra={"error": str(exc)})
        return 2


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
