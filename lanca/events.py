"""Poll-based waiting for pool events."""

from __future__ import annotations

import asyncio
import logging

from .chain.base import ChainEvent, ContractClient
from .errors import EventTimeoutError

LOGGER = logging.getLogger(__name__)

DEFAULT_EVENT_TIMEOUT_MS = 10_000


async def wait_for_event(
    client: ContractClient,
    event: str,
    *,
    timeout_ms: int = DEFAULT_EVENT_TIMEOUT_MS,
    from_block: int | None = None,
    polling_interval_ms: int = 100,
) -> ChainEvent:
    """Return the first ``event`` emitted by ``client`` at or after ``from_block``.

    ``from_block`` defaults to the current head. Raises
    :class:`EventTimeoutError` when nothing arrives within ``timeout_ms``.
    """

    start_block = from_block if from_block is not None else await client.block_number()
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_ms / 1000
    while True:
        events = await client.get_events(event, start_block)
        if events:
            LOGGER.debug(
                "events.observed",
                extra={"event": event, "address": client.address, "block": events[0].block_number},
            )
            return events[0]
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise EventTimeoutError(event, timeout_ms)
        await asyncio.sleep(min(polling_interval_ms / 1000, remaining))


__all__ = ["DEFAULT_EVENT_TIMEOUT_MS", "wait_for_event"]
