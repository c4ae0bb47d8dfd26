from __future__ import annotations

import logging
import os
import sys

# attributes present on every LogRecord; anything else came in through ``extra=``
_RESERVED = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}


class ExtraFormatter(logging.Formatter):
    """Formatter that appends ``extra=`` fields as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = {
            key: value for key, value in record.__dict__.items() if key not in _RESERVED
        }
        if not extras:
            return line
        suffix = " ".join(f"{key}={value}" for key, value in sorted(extras.items()))
        return f"{line} | {suffix}"


def setup_logging(level: str | int | None = None) -> None:
    handler = logging.StreamHandler(sys.stdout)
    formatter = ExtraFormatter("%(asctime)s %(levelname)s %(name)s :: %(message)s")
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.handlers = [handler]
    resolved = level if level is not None else os.getenv("LOG_LEVEL", "INFO")
    if isinstance(resolved, str):
        resolved = resolved.upper()
    root.setLevel(resolved)
