"""Environment helpers: ``.env`` loading and operator credentials."""

from __future__ import annotations

import os
from pathlib import Path

from ..errors import ConfigurationError

PRIVATE_KEY_ENV = "OPERATOR_PRIVATE_KEY"


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


def load_env_file(path: str | Path = ".env") -> int:
    """Merge ``KEY=value`` lines from ``path`` into ``os.environ``.

    Variables already present in the environment win. Blank lines, ``#``
    comments and ``export`` prefixes are tolerated. Returns the number of
    variables that were set.
    """

    env_path = Path(path)
    if not env_path.is_file():
        return 0
    applied = 0
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        line = line.removeprefix("export ").strip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key or key in os.environ:
            continue
        os.environ[key] = _unquote(value.strip())
        applied += 1
    return applied


def operator_private_key(*, required: bool) -> str | None:
    key = os.getenv(PRIVATE_KEY_ENV, "").strip()
    if not key:
        if required:
            raise ConfigurationError(f"{PRIVATE_KEY_ENV} must be set for testnet/mainnet runs")
        return None
    return key if key.startswith("0x") else "0x" + key


__all__ = ["PRIVATE_KEY_ENV", "load_env_file", "operator_private_key"]
