from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable


def unique_ordered(values: Iterable[str]) -> list[str]:
    """Drop repeated flags, keeping the first occurrence of each."""
    return list(dict.fromkeys(values))


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value


def load_env_file(path: Path | str, override: bool = False) -> dict[str, str]:
    """Export ``NAME=value`` lines from a .env file into ``os.environ``.

    A leading ``export`` is accepted and one pair of matching quotes is
    stripped. Variables already set in the environment win unless
    ``override`` is true. Returns the variables that were exported.
    """
    env_path = Path(path)
    if not env_path.is_file():
        return {}

    loaded: dict[str, str] = {}
    for line in env_path.read_text(encoding="utf-8").splitlines():
        name, sep, value = line.strip().removeprefix("export ").partition("=")
        name = name.strip()
        if not sep or not name or name.startswith("#"):
            continue
        if name in os.environ and not override:
            continue
        loaded[name] = _unquote(value.strip())
    os.environ.update(loaded)
    return loaded
