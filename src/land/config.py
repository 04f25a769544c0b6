from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from land.errors import ConfigError

TRUE_WORDS = frozenset({"true", "1", "yes", "y", "on"})
FALSE_WORDS = frozenset({"false", "0", "no", "n", "off"})


def _coerce_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in TRUE_WORDS:
        return True
    if word in FALSE_WORDS:
        return False
    raise ConfigError(f"{name}: expected a boolean, got {value!r}")


def _coerce_number(name: str, value: Any, kind: type) -> Any:
    # YAML and env values arrive as bool, int, float or str; bools are never numbers here.
    if isinstance(value, bool):
        raise ConfigError(f"{name}: expected {kind.__name__}, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name}: expected {kind.__name__}, got {value!r}") from exc


DEFAULT_CACHE_DIR = Path("~/.cache/land")


@dataclass
class CacheConfig:
    directory: Path = DEFAULT_CACHE_DIR
    retry_times: int = 3
    retry_backoff: float = 0.0
    retry_backoff_max: float = 8.0
    timeout: float = 20.0
    lock_entries: bool = False

    def __post_init__(self) -> None:
        self.directory = Path(self.directory).expanduser()
        self.retry_times = _coerce_number("cache.retry_times", self.retry_times, int)
        self.retry_backoff = _coerce_number("cache.retry_backoff", self.retry_backoff, float)
        self.retry_backoff_max = _coerce_number("cache.retry_backoff_max", self.retry_backoff_max, float)
        self.timeout = _coerce_number("cache.timeout", self.timeout, float)
        self.lock_entries = _coerce_bool("cache.lock_entries", self.lock_entries)
        if self.retry_times < 1:
            raise ConfigError("cache.retry_times must be >= 1")
        if self.retry_backoff < 0 or self.retry_backoff_max < 0:
            raise ConfigError("cache.retry_backoff values must be >= 0")

@dataclass
class RegistryConfig:
    cdn_url: str = "https://cdn.deno.land"
    module_url: str = "https://deno.land/x"

    def __post_init__(self) -> None:
        self.cdn_url = str(self.cdn_url).rstrip("/")
        self.module_url = str(self.module_url).rstrip("/")


@dataclass
class LaunchConfig:
    runtime: str = "deno"
    default_location: str = "http://0.0.0.0"


@dataclass
class AppConfig:
    cache: CacheConfig = field(default_factory=CacheConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    launch: LaunchConfig = field(default_factory=LaunchConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AppConfig":
        try:
            cache = CacheConfig(**(data.get("cache", {}) or {}))
            registry = RegistryConfig(**(data.get("registry", {}) or {}))
            launch = LaunchConfig(**(data.get("launch", {}) or {}))
        except TypeError as exc:
            raise ConfigError(f"Unknown configuration key: {exc}") from exc
        return cls(cache=cache, registry=registry, launch=launch)


DEFAULT_CONFIG_PATH = Path("land.yaml")
ENV_PREFIX = "LAND__"


def _parse_env_overrides(env: Mapping[str, str]) -> dict[str, dict[str, str]]:
    """Collect ``LAND__<SECTION>__<KEY>`` variables as ``{section: {key: value}}``."""
    overrides: dict[str, dict[str, str]] = {}
    for name, value in env.items():
        if not name.startswith(ENV_PREFIX):
            continue
        section, sep, key = name[len(ENV_PREFIX) :].lower().partition("__")
        if not sep or not section or not key or "__" in key:
            continue
        overrides.setdefault(section, {})[key] = value
    return overrides


def _apply_overrides(
    data: Mapping[str, Any],
    overrides: Mapping[str, Mapping[str, str]],
) -> dict[str, Any]:
    merged = dict(data)
    for section, values in overrides.items():
        current = merged.get(section) or {}
        if not isinstance(current, Mapping):
            raise ConfigError(f"Configuration section '{section}' must be a mapping")
        merged[section] = {**current, **values}
    return merged


def load_config(
    path: Path | str = DEFAULT_CONFIG_PATH,
    env: Mapping[str, str] | None = None,
) -> AppConfig:
    config_path = Path(path)
    data: dict[str, Any] = {}
    if config_path.exists():
        loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"{config_path.name} must define a mapping at the top level")
        data = loaded

    overrides = _parse_env_overrides(os.environ if env is None else env)
    return AppConfig.from_dict(_apply_overrides(data, overrides))
