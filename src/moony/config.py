from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterator

import yaml
from pydantic import ValidationError

from .settings import Settings

ENV_PREFIX = "MOONY_"

# Consumed elsewhere, never merged into Settings.
RESERVED_ENV_KEYS = frozenset({"CONFIG", "LOG_LEVEL"})

# Secret strings must survive verbatim even when they look like YAML scalars.
RAW_STRING_PATHS = frozenset({
    ("host_id",),
    ("proxy", "username"),
    ("proxy", "password"),
})


def default_config_path() -> Path:
    return Path(os.environ.get(f"{ENV_PREFIX}CONFIG", "config.yml"))


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config root must be a mapping, got: {type(loaded)!r}")
    return loaded


def _coerce_env_value(path: tuple[str, ...], raw: str) -> Any:
    if path in RAW_STRING_PATHS:
        return raw
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def _iter_env_overrides(environ: dict[str, str]) -> Iterator[tuple[tuple[str, ...], Any]]:
    """Yield ``(path, value)`` pairs for ``MOONY_SECTION__KEY=value`` variables."""
    for key, raw in sorted(environ.items()):
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):]
        if name in RESERVED_ENV_KEYS:
            continue
        path = tuple(part.lower() for part in name.split("__") if part)
        if path:
            yield path, _coerce_env_value(path, raw)


def _merge_path(target: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    node = target
    for key in path[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = node[key] = {}
        node = child
    node[path[-1]] = value


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from YAML, then apply environment overrides on top."""
    path = Path(config_path) if config_path is not None else default_config_path()
    data = _read_config_file(path)

    for env_path, value in _iter_env_overrides(dict(os.environ)):
        _merge_path(data, env_path, value)

    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
