"""
release-guardrails — runtime config loader.

File: src/release_guardrails/config/loader.py
Last updated: 2026-10-18

Purpose
- Build the effective config from defaults, ``guardrails.toml``, ``GUARDRAILS_*`` env vars,
  and ``--set section.key=value`` overrides, in that order of increasing precedence.

What should be included in this file
- TOML loading via ``tomllib``.
- One override table derived from the default config: every scalar or list leaf gets an
  env name and a dotted CLI key, and raw strings are coerced to the leaf's type.
- ``workspace.root`` normalization relative to the config file location.

Functional requirements
- A missing default config file is fine; a missing explicit one is an error.
- Coercion errors name the source (env var or ``--set``) and the config path.
- The merged result is validated once after every layer is applied, and once before.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Final, Literal

from release_guardrails.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "guardrails.toml"
ENV_PREFIX: Final[str] = "GUARDRAILS_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

_ValueKind = Literal["str", "int", "float", "bool", "list"]
_ConfigPath = tuple[str, ...]


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with deterministic precedence: CLI > env > file > defaults.

    ``cli_overrides`` maps dotted keys (``"orchestrator.max_parallel"``) to values. String
    values aimed at non-string settings are coerced the same way env values are.
    """

    resolved_path = _resolve_config_path(config_path)
    file_layer = _load_toml_file(resolved_path, required=config_path is not None)
    merged = assert_valid_config(merge_config(default_config(), file_layer))

    kinds = _leaf_kinds(default_config())
    env_map = os.environ if environ is None else environ
    env_layer = _env_layer(kinds, env_map)
    cli_layer = _cli_layer(kinds, cli_overrides or {})

    merged = assert_valid_config(merge_config(merge_config(merged, env_layer), cli_layer))
    return normalize_paths(merged, base_dir=resolved_path.parent)


def parse_set_assignments(assignments: Iterable[str]) -> dict[str, str]:
    """Split repeated ``--set section.key=value`` arguments into ``cli_overrides``."""

    overrides: dict[str, str] = {}
    for item in assignments:
        key, separator, value = item.partition("=")
        key = key.strip()
        if not separator or "." not in key or key.startswith(".") or key.endswith("."):
            raise ConfigLoadError(f"invalid --set {item!r}: expected section.key=value")
        overrides[key] = value
    return overrides


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve relative path fields against ``base_dir``."""

    normalized = merge_config({}, config)
    for path in PATH_FIELDS:
        value = _get_nested(normalized, path)
        if isinstance(value, str):
            _set_nested(normalized, path, _absolute_posix(value, base_dir))
    return normalized


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Deterministic JSON rendering of the effective config."""

    return json.dumps(config, sort_keys=True, indent=2, ensure_ascii=False)


def _env_name_for(path: _ConfigPath) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _leaf_kinds(config: Mapping[str, object]) -> dict[_ConfigPath, _ValueKind]:
    kinds: dict[_ConfigPath, _ValueKind] = {}
    pending: list[tuple[_ConfigPath, Mapping[str, object]]] = [((), config)]
    while pending:
        prefix, node = pending.pop()
        for key, value in node.items():
            path = (*prefix, key)
            if isinstance(value, Mapping):
                pending.append((path, value))
                continue
            kind = _kind_of(value)
            if kind is not None:
                kinds[path] = kind
    return kinds


def _kind_of(value: object) -> _ValueKind | None:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "str"
    if isinstance(value, list):
        return "list"
    return None


def _env_layer(
    kinds: Mapping[_ConfigPath, _ValueKind], environ: Mapping[str, str]
) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for path in sorted(kinds):
        env_name = _env_name_for(path)
        raw = environ.get(env_name)
        if raw is not None:
            source = f"{env_name} -> {'.'.join(path)}"
            _set_nested(layer, path, _coerce(raw, kinds[path], source))
    return layer


def _cli_layer(
    kinds: Mapping[_ConfigPath, _ValueKind], overrides: Mapping[str, object]
) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key in sorted(overrides):
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        value = overrides[key]
        kind = kinds.get(path)
        if isinstance(value, str) and kind is not None:
            value = _coerce(value, kind, f"--set {key}")
        # Unknown keys pass through so schema validation reports them by path.
        _set_nested(layer, path, value)
    return layer


def _coerce(raw: str, kind: _ValueKind, source: str) -> object:
    value = raw.strip()
    if kind == "str":
        return value
    if kind == "list":
        return [item.strip() for item in value.split(",") if item.strip()]
    if kind == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{source} must be an integer") from exc
    if kind == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{source} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(f"{source} must be a boolean (true/false/1/0/yes/no/on/off)")


def _set_nested(target: dict[str, Any], path: _ConfigPath, value: object) -> None:
    cursor = target
    for part in path[:-1]:
        child = cursor.get(part)
        if not isinstance(child, dict):
            child = {}
            cursor[part] = child
        cursor = child
    cursor[path[-1]] = value


def _get_nested(payload: Mapping[str, object], path: _ConfigPath) -> object | None:
    cursor: object = payload
    for part in path:
        if not isinstance(cursor, Mapping) or part not in cursor:
            return None
        cursor = cursor[part]
    return cursor


def _absolute_posix(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(str(candidate))).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "load_config",
    "normalize_paths",
    "parse_set_assignments",
]
