"""
release-guardrails — configuration schema and validation.

File: src/release_guardrails/config/schema.py
Last updated: 2026-10-18

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Deterministic deep-merge helpers.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Unknown fields are rejected so typos never silently fall back to defaults.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, TypedDict

CONFIG_SCHEMA_VERSION: Final[int] = 1

# Config paths normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("workspace", "root"),)


class MetaConfig(TypedDict):
    schema_version: int


class WorkspaceConfig(TypedDict):
    root: str


class OrchestratorSettings(TypedDict):
    quick_timeout_seconds: float
    full_timeout_seconds: float
    max_parallel: int
    diagnostics: bool
    script_dirs: list[str]


class CacheConfig(TypedDict):
    enabled: bool
    path: str
    ttl_seconds: int
    lockfile: str
    manifest_dirs: list[str]


class ChangesetsConfig(TypedDict):
    directory: str
    package_dirs: list[str]
    min_summary_length: int
    generic_summary_max_length: int
    stale_warn_days: int
    stale_notice_days: int
    stale_error_days: int
    base_branches: list[str]


class DuplicatesConfig(TypedDict):
    similarity_threshold: float
    min_fuzzy_length: int
    length_bucket_size: int
    max_length_difference_ratio: float
    time_budget_seconds: float
    max_descriptors: int


class AuditConfig(TypedDict):
    primary_command: list[str]
    secondary_command: list[str]
    attempt_timeout_seconds: float
    secondary_timeout_seconds: float
    max_retries: int
    backoff_seconds: float
    baseline_path: str
    moderate_threshold: int
    low_threshold: int
    total_threshold: int
    corroborate: bool


class ReportConfig(TypedDict):
    path: str


class ObservabilityConfig(TypedDict):
    log_level: str
    log_format: str


class GuardrailsConfig(TypedDict):
    meta: MetaConfig
    workspace: WorkspaceConfig
    orchestrator: OrchestratorSettings
    cache: CacheConfig
    changesets: ChangesetsConfig
    duplicates: DuplicatesConfig
    audit: AuditConfig
    report: ReportConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[GuardrailsConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "workspace": {"root": "."},
    "orchestrator": {
        "quick_timeout_seconds": 30.0,
        "full_timeout_seconds": 120.0,
        "max_parallel": 8,
        "diagnostics": True,
        "script_dirs": ["scripts", "tools", ".scripts"],
    },
    "cache": {
        "enabled": True,
        "path": ".turbo/guardrails-cache.json",
        "ttl_seconds": 3600,
        "lockfile": "pnpm-lock.yaml",
        "manifest_dirs": ["packages", "apps"],
    },
    "changesets": {
        "directory": ".changeset",
        "package_dirs": ["packages", "apps"],
        "min_summary_length": 10,
        "generic_summary_max_length": 30,
        "stale_warn_days": 7,
        "stale_notice_days": 14,
        "stale_error_days": 30,
        "base_branches": ["origin/main", "origin/master", "main", "master"],
    },
    "duplicates": {
        "similarity_threshold": 0.9,
        "min_fuzzy_length": 40,
        "length_bucket_size": 20,
        "max_length_difference_ratio": 0.15,
        "time_budget_seconds": 5.0,
        "max_descriptors": 200,
    },
    "audit": {
        "primary_command": ["pnpm", "audit", "--json"],
        "secondary_command": ["osv-scanner", "--format", "json", "."],
        "attempt_timeout_seconds": 30.0,
        "secondary_timeout_seconds": 60.0,
        "max_retries": 3,
        "backoff_seconds": 1.0,
        "baseline_path": ".security-baseline.json",
        "moderate_threshold": 5,
        "low_threshold": 15,
        "total_threshold": 20,
        "corroborate": True,
    },
    "report": {"path": "guardrails-report.json"},
    "observability": {"log_level": "WARNING", "log_format": "text"},
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


_FieldParser = Callable[[object, str, _IssueCollector], object | None]


def default_config() -> GuardrailsConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    _reject_unknown_keys(root, set(_SECTIONS), "", issues)
    _require_keys(root, set(_SECTIONS), "", issues)

    normalized: dict[str, Any] = {}
    for section_name in sorted(_SECTIONS):
        raw = root.get(section_name)
        if raw is None:
            continue
        section = _as_object(raw, section_name, issues)
        if section is None:
            continue
        normalized[section_name] = _validate_section(
            section, section_name, _SECTIONS[section_name], issues
        )

    meta = normalized.get("meta", {})
    version = meta.get("schema_version")
    if isinstance(version, int) and version != CONFIG_SCHEMA_VERSION:
        issues.add("meta.schema_version", migration_guidance(version))

    _validate_cross_fields(normalized, issues)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def migration_guidance(found_version: int) -> str:
    if found_version < CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is older than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade guardrails.toml to the current schema"
        )
    return (
        f"schema version {found_version} is newer than supported {CONFIG_SCHEMA_VERSION}; "
        "upgrade the release-guardrails runtime"
    )


def _validate_section(
    payload: Mapping[str, object],
    path: str,
    fields: Mapping[str, _FieldParser],
    issues: _IssueCollector,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(fields), path, issues)
    _require_keys(payload, set(fields), path, issues)

    out: dict[str, Any] = {}
    for key in sorted(fields):
        if key not in payload:
            continue
        parsed = fields[key](payload[key], _join(path, key), issues)
        if parsed is not None:
            out[key] = parsed
    return out


def _validate_cross_fields(config: Mapping[str, Any], issues: _IssueCollector) -> None:
    changesets = config.get("changesets", {})
    warn_days = changesets.get("stale_warn_days")
    notice_days = changesets.get("stale_notice_days")
    error_days = changesets.get("stale_error_days")
    if (
        isinstance(warn_days, int)
        and isinstance(notice_days, int)
        and isinstance(error_days, int)
        and not warn_days <= notice_days <= error_days
    ):
        issues.add(
            "changesets",
            "stale_warn_days <= stale_notice_days <= stale_error_days must hold",
        )

    orchestrator = config.get("orchestrator", {})
    quick = orchestrator.get("quick_timeout_seconds")
    full = orchestrator.get("full_timeout_seconds")
    if isinstance(quick, float) and isinstance(full, float) and quick > full:
        issues.add(
            "orchestrator.quick_timeout_seconds",
            "must not exceed orchestrator.full_timeout_seconds",
        )


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if not isinstance(value, list) or not value:
        issues.add(path, "expected non-empty array of strings")
        return None
    parsed: list[str] = []
    for index, item in enumerate(value):
        text = _as_str(item, f"{path}[{index}]", issues)
        if text is None:
            return None
        parsed.append(text)
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
    exclusive_minimum: bool = False,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None:
        if exclusive_minimum and parsed <= minimum:
            issues.add(path, f"must be > {minimum}")
            return None
        if not exclusive_minimum and parsed < minimum:
            issues.add(path, f"must be >= {minimum}")
            return None
    if maximum is not None and parsed > maximum:
        issues.add(path, f"must be <= {maximum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _int_at_least(minimum: int) -> _FieldParser:
    def parse(value: object, path: str, issues: _IssueCollector) -> int | None:
        return _as_int(value, path, issues, minimum=minimum)

    return parse


def _positive_float(value: object, path: str, issues: _IssueCollector) -> float | None:
    return _as_float(value, path, issues, minimum=0.0, exclusive_minimum=True)


def _non_negative_float(value: object, path: str, issues: _IssueCollector) -> float | None:
    return _as_float(value, path, issues, minimum=0.0)


def _ratio(value: object, path: str, issues: _IssueCollector) -> float | None:
    return _as_float(value, path, issues, minimum=0.0, maximum=1.0)


def _log_level(value: object, path: str, issues: _IssueCollector) -> str | None:
    return _as_enum(
        value, path, issues, allowed_values=("DEBUG", "INFO", "WARNING", "ERROR")
    )


def _log_format(value: object, path: str, issues: _IssueCollector) -> str | None:
    return _as_enum(value, path, issues, allowed_values=("json", "text"))


_SECTIONS: Final[dict[str, dict[str, _FieldParser]]] = {
    "meta": {"schema_version": _int_at_least(1)},
    "workspace": {"root": _as_path_text},
    "orchestrator": {
        "quick_timeout_seconds": _positive_float,
        "full_timeout_seconds": _positive_float,
        "max_parallel": _int_at_least(1),
        "diagnostics": _as_bool,
        "script_dirs": _as_str_list,
    },
    "cache": {
        "enabled": _as_bool,
        "path": _as_path_text,
        "ttl_seconds": _int_at_least(0),
        "lockfile": _as_path_text,
        "manifest_dirs": _as_str_list,
    },
    "changesets": {
        "directory": _as_path_text,
        "package_dirs": _as_str_list,
        "min_summary_length": _int_at_least(0),
        "generic_summary_max_length": _int_at_least(0),
        "stale_warn_days": _int_at_least(0),
        "stale_notice_days": _int_at_least(0),
        "stale_error_days": _int_at_least(0),
        "base_branches": _as_str_list,
    },
    "duplicates": {
        "similarity_threshold": _ratio,
        "min_fuzzy_length": _int_at_least(0),
        "length_bucket_size": _int_at_least(1),
        "max_length_difference_ratio": _ratio,
        "time_budget_seconds": _positive_float,
        "max_descriptors": _int_at_least(0),
    },
    "audit": {
        "primary_command": _as_str_list,
        "secondary_command": _as_str_list,
        "attempt_timeout_seconds": _positive_float,
        "secondary_timeout_seconds": _positive_float,
        "max_retries": _int_at_least(0),
        "backoff_seconds": _non_negative_float,
        "baseline_path": _as_path_text,
        "moderate_threshold": _int_at_least(1),
        "low_threshold": _int_at_least(1),
        "total_threshold": _int_at_least(1),
        "corroborate": _as_bool,
    },
    "report": {"path": _as_path_text},
    "observability": {"log_level": _log_level, "log_format": _log_format},
}


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: copy.deepcopy(value[key]) for key in sorted(value)}


__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "GuardrailsConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "validate_config",
]
