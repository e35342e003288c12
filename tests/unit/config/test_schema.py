"""
release-guardrails — unit tests for config schema

File: tests/unit/config/test_schema.py
Last updated: 2026-10-18

Purpose
- Validate strict schema rules, structured issue reporting, and deep merge behavior.

What this test file should cover
- Defaults validate cleanly.
- Unknown fields, wrong types, and out-of-range values produce path-addressed issues.
- Cross-field rules (stale day ordering, quick <= full timeout).
- Schema version migration guidance.
"""

from __future__ import annotations

import pytest

from release_guardrails.config.schema import (
    CONFIG_SCHEMA_VERSION,
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)


def _issue_paths(config: object) -> set[str]:
    return {issue.path for issue in validate_config(config).issues}


def test_defaults_are_valid() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert result.config is not None
    assert result.config["meta"]["schema_version"] == CONFIG_SCHEMA_VERSION


def test_unknown_fields_and_sections_are_rejected() -> None:
    config = merge_config(default_config(), {"cache": {"ttl": 5}, "extras": {}})

    paths = _issue_paths(config)

    assert "cache.ttl" in paths
    assert "extras" in paths


def test_type_and_range_violations_are_reported_per_field() -> None:
    config = merge_config(
        default_config(),
        {
            "orchestrator": {"max_parallel": 0, "diagnostics": "yes"},
            "duplicates": {"similarity_threshold": 1.5},
            "audit": {"primary_command": []},
            "observability": {"log_level": "TRACE"},
        },
    )

    paths = _issue_paths(config)

    assert {
        "orchestrator.max_parallel",
        "orchestrator.diagnostics",
        "duplicates.similarity_threshold",
        "audit.primary_command",
        "observability.log_level",
    } <= paths


def test_booleans_are_not_accepted_as_integers() -> None:
    config = merge_config(default_config(), {"audit": {"max_retries": True}})

    assert "audit.max_retries" in _issue_paths(config)


def test_stale_day_thresholds_must_be_ordered() -> None:
    config = merge_config(
        default_config(),
        {"changesets": {"stale_warn_days": 20, "stale_notice_days": 14}},
    )

    assert "changesets" in _issue_paths(config)


def test_quick_timeout_may_not_exceed_full_timeout() -> None:
    config = merge_config(
        default_config(),
        {"orchestrator": {"quick_timeout_seconds": 300, "full_timeout_seconds": 60}},
    )

    assert "orchestrator.quick_timeout_seconds" in _issue_paths(config)


def test_newer_schema_version_carries_migration_guidance() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": 99}})

    with pytest.raises(ConfigValidationError) as exc_info:
        assert_valid_config(config)

    message = str(exc_info.value)
    assert message.startswith("invalid config:")
    assert "upgrade the release-guardrails runtime" in message


def test_merge_config_is_deep_and_does_not_mutate_inputs() -> None:
    base = default_config()
    overlay = {"cache": {"enabled": False}}

    merged = merge_config(base, overlay)

    assert merged["cache"]["enabled"] is False
    assert merged["cache"]["path"] == base["cache"]["path"]
    assert base["cache"]["enabled"] is True
