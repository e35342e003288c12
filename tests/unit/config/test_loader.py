"""
release-guardrails — unit tests for config loader

File: tests/unit/config/test_loader.py
Last updated: 2026-10-18

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Env var path mapping and typed coercion (including comma-separated lists).
- Path normalization relative to the config file.
- Load errors for missing explicit files, invalid TOML, and bad env values.

Functional requirements
- No dependency on the real process environment or working directory contents.

Non-functional requirements
- Deterministic output across repeated loads.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from release_guardrails.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    load_config,
    parse_set_assignments,
)
from release_guardrails.config.schema import ConfigValidationError


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_loader_returns_defaults_when_file_is_optional_and_absent(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config["orchestrator"]["max_parallel"] == 8
    assert config["cache"]["path"] == ".turbo/guardrails-cache.json"
    assert config["duplicates"]["min_fuzzy_length"] == 40
    assert config["workspace"]["root"] == tmp_path.resolve().as_posix()


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "guardrails.toml"
    _write_config(
        config_path,
        """
[orchestrator]
max_parallel = 4
quick_timeout_seconds = 10

[audit]
max_retries = 1
""".strip(),
    )

    config = load_config(
        config_path,
        environ={
            "GUARDRAILS_ORCHESTRATOR_MAX_PARALLEL": "6",
            "GUARDRAILS_AUDIT_MAX_RETRIES": "2",
        },
        cli_overrides={"orchestrator.max_parallel": 3},
    )

    assert config["orchestrator"]["max_parallel"] == 3
    assert config["audit"]["max_retries"] == 2
    assert config["orchestrator"]["quick_timeout_seconds"] == 10.0
    assert config["orchestrator"]["full_timeout_seconds"] == 120.0


def test_env_overrides_are_coerced_by_default_type(tmp_path: Path) -> None:
    config_path = tmp_path / "guardrails.toml"
    _write_config(config_path, "")

    config = load_config(
        config_path,
        environ={
            "GUARDRAILS_CACHE_ENABLED": "off",
            "GUARDRAILS_DUPLICATES_SIMILARITY_THRESHOLD": "0.8",
            "GUARDRAILS_CHANGESETS_PACKAGE_DIRS": "packages, libs ,",
            "GUARDRAILS_OBSERVABILITY_LOG_FORMAT": "json",
        },
    )

    assert config["cache"]["enabled"] is False
    assert config["duplicates"]["similarity_threshold"] == pytest.approx(0.8)
    assert config["changesets"]["package_dirs"] == ["packages", "libs"]
    assert config["observability"]["log_format"] == "json"


def test_invalid_env_values_raise_load_error(tmp_path: Path) -> None:
    config_path = tmp_path / "guardrails.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match="GUARDRAILS_ORCHESTRATOR_MAX_PARALLEL"):
        load_config(config_path, environ={"GUARDRAILS_ORCHESTRATOR_MAX_PARALLEL": "many"})

    with pytest.raises(ConfigLoadError, match="must be a boolean"):
        load_config(config_path, environ={"GUARDRAILS_CACHE_ENABLED": "maybe"})


def test_workspace_root_is_normalized_relative_to_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "guardrails.toml"
    _write_config(config_path, '[workspace]\nroot = "../repo"\n')

    config = load_config(config_path, environ={})

    assert config["workspace"]["root"] == (tmp_path / "repo").as_posix()


def test_explicit_missing_config_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "missing.toml", environ={})


def test_invalid_toml_is_a_load_error(tmp_path: Path) -> None:
    config_path = tmp_path / "guardrails.toml"
    _write_config(config_path, "[orchestrator\nmax_parallel = 1\n")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_schema_violations_in_file_raise_validation_error(tmp_path: Path) -> None:
    config_path = tmp_path / "guardrails.toml"
    _write_config(config_path, "[orchestrator]\nmax_paralel = 2\n")

    with pytest.raises(ConfigValidationError) as exc_info:
        load_config(config_path, environ={})

    assert any(issue.path == "orchestrator.max_paralel" for issue in exc_info.value.issues)


def test_dump_effective_config_is_deterministic(tmp_path: Path) -> None:
    config_path = tmp_path / "guardrails.toml"
    _write_config(config_path, "[report]\npath = \"out/report.json\"\n")

    first = dump_effective_config(load_config(config_path, environ={}))
    second = dump_effective_config(load_config(config_path, environ={}))

    assert first == second
    assert json.loads(first)["report"]["path"] == "out/report.json"


def test_set_assignments_are_coerced_like_env_values(tmp_path: Path) -> None:
    config_path = tmp_path / "guardrails.toml"
    _write_config(config_path, "")

    overrides = parse_set_assignments(
        ["cache.enabled=no", "orchestrator.max_parallel= 2", "audit.primary_command=npm,audit"]
    )
    config = load_config(
        config_path,
        environ={"GUARDRAILS_CACHE_ENABLED": "true"},
        cli_overrides=overrides,
    )

    assert config["cache"]["enabled"] is False
    assert config["orchestrator"]["max_parallel"] == 2
    assert config["audit"]["primary_command"] == ["npm", "audit"]


@pytest.mark.parametrize("item", ["cache.enabled", "enabled=true", ".x=1", "cache.=1"])
def test_malformed_set_assignments_are_rejected(item: str) -> None:
    with pytest.raises(ConfigLoadError, match="expected section.key=value"):
        parse_set_assignments([item])


def test_set_coercion_errors_name_the_flag(tmp_path: Path) -> None:
    config_path = tmp_path / "guardrails.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match="--set orchestrator.max_parallel must be an integer"):
        load_config(
            config_path, environ={}, cli_overrides={"orchestrator.max_parallel": "lots"}
        )


def test_unknown_set_keys_surface_as_validation_issues(tmp_path: Path) -> None:
    config_path = tmp_path / "guardrails.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError) as exc_info:
        load_config(config_path, environ={}, cli_overrides={"cache.ttl": "5"})

    assert any(issue.path == "cache.ttl" for issue in exc_info.value.issues)
