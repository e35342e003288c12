"""
release-guardrails — unit tests for run options and CI policy

File: tests/unit/domain/test_options.py
Last updated: 2026-10-18

Purpose
- Validate CI detection, forbidden CI flag combinations, and the cache options fingerprint.
"""

from __future__ import annotations

import pytest

from release_guardrails.domain.options import (
    CiPolicyError,
    RunOptions,
    enforce_ci_policy,
    is_ci_environment,
)


@pytest.mark.parametrize(
    ("environ", "expected"),
    [
        ({"CI": "true"}, True),
        ({"GITHUB_ACTIONS": "TRUE"}, True),
        ({"CI": "1"}, False),
        ({"CI": "false", "GITHUB_ACTIONS": ""}, False),
        ({}, False),
    ],
)
def test_ci_detection(environ: dict[str, str], expected: bool) -> None:
    assert is_ci_environment(environ) is expected


def test_quick_with_warn_only_is_rejected_in_ci() -> None:
    with pytest.raises(CiPolicyError, match="Cannot combine --quick and --warn-only") as exc:
        enforce_ci_policy(RunOptions(quick=True, warn_only=True, ci=True))

    assert "Use either --quick OR --warn-only, not both." in exc.value.hints


def test_skip_security_is_rejected_in_ci() -> None:
    with pytest.raises(CiPolicyError, match="Cannot skip security scan"):
        enforce_ci_policy(RunOptions(skip_security=True, ci=True))


def test_same_flags_are_allowed_locally() -> None:
    enforce_ci_policy(RunOptions(quick=True, warn_only=True, skip_security=True, ci=False))


def test_cache_fingerprint_tracks_grading_options_only() -> None:
    base = RunOptions()

    assert base.cache_fingerprint() == RunOptions(json_output=True, fix=True).cache_fingerprint()
    assert base.cache_fingerprint() != RunOptions(quick=True).cache_fingerprint()
    assert base.cache_fingerprint() != RunOptions(warn_only=True).cache_fingerprint()
    assert base.cache_fingerprint() != RunOptions(skip_changesets=True).cache_fingerprint()
