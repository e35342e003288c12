"""
release-guardrails — unit tests for domain models

File: tests/unit/domain/test_models.py
Last updated: 2026-10-18

Purpose
- Validate result/report value semantics and their persisted JSON forms.

What this test file should cover
- ``CheckResult`` validation and dict round trips (including sub-tasks and diagnostic flag).
- Report summary counts, blocked verdict, and camelCase JSON keys.
- Timestamp formatting and parsing.
"""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import UTC, datetime, timedelta, timezone

import pytest

from release_guardrails.domain.models import (
    REPORT_VERSION,
    CheckResult,
    CheckStatus,
    GitInfo,
    QualityScore,
    SubTask,
    build_report,
    format_timestamp,
    parse_timestamp,
)

FIXED_TIME = datetime(2026, 10, 18, 12, 30, 45, 123000, tzinfo=UTC)


def _result(name: str, status: CheckStatus, **kwargs: object) -> CheckResult:
    message = f"{name} {status}"
    return CheckResult(name=name, status=status, message=message, **kwargs)  # type: ignore[arg-type]


def test_check_result_round_trips_through_dict() -> None:
    original = CheckResult(
        name="Security Scan",
        status=CheckStatus.WARN,
        message="pnpm audit passed but OSV scanner found issues",
        duration_ms=1520,
        details=("Total: 3", "  - lodash: GHSA-1"),
        is_diagnostic=False,
        sub_tasks=(
            SubTask("pnpm audit", CheckStatus.PASS, 900),
            SubTask("osv-scanner", CheckStatus.WARN, 600),
        ),
    )

    payload = original.to_dict()

    assert payload["duration"] == 1520
    assert payload["isDiagnostic"] is False
    assert payload["subTasks"] == [
        {"name": "pnpm audit", "status": "pass", "duration": 900},
        {"name": "osv-scanner", "status": "warn", "duration": 600},
    ]
    assert CheckResult.from_dict(json.loads(json.dumps(payload))) == original


def test_sub_tasks_key_is_omitted_when_empty() -> None:
    payload = _result("Governance Check", CheckStatus.PASS).to_dict()

    assert "subTasks" not in payload


@pytest.mark.parametrize(
    ("kwargs", "fragment"),
    [
        ({"name": " ", "status": CheckStatus.PASS, "message": ""}, "CheckResult.name"),
        ({"name": "x", "status": "pass", "message": ""}, "CheckResult.status"),
        (
            {"name": "x", "status": CheckStatus.PASS, "message": "", "duration_ms": -1},
            "CheckResult.duration_ms",
        ),
        (
            {"name": "x", "status": CheckStatus.PASS, "message": "", "details": ["a"]},
            "CheckResult.details",
        ),
    ],
)
def test_check_result_rejects_invalid_fields(kwargs: dict[str, object], fragment: str) -> None:
    with pytest.raises(ValueError, match=fragment):
        CheckResult(**kwargs)  # type: ignore[arg-type]


def test_from_dict_rejects_unknown_status() -> None:
    with pytest.raises(ValueError, match="expected one of"):
        CheckResult.from_dict({"name": "x", "status": "broken", "message": ""})


def test_report_summary_counts_and_verdict() -> None:
    results = [
        _result("Changeset Validation", CheckStatus.PASS, duration_ms=10),
        _result("Security Scan", CheckStatus.FAIL, duration_ms=20),
        _result("Export Map Linting", CheckStatus.WARN, duration_ms=5, is_diagnostic=True),
        _result("Governance Check", CheckStatus.SKIP),
    ]

    report = build_report(results, timestamp=FIXED_TIME)

    assert report.summary.passed == 1
    assert report.summary.failed == 1
    assert report.summary.warned == 1
    assert report.summary.skipped == 1
    assert report.summary.total_duration_ms == 35
    assert report.blocked
    assert [item.name for item in report.failed_results] == ["Security Scan"]


def test_report_without_failures_is_not_blocked() -> None:
    report = build_report(
        [_result("Changeset Validation", CheckStatus.WARN)], timestamp=FIXED_TIME
    )

    assert not report.blocked


def test_report_json_uses_camel_case_keys_and_optional_sections() -> None:
    report = build_report(
        [_result("Changeset Validation", CheckStatus.PASS)],
        timestamp=FIXED_TIME,
        git_info=GitInfo(branch="feat/x", base_branch="origin/main", commit_range="abc..HEAD"),
        quality_score=QualityScore(overall=80, export_maps=70, side_effects=75, tree_shaking=95),
    )

    payload = json.loads(report.to_json())

    assert payload["timestamp"] == "2026-10-18T12:30:45.123Z"
    assert payload["version"] == REPORT_VERSION == "2.0.0"
    assert payload["summary"] == {
        "passed": 1,
        "warned": 0,
        "failed": 0,
        "skipped": 0,
        "totalDuration": 0,
    }
    assert payload["gitInfo"] == {
        "branch": "feat/x",
        "baseBranch": "origin/main",
        "commitRange": "abc..HEAD",
    }
    assert payload["packageQualityScore"]["breakdown"] == {
        "exportMaps": 70,
        "sideEffects": 75,
        "treeShaking": 95,
    }


def test_optional_report_sections_are_omitted_when_absent() -> None:
    payload = build_report([], timestamp=FIXED_TIME).to_dict()

    assert "gitInfo" not in payload
    assert "packageQualityScore" not in payload


def test_from_cache_flag_does_not_affect_report_equality() -> None:
    results = [_result("Changeset Validation", CheckStatus.PASS)]

    fresh = build_report(results, timestamp=FIXED_TIME)
    cached = build_report(results, timestamp=FIXED_TIME, from_cache=True)

    assert fresh == cached
    assert replace(fresh, from_cache=True).from_cache


def test_timestamps_format_and_parse_as_utc() -> None:
    offset = timezone(timedelta(hours=2))
    local = datetime(2026, 10, 18, 14, 0, 0, tzinfo=offset)

    rendered = format_timestamp(local)

    assert rendered == "2026-10-18T12:00:00.000Z"
    assert parse_timestamp(rendered) == local
    with pytest.raises(ValueError, match="invalid ISO-8601"):
        parse_timestamp("yesterday")
