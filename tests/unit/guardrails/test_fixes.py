"""
release-guardrails — unit tests for auto-remediation

File: tests/unit/guardrails/test_fixes.py
Last updated: 2026-10-18

Purpose
- Validate which fixes are planned from Security Scan results and how outcomes are reported.
- Only results that report counted vulnerabilities plan a fix.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from release_guardrails.domain.models import CheckResult, CheckStatus
from release_guardrails.execution import CommandExecutor, CommandResult, CommandSpec
from release_guardrails.guardrails.fixes import (
    AUDIT_FIX_ARGV,
    UPDATE_DEPENDENCIES_ARGV,
    FixOutcome,
    apply_fixes,
    planned_fixes,
)


@dataclass(frozen=True, slots=True)
class FakeOutcome:
    exit_code: int | None = 0
    timed_out: bool = False


class FakeExecutor(CommandExecutor):
    def __init__(self, responses: dict[tuple[str, ...], FakeOutcome] | None = None) -> None:
        self.responses = responses or {}
        self.calls: list[CommandSpec] = []

    async def run(self, spec: CommandSpec) -> CommandResult:
        self.calls.append(spec)
        outcome = self.responses.get(tuple(spec.argv), FakeOutcome())
        return CommandResult(
            argv=tuple(spec.argv),
            exit_code=None if outcome.timed_out else outcome.exit_code,
            stdout="",
            stderr="",
            duration_ms=1,
            timed_out=outcome.timed_out,
            error="command timed out" if outcome.timed_out else None,
        )


def _security(status: CheckStatus, message: str, *details: str) -> CheckResult:
    return CheckResult(name="Security Scan", status=status, message=message, details=details)


def _over_threshold() -> CheckResult:
    return _security(CheckStatus.WARN, "6 moderate vulnerabilities exceed threshold (5)")


def test_planned_fixes_by_security_outcome() -> None:
    warned = planned_fixes([_security(CheckStatus.WARN, "5 moderate vulnerabilities")])
    failed = planned_fixes([_security(CheckStatus.FAIL, "Found 2 critical vulnerabilities")])
    broken = planned_fixes([_security(CheckStatus.FAIL, "Audit infrastructure failure")])

    assert [argv for _, argv, _ in warned] == [UPDATE_DEPENDENCIES_ARGV]
    assert [argv for _, argv, _ in failed] == [AUDIT_FIX_ARGV]
    assert broken == []
    assert planned_fixes([_security(CheckStatus.PASS, "No vulnerabilities found")]) == []
    assert planned_fixes([]) == []


def test_warnings_without_counted_findings_plan_no_fixes() -> None:
    network = _security(
        CheckStatus.WARN,
        "Network issues in local quick mode - skipping audit",
        "Error: getaddrinfo ENOTFOUND registry.npmjs.org",
        "Network failure prevents vulnerability assessment",
    )
    unreachable = _security(
        CheckStatus.FAIL, "Audit infrastructure failure - cannot assess vulnerabilities"
    )
    osv_only = _security(
        CheckStatus.WARN,
        "pnpm audit passed but OSV scanner found issues",
        "pnpm audit: No vulnerabilities found",
        "OSV scanner: OSV scanner found 2 vulnerabilities (non-critical)",
    )
    new_high = _security(CheckStatus.FAIL, "Found 2 new high severity vulnerabilities")

    assert planned_fixes([network]) == []
    assert planned_fixes([unreachable]) == []
    assert [argv for _, argv, _ in planned_fixes([osv_only])] == [UPDATE_DEPENDENCIES_ARGV]
    assert [argv for _, argv, _ in planned_fixes([new_high])] == [AUDIT_FIX_ARGV]


def test_fix_outcome_serializes_command_line() -> None:
    outcome = FixOutcome("Fix vulnerabilities", AUDIT_FIX_ARGV, False, "Timed out")

    assert outcome.to_dict() == {
        "description": "Fix vulnerabilities",
        "command": "pnpm audit --fix",
        "succeeded": False,
        "message": "Timed out",
    }


@pytest.mark.asyncio
async def test_apply_fixes_reports_success_and_manual_fallback(tmp_path: Path) -> None:
    executor = FakeExecutor({AUDIT_FIX_ARGV: FakeOutcome(exit_code=1)})
    results = [_security(CheckStatus.FAIL, "Found 1 critical vulnerabilities")]

    (outcome,) = await apply_fixes(results, executor, cwd=tmp_path)

    assert not outcome.succeeded
    assert outcome.message == "Could not apply automatically; run manually: pnpm audit --fix"
    (spec,) = executor.calls
    assert spec.cwd == str(tmp_path)
    assert spec.timeout_seconds == 30.0

    executor = FakeExecutor()
    (applied,) = await apply_fixes([_over_threshold()], executor, cwd=tmp_path)
    assert applied.succeeded
    assert applied.message == "Applied"


@pytest.mark.asyncio
async def test_apply_fixes_reports_timeouts(tmp_path: Path) -> None:
    executor = FakeExecutor({UPDATE_DEPENDENCIES_ARGV: FakeOutcome(timed_out=True)})

    (outcome,) = await apply_fixes([_over_threshold()], executor, cwd=tmp_path)

    assert outcome.message == (
        "Timed out after 60s; run manually: npx ncu -u --target minor"
    )
