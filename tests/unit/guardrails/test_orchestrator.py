"""
release-guardrails — unit tests for the guardrail orchestrator

File: tests/unit/guardrails/test_orchestrator.py
Last updated: 2026-10-18

Purpose
- Validate tier sequencing, short-circuiting, diagnostics, caching, and report assembly.

What this test file should cover
- First critical failure stops later critical checks and normal dependent checks.
- Diagnostic pass flags dependent results and keeps the run blocked.
- Warn-only keeps running but never downgrades critical failures.
- CI policy violations raise before any check runs.
- Cache hits replay an identical report; failures, CI, and baseline refresh never populate it.
- Dependent results keep catalog order regardless of completion order.

Functional requirements
- Built-in handlers are scripted coroutines; no subprocesses.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

import pytest

from release_guardrails.domain.models import (
    CheckResult,
    CheckStatus,
    CheckTier,
    GitInfo,
    QualityScore,
)
from release_guardrails.domain.options import CiPolicyError, RunOptions
from release_guardrails.execution import CommandExecutor, CommandResult, CommandSpec
from release_guardrails.guardrails.cache import ContentHasher, MemoryCache
from release_guardrails.guardrails.catalog import BuiltinInvocation, GuardrailCheck
from release_guardrails.guardrails.orchestrator import CatalogBuilder, Orchestrator
from release_guardrails.guardrails.runner import BuiltinHandlerFn, CheckRunner

FIXED_NOW = datetime(2026, 10, 18, 10, 0, 0, 123456, tzinfo=UTC)


class UnusedExecutor(CommandExecutor):
    async def run(self, spec: CommandSpec) -> CommandResult:
        raise AssertionError(f"unexpected command: {spec.argv}")


class ScriptedHandlers:
    """Builtin handlers returning canned statuses and recording call order."""

    def __init__(
        self,
        statuses: dict[str, CheckStatus],
        delays: dict[str, float] | None = None,
    ) -> None:
        self.statuses = statuses
        self.delays = delays or {}
        self.calls: list[str] = []

    def table(self) -> dict[str, BuiltinHandlerFn]:
        return {name: self._handler(name) for name in self.statuses}

    def _handler(self, name: str) -> BuiltinHandlerFn:
        async def handler() -> CheckResult:
            self.calls.append(name)
            await asyncio.sleep(self.delays.get(name, 0))
            return CheckResult(name=name, status=self.statuses[name], message=f"{name} done")

        return handler


def _catalog(critical: Sequence[str], dependent: Sequence[str]) -> CatalogBuilder:
    def build(options: RunOptions) -> tuple[GuardrailCheck, ...]:
        return tuple(
            GuardrailCheck(
                name=name,
                tier=tier,
                invocation=BuiltinInvocation(name),
                timeout_seconds=5.0,
            )
            for names, tier in ((critical, CheckTier.CRITICAL), (dependent, CheckTier.DEPENDENT))
            for name in names
        )

    return build


def _orchestrator(
    handlers: ScriptedHandlers,
    critical: Sequence[str],
    dependent: Sequence[str],
    **kwargs: object,
) -> Orchestrator:
    runner = CheckRunner(UnusedExecutor(), handlers.table())
    return Orchestrator(
        runner,
        catalog_builder=_catalog(critical, dependent),
        now=lambda: FIXED_NOW,
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.mark.asyncio
async def test_all_passing_run_reports_every_check_in_order() -> None:
    handlers = ScriptedHandlers(
        {"c1": CheckStatus.PASS, "c2": CheckStatus.PASS, "d1": CheckStatus.WARN}
    )

    report = await _orchestrator(handlers, ["c1", "c2"], ["d1"]).run(RunOptions())

    assert [result.name for result in report.results] == ["c1", "c2", "d1"]
    assert not report.blocked
    assert report.summary.warned == 1
    assert report.timestamp == datetime(2026, 10, 18, 10, 0, 0, 123000, tzinfo=UTC)


@pytest.mark.asyncio
async def test_critical_failure_short_circuits_without_diagnostics() -> None:
    handlers = ScriptedHandlers(
        {"c1": CheckStatus.FAIL, "c2": CheckStatus.PASS, "d1": CheckStatus.PASS}
    )

    report = await _orchestrator(handlers, ["c1", "c2"], ["d1"]).run(
        RunOptions(diagnostics=False)
    )

    assert handlers.calls == ["c1"]
    assert [result.name for result in report.results] == ["c1"]
    assert report.blocked


@pytest.mark.asyncio
async def test_diagnostic_pass_flags_dependents_and_stays_blocked() -> None:
    handlers = ScriptedHandlers(
        {
            "c1": CheckStatus.FAIL,
            "c2": CheckStatus.PASS,
            "d1": CheckStatus.FAIL,
            "d2": CheckStatus.PASS,
        }
    )

    report = await _orchestrator(handlers, ["c1", "c2"], ["d1", "d2"]).run(RunOptions())

    assert "c2" not in handlers.calls
    assert [(r.name, r.status, r.is_diagnostic) for r in report.results] == [
        ("c1", CheckStatus.FAIL, False),
        ("d1", CheckStatus.WARN, True),
        ("d2", CheckStatus.PASS, True),
    ]
    assert report.blocked
    assert [r.name for r in report.failed_results] == ["c1"]


@pytest.mark.asyncio
async def test_warn_only_runs_everything_but_keeps_critical_failures() -> None:
    handlers = ScriptedHandlers(
        {"c1": CheckStatus.FAIL, "c2": CheckStatus.PASS, "d1": CheckStatus.FAIL}
    )

    report = await _orchestrator(handlers, ["c1", "c2"], ["d1"]).run(
        RunOptions(warn_only=True, diagnostics=False)
    )

    assert handlers.calls == ["c1", "c2"]
    assert [r.status for r in report.results] == [CheckStatus.FAIL, CheckStatus.PASS]
    assert report.blocked


@pytest.mark.asyncio
async def test_warn_only_downgrades_dependent_failures_when_criticals_pass() -> None:
    handlers = ScriptedHandlers({"c1": CheckStatus.PASS, "d1": CheckStatus.FAIL})

    report = await _orchestrator(handlers, ["c1"], ["d1"]).run(RunOptions(warn_only=True))

    assert [r.status for r in report.results] == [CheckStatus.PASS, CheckStatus.WARN]
    assert not report.results[1].is_diagnostic
    assert not report.blocked


@pytest.mark.asyncio
async def test_dependent_failure_blocks_without_warn_only() -> None:
    handlers = ScriptedHandlers({"c1": CheckStatus.PASS, "d1": CheckStatus.FAIL})

    report = await _orchestrator(handlers, ["c1"], ["d1"]).run(RunOptions())

    assert report.blocked
    assert [r.name for r in report.failed_results] == ["d1"]


@pytest.mark.asyncio
async def test_ci_policy_is_enforced_before_any_check() -> None:
    handlers = ScriptedHandlers({"c1": CheckStatus.PASS})

    with pytest.raises(CiPolicyError):
        await _orchestrator(handlers, ["c1"], []).run(
            RunOptions(quick=True, warn_only=True, ci=True)
        )

    assert handlers.calls == []


@pytest.mark.asyncio
async def test_dependent_results_keep_catalog_order() -> None:
    handlers = ScriptedHandlers(
        {"c1": CheckStatus.PASS, "slow": CheckStatus.PASS, "fast": CheckStatus.PASS},
        delays={"slow": 0.05},
    )

    report = await _orchestrator(handlers, ["c1"], ["slow", "fast"], max_parallel=2).run(
        RunOptions()
    )

    assert [r.name for r in report.results] == ["c1", "slow", "fast"]


@pytest.mark.asyncio
async def test_cache_hit_replays_identical_report(tmp_path: Path) -> None:
    (tmp_path / "pnpm-lock.yaml").write_text("lockfileVersion: '9.0'\n", encoding="utf-8")
    handlers = ScriptedHandlers({"c1": CheckStatus.PASS, "d1": CheckStatus.WARN})
    cache = MemoryCache(now=lambda: FIXED_NOW)
    orchestrator = _orchestrator(
        handlers, ["c1"], ["d1"], cache=cache, hasher=ContentHasher(tmp_path)
    )

    first = await orchestrator.run(RunOptions())
    second = await orchestrator.run(RunOptions())

    assert handlers.calls == ["c1", "d1"]
    assert cache.puts == 1
    assert second.from_cache
    assert not first.from_cache
    assert second == first
    assert second.to_dict() == first.to_dict()


@pytest.mark.asyncio
async def test_no_cache_bypasses_lookup(tmp_path: Path) -> None:
    handlers = ScriptedHandlers({"c1": CheckStatus.PASS})
    cache = MemoryCache(now=lambda: FIXED_NOW)
    orchestrator = _orchestrator(handlers, ["c1"], [], cache=cache, hasher=ContentHasher(tmp_path))

    await orchestrator.run(RunOptions())
    report = await orchestrator.run(RunOptions(no_cache=True))

    assert handlers.calls == ["c1", "c1"]
    assert not report.from_cache


@pytest.mark.parametrize(
    ("statuses", "options"),
    [
        ({"c1": CheckStatus.FAIL}, RunOptions(diagnostics=False)),
        ({"c1": CheckStatus.PASS}, RunOptions(ci=True)),
        ({"c1": CheckStatus.PASS}, RunOptions(update_baseline=True)),
    ],
)
@pytest.mark.asyncio
async def test_cache_is_not_written(
    tmp_path: Path, statuses: dict[str, CheckStatus], options: RunOptions
) -> None:
    cache = MemoryCache(now=lambda: FIXED_NOW)
    orchestrator = _orchestrator(
        ScriptedHandlers(statuses), ["c1"], [], cache=cache, hasher=ContentHasher(tmp_path)
    )

    await orchestrator.run(options)

    assert cache.puts == 0


@pytest.mark.asyncio
async def test_report_sections_come_from_providers() -> None:
    handlers = ScriptedHandlers({"c1": CheckStatus.PASS})
    git_info = GitInfo(branch="feat/x", base_branch="main", commit_range="abc..HEAD")
    quality = QualityScore(overall=50, export_maps=0, side_effects=50, tree_shaking=100)
    orchestrator = _orchestrator(
        handlers,
        ["c1"],
        [],
        git_info_provider=lambda: git_info,
        quality_provider=lambda: quality,
    )

    full = await orchestrator.run(RunOptions())
    quick = await orchestrator.run(RunOptions(quick=True))

    assert full.git_info == git_info
    assert full.quality_score == quality
    assert quick.git_info == git_info
    assert quick.quality_score is None


def test_max_parallel_must_be_positive() -> None:
    runner = CheckRunner(UnusedExecutor(), {})
    with pytest.raises(ValueError, match="max_parallel"):
        Orchestrator(runner, max_parallel=0)
