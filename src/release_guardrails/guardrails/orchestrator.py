"""
release-guardrails — guardrail orchestrator

File: src/release_guardrails/guardrails/orchestrator.py
Last updated: 2026-10-18

Purpose
- Sequence guardrail checks by tier and aggregate them into one ``GuardrailReport``.

What should be included in this file
- Cache lookup before any check runs, and cache write after a clean normal run.
- Sequential critical checks with short-circuit on the first failure (unless warn-only).
- Parallel dependent checks on a bounded worker pool, results kept in catalog order.
- A diagnostic pass over dependent checks when a critical check failed.

Functional requirements
- CI policy is enforced before anything else happens.
- Diagnostic results are flagged and can never turn a blocked run into a passing one.
- The cache is never consulted or written in CI or while refreshing the audit baseline.

Non-functional requirements
- Every collaborator (runner, cache, hasher, clock, git and quality providers) is injected.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

import structlog

from release_guardrails.domain.models import (
    CheckResult,
    CheckTier,
    GitInfo,
    GuardrailReport,
    QualityScore,
    build_report,
    utc_now,
)
from release_guardrails.domain.options import RunOptions, enforce_ci_policy
from release_guardrails.guardrails.cache import Cache, CacheEntry, CacheKey, ContentHasher
from release_guardrails.guardrails.catalog import GuardrailCheck, build_catalog
from release_guardrails.guardrails.runner import CheckRunner
from release_guardrails.utils.concurrency import WorkerPool

CatalogBuilder = Callable[[RunOptions], Sequence[GuardrailCheck]]
GitInfoProvider = Callable[[], GitInfo | None]
QualityProvider = Callable[[], QualityScore | None]


class Orchestrator:
    def __init__(
        self,
        runner: CheckRunner,
        *,
        catalog_builder: CatalogBuilder = build_catalog,
        cache: Cache | None = None,
        hasher: ContentHasher | None = None,
        max_parallel: int = 8,
        git_info_provider: GitInfoProvider | None = None,
        quality_provider: QualityProvider | None = None,
        now: Callable[[], datetime] | None = None,
        logger: Any | None = None,
    ) -> None:
        if max_parallel <= 0:
            raise ValueError("max_parallel must be > 0")
        self._runner = runner
        self._catalog_builder = catalog_builder
        self._cache = cache
        self._hasher = hasher
        self._max_parallel = max_parallel
        self._git_info_provider = git_info_provider
        self._quality_provider = quality_provider
        self._now = now if now is not None else utc_now
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def run(self, options: RunOptions) -> GuardrailReport:
        enforce_ci_policy(options)

        slot = self._cache_slot(options)
        if slot is not None and not options.no_cache:
            entry = slot[0].get(slot[1])
            if entry is not None:
                self._logger.info("guardrails_cache_hit", results=len(entry.results))
                return self._report(entry.results, entry.timestamp, options, from_cache=True)

        catalog = tuple(self._catalog_builder(options))
        critical = [check for check in catalog if check.tier is CheckTier.CRITICAL]
        dependent = [check for check in catalog if check.tier is CheckTier.DEPENDENT]

        results: list[CheckResult] = []
        critical_failed = False
        for check in critical:
            result = await self._runner.run(check, warn_only=options.warn_only)
            results.append(result)
            if not result.failed:
                continue
            critical_failed = True
            if not options.warn_only:
                self._logger.warning("critical_check_failed_short_circuit", check=check.name)
                break

        if critical_failed:
            if options.diagnostics and dependent:
                self._logger.info("diagnostic_run_started", checks=len(dependent))
                results.extend(await self._run_dependent(dependent, options, diagnostic=True))
        else:
            results.extend(await self._run_dependent(dependent, options, diagnostic=False))

        timestamp = _truncate_to_millis(self._now())
        if slot is not None and not critical_failed and not any(r.failed for r in results):
            cache, key = slot
            cache.put(CacheEntry(key=key, results=tuple(results), timestamp=timestamp))

        return self._report(results, timestamp, options)

    def _cache_slot(self, options: RunOptions) -> tuple[Cache, CacheKey] | None:
        if self._cache is None or self._hasher is None:
            return None
        if options.ci or options.update_baseline:
            return None
        return self._cache, self._hasher.compute_key(options)

    async def _run_dependent(
        self,
        checks: Sequence[GuardrailCheck],
        options: RunOptions,
        *,
        diagnostic: bool,
    ) -> list[CheckResult]:
        if not checks:
            return []
        pool: WorkerPool[CheckResult] = WorkerPool(
            max_concurrency=min(self._max_parallel, len(checks))
        )
        return await pool.gather(
            [
                self._runner.run(check, warn_only=options.warn_only, diagnostic=diagnostic)
                for check in checks
            ]
        )

    def _report(
        self,
        results: Sequence[CheckResult],
        timestamp: datetime,
        options: RunOptions,
        *,
        from_cache: bool = False,
    ) -> GuardrailReport:
        git_info = self._git_info_provider() if self._git_info_provider is not None else None
        quality = None
        if not options.quick and self._quality_provider is not None:
            quality = self._quality_provider()
        report = build_report(
            results,
            timestamp=timestamp,
            git_info=git_info,
            quality_score=quality,
            from_cache=from_cache,
        )
        self._logger.info(
            "guardrails_run_finished",
            passed=report.summary.passed,
            warned=report.summary.warned,
            failed=report.summary.failed,
            skipped=report.summary.skipped,
            from_cache=from_cache,
        )
        return report


def _truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


__all__ = [
    "CatalogBuilder",
    "GitInfoProvider",
    "Orchestrator",
    "QualityProvider",
]
