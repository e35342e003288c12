"""
release-guardrails — vulnerability scanner adapter.

File: src/release_guardrails/audit/scanner.py
Last updated: 2026-10-18

Purpose
- Produce the Security Scan check result from a primary audit tool, a secondary scanner
  used for corroboration and fallback, and the accepted-vulnerability baseline.

What should be included in this file
- Attempt classification (completed, deprecated, transient, infrastructure) with bounded
  retries and linear backoff for transient failures.
- Baseline delta gating with configurable moderate/low/total thresholds.
- Primary/secondary combination rules, recorded as sub-tasks on the result.
- Baseline refresh.

Functional requirements
- Fail closed: output that cannot be parsed or understood is a ``fail``, never a ``pass``.
- Both scanners down is a ``pass`` only when a baseline exists.

Non-functional requirements
- All process execution goes through ``CommandExecutor`` and all sleeping through an
  injectable coroutine so tests run instantly.
"""

from __future__ import annotations

import asyncio
import shutil
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, Final

import structlog

from release_guardrails.audit.baseline import BaselineStore, VulnerabilityBaseline
from release_guardrails.audit.parsers import (
    OsvReport,
    OsvScannerParser,
    ParseError,
    ParseErrorReason,
    PnpmAuditParser,
    ToolResultParser,
    VulnerabilityCounts,
    has_audit_layout,
    json_error_message,
)
from release_guardrails.domain.models import CheckResult, CheckStatus, SubTask
from release_guardrails.execution import CommandExecutor, CommandResult, CommandSpec

SECURITY_SCAN_NAME: Final[str] = "Security Scan"
PRIMARY_SUBTASK: Final[str] = "pnpm audit"
SECONDARY_SUBTASK: Final[str] = "osv-scanner"

_DEPRECATION_MARKERS: Final[tuple[str, ...]] = ("deprecated", "not supported", "unknown command")
_TRANSIENT_MARKERS: Final[tuple[str, ...]] = (
    "ENOTFOUND",
    "ETIMEDOUT",
    "ECONNREFUSED",
    "ECONNRESET",
    "ENOBUFS",
    "EAI_AGAIN",
)
_AVAILABILITY_TIMEOUT_SECONDS: Final[float] = 10.0

Sleep = Callable[[float], Awaitable[None]]
Which = Callable[[str], str | None]


class AttemptKind(StrEnum):
    COMPLETED = "completed"
    DEPRECATED = "deprecated"
    TRANSIENT = "transient"
    INFRASTRUCTURE = "infrastructure"


@dataclass(frozen=True, slots=True)
class AuditSettings:
    primary_command: tuple[str, ...] = ("pnpm", "audit", "--json")
    secondary_command: tuple[str, ...] = ("osv-scanner", "--format", "json", ".")
    attempt_timeout_seconds: float = 30.0
    secondary_timeout_seconds: float = 60.0
    max_retries: int = 3
    backoff_seconds: float = 1.0
    moderate_threshold: int = 5
    low_threshold: int = 15
    total_threshold: int = 20
    corroborate: bool = True

    @classmethod
    def from_config(cls, section: Mapping[str, Any]) -> AuditSettings:
        return cls(
            primary_command=tuple(section["primary_command"]),
            secondary_command=tuple(section["secondary_command"]),
            attempt_timeout_seconds=float(section["attempt_timeout_seconds"]),
            secondary_timeout_seconds=float(section["secondary_timeout_seconds"]),
            max_retries=int(section["max_retries"]),
            backoff_seconds=float(section["backoff_seconds"]),
            moderate_threshold=int(section["moderate_threshold"]),
            low_threshold=int(section["low_threshold"]),
            total_threshold=int(section["total_threshold"]),
            corroborate=bool(section["corroborate"]),
        )


@dataclass(frozen=True, slots=True)
class PrimaryOutcome:
    kind: AttemptKind
    output: str
    error_text: str
    attempts: int
    duration_ms: int


@dataclass(frozen=True, slots=True)
class SecondaryOutcome:
    """``report`` is ``None`` when the secondary scanner is unavailable or broke."""

    report: OsvReport | None
    message: str
    duration_ms: int

    @property
    def available(self) -> bool:
        return self.report is not None


@dataclass(frozen=True, slots=True)
class GateDecision:
    status: CheckStatus
    message: str
    details: tuple[str, ...]


class VulnerabilityScanner:
    """Security Scan built-in: primary audit with secondary fallback and baseline diffing."""

    def __init__(
        self,
        executor: CommandExecutor,
        baseline_store: BaselineStore,
        *,
        settings: AuditSettings | None = None,
        cwd: str | Path | None = None,
        ci: bool = False,
        sleep: Sleep | None = None,
        which: Which | None = None,
        primary_parser: ToolResultParser[VulnerabilityCounts] | None = None,
        secondary_parser: ToolResultParser[OsvReport] | None = None,
        logger: Any | None = None,
    ) -> None:
        self._executor = executor
        self._baseline_store = baseline_store
        self._settings = settings if settings is not None else AuditSettings()
        self._cwd = str(cwd) if cwd is not None else None
        self._ci = ci
        self._sleep: Sleep = sleep if sleep is not None else asyncio.sleep
        self._which: Which = which if which is not None else shutil.which
        self._primary_parser = primary_parser if primary_parser is not None else PnpmAuditParser()
        self._secondary_parser = (
            secondary_parser if secondary_parser is not None else OsvScannerParser()
        )
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def audit(self, *, quick: bool = False) -> CheckResult:
        started_ns = time.monotonic_ns()
        primary = await self.run_primary()
        primary_task_status = (
            CheckStatus.PASS if primary.kind is AttemptKind.COMPLETED else CheckStatus.FAIL
        )
        primary_task = SubTask(PRIMARY_SUBTASK, primary_task_status, primary.duration_ms)

        if primary.kind is AttemptKind.TRANSIENT and quick and not self._ci:
            self._logger.warning("audit_network_skip", attempts=primary.attempts)
            return self._result(
                CheckStatus.WARN,
                "Network issues in local quick mode - skipping audit",
                (
                    f"Error: {primary.error_text or 'network/timeout issues'}",
                    "Network failure prevents vulnerability assessment",
                ),
                (SubTask(PRIMARY_SUBTASK, CheckStatus.WARN, primary.duration_ms),),
                started_ns,
            )

        if primary.kind is AttemptKind.COMPLETED:
            gated = self._gate_primary(primary.output)
            primary_task = SubTask(PRIMARY_SUBTASK, gated.status, primary.duration_ms)
            if gated.status is not CheckStatus.PASS or not self._settings.corroborate:
                return self._result(
                    gated.status, gated.message, gated.details, (primary_task,), started_ns
                )
            secondary = await self.run_secondary()
            return self._corroborate(gated, primary_task, secondary, started_ns)

        secondary = await self.run_secondary()
        secondary_task = SubTask(
            SECONDARY_SUBTASK, _secondary_status(secondary), secondary.duration_ms
        )
        sub_tasks = (primary_task, secondary_task)

        if primary.kind is AttemptKind.DEPRECATED:
            self._logger.info("audit_primary_deprecated", fallback=SECONDARY_SUBTASK)
            status = _secondary_status(secondary)
            return self._result(
                status,
                f"Using OSV scanner (pnpm audit deprecated): {secondary.message}",
                (
                    "pnpm audit is deprecated - OSV scanner is now primary",
                    f"OSV scanner: {secondary.message}",
                    *_finding_lines(secondary.report),
                ),
                sub_tasks,
                started_ns,
            )

        primary_message = _infrastructure_message(primary)
        if not secondary.available:
            baseline = self._baseline_store.load()
            if baseline is not None:
                self._logger.warning("audit_infrastructure_baseline_carry_forward")
                return self._result(
                    CheckStatus.PASS,
                    "Audit infrastructure unavailable - no new vulnerabilities since baseline",
                    (
                        "Both audit systems are unavailable (pnpm audit + OSV scanner)",
                        f"Baseline from: {baseline.timestamp.date().isoformat()}",
                        "Cannot detect new vulnerabilities due to infrastructure failure",
                        "Run with --update-baseline when infrastructure is restored",
                    ),
                    sub_tasks,
                    started_ns,
                )
            return self._result(
                CheckStatus.FAIL,
                "Audit infrastructure failure - cannot assess vulnerabilities",
                (
                    f"pnpm audit: {primary_message}",
                    f"OSV scanner: {secondary.message}",
                    "No baseline exists to fall back on",
                    "Or use --update-baseline to create empty baseline",
                ),
                sub_tasks,
                started_ns,
            )

        if secondary.report is not None and secondary.report.findings:
            return self._result(
                CheckStatus.FAIL,
                "Both pnpm audit and OSV scanner found vulnerabilities",
                (
                    f"pnpm audit: {primary_message}",
                    f"OSV scanner: {secondary.message}",
                    *_finding_lines(secondary.report),
                ),
                sub_tasks,
                started_ns,
            )
        return self._result(
            CheckStatus.FAIL,
            "pnpm audit infrastructure failed - cannot fully trust security assessment",
            (
                f"pnpm audit: {primary_message}",
                f"OSV scanner: {secondary.message}",
                "Both audit methods must pass for security clearance",
            ),
            sub_tasks,
            started_ns,
        )

    async def update_baseline(self) -> CheckResult:
        started_ns = time.monotonic_ns()
        primary = await self.run_primary()
        sub_tasks = (
            SubTask(
                PRIMARY_SUBTASK,
                CheckStatus.PASS if primary.kind is AttemptKind.COMPLETED else CheckStatus.FAIL,
                primary.duration_ms,
            ),
        )
        if primary.kind is AttemptKind.COMPLETED:
            try:
                counts = self._primary_parser.parse(primary.output)
            except ParseError as exc:
                return self._result(
                    CheckStatus.FAIL,
                    _parse_failure_message(exc),
                    (f"Parse error: {exc}",),
                    sub_tasks,
                    started_ns,
                )
            self._baseline_store.save(counts)
            return self._result(
                CheckStatus.PASS,
                "Baseline updated successfully",
                (f"Baseline: {_format_counts(counts)}",),
                sub_tasks,
                started_ns,
            )

        self._baseline_store.save(VulnerabilityCounts())
        return self._result(
            CheckStatus.PASS,
            "Baseline updated with empty state due to audit infrastructure failure",
            (
                "Audit infrastructure is not functional",
                "Created baseline with zero vulnerabilities",
                f"Error for reference: {_infrastructure_message(primary)}",
            ),
            sub_tasks,
            started_ns,
        )

    async def run_primary(self) -> PrimaryOutcome:
        """Run the primary audit, retrying transient failures with linear backoff."""

        started_ns = time.monotonic_ns()
        attempts = 0
        while True:
            attempts += 1
            result = await self._executor.run(
                CommandSpec(
                    argv=self._settings.primary_command,
                    cwd=self._cwd,
                    timeout_seconds=self._settings.attempt_timeout_seconds,
                )
            )
            kind = classify_attempt(result)
            error_text = _error_text(result)
            self._logger.info(
                "audit_primary_attempt",
                attempt=attempts,
                kind=kind.value,
                exit_code=result.exit_code,
            )
            if kind is not AttemptKind.TRANSIENT or attempts > self._settings.max_retries:
                return PrimaryOutcome(
                    kind=kind,
                    output=result.stdout,
                    error_text=error_text,
                    attempts=attempts,
                    duration_ms=_elapsed_ms(started_ns),
                )
            delay = attempts * self._settings.backoff_seconds
            self._logger.warning("audit_primary_retry", attempt=attempts, delay_seconds=delay)
            await self._sleep(delay)

    async def run_secondary(self) -> SecondaryOutcome:
        started_ns = time.monotonic_ns()
        argv = await self._resolve_secondary_argv()
        if argv is None:
            return SecondaryOutcome(
                report=None,
                message=(
                    "OSV scanner not available - install with: "
                    "npm install -g @google/osv-scanner"
                ),
                duration_ms=_elapsed_ms(started_ns),
            )

        result = await self._executor.run(
            CommandSpec(
                argv=argv,
                cwd=self._cwd,
                timeout_seconds=self._settings.secondary_timeout_seconds,
            )
        )
        if not result.started or result.timed_out:
            return SecondaryOutcome(
                report=None,
                message=f"OSV scanner infrastructure failure: {_error_text(result)}",
                duration_ms=_elapsed_ms(started_ns),
            )
        try:
            report = self._secondary_parser.parse(result.stdout)
        except ParseError as exc:
            self._logger.warning("audit_secondary_unparseable", error=str(exc))
            return SecondaryOutcome(
                report=None,
                message="OSV scanner output could not be parsed",
                duration_ms=_elapsed_ms(started_ns),
            )
        if result.exit_code != 0 and not report.findings:
            return SecondaryOutcome(
                report=None,
                message=(
                    f"OSV scanner infrastructure failure: exited with code {result.exit_code}"
                ),
                duration_ms=_elapsed_ms(started_ns),
            )
        return SecondaryOutcome(
            report=report,
            message=_secondary_message(report),
            duration_ms=_elapsed_ms(started_ns),
        )

    def gate(
        self, counts: VulnerabilityCounts, baseline: VulnerabilityBaseline | None
    ) -> GateDecision:
        """Grade ``counts`` against the baseline delta (raw counts when no baseline)."""

        settings = self._settings
        if baseline is None:
            checked = counts
            prefix = ""
        else:
            checked = counts.minus(baseline.counts)
            prefix = "NEW "
            if checked.total == 0:
                return GateDecision(
                    CheckStatus.PASS,
                    f"No new vulnerabilities since baseline ({counts.total} existing)",
                    (f"Current: {_format_counts(counts)}",),
                )

        breakdown = (
            f"{prefix}Critical: {checked.critical}",
            f"{prefix}High: {checked.high}",
            f"{prefix}Moderate: {checked.moderate} (warn at {settings.moderate_threshold})",
            f"{prefix}Low: {checked.low} (warn at {settings.low_threshold})",
            f"{prefix}Info: {checked.info}",
            f"Current total: {counts.total}",
        )
        if checked.critical > 0:
            return GateDecision(
                CheckStatus.FAIL,
                f"Found {checked.critical} {prefix}critical vulnerabilities",
                breakdown,
            )
        if checked.high > 0:
            return GateDecision(
                CheckStatus.FAIL,
                f"Found {checked.high} {prefix}high severity vulnerabilities "
                "(gating policy: fail on high+)",
                breakdown,
            )
        if checked.total == 0:
            return GateDecision(CheckStatus.PASS, "No vulnerabilities found", ())
        if checked.moderate >= settings.moderate_threshold:
            return GateDecision(
                CheckStatus.WARN,
                f"{checked.moderate} {prefix}moderate vulnerabilities exceed threshold "
                f"({settings.moderate_threshold})",
                breakdown,
            )
        if checked.low >= settings.low_threshold:
            return GateDecision(
                CheckStatus.WARN,
                f"{checked.low} {prefix}low vulnerabilities exceed threshold "
                f"({settings.low_threshold})",
                breakdown,
            )
        if checked.total >= settings.total_threshold:
            return GateDecision(
                CheckStatus.WARN,
                f"{checked.total} {prefix}total vulnerabilities exceed threshold "
                f"({settings.total_threshold})",
                breakdown,
            )
        label = "new " if baseline is not None else ""
        return GateDecision(
            CheckStatus.PASS,
            f"Found {checked.total} {label}low/moderate severity vulnerabilities",
            breakdown,
        )

    def _gate_primary(self, output: str) -> GateDecision:
        try:
            counts = self._primary_parser.parse(output)
        except ParseError as exc:
            self._logger.error("audit_primary_unparseable", reason=exc.reason.value)
            return GateDecision(
                CheckStatus.FAIL, _parse_failure_message(exc), (f"Parse error: {exc}",)
            )
        return self.gate(counts, self._baseline_store.load())

    def _corroborate(
        self,
        gated: GateDecision,
        primary_task: SubTask,
        secondary: SecondaryOutcome,
        started_ns: int,
    ) -> CheckResult:
        sub_tasks = (
            primary_task,
            SubTask(SECONDARY_SUBTASK, _secondary_status(secondary), secondary.duration_ms),
        )
        report = secondary.report
        if report is None:
            return self._result(
                CheckStatus.PASS,
                gated.message,
                (*gated.details, f"Note: corroboration skipped - {secondary.message}"),
                sub_tasks,
                started_ns,
            )
        if report.critical_findings:
            return self._result(
                CheckStatus.FAIL,
                "OSV scanner found critical vulnerabilities missed by pnpm audit",
                (
                    f"pnpm audit: {gated.message}",
                    f"OSV scanner: {secondary.message}",
                    *_finding_lines(report),
                ),
                sub_tasks,
                started_ns,
            )
        if report.findings:
            return self._result(
                CheckStatus.WARN,
                "pnpm audit passed but OSV scanner found issues",
                (f"pnpm audit: {gated.message}", f"OSV scanner: {secondary.message}"),
                sub_tasks,
                started_ns,
            )
        return self._result(CheckStatus.PASS, gated.message, gated.details, sub_tasks, started_ns)

    async def _resolve_secondary_argv(self) -> tuple[str, ...] | None:
        argv = self._settings.secondary_command
        if self._which(argv[0]) is not None:
            return argv
        version_check = await self._executor.run(
            CommandSpec(
                argv=("npx", argv[0], "--version"),
                cwd=self._cwd,
                timeout_seconds=_AVAILABILITY_TIMEOUT_SECONDS,
            )
        )
        if version_check.is_success:
            return ("npx", *argv)
        return None

    def _result(
        self,
        status: CheckStatus,
        message: str,
        details: tuple[str, ...],
        sub_tasks: tuple[SubTask, ...],
        started_ns: int,
    ) -> CheckResult:
        self._logger.info("audit_finished", status=status.value, message=message)
        return CheckResult(
            name=SECURITY_SCAN_NAME,
            status=status,
            message=message,
            duration_ms=_elapsed_ms(started_ns),
            details=details,
            sub_tasks=sub_tasks,
        )


def classify_attempt(result: CommandResult) -> AttemptKind:
    """Classify one primary audit attempt.

    ``pnpm audit`` exits 1 when vulnerabilities exist, so a nonzero exit still counts as
    completed when stdout holds an audit report. A JSON ``error`` envelope is not a report
    and is classified by its message like stderr.
    """

    if not result.timed_out and (result.exit_code == 0 or has_audit_layout(result.stdout)):
        return AttemptKind.COMPLETED
    text = _error_text(result)
    lowered = text.lower()
    if any(marker in lowered for marker in _DEPRECATION_MARKERS):
        return AttemptKind.DEPRECATED
    if result.timed_out or any(marker in text for marker in _TRANSIENT_MARKERS):
        return AttemptKind.TRANSIENT
    return AttemptKind.INFRASTRUCTURE


def _error_text(result: CommandResult) -> str:
    parts = [part.strip() for part in (result.error or "", result.stderr) if part.strip()]
    envelope = json_error_message(result.stdout)
    if envelope and envelope not in parts:
        parts.append(envelope)
    if not parts and result.exit_code not in (None, 0):
        parts.append(f"exited with code {result.exit_code}")
    return "\n".join(parts)


def _infrastructure_message(primary: PrimaryOutcome) -> str:
    if primary.kind is AttemptKind.TRANSIENT:
        return (
            f"Audit failed after {primary.attempts} attempts - network/timeout issues"
        )
    return "Audit infrastructure failure - cannot assess vulnerabilities"


def _parse_failure_message(exc: ParseError) -> str:
    if exc.reason is ParseErrorReason.UNKNOWN_FORMAT:
        return "Unknown audit output format - potential security bypass"
    return "Could not parse audit output - potential security bypass"


def _secondary_status(secondary: SecondaryOutcome) -> CheckStatus:
    report = secondary.report
    if report is None or report.critical_findings:
        return CheckStatus.FAIL
    if report.findings:
        return CheckStatus.WARN
    return CheckStatus.PASS


def _secondary_message(report: OsvReport) -> str:
    critical = len(report.critical_findings)
    if critical:
        return f"OSV scanner found {critical} critical vulnerabilities"
    if report.findings:
        return f"OSV scanner found {len(report.findings)} vulnerabilities (non-critical)"
    return "OSV scanner found no vulnerabilities"


def _finding_lines(report: OsvReport | None, limit: int = 5) -> tuple[str, ...]:
    if report is None:
        return ()
    prioritized = report.critical_findings or report.findings
    return tuple(item.describe() for item in prioritized[:limit])


def _format_counts(counts: VulnerabilityCounts) -> str:
    return (
        f"Critical {counts.critical}, High {counts.high}, Moderate {counts.moderate}, "
        f"Low {counts.low}, Info {counts.info}"
    )


def _elapsed_ms(started_ns: int) -> int:
    return max(0, (time.monotonic_ns() - started_ns) // 1_000_000)


__all__ = [
    "SECURITY_SCAN_NAME",
    "AttemptKind",
    "AuditSettings",
    "GateDecision",
    "PrimaryOutcome",
    "SecondaryOutcome",
    "VulnerabilityScanner",
    "classify_attempt",
]
