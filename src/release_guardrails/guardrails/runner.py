"""
release-guardrails — single-check runner

File: src/release_guardrails/guardrails/runner.py
Last updated: 2026-10-18

Purpose
- Turn one ``GuardrailCheck`` into one ``CheckResult``: resolve its invocation, execute it
  under its timeout, and grade the outcome.

What should be included in this file
- Script dispatch through ``CommandExecutor`` and built-in dispatch through a handler table.
- Failure detail formatting (head/tail of stderr, head of stdout in verbose mode).
- Tier-aware downgrade of dependent failures for warn-only and diagnostic runs.

Functional requirements
- Unresolvable targets: critical -> ``fail``, dependent -> ``skip``.
- A built-in handler exception becomes a ``fail`` result; cancellation propagates.
- Critical results are never downgraded.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any, Final

import structlog

from release_guardrails.domain.models import CheckResult, CheckStatus, CheckTier
from release_guardrails.execution import CommandExecutor, CommandResult, CommandSpec
from release_guardrails.guardrails.catalog import (
    BuiltinInvocation,
    GuardrailCheck,
    ScriptInvocation,
    resolve_script,
)
from release_guardrails.utils.concurrency import run_with_timeout

BuiltinHandlerFn = Callable[[], Awaitable[CheckResult]]

DETAIL_HEAD_LINES: Final[int] = 10
DETAIL_TAIL_LINES: Final[int] = 10


class CheckRunner:
    def __init__(
        self,
        executor: CommandExecutor,
        handlers: Mapping[str, BuiltinHandlerFn],
        *,
        root: str | Path = ".",
        script_dirs: Sequence[str] = ("scripts", "tools", ".scripts"),
        verbose: bool = False,
        logger: Any | None = None,
    ) -> None:
        self._executor = executor
        self._handlers = dict(handlers)
        self._root = Path(root)
        self._script_dirs = tuple(script_dirs)
        self._verbose = verbose
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def run(
        self,
        check: GuardrailCheck,
        *,
        warn_only: bool = False,
        diagnostic: bool = False,
    ) -> CheckResult:
        if check.skip_reason is not None:
            self._logger.info("check_skipped", check=check.name, reason=check.skip_reason)
            return CheckResult(
                name=check.name,
                status=CheckStatus.SKIP,
                message=check.skip_reason,
                is_diagnostic=diagnostic,
            )

        self._logger.info("check_started", check=check.name, tier=check.tier.value)
        if isinstance(check.invocation, ScriptInvocation):
            result = await self._run_script(check, check.invocation)
        else:
            result = await self._run_builtin(check, check.invocation)

        graded = downgrade(
            result, tier=check.tier, warn_only=warn_only, diagnostic=diagnostic
        )
        self._logger.info(
            "check_finished",
            check=check.name,
            status=graded.status.value,
            duration_ms=graded.duration_ms,
            diagnostic=graded.is_diagnostic,
        )
        return graded

    async def _run_script(
        self, check: GuardrailCheck, invocation: ScriptInvocation
    ) -> CheckResult:
        argv_prefix = resolve_script(invocation.script, self._root, self._script_dirs)
        if argv_prefix is None:
            return missing_target_result(check)

        command = await self._executor.run(
            CommandSpec(
                argv=(*argv_prefix, *invocation.args),
                cwd=str(self._root),
                env=invocation.env,
                timeout_seconds=check.timeout_seconds,
            )
        )
        return self.grade_command(check, command)

    async def _run_builtin(
        self, check: GuardrailCheck, invocation: BuiltinInvocation
    ) -> CheckResult:
        handler = self._handlers.get(invocation.handler)
        if handler is None:
            return missing_target_result(check)

        started_ns = time.monotonic_ns()
        try:
            result = await run_with_timeout(handler(), check.timeout_seconds)
        except TimeoutError:
            return timeout_result(check, _elapsed_ms(started_ns))
        except Exception as exc:
            self._logger.warning(
                "builtin_check_crashed",
                check=check.name,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return CheckResult(
                name=check.name,
                status=CheckStatus.FAIL,
                message=f"{type(exc).__name__}: {exc}",
                duration_ms=_elapsed_ms(started_ns),
            )
        if result.name != check.name:
            result = replace(result, name=check.name)
        return result

    def grade_command(self, check: GuardrailCheck, command: CommandResult) -> CheckResult:
        if command.timed_out:
            return timeout_result(check, command.duration_ms)
        if command.error is not None:
            return CheckResult(
                name=check.name,
                status=CheckStatus.FAIL,
                message=f"Failed to start: {command.error}",
                duration_ms=command.duration_ms,
            )
        if command.exit_code == 0:
            return CheckResult(
                name=check.name,
                status=CheckStatus.PASS,
                message="Check passed",
                duration_ms=command.duration_ms,
            )
        return CheckResult(
            name=check.name,
            status=CheckStatus.FAIL,
            message=f"Exited with code {command.exit_code}",
            duration_ms=command.duration_ms,
            details=format_output_details(
                command.stderr, command.stdout, verbose=self._verbose
            ),
        )


def downgrade(
    result: CheckResult,
    *,
    tier: CheckTier,
    warn_only: bool = False,
    diagnostic: bool = False,
) -> CheckResult:
    """Apply warn-only and diagnostic grading; critical results pass through unchanged."""

    if tier is CheckTier.CRITICAL:
        return result
    if diagnostic:
        status = CheckStatus.WARN if result.failed else result.status
        return replace(result, status=status, is_diagnostic=True)
    if warn_only and result.failed:
        return replace(result, status=CheckStatus.WARN)
    return result


def missing_target_result(check: GuardrailCheck) -> CheckResult:
    if check.tier is CheckTier.CRITICAL:
        return CheckResult(
            name=check.name,
            status=CheckStatus.FAIL,
            message=f"Critical script {check.target} not found - this will prevent release",
            details=(
                "Critical guardrails must have working scripts",
                "Check for missing files or refactor issues",
            ),
        )
    return CheckResult(
        name=check.name,
        status=CheckStatus.SKIP,
        message=f"Script {check.target} not found",
    )


def timeout_result(check: GuardrailCheck, duration_ms: int) -> CheckResult:
    return CheckResult(
        name=check.name,
        status=CheckStatus.FAIL,
        message=f"Timed out after {check.timeout_seconds:g}s",
        duration_ms=duration_ms,
    )


def format_output_details(stderr: str, stdout: str, *, verbose: bool = False) -> tuple[str, ...]:
    details: list[str] = []
    stderr_lines = _non_empty_lines(stderr)
    if stderr_lines:
        details.append("STDERR:")
        window = DETAIL_HEAD_LINES + DETAIL_TAIL_LINES
        if len(stderr_lines) <= window:
            details.extend(f"  {line}" for line in stderr_lines)
        else:
            details.extend(f"  {line}" for line in stderr_lines[:DETAIL_HEAD_LINES])
            details.append(f"  ... ({len(stderr_lines) - window} lines omitted) ...")
            details.extend(f"  {line}" for line in stderr_lines[-DETAIL_TAIL_LINES:])

    stdout_lines = _non_empty_lines(stdout) if verbose else []
    if stdout_lines:
        details.append("STDOUT:")
        details.extend(f"  {line}" for line in stdout_lines[:DETAIL_HEAD_LINES])
        if len(stdout_lines) > DETAIL_HEAD_LINES:
            details.append(f"  ... ({len(stdout_lines) - DETAIL_HEAD_LINES} more lines)")
    return tuple(details)


def _non_empty_lines(text: str) -> list[str]:
    return [line for line in text.splitlines() if line.strip()]


def _elapsed_ms(started_ns: int) -> int:
    return max(0, (time.monotonic_ns() - started_ns) // 1_000_000)


__all__ = [
    "BuiltinHandlerFn",
    "CheckRunner",
    "downgrade",
    "format_output_details",
    "missing_target_result",
    "timeout_result",
]
