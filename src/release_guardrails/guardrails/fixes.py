"""Best-effort auto-remediation for ``--fix``; outcomes never change the release verdict."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog

from release_guardrails.domain.models import CheckResult, CheckStatus
from release_guardrails.execution import CommandExecutor, CommandSpec
from release_guardrails.guardrails.catalog import SECURITY_SCAN

UPDATE_DEPENDENCIES_ARGV: Final[tuple[str, ...]] = ("npx", "ncu", "-u", "--target", "minor")
AUDIT_FIX_ARGV: Final[tuple[str, ...]] = ("pnpm", "audit", "--fix")
UPDATE_DEPENDENCIES_TIMEOUT_SECONDS: Final[float] = 60.0
AUDIT_FIX_TIMEOUT_SECONDS: Final[float] = 30.0


# "5 moderate vulnerabilities", "Found 2 new high severity vulnerabilities".
_VULNERABILITY_COUNT: Final[re.Pattern[str]] = re.compile(
    r"\b\d+ (?:[a-z]+ ){0,3}vulnerabilit", re.IGNORECASE
)


@dataclass(frozen=True, slots=True)
class FixOutcome:
    description: str
    argv: tuple[str, ...]
    succeeded: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "command": " ".join(self.argv),
            "succeeded": self.succeeded,
            "message": self.message,
        }


def planned_fixes(results: Sequence[CheckResult]) -> list[tuple[str, tuple[str, ...], float]]:
    """Fixes only for Security Scan results that report counted vulnerabilities.

    A warning without findings (e.g. a skipped audit on network trouble) plans nothing.
    """

    security = next((result for result in results if result.name == SECURITY_SCAN), None)
    if security is None:
        return []
    text = "\n".join((security.message, *security.details))
    if _VULNERABILITY_COUNT.search(text) is None:
        return []
    if security.status is CheckStatus.WARN:
        return [
            (
                "Update dependencies (patch/minor only)",
                UPDATE_DEPENDENCIES_ARGV,
                UPDATE_DEPENDENCIES_TIMEOUT_SECONDS,
            )
        ]
    if security.status is CheckStatus.FAIL:
        return [("Fix vulnerabilities", AUDIT_FIX_ARGV, AUDIT_FIX_TIMEOUT_SECONDS)]
    return []


async def apply_fixes(
    results: Sequence[CheckResult],
    executor: CommandExecutor,
    *,
    cwd: str | Path = ".",
    logger: Any | None = None,
) -> list[FixOutcome]:
    log = logger if logger is not None else structlog.get_logger(__name__)
    outcomes: list[FixOutcome] = []
    for description, argv, timeout in planned_fixes(results):
        command = await executor.run(
            CommandSpec(argv=argv, cwd=str(cwd), timeout_seconds=timeout)
        )
        if command.is_success:
            message = "Applied"
        elif command.timed_out:
            message = f"Timed out after {timeout:g}s; run manually: {' '.join(argv)}"
        else:
            message = f"Could not apply automatically; run manually: {' '.join(argv)}"
        log.info("fix_attempted", fix=description, succeeded=command.is_success)
        outcomes.append(
            FixOutcome(
                description=description,
                argv=argv,
                succeeded=command.is_success,
                message=message,
            )
        )
    return outcomes


__all__ = [
    "AUDIT_FIX_ARGV",
    "UPDATE_DEPENDENCIES_ARGV",
    "FixOutcome",
    "apply_fixes",
    "planned_fixes",
]
