"""
release-guardrails — guardrail catalog.

File: src/release_guardrails/guardrails/catalog.py
Last updated: 2026-10-18

Purpose
- Declare which checks exist, their tier, how each is invoked, and when it is skipped.

What should be included in this file
- ``ScriptInvocation`` / ``BuiltinInvocation`` typed descriptors (argv only, never a shell
  string) and script resolution through a suffix -> runner table.
- ``build_catalog`` deriving the per-run check list from ``RunOptions`` and settings.

Functional requirements
- Critical checks come first and in a fixed order; dependent checks keep catalog order.
- In CI the Security Scan always runs and is always critical.
"""

from __future__ import annotations

import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Final

from release_guardrails.domain.models import CheckTier
from release_guardrails.domain.options import RunOptions

CHANGESET_VALIDATION: Final[str] = "Changeset Validation"
SECURITY_SCAN: Final[str] = "Security Scan"
EXPORT_MAP_LINTING: Final[str] = "Export Map Linting"
GOVERNANCE_CHECK: Final[str] = "Governance Check"
CONVENTIONAL_COMMITS: Final[str] = "Conventional Commits"

GUARDRAILS_RUN_ENV: Final[Mapping[str, str]] = {"GUARDRAILS_RUN": "1"}

# Probe order matters: the first existing file wins.
SCRIPT_RUNNERS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    (".ts", ("npx", "tsx")),
    (".mjs", ("node",)),
    (".js", ("node",)),
    (".py", (sys.executable,)),
    (".sh", ("sh",)),
)


class BuiltinHandler(StrEnum):
    CHANGESET_VALIDATION = "changeset-validation"
    SECURITY_SCAN = "security-scan"
    CONVENTIONAL_COMMITS = "conventional-commits"


@dataclass(frozen=True, slots=True)
class ScriptInvocation:
    """External script resolved at run time against the configured script directories."""

    script: str
    args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BuiltinInvocation:
    handler: str


CheckInvocation = ScriptInvocation | BuiltinInvocation


@dataclass(frozen=True, slots=True)
class GuardrailCheck:
    name: str
    tier: CheckTier
    invocation: CheckInvocation
    timeout_seconds: float
    skip_reason: str | None = None

    @property
    def target(self) -> str:
        if isinstance(self.invocation, ScriptInvocation):
            return self.invocation.script
        return self.invocation.handler


@dataclass(frozen=True, slots=True)
class CatalogSettings:
    quick_timeout_seconds: float = 30.0
    full_timeout_seconds: float = 120.0
    export_map_script: str = "export-map-linter"
    governance_script: str = "governance-check"

    @classmethod
    def from_config(cls, section: Mapping[str, Any]) -> CatalogSettings:
        return cls(
            quick_timeout_seconds=float(section["quick_timeout_seconds"]),
            full_timeout_seconds=float(section["full_timeout_seconds"]),
        )


def build_catalog(
    options: RunOptions, settings: CatalogSettings | None = None
) -> tuple[GuardrailCheck, ...]:
    resolved = settings if settings is not None else CatalogSettings()
    timeout = resolved.quick_timeout_seconds if options.quick else resolved.full_timeout_seconds

    security_skip: str | None = None
    if options.skip_security:
        security_skip = "Skipped by --skip-security"
    elif options.quick and not options.ci:
        security_skip = "Skipped in quick mode (always runs in CI)"

    checks = [
        GuardrailCheck(
            name=CHANGESET_VALIDATION,
            tier=CheckTier.CRITICAL,
            invocation=BuiltinInvocation(BuiltinHandler.CHANGESET_VALIDATION),
            timeout_seconds=timeout,
            skip_reason="Skipped by --skip-changesets" if options.skip_changesets else None,
        ),
        GuardrailCheck(
            name=SECURITY_SCAN,
            tier=CheckTier.CRITICAL,
            invocation=BuiltinInvocation(BuiltinHandler.SECURITY_SCAN),
            timeout_seconds=timeout,
            skip_reason=security_skip,
        ),
        GuardrailCheck(
            name=EXPORT_MAP_LINTING,
            tier=CheckTier.DEPENDENT,
            invocation=ScriptInvocation(resolved.export_map_script, env=GUARDRAILS_RUN_ENV),
            timeout_seconds=timeout,
            skip_reason="Skipped by --skip-export-maps" if options.skip_export_maps else None,
        ),
        GuardrailCheck(
            name=GOVERNANCE_CHECK,
            tier=CheckTier.DEPENDENT,
            invocation=ScriptInvocation(resolved.governance_script, env=GUARDRAILS_RUN_ENV),
            timeout_seconds=timeout,
        ),
    ]
    if not options.quick:
        checks.append(
            GuardrailCheck(
                name=CONVENTIONAL_COMMITS,
                tier=CheckTier.DEPENDENT,
                invocation=BuiltinInvocation(BuiltinHandler.CONVENTIONAL_COMMITS),
                timeout_seconds=timeout,
            )
        )
    return tuple(checks)


def resolve_script(
    script: str, root: str | Path, script_dirs: Sequence[str]
) -> tuple[str, ...] | None:
    """Return the argv prefix that runs ``script``, or ``None`` when no file matches."""

    base = Path(root)
    for directory in script_dirs:
        for suffix, runner in SCRIPT_RUNNERS:
            candidate = base / directory / f"{script}{suffix}"
            if candidate.is_file():
                return (*runner, str(candidate))
    return None


__all__ = [
    "CHANGESET_VALIDATION",
    "CONVENTIONAL_COMMITS",
    "EXPORT_MAP_LINTING",
    "GOVERNANCE_CHECK",
    "GUARDRAILS_RUN_ENV",
    "SCRIPT_RUNNERS",
    "SECURITY_SCAN",
    "BuiltinHandler",
    "BuiltinInvocation",
    "CatalogSettings",
    "CheckInvocation",
    "GuardrailCheck",
    "ScriptInvocation",
    "build_catalog",
    "resolve_script",
]
