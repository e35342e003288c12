"""Run options and CI-environment policy for a guardrail run."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from release_guardrails.utils.hashing import sha256_json

_CI_TRUE: Final[str] = "true"
_CI_VARIABLES: Final[tuple[str, ...]] = ("CI", "GITHUB_ACTIONS")


class CiPolicyError(RuntimeError):
    """Raised when a flag combination would weaken release gating inside CI."""

    def __init__(self, message: str, *, hints: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.hints = hints


def is_ci_environment(environ: Mapping[str, str] | None = None) -> bool:
    """``CI=true`` or ``GITHUB_ACTIONS=true`` (case-insensitive)."""

    env = os.environ if environ is None else environ
    return any(env.get(name, "").strip().lower() == _CI_TRUE for name in _CI_VARIABLES)


@dataclass(frozen=True, slots=True)
class RunOptions:
    quick: bool = False
    verbose: bool = False
    warn_only: bool = False
    json_output: bool = False
    fix: bool = False
    no_cache: bool = False
    skip_security: bool = False
    skip_export_maps: bool = False
    skip_changesets: bool = False
    update_baseline: bool = False
    diagnostics: bool = True
    ci: bool = False

    def cache_fingerprint(self) -> str:
        """Hash of the options that change which checks run or how results are graded."""

        return sha256_json(
            {
                "quick": self.quick,
                "warn_only": self.warn_only,
                "skip_security": self.skip_security,
                "skip_export_maps": self.skip_export_maps,
                "skip_changesets": self.skip_changesets,
                "verbose": self.verbose,
            }
        )


def enforce_ci_policy(options: RunOptions) -> None:
    """Reject option combinations that could bypass critical checks in CI."""

    if not options.ci:
        return
    if options.quick and options.warn_only:
        raise CiPolicyError(
            "SECURITY: Cannot combine --quick and --warn-only in CI environment",
            hints=(
                "This combination could bypass critical security checks.",
                "Use either --quick OR --warn-only, not both.",
            ),
        )
    if options.skip_security:
        raise CiPolicyError(
            "SECURITY: Cannot skip security scan in CI environment",
            hints=("Security scanning is mandatory for releases.",),
        )


__all__ = [
    "CiPolicyError",
    "RunOptions",
    "enforce_ci_policy",
    "is_ci_environment",
]
