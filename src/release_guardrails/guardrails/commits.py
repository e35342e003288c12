"""
release-guardrails — conventional commit hygiene

File: src/release_guardrails/guardrails/commits.py
Last updated: 2026-10-18

Purpose
- Warn when commits in the release range are not conventional, or when their scopes do not
  line up with the packages that actually changed.

Functional requirements
- Never fails: every finding, including git errors, is a ``warn``.
- Generic scopes (deps, config, ci, docs, build) are always accepted.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Final

import structlog

from release_guardrails.changesets.git import GitCommandError, GitReader
from release_guardrails.domain.models import CheckResult, CheckStatus
from release_guardrails.guardrails.catalog import CONVENTIONAL_COMMITS

CONVENTIONAL_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(feat|fix|docs|style|refactor|test|chore)(\((.+)\))?:"
)
GENERIC_SCOPES: Final[frozenset[str]] = frozenset({"deps", "config", "ci", "docs", "build"})
_MAX_LISTED_SCOPES: Final[int] = 3
_SUBJECT_PREVIEW_CHARS: Final[int] = 60


def changed_package_dirs(paths: Iterable[str], package_dirs: Sequence[str]) -> list[str]:
    """Second path segment of every path under one of ``package_dirs``, first-seen order."""

    roots = tuple(f"{directory.rstrip('/')}/" for directory in package_dirs)
    found: dict[str, None] = {}
    for path in paths:
        if path.startswith(roots):
            parts = path.split("/")
            if len(parts) > 1 and parts[1]:
                found.setdefault(parts[1], None)
    return list(found)


class ConventionalCommitsCheck:
    def __init__(
        self,
        git: GitReader,
        *,
        changeset_dir: str | Path = ".changeset",
        package_dirs: Sequence[str] = ("packages", "apps"),
        logger: Any | None = None,
    ) -> None:
        self._git = git
        self._changeset_dir = Path(changeset_dir)
        self._package_dirs = tuple(package_dirs)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def run(self) -> CheckResult:
        return await asyncio.to_thread(self.run_sync)

    def run_sync(self) -> CheckResult:
        started_ns = time.monotonic_ns()
        try:
            status, message, details = self._evaluate()
        except GitCommandError as exc:
            self._logger.warning("conventional_commits_git_error", error=str(exc))
            status, message, details = (
                CheckStatus.WARN,
                "Could not check conventional commits",
                (str(exc),),
            )
        return CheckResult(
            name=CONVENTIONAL_COMMITS,
            status=status,
            message=message,
            duration_ms=(time.monotonic_ns() - started_ns) // 1_000_000,
            details=details,
        )

    def _evaluate(self) -> tuple[CheckStatus, str, tuple[str, ...]]:
        base = self._git.detect_base()
        subjects = self._git.commit_subjects(f"{base.merge_base}..HEAD")

        if not self._changeset_dir.is_dir():
            return (
                CheckStatus.WARN,
                "No .changeset directory found - consider setting up changesets",
                ("Run: npx @changesets/cli init",),
            )

        changed = changed_package_dirs(
            self._git.changed_files(base.merge_base), self._package_dirs
        )
        changed_set = set(changed)
        conventional = False
        correlated = False
        invalid: list[str] = []
        for subject in subjects:
            match = CONVENTIONAL_PATTERN.match(subject)
            if match is None:
                continue
            conventional = True
            if not match.group(3):
                continue
            for scope in (part.strip() for part in match.group(3).split(",")):
                if scope in changed_set:
                    correlated = True
                elif changed_set and scope not in GENERIC_SCOPES:
                    invalid.append(
                        f'"{scope}" in commit: {subject[:_SUBJECT_PREVIEW_CHARS]}...'
                    )

        if not conventional:
            return (
                CheckStatus.WARN,
                "No conventional commits found in recent changes",
                ("Consider using conventional commit format: type(scope): message",),
            )
        if invalid:
            details = [
                f"Changed packages: {', '.join(changed)}",
                f"Invalid scopes: {', '.join(invalid[:_MAX_LISTED_SCOPES])}",
            ]
            if len(invalid) > _MAX_LISTED_SCOPES:
                details.append(f"... and {len(invalid) - _MAX_LISTED_SCOPES} more")
            return (
                CheckStatus.WARN,
                "Conventional commits found but some scopes don't match changed packages",
                tuple(details),
            )
        if changed and not correlated:
            return (
                CheckStatus.WARN,
                "Conventional commits lack scopes for changed packages",
                (
                    f"Changed packages: {', '.join(changed)}",
                    "Consider adding package scopes to commits for better traceability",
                ),
            )
        return CheckStatus.PASS, "Conventional commits properly scoped", ()


__all__ = [
    "CONVENTIONAL_PATTERN",
    "GENERIC_SCOPES",
    "ConventionalCommitsCheck",
    "changed_package_dirs",
]
