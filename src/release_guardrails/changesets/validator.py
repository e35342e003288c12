"""
release-guardrails — changeset validation check.

File: src/release_guardrails/changesets/validator.py
Last updated: 2026-10-18

Purpose
- Implement the "Changeset Validation" built-in: every package change ships with a
  well-formed, fresh, non-duplicated change descriptor.

What should be included in this file
- Named sub-validations (file-match, removed-packages, dependency-changes, content,
  freshness, duplicates), each producing errors and warnings.
- Folding of sub-validations into one ``CheckResult`` with one sub-task each.

Functional requirements
- File-match, removed-packages, and dependency-changes always run, even with no descriptors.
- No detectable changed files is an error (a broken git view must not pass silently).
- Errors fail the check; warnings alone only warn.

Non-functional requirements
- Git access is synchronous; ``validate`` runs the whole pass in a worker thread.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Final

import structlog

from release_guardrails.changesets.duplicates import DuplicateDetector
from release_guardrails.changesets.git import BaseRef, GitReader
from release_guardrails.changesets.store import BumpType, ChangeDescriptor, ChangesetStore
from release_guardrails.changesets.workspace import (
    PACKAGE_MANIFEST,
    WorkspaceInspector,
    is_ignorable_path,
    is_under,
)
from release_guardrails.domain.models import CheckResult, CheckStatus, SubTask, utc_now

CHANGESET_VALIDATION_NAME: Final[str] = "Changeset Validation"

GENERIC_PHRASES: Final[tuple[str, ...]] = ("update", "fix", "change", "minor change", "small fix")
BREAKING_MARKERS: Final[tuple[str, ...]] = ("breaking", "removed", "deprecated")
_SECONDS_PER_DAY: Final[float] = 86_400.0
_CHANGED_FILES_PREVIEW: Final[int] = 5

Now = Callable[[], datetime]


@dataclass(frozen=True, slots=True)
class ValidationResult:
    name: str
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    duration_ms: int = 0

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def status(self) -> CheckStatus:
        if self.errors:
            return CheckStatus.FAIL
        if self.warnings:
            return CheckStatus.WARN
        return CheckStatus.PASS


@dataclass(frozen=True, slots=True)
class ChangesetSettings:
    package_dirs: tuple[str, ...] = ("packages", "apps")
    min_summary_length: int = 10
    generic_summary_max_length: int = 30
    stale_warn_days: int = 7
    stale_notice_days: int = 14
    stale_error_days: int = 30

    @classmethod
    def from_config(cls, section: Mapping[str, Any]) -> ChangesetSettings:
        return cls(
            package_dirs=tuple(section["package_dirs"]),
            min_summary_length=int(section["min_summary_length"]),
            generic_summary_max_length=int(section["generic_summary_max_length"]),
            stale_warn_days=int(section["stale_warn_days"]),
            stale_notice_days=int(section["stale_notice_days"]),
            stale_error_days=int(section["stale_error_days"]),
        )


class ChangesetValidator:
    def __init__(
        self,
        store: ChangesetStore,
        git: GitReader,
        workspace: WorkspaceInspector,
        detector: DuplicateDetector,
        *,
        settings: ChangesetSettings | None = None,
        now: Now | None = None,
        logger: Any | None = None,
    ) -> None:
        self._store = store
        self._git = git
        self._workspace = workspace
        self._detector = detector
        self._settings = settings if settings is not None else ChangesetSettings()
        self._now: Now = now if now is not None else utc_now
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def validate(self) -> CheckResult:
        return await asyncio.to_thread(self.validate_sync)

    def validate_sync(self) -> CheckResult:
        started_ns = time.monotonic_ns()
        results = self.run_validations()
        return fold_results(results, duration_ms=_elapsed_ms(started_ns))

    def run_validations(self) -> list[ValidationResult]:
        loaded = self._store.load()
        descriptors = list(loaded.descriptors)
        base = self._git.detect_base()
        changed_files = self._git.changed_files(base.merge_base)
        self._logger.info(
            "changeset_validation_started",
            descriptors=len(descriptors),
            changed_files=len(changed_files),
            base=base.branch,
        )

        results = [
            _timed(
                "file-match",
                lambda: self.validate_file_match(descriptors, changed_files, base),
            ),
            _timed(
                "removed-packages",
                lambda: self.validate_removed_packages(descriptors, base),
            ),
            _timed(
                "dependency-changes",
                lambda: self.validate_dependency_changes(descriptors, changed_files, base),
            ),
        ]
        if loaded.errors:
            results.append(ValidationResult(name="parse", errors=loaded.errors))
        if descriptors:
            known = self._workspace.package_names()
            results.append(
                _timed(
                    "content",
                    lambda: _merge(
                        "content",
                        (self.validate_descriptor(item, known) for item in descriptors),
                    ),
                )
            )
            results.append(_timed("freshness", lambda: self.validate_freshness(descriptors)))
            results.append(_timed("duplicates", lambda: self.validate_duplicates(descriptors)))
        return results

    def validate_file_match(
        self,
        descriptors: Sequence[ChangeDescriptor],
        changed_files: Sequence[str],
        base: BaseRef,
    ) -> tuple[list[str], list[str]]:
        if not changed_files:
            return (
                [
                    "Unable to detect changed files from git - ensure you are in a git "
                    "repository with changes"
                ],
                [],
            )

        package_changes = [
            path for path in changed_files if self._requires_changeset(path, base.merge_base)
        ]
        if package_changes and not descriptors:
            preview = ", ".join(package_changes[:_CHANGED_FILES_PREVIEW])
            remaining = len(package_changes) - _CHANGED_FILES_PREVIEW
            if remaining > 0:
                preview = f"{preview} and {remaining} more"
            return (
                [
                    "Source code or configuration changes detected in packages but no "
                    f"changesets found:\n  Changed files: {preview}\n\n"
                    "  Please create a changeset by running: pnpm changeset"
                ],
                [],
            )
        return [], []

    def validate_removed_packages(
        self, descriptors: Sequence[ChangeDescriptor], base: BaseRef
    ) -> tuple[list[str], list[str]]:
        errors: list[str] = []
        warnings: list[str] = []
        if base.is_fallback:
            warnings.append("Could not determine base branch - using HEAD~1 for comparison")

        current = self._workspace.package_names()
        removed = sorted(self._workspace.package_names_at(base.merge_base) - current)
        if not removed:
            return errors, warnings

        mentioned = {name for descriptor in descriptors for name in descriptor.packages}
        unacknowledged = [name for name in removed if name not in mentioned]
        if unacknowledged:
            errors.append(
                f"Package(s) removed but no changeset found: {', '.join(unacknowledged)}"
            )
            errors.append(
                "Package removals require a changeset with deprecation notice or major "
                "version bump"
            )
        for descriptor in descriptors:
            for release in descriptor.releases:
                if release.name in removed and release.bump_type is not BumpType.MAJOR:
                    warnings.append(
                        f'Removed package "{release.name}" has {release.bump_type.value} '
                        'changeset - consider "major" for breaking removal'
                    )
        return errors, warnings

    def validate_dependency_changes(
        self,
        descriptors: Sequence[ChangeDescriptor],
        changed_files: Sequence[str],
        base: BaseRef,
    ) -> tuple[list[str], list[str]]:
        mentioned = {name for descriptor in descriptors for name in descriptor.packages}
        missing: list[str] = []
        for path in changed_files:
            if not path.endswith(PACKAGE_MANIFEST) or not is_under(
                path, self._settings.package_dirs
            ):
                continue
            if not self._workspace.manifest_is_significant(path, base.merge_base):
                continue
            manifest = self._workspace.read_manifest(path)
            if manifest is None:
                continue
            name = manifest.get("name")
            if not isinstance(name, str) or not name or manifest.get("private") is True:
                continue
            if name not in mentioned:
                missing.append(f"{name} ({path})")

        if not missing:
            return [], []
        return (
            [
                f"Dependency changes detected without changesets for: {', '.join(missing)}",
                "Dependency changes in published packages require changesets to bump versions",
                'Run "pnpm changeset" and select the affected packages to create a changeset',
            ],
            [],
        )

    def validate_descriptor(
        self, descriptor: ChangeDescriptor, workspace_packages: set[str]
    ) -> tuple[list[str], list[str]]:
        settings = self._settings
        errors: list[str] = []
        warnings: list[str] = []
        label = descriptor.filename
        summary = descriptor.summary

        if not descriptor.releases:
            errors.append(f"{label}: No package releases defined in changeset")
        if len(summary) < settings.min_summary_length:
            errors.append(
                f"{label}: Summary is too short or missing "
                f"(minimum {settings.min_summary_length} characters)"
            )
        lowered = summary.lower()
        if len(summary) < settings.generic_summary_max_length and any(
            phrase in lowered for phrase in GENERIC_PHRASES
        ):
            warnings.append(
                f"{label}: Summary appears generic - consider being more specific about "
                "what changed"
            )
        for release in descriptor.releases:
            if release.name not in workspace_packages:
                errors.append(f"{label}: Package {release.name} does not exist in workspace")
        if any(release.bump_type is BumpType.MAJOR for release in descriptor.releases) and not (
            _documents_breaking_change(summary)
        ):
            warnings.append(
                f'{label}: Major version change detected. Consider adding "BREAKING CHANGE:" '
                "or explaining the breaking nature in the summary"
            )
        return errors, warnings

    def validate_freshness(
        self, descriptors: Sequence[ChangeDescriptor]
    ) -> tuple[list[str], list[str]]:
        settings = self._settings
        now = self._now()
        errors: list[str] = []
        warnings: list[str] = []
        for descriptor in descriptors:
            age_days = (now - descriptor.created_at).total_seconds() / _SECONDS_PER_DAY
            rounded = round(age_days)
            if age_days > settings.stale_error_days:
                errors.append(
                    f"Changeset {descriptor.filename} is {rounded} days old - must be "
                    "resolved or removed"
                )
            elif age_days > settings.stale_notice_days:
                warnings.append(
                    f"Changeset {descriptor.filename} is {rounded} days old - consider if "
                    "it's still relevant"
                )
            elif age_days > settings.stale_warn_days:
                warnings.append(f"Changeset {descriptor.filename} is {rounded} days old")
        return errors, warnings

    def validate_duplicates(
        self, descriptors: Sequence[ChangeDescriptor]
    ) -> tuple[list[str], list[str]]:
        report = self._detector.find_duplicates(descriptors)
        return list(report.errors), list(report.warnings)

    def _requires_changeset(self, path: str, merge_base: str) -> bool:
        if not is_under(path, self._settings.package_dirs) or is_ignorable_path(path):
            return False
        if path.endswith(f"/{PACKAGE_MANIFEST}"):
            return self._workspace.manifest_is_significant(path, merge_base)
        return True


def fold_results(results: Sequence[ValidationResult], *, duration_ms: int = 0) -> CheckResult:
    """Combine sub-validations into the check result."""

    errors = [error for result in results for error in result.errors]
    warnings = [warning for result in results for warning in result.warnings]
    details = tuple(
        [f"ERROR: {error}" for error in errors] + [f"WARN: {warning}" for warning in warnings]
    )
    sub_tasks = tuple(
        SubTask(name=result.name, status=result.status, duration_ms=result.duration_ms)
        for result in results
    )
    if errors:
        plural = "" if len(errors) == 1 else "s"
        status = CheckStatus.FAIL
        message = f"Changeset validation failed with {len(errors)} error{plural}"
    elif warnings:
        plural = "" if len(warnings) == 1 else "s"
        status = CheckStatus.WARN
        message = f"Changeset validation passed with {len(warnings)} warning{plural}"
    else:
        status = CheckStatus.PASS
        message = "All changeset validations passed"
    return CheckResult(
        name=CHANGESET_VALIDATION_NAME,
        status=status,
        message=message,
        duration_ms=duration_ms,
        details=details,
        sub_tasks=sub_tasks,
    )


def _documents_breaking_change(summary: str) -> bool:
    if "BREAKING CHANGE:" in summary or "BREAKING:" in summary or summary.startswith("!"):
        return True
    lowered = summary.lower()
    return any(marker in lowered for marker in BREAKING_MARKERS)


def _timed(
    name: str, run: Callable[[], tuple[list[str], list[str]] | ValidationResult]
) -> ValidationResult:
    started_ns = time.monotonic_ns()
    outcome = run()
    duration_ms = _elapsed_ms(started_ns)
    if isinstance(outcome, ValidationResult):
        return ValidationResult(outcome.name, outcome.errors, outcome.warnings, duration_ms)
    errors, warnings = outcome
    return ValidationResult(name, tuple(errors), tuple(warnings), duration_ms)


def _merge(
    name: str, outcomes: Iterable[tuple[list[str], list[str]]]
) -> ValidationResult:
    errors: list[str] = []
    warnings: list[str] = []
    for item_errors, item_warnings in outcomes:
        errors.extend(item_errors)
        warnings.extend(item_warnings)
    return ValidationResult(name, tuple(errors), tuple(warnings))


def _elapsed_ms(started_ns: int) -> int:
    return max(0, (time.monotonic_ns() - started_ns) // 1_000_000)


__all__ = [
    "CHANGESET_VALIDATION_NAME",
    "ChangesetSettings",
    "ChangesetValidator",
    "ValidationResult",
    "fold_results",
]
