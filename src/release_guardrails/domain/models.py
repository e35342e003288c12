"""
release-guardrails — domain models

File: src/release_guardrails/domain/models.py
Last updated: 2026-10-18

Purpose
- Immutable result and report types shared by the orchestrator, the built-in checks, the
  cache, and the reporter.

What should be included in this file
- Check statuses and tiers.
- ``CheckResult`` with its sub-task breakdown and explicit diagnostic flag.
- ``GuardrailReport`` with summary counts, git info, and package quality score.
- Canonical JSON forms (camelCase keys, matching the persisted report/cache documents).

Functional requirements
- Results are never mutated after creation; downgrades produce new values.
- ``from_dict(to_dict(x)) == x`` for results so cached runs replay exactly.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final, NoReturn

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

REPORT_VERSION: Final[str] = "2.0.0"


class CheckStatus(StrEnum):
    """Outcome of one guardrail check."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"
    SKIP = "skip"


class CheckTier(StrEnum):
    """Critical checks gate dependent checks; dependent failures may be downgraded."""

    CRITICAL = "critical"
    DEPENDENT = "dependent"


@dataclass(frozen=True, slots=True)
class SubTask:
    """Timed step inside a single check (for example one audit scanner)."""

    name: str
    status: CheckStatus
    duration_ms: int = 0

    def __post_init__(self) -> None:
        _require_text(self.name, "SubTask.name")
        _require_status(self.status, "SubTask.status")
        _require_non_negative(self.duration_ms, "SubTask.duration_ms")

    def to_dict(self) -> dict[str, JSONValue]:
        return {"name": self.name, "status": self.status.value, "duration": self.duration_ms}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> SubTask:
        return cls(
            name=_as_str(data.get("name"), "SubTask.name"),
            status=_as_status(data.get("status"), "SubTask.status"),
            duration_ms=_as_int(data.get("duration", 0), "SubTask.duration"),
        )


@dataclass(frozen=True, slots=True)
class CheckResult:
    """Result of one check in one run."""

    name: str
    status: CheckStatus
    message: str
    duration_ms: int = 0
    details: tuple[str, ...] = ()
    is_diagnostic: bool = False
    sub_tasks: tuple[SubTask, ...] = ()

    def __post_init__(self) -> None:
        _require_text(self.name, "CheckResult.name")
        _require_status(self.status, "CheckResult.status")
        if not isinstance(self.message, str):
            _fail("CheckResult.message", "expected string")
        _require_non_negative(self.duration_ms, "CheckResult.duration_ms")
        if not isinstance(self.details, tuple) or not all(
            isinstance(item, str) for item in self.details
        ):
            _fail("CheckResult.details", "expected tuple of strings")
        if not isinstance(self.sub_tasks, tuple):
            _fail("CheckResult.sub_tasks", "expected tuple")

    @property
    def failed(self) -> bool:
        return self.status is CheckStatus.FAIL

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "duration": self.duration_ms,
            "details": list(self.details),
            "isDiagnostic": self.is_diagnostic,
        }
        if self.sub_tasks:
            payload["subTasks"] = [task.to_dict() for task in self.sub_tasks]
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> CheckResult:
        raw_details = data.get("details", [])
        if not isinstance(raw_details, list):
            _fail("CheckResult.details", "expected list")
        raw_sub_tasks = data.get("subTasks", [])
        if not isinstance(raw_sub_tasks, list):
            _fail("CheckResult.subTasks", "expected list")
        diagnostic = data.get("isDiagnostic", False)
        if not isinstance(diagnostic, bool):
            _fail("CheckResult.isDiagnostic", "expected boolean")
        return cls(
            name=_as_str(data.get("name"), "CheckResult.name"),
            status=_as_status(data.get("status"), "CheckResult.status"),
            message=_as_str(data.get("message", ""), "CheckResult.message", allow_empty=True),
            duration_ms=_as_int(data.get("duration", 0), "CheckResult.duration"),
            details=tuple(
                _as_str(item, "CheckResult.details[]", allow_empty=True) for item in raw_details
            ),
            is_diagnostic=diagnostic,
            sub_tasks=tuple(
                SubTask.from_dict(_as_mapping(item, "CheckResult.subTasks[]"))
                for item in raw_sub_tasks
            ),
        )


@dataclass(frozen=True, slots=True)
class ReportSummary:
    passed: int
    warned: int
    failed: int
    skipped: int
    total_duration_ms: int

    @classmethod
    def from_results(cls, results: Iterable[CheckResult]) -> ReportSummary:
        counts = dict.fromkeys(CheckStatus, 0)
        total = 0
        for result in results:
            counts[result.status] += 1
            total += result.duration_ms
        return cls(
            passed=counts[CheckStatus.PASS],
            warned=counts[CheckStatus.WARN],
            failed=counts[CheckStatus.FAIL],
            skipped=counts[CheckStatus.SKIP],
            total_duration_ms=total,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "passed": self.passed,
            "warned": self.warned,
            "failed": self.failed,
            "skipped": self.skipped,
            "totalDuration": self.total_duration_ms,
        }


@dataclass(frozen=True, slots=True)
class GitInfo:
    branch: str
    base_branch: str
    commit_range: str

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "branch": self.branch,
            "baseBranch": self.base_branch,
            "commitRange": self.commit_range,
        }


@dataclass(frozen=True, slots=True)
class QualityScore:
    """Package quality score, each component in ``[0, 100]``."""

    overall: int
    export_maps: int
    side_effects: int
    tree_shaking: int

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "overall": self.overall,
            "breakdown": {
                "exportMaps": self.export_maps,
                "sideEffects": self.side_effects,
                "treeShaking": self.tree_shaking,
            },
        }


@dataclass(frozen=True, slots=True)
class GuardrailReport:
    """Terminal artifact of one orchestration run."""

    timestamp: datetime
    summary: ReportSummary
    results: tuple[CheckResult, ...]
    version: str = REPORT_VERSION
    git_info: GitInfo | None = None
    quality_score: QualityScore | None = None
    from_cache: bool = field(default=False, compare=False)

    @property
    def failed_results(self) -> tuple[CheckResult, ...]:
        return tuple(result for result in self.results if result.failed)

    @property
    def blocked(self) -> bool:
        """Release is blocked when any result still carries ``fail``."""

        return bool(self.failed_results)

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "timestamp": format_timestamp(self.timestamp),
            "version": self.version,
            "summary": self.summary.to_dict(),
            "results": [result.to_dict() for result in self.results],
        }
        if self.git_info is not None:
            payload["gitInfo"] = self.git_info.to_dict()
        if self.quality_score is not None:
            payload["packageQualityScore"] = self.quality_score.to_dict()
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


def build_report(
    results: Sequence[CheckResult],
    *,
    timestamp: datetime,
    git_info: GitInfo | None = None,
    quality_score: QualityScore | None = None,
    from_cache: bool = False,
) -> GuardrailReport:
    """Aggregate results into a report with computed summary counts."""

    ordered = tuple(results)
    return GuardrailReport(
        timestamp=timestamp,
        summary=ReportSummary.from_results(ordered),
        results=ordered,
        git_info=git_info,
        quality_score=quality_score,
        from_cache=from_cache,
    )


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def format_timestamp(value: datetime) -> str:
    """Render an aware datetime as ISO-8601 UTC with millisecond precision and ``Z``."""

    normalized = value.astimezone(UTC) if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return normalized.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(raw: object, path: str = "timestamp") -> datetime:
    text = _as_str(raw, path)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        _fail(path, f"invalid ISO-8601 timestamp {text!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _require_text(value: object, path: str) -> None:
    if not isinstance(value, str) or not value.strip():
        _fail(path, "must be a non-empty string")


def _require_status(value: object, path: str) -> None:
    if not isinstance(value, CheckStatus):
        _fail(path, f"expected CheckStatus, got {type(value).__name__}")


def _require_non_negative(value: object, path: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        _fail(path, "must be a non-negative integer")


def _as_str(value: object, path: str, *, allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    if not allow_empty and not value.strip():
        _fail(path, "must not be empty")
    return value


def _as_int(value: object, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    return value


def _as_status(value: object, path: str) -> CheckStatus:
    try:
        return CheckStatus(_as_str(value, path))
    except ValueError:
        allowed = ", ".join(item.value for item in CheckStatus)
        _fail(path, f"expected one of: {allowed}")


def _as_mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    return value


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "REPORT_VERSION",
    "CheckResult",
    "CheckStatus",
    "CheckTier",
    "GitInfo",
    "GuardrailReport",
    "JSONValue",
    "QualityScore",
    "ReportSummary",
    "SubTask",
    "build_report",
    "format_timestamp",
    "parse_timestamp",
    "utc_now",
]
