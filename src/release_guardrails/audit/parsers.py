"""
release-guardrails — vulnerability tool output parsers.

File: src/release_guardrails/audit/parsers.py
Last updated: 2026-10-18

Purpose
- Turn raw scanner output into typed findings, one parser per tool.

What should be included in this file
- ``VulnerabilityCounts`` with per-severity arithmetic used by baseline diffs.
- ``PnpmAuditParser`` for the three known ``pnpm audit --json`` layouts.
- ``OsvScannerParser`` for nested and flat ``osv-scanner --format json`` results.
- ``ParseError`` carrying a machine-usable reason.

Functional requirements
- Never guess: output that is not understood raises ``ParseError`` so callers fail closed.
- Empty primary output means "no findings", not "unknown".
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Final, Protocol, TypeVar

_SEVERITIES: Final[tuple[str, ...]] = ("critical", "high", "moderate", "low", "info")
_OSV_CRITICAL_SEVERITIES: Final[frozenset[str]] = frozenset({"CRITICAL", "HIGH"})

ParsedT_co = TypeVar("ParsedT_co", covariant=True)


class ParseErrorReason(StrEnum):
    MALFORMED = "malformed"
    UNKNOWN_FORMAT = "unknown_format"


class ParseError(ValueError):
    """Raised when tool output cannot be mapped to a typed result."""

    def __init__(self, reason: ParseErrorReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


@dataclass(frozen=True, slots=True)
class VulnerabilityCounts:
    critical: int = 0
    high: int = 0
    moderate: int = 0
    low: int = 0
    info: int = 0

    def __post_init__(self) -> None:
        for name in _SEVERITIES:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"VulnerabilityCounts.{name}: must be a non-negative integer")

    @property
    def total(self) -> int:
        return self.critical + self.high + self.moderate + self.low + self.info

    def minus(self, baseline: VulnerabilityCounts) -> VulnerabilityCounts:
        """Per-severity ``max(0, self - baseline)``."""

        return VulnerabilityCounts(
            **{
                name: max(0, getattr(self, name) - getattr(baseline, name))
                for name in _SEVERITIES
            }
        )

    def to_dict(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in _SEVERITIES}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> VulnerabilityCounts:
        values: dict[str, int] = {}
        for name in _SEVERITIES:
            raw = data.get(name, 0)
            if isinstance(raw, bool) or not isinstance(raw, int):
                raise ValueError(f"VulnerabilityCounts.{name}: expected integer")
            values[name] = raw
        return cls(**values)

    @classmethod
    def from_severities(cls, severities: Iterable[object]) -> VulnerabilityCounts:
        counts = dict.fromkeys(_SEVERITIES, 0)
        for severity in severities:
            if isinstance(severity, str) and severity.lower() in counts:
                counts[severity.lower()] += 1
        return cls(**counts)


@dataclass(frozen=True, slots=True)
class OsvFinding:
    package: str
    identifier: str
    summary: str
    critical: bool

    def describe(self) -> str:
        return f"{self.package}: {self.summary or self.identifier}"


@dataclass(frozen=True, slots=True)
class OsvReport:
    findings: tuple[OsvFinding, ...]

    @property
    def critical_findings(self) -> tuple[OsvFinding, ...]:
        return tuple(item for item in self.findings if item.critical)


class ToolResultParser(Protocol[ParsedT_co]):
    """Parses one tool's raw stdout into a typed result or raises ``ParseError``."""

    def parse(self, output: str) -> ParsedT_co: ...


class PnpmAuditParser:
    """Counts findings per severity from ``pnpm audit --json`` output."""

    def parse(self, output: str) -> VulnerabilityCounts:
        if not output.strip():
            return VulnerabilityCounts()
        document = _load_json_object(output)

        vulnerabilities = document.get("vulnerabilities")
        if isinstance(vulnerabilities, Mapping):
            return VulnerabilityCounts.from_severities(
                _severity_of(item) for item in vulnerabilities.values()
            )

        advisories = document.get("advisories")
        if isinstance(advisories, Mapping):
            return VulnerabilityCounts.from_severities(
                _severity_of(item) for item in advisories.values()
            )
        if isinstance(advisories, list):
            return VulnerabilityCounts.from_severities(_severity_of(item) for item in advisories)

        metadata = document.get("metadata")
        if isinstance(metadata, Mapping) and isinstance(metadata.get("vulnerabilities"), Mapping):
            counts = metadata["vulnerabilities"]
            try:
                return VulnerabilityCounts(
                    **{name: _count_value(counts.get(name, 0)) for name in _SEVERITIES}
                )
            except ValueError as exc:
                raise ParseError(ParseErrorReason.UNKNOWN_FORMAT, str(exc)) from exc

        raise ParseError(
            ParseErrorReason.UNKNOWN_FORMAT,
            "audit JSON has none of: vulnerabilities, advisories, metadata.vulnerabilities",
        )


class OsvScannerParser:
    """Extracts findings from ``osv-scanner --format json`` output."""

    def parse(self, output: str) -> OsvReport:
        if not output.strip():
            return OsvReport(findings=())
        document = _load_json_object(output)
        results = document.get("results", [])
        if not isinstance(results, list):
            raise ParseError(ParseErrorReason.UNKNOWN_FORMAT, "OSV 'results' must be a list")

        findings: list[OsvFinding] = []
        for entry in results:
            if not isinstance(entry, Mapping):
                continue
            packages = entry.get("packages")
            if isinstance(packages, list):
                for package_entry in packages:
                    if not isinstance(package_entry, Mapping):
                        continue
                    package_name = _package_name(package_entry.get("package"))
                    for vuln in package_entry.get("vulnerabilities") or ():
                        if isinstance(vuln, Mapping):
                            findings.append(_osv_finding(vuln, package_name))
            else:
                findings.append(_osv_finding(entry, _package_name(entry.get("package"))))
        return OsvReport(findings=tuple(findings))


def extract_json_object(output: str) -> str | None:
    """Return the first balanced ``{...}`` block in ``output`` (string-aware), if any."""

    start = output.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(output)):
            char = output[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return output[start : index + 1]
        start = output.find("{", start + 1)
    return None


def has_audit_layout(output: str) -> bool:
    """True when ``output`` carries a JSON object in one of the known audit report layouts."""

    try:
        document = _load_json_object(output)
    except ParseError:
        return False
    if isinstance(document.get("vulnerabilities"), Mapping):
        return True
    if isinstance(document.get("advisories"), (Mapping, list)):
        return True
    metadata = document.get("metadata")
    return isinstance(metadata, Mapping) and isinstance(metadata.get("vulnerabilities"), Mapping)


def json_error_message(output: str) -> str | None:
    """Message of a JSON ``{"error": ...}`` envelope on stdout, if there is one."""

    try:
        document = _load_json_object(output)
    except ParseError:
        return None
    error = document.get("error")
    if isinstance(error, str):
        return error
    if isinstance(error, Mapping):
        parts = [str(error[key]) for key in ("code", "message", "detail") if error.get(key)]
        return ": ".join(parts) or None
    return None


def _load_json_object(output: str) -> Mapping[str, object]:
    text = output.strip()
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        block = extract_json_object(text)
        if block is None:
            raise ParseError(
                ParseErrorReason.MALFORMED, f"no JSON object in output: {exc}"
            ) from exc
        try:
            document = json.loads(block)
        except json.JSONDecodeError as inner:
            raise ParseError(ParseErrorReason.MALFORMED, f"invalid JSON: {inner}") from inner
    if not isinstance(document, dict):
        raise ParseError(
            ParseErrorReason.UNKNOWN_FORMAT,
            f"expected JSON object, got {type(document).__name__}",
        )
    return document


def _severity_of(item: object) -> object:
    if isinstance(item, Mapping):
        return item.get("severity")
    return None


def _count_value(raw: object) -> int:
    if raw is None:
        return 0
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"severity count must be an integer, got {type(raw).__name__}")
    return raw


def _package_name(raw: object) -> str:
    if isinstance(raw, Mapping):
        name = raw.get("name")
        if isinstance(name, str) and name:
            return name
    return "unknown"


def _osv_finding(vuln: Mapping[str, object], package_name: str) -> OsvFinding:
    summary = vuln.get("summary")
    summary_text = summary if isinstance(summary, str) else ""
    identifier = vuln.get("id")
    database_specific = vuln.get("database_specific")
    severity = ""
    if isinstance(database_specific, Mapping):
        raw_severity = database_specific.get("severity")
        if isinstance(raw_severity, str):
            severity = raw_severity.upper()
    return OsvFinding(
        package=package_name,
        identifier=identifier if isinstance(identifier, str) else "unknown",
        summary=summary_text,
        critical="critical" in summary_text.lower() or severity in _OSV_CRITICAL_SEVERITIES,
    )


__all__ = [
    "OsvFinding",
    "OsvReport",
    "OsvScannerParser",
    "ParseError",
    "ParseErrorReason",
    "PnpmAuditParser",
    "ToolResultParser",
    "VulnerabilityCounts",
    "extract_json_object",
    "has_audit_layout",
    "json_error_message",
]
