"""Dependency vulnerability audit: tool parsers, baseline, and the scanner adapter."""

from release_guardrails.audit.baseline import BaselineStore, VulnerabilityBaseline
from release_guardrails.audit.parsers import (
    OsvFinding,
    OsvReport,
    OsvScannerParser,
    ParseError,
    ParseErrorReason,
    PnpmAuditParser,
    ToolResultParser,
    VulnerabilityCounts,
)
from release_guardrails.audit.scanner import (
    SECURITY_SCAN_NAME,
    AttemptKind,
    AuditSettings,
    GateDecision,
    VulnerabilityScanner,
    classify_attempt,
)

__all__ = [
    "SECURITY_SCAN_NAME",
    "AttemptKind",
    "AuditSettings",
    "BaselineStore",
    "GateDecision",
    "OsvFinding",
    "OsvReport",
    "OsvScannerParser",
    "ParseError",
    "ParseErrorReason",
    "PnpmAuditParser",
    "ToolResultParser",
    "VulnerabilityBaseline",
    "VulnerabilityCounts",
    "VulnerabilityScanner",
    "classify_attempt",
]
