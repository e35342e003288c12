"""Domain types for guardrail runs: results, reports, and run options."""

from release_guardrails.domain.models import (
    REPORT_VERSION,
    CheckResult,
    CheckStatus,
    CheckTier,
    GitInfo,
    GuardrailReport,
    QualityScore,
    ReportSummary,
    SubTask,
    build_report,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from release_guardrails.domain.options import (
    CiPolicyError,
    RunOptions,
    enforce_ci_policy,
    is_ci_environment,
)

__all__ = [
    "REPORT_VERSION",
    "CheckResult",
    "CheckStatus",
    "CheckTier",
    "CiPolicyError",
    "GitInfo",
    "GuardrailReport",
    "QualityScore",
    "ReportSummary",
    "RunOptions",
    "SubTask",
    "build_report",
    "enforce_ci_policy",
    "format_timestamp",
    "is_ci_environment",
    "parse_timestamp",
    "utc_now",
]
