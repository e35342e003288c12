"""
release-guardrails — unit tests for vulnerability tool parsers

File: tests/unit/audit/test_parsers.py
Last updated: 2026-10-18

Purpose
- Validate typed parsing of primary and secondary scanner output, including fail-closed errors.

What this test file should cover
- The three ``pnpm audit --json`` layouts and empty output.
- Nested and flat OSV results with critical classification.
- JSON embedded in surrounding noise.
- ``ParseError`` reasons for malformed and unrecognized documents.
- Baseline delta arithmetic.
"""

from __future__ import annotations

import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from release_guardrails.audit.parsers import (
    OsvScannerParser,
    ParseError,
    ParseErrorReason,
    PnpmAuditParser,
    VulnerabilityCounts,
    extract_json_object,
    has_audit_layout,
    json_error_message,
)


def test_pnpm_vulnerabilities_layout_counts_by_severity() -> None:
    output = json.dumps(
        {
            "vulnerabilities": {
                "lodash": {"severity": "critical"},
                "minimist": {"severity": "High"},
                "qs": {"severity": "moderate"},
                "debug": {"severity": "bogus"},
            }
        }
    )

    counts = PnpmAuditParser().parse(output)

    assert counts == VulnerabilityCounts(critical=1, high=1, moderate=1)


def test_pnpm_advisories_layout_accepts_mapping_and_list() -> None:
    as_mapping = json.dumps({"advisories": {"1": {"severity": "low"}, "2": {"severity": "low"}}})
    as_list = json.dumps({"advisories": [{"severity": "info"}]})

    assert PnpmAuditParser().parse(as_mapping) == VulnerabilityCounts(low=2)
    assert PnpmAuditParser().parse(as_list) == VulnerabilityCounts(info=1)


def test_pnpm_metadata_layout_reads_totals() -> None:
    output = json.dumps(
        {"metadata": {"vulnerabilities": {"critical": 2, "high": 0, "moderate": 3, "low": None}}}
    )

    assert PnpmAuditParser().parse(output) == VulnerabilityCounts(critical=2, moderate=3)


def test_pnpm_empty_output_means_no_findings() -> None:
    assert PnpmAuditParser().parse("  \n") == VulnerabilityCounts()


def test_pnpm_json_surrounded_by_noise_is_extracted() -> None:
    output = 'WARN  deprecated thing\n{"metadata": {"vulnerabilities": {"high": 1}}}\nDone\n'

    assert PnpmAuditParser().parse(output) == VulnerabilityCounts(high=1)


@pytest.mark.parametrize(
    ("output", "reason"),
    [
        ("not json at all", ParseErrorReason.MALFORMED),
        ('{"summary": {}}', ParseErrorReason.UNKNOWN_FORMAT),
        ("[1, 2, 3]", ParseErrorReason.UNKNOWN_FORMAT),
        ('{"metadata": {"vulnerabilities": {"high": "two"}}}', ParseErrorReason.UNKNOWN_FORMAT),
    ],
)
def test_pnpm_unrecognized_output_raises_parse_error(
    output: str, reason: ParseErrorReason
) -> None:
    with pytest.raises(ParseError) as exc_info:
        PnpmAuditParser().parse(output)

    assert exc_info.value.reason is reason


def test_osv_nested_results_flag_critical_findings() -> None:
    output = json.dumps(
        {
            "results": [
                {
                    "packages": [
                        {
                            "package": {"name": "lodash"},
                            "vulnerabilities": [
                                {
                                    "id": "GHSA-1",
                                    "summary": "Prototype pollution",
                                    "database_specific": {"severity": "HIGH"},
                                },
                                {"id": "GHSA-2", "summary": "ReDoS"},
                            ],
                        }
                    ]
                }
            ]
        }
    )

    report = OsvScannerParser().parse(output)

    assert [item.identifier for item in report.findings] == ["GHSA-1", "GHSA-2"]
    assert [item.identifier for item in report.critical_findings] == ["GHSA-1"]
    assert report.findings[0].describe() == "lodash: Prototype pollution"


def test_osv_flat_results_and_summary_keyword() -> None:
    output = json.dumps(
        {"results": [{"id": "OSV-9", "summary": "Critical RCE", "package": {"name": "tar"}}]}
    )

    report = OsvScannerParser().parse(output)

    assert report.findings[0].package == "tar"
    assert report.findings[0].critical


def test_osv_rejects_non_list_results() -> None:
    with pytest.raises(ParseError) as exc_info:
        OsvScannerParser().parse('{"results": {}}')

    assert exc_info.value.reason is ParseErrorReason.UNKNOWN_FORMAT


def test_json_object_detection_is_string_aware() -> None:
    text = 'prefix {"a": "brace } inside", "b": {"c": 1}} suffix'

    assert extract_json_object(text) == '{"a": "brace } inside", "b": {"c": 1}}'
    assert extract_json_object("ERR_PNPM_AUDIT_ENDPOINT") is None


def test_audit_layout_detection_ignores_error_envelopes() -> None:
    envelope = '{"error": {"code": "ERR_PNPM_AUDIT_BAD_RESPONSE", "message": "ENOTFOUND"}}'

    assert has_audit_layout('noise {"metadata": {"vulnerabilities": {"low": 1}}}')
    assert has_audit_layout('{"advisories": {}}')
    assert not has_audit_layout(envelope)
    assert not has_audit_layout("")
    assert json_error_message(envelope) == "ERR_PNPM_AUDIT_BAD_RESPONSE: ENOTFOUND"
    assert json_error_message('{"error": "registry unreachable"}') == "registry unreachable"
    assert json_error_message('{"metadata": {}}') is None


_counts = st.builds(
    VulnerabilityCounts,
    critical=st.integers(0, 50),
    high=st.integers(0, 50),
    moderate=st.integers(0, 50),
    low=st.integers(0, 50),
    info=st.integers(0, 50),
)


@given(_counts, _counts)
def test_baseline_delta_is_clamped_and_bounded(
    current: VulnerabilityCounts, baseline: VulnerabilityCounts
) -> None:
    delta = current.minus(baseline)

    for field in ("critical", "high", "moderate", "low", "info"):
        assert 0 <= getattr(delta, field) <= getattr(current, field)
    assert current.minus(current).total == 0
    assert current.minus(VulnerabilityCounts()) == current
