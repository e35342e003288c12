"""
release-guardrails — unit tests for duplicate changeset detection

File: tests/unit/changesets/test_duplicates.py
Last updated: 2026-10-18

Purpose
- Validate exact collisions, fuzzy summary matching, and the detector's work limits.

What this test file should cover
- Short identical summaries are flagged regardless of the fuzzy length cutoff.
- Length-ratio pre-filter and similarity threshold.
- Same package and bump type in two files is an error; differing bump types warn.
- Descriptor cap and time budget stop fuzzy comparison with a warning; the budget is checked
  per comparison and only the same or the next length bucket is compared.
- Similarity is symmetric and bounded; output does not depend on input order.
"""

from __future__ import annotations

import itertools
from datetime import UTC, datetime

from hypothesis import given
from hypothesis import strategies as st

from release_guardrails.changesets.duplicates import (
    DuplicateDetector,
    DuplicateSettings,
    levenshtein,
    similarity,
)
from release_guardrails.changesets.store import BumpType, ChangeDescriptor, Release

CREATED = datetime(2026, 10, 17, tzinfo=UTC)


def _descriptor(
    name: str, summary: str, *releases: tuple[str, BumpType]
) -> ChangeDescriptor:
    return ChangeDescriptor(
        filename=f".changeset/{name}.md",
        summary=summary,
        releases=tuple(Release(package, bump) for package, bump in releases),
        created_at=CREATED,
    )


def test_short_identical_summaries_are_flagged_as_identical() -> None:
    descriptors = [
        _descriptor("brave-cats", "Fixed bug", ("@acme/ui", BumpType.PATCH)),
        _descriptor("quiet-dogs", "Fixed bug", ("@acme/core", BumpType.PATCH)),
    ]

    report = DuplicateDetector().find_duplicates(descriptors)

    assert report.errors == ()
    assert [(pair.first, pair.second, pair.identical) for pair in report.similar_pairs] == [
        (".changeset/brave-cats.md", ".changeset/quiet-dogs.md", True)
    ]
    assert report.warnings == (
        "Identical changeset summaries:\n"
        "  - .changeset/brave-cats.md\n"
        "  - .changeset/quiet-dogs.md",
    )


def test_short_different_summaries_are_not_compared_fuzzily() -> None:
    descriptors = [
        _descriptor("a", "Fixed bug", ("@acme/ui", BumpType.PATCH)),
        _descriptor("b", "Fixed bugs", ("@acme/core", BumpType.PATCH)),
    ]

    assert DuplicateDetector().find_duplicates(descriptors).similar_pairs == ()


def test_near_identical_long_summaries_are_reported_with_percentage() -> None:
    summary = "Add retry with exponential backoff to the remote cache client"
    descriptors = [
        _descriptor("a", summary, ("@acme/api", BumpType.MINOR)),
        _descriptor("b", summary.replace("remote", "remotes"), ("@acme/cli", BumpType.MINOR)),
    ]

    report = DuplicateDetector().find_duplicates(descriptors)

    (pair,) = report.similar_pairs
    assert not pair.identical
    assert pair.similarity > 0.9
    assert report.warnings[0].startswith("Potentially duplicate changesets (98% similar):")


def test_length_ratio_prefilter_skips_pairs_beyond_fifteen_percent() -> None:
    summary = "Add retry with exponential backoff to the remote cache client"
    padded = f"{summary} and more words"
    assert len(padded) - len(summary) > 0.15 * len(padded)
    descriptors = [
        _descriptor("a", summary, ("@acme/api", BumpType.MINOR)),
        _descriptor("b", padded, ("@acme/cli", BumpType.MINOR)),
    ]

    loose = DuplicateSettings(similarity_threshold=0.0)

    assert DuplicateDetector(loose).find_duplicates(descriptors).similar_pairs == ()


def test_same_package_and_bump_type_is_an_error() -> None:
    descriptors = [
        _descriptor("b", "Improve token refresh handling", ("@acme/api", BumpType.MINOR)),
        _descriptor("a", "Support streaming uploads in client", ("@acme/api", BumpType.MINOR)),
    ]

    report = DuplicateDetector().find_duplicates(descriptors)

    assert report.errors == (
        "Multiple changesets with same package and version type:\n"
        "  Package: @acme/api (minor)\n"
        "  Files: .changeset/a.md, .changeset/b.md",
    )


def test_same_package_with_different_bump_types_warns() -> None:
    descriptors = [
        _descriptor("a", "Improve token refresh handling", ("@acme/api", BumpType.MINOR)),
        _descriptor("b", "Support streaming uploads in client", ("@acme/api", BumpType.PATCH)),
    ]

    report = DuplicateDetector().find_duplicates(descriptors)

    assert report.errors == ()
    assert report.warnings == (
        "Multiple changesets affecting @acme/api with different version types: "
        ".changeset/a.md (minor), .changeset/b.md (patch)",
    )


def test_descriptor_cap_skips_fuzzy_detection() -> None:
    descriptors = [
        _descriptor(f"c{index}", "Same summary", (f"@acme/p{index}", BumpType.PATCH))
        for index in range(3)
    ]

    report = DuplicateDetector(DuplicateSettings(max_descriptors=2)).find_duplicates(descriptors)

    assert report.similar_pairs == ()
    assert report.warnings == ("Skipping fuzzy duplicate detection for 3 changesets (limit: 2)",)


def test_time_budget_stops_fuzzy_detection() -> None:
    ticks = itertools.count(0.0, 10.0)
    detector = DuplicateDetector(clock=lambda: next(ticks))
    descriptors = [
        _descriptor("a", "Fixed bug", ("@acme/ui", BumpType.PATCH)),
        _descriptor("b", "Fixed bug", ("@acme/core", BumpType.PATCH)),
    ]

    report = detector.find_duplicates(descriptors)

    assert report.similar_pairs == ()
    assert report.warnings == (
        "Fuzzy duplicate detection stopped after 5000ms (optimized with length bucketing)",
    )


class CountingClock:
    """Advances one second per reading."""

    def __init__(self) -> None:
        self.readings = 0

    def __call__(self) -> float:
        self.readings += 1
        return float(self.readings - 1)


def test_time_budget_is_checked_before_every_comparison() -> None:
    clock = CountingClock()
    detector = DuplicateDetector(DuplicateSettings(time_budget_seconds=5.0), clock=clock)
    descriptors = [
        _descriptor(f"c{index:02d}", f"Fix issue number {index:02d}", ("@acme/ui", BumpType.PATCH))
        for index in range(20)
    ]

    report = detector.find_duplicates(descriptors)

    # One start reading, five comparisons within budget, then the reading that stops.
    assert clock.readings == 7
    assert report.warnings[0] == (
        "Fuzzy duplicate detection stopped after 5000ms (optimized with length bucketing)"
    )


def test_only_adjacent_length_buckets_are_compared() -> None:
    loose = DuplicateSettings(
        similarity_threshold=0.0,
        min_fuzzy_length=0,
        length_bucket_size=10,
        max_length_difference_ratio=1.0,
    )
    descriptors = [
        _descriptor("a", "x" * 99, ("@acme/a", BumpType.PATCH)),
        _descriptor("b", "x" * 105, ("@acme/b", BumpType.PATCH)),
        _descriptor("c", "x" * 110, ("@acme/c", BumpType.PATCH)),
    ]

    report = DuplicateDetector(loose).find_duplicates(descriptors)

    assert [(pair.first, pair.second) for pair in report.similar_pairs] == [
        (".changeset/a.md", ".changeset/b.md"),
        (".changeset/b.md", ".changeset/c.md"),
    ]


def test_report_does_not_depend_on_input_order() -> None:
    descriptors = [
        _descriptor("a", "Fixed bug", ("@acme/ui", BumpType.PATCH)),
        _descriptor("b", "Fixed bug", ("@acme/ui", BumpType.PATCH)),
        _descriptor("c", "Fixed bug", ("@acme/ui", BumpType.MINOR)),
    ]
    detector = DuplicateDetector()

    assert detector.find_duplicates(descriptors) == detector.find_duplicates(descriptors[::-1])


def test_levenshtein_distance() -> None:
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "") == 0
    assert levenshtein("abc", "") == 3
    assert levenshtein("a", "abcdefgh") == 8
    assert similarity("", "") == 1.0


@given(st.text(max_size=30), st.text(max_size=30))
def test_similarity_is_symmetric_and_bounded(first: str, second: str) -> None:
    score = similarity(first, second)

    assert score == similarity(second, first)
    assert 0.0 <= score <= 1.0
    assert similarity(first, first) == 1.0
