"""
release-guardrails — duplicate changeset detection.

File: src/release_guardrails/changesets/duplicates.py
Last updated: 2026-10-18

Purpose
- Flag descriptors that describe the same change twice: exact package/bump collisions and
  near-identical summaries.

What should be included in this file
- Levenshtein distance with an early exit for very different lengths.
- Length bucketing (each descriptor in one bucket, compared within it and the next) so only
  plausible pairs are compared, each unordered pair once.
- A wall-clock budget checked before every comparison and a descriptor cap, both of which
  stop fuzzy comparison with a warning.

Functional requirements
- Output is independent of input order; pairs are reported in filename order.
- Summaries shorter than the fuzzy minimum only match when identical.
- Pairs whose lengths differ by more than the configured ratio are never fuzzily flagged.
"""

from __future__ import annotations

import time
from collections import defaultdict
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final

import structlog

from release_guardrails.changesets.store import BumpType, ChangeDescriptor

_LEVENSHTEIN_EARLY_EXIT_RATIO: Final[float] = 0.3

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class DuplicateSettings:
    similarity_threshold: float = 0.9
    min_fuzzy_length: int = 40
    length_bucket_size: int = 20
    max_length_difference_ratio: float = 0.15
    time_budget_seconds: float = 5.0
    max_descriptors: int = 200

    @classmethod
    def from_config(cls, section: Mapping[str, Any]) -> DuplicateSettings:
        return cls(
            similarity_threshold=float(section["similarity_threshold"]),
            min_fuzzy_length=int(section["min_fuzzy_length"]),
            length_bucket_size=int(section["length_bucket_size"]),
            max_length_difference_ratio=float(section["max_length_difference_ratio"]),
            time_budget_seconds=float(section["time_budget_seconds"]),
            max_descriptors=int(section["max_descriptors"]),
        )


@dataclass(frozen=True, slots=True)
class SimilarPair:
    first: str
    second: str
    similarity: float
    identical: bool


@dataclass(frozen=True, slots=True)
class DuplicateReport:
    errors: tuple[str, ...]
    warnings: tuple[str, ...]
    similar_pairs: tuple[SimilarPair, ...]


def levenshtein(first: str, second: str) -> int:
    """Edit distance; returns ``max(len)`` early when lengths differ by more than 30%."""

    m, n = len(first), len(second)
    longest = max(m, n)
    if abs(m - n) > longest * _LEVENSHTEIN_EARLY_EXIT_RATIO:
        return longest
    if m == 0 or n == 0:
        return longest

    previous = list(range(n + 1))
    for i in range(1, m + 1):
        current = [i] + [0] * n
        char = first[i - 1]
        for j in range(1, n + 1):
            if char == second[j - 1]:
                current[j] = previous[j - 1]
            else:
                current[j] = 1 + min(previous[j], current[j - 1], previous[j - 1])
        previous = current
    return previous[n]


def similarity(first: str, second: str) -> float:
    """``1 - distance / max(len)``, with two empty strings being fully similar."""

    longest = max(len(first), len(second))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(first, second) / longest


class DuplicateDetector:
    def __init__(
        self,
        settings: DuplicateSettings | None = None,
        *,
        clock: Clock | None = None,
        logger: Any | None = None,
    ) -> None:
        self._settings = settings if settings is not None else DuplicateSettings()
        self._clock: Clock = clock if clock is not None else time.monotonic
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def find_duplicates(self, descriptors: Sequence[ChangeDescriptor]) -> DuplicateReport:
        ordered = sorted(descriptors, key=lambda item: item.filename)
        errors, warnings = _release_collisions(ordered)
        fuzzy_warnings, pairs = self._fuzzy_pairs(ordered)
        return DuplicateReport(
            errors=tuple(errors),
            warnings=tuple(fuzzy_warnings + warnings),
            similar_pairs=tuple(pairs),
        )

    def _fuzzy_pairs(
        self, ordered: Sequence[ChangeDescriptor]
    ) -> tuple[list[str], list[SimilarPair]]:
        settings = self._settings
        warnings: list[str] = []
        pairs: list[SimilarPair] = []

        if len(ordered) > settings.max_descriptors:
            self._logger.warning(
                "duplicate_detection_capped",
                descriptors=len(ordered),
                limit=settings.max_descriptors,
            )
            warnings.append(
                f"Skipping fuzzy duplicate detection for {len(ordered)} changesets "
                f"(limit: {settings.max_descriptors})"
            )
            return warnings, pairs

        summaries = [item.summary.strip().lower() for item in ordered]
        buckets: dict[int, list[int]] = defaultdict(list)
        for index, summary in enumerate(summaries):
            buckets[len(summary) // settings.length_bucket_size].append(index)

        started = self._clock()
        for left, right in _candidate_pairs(buckets):
            if self._clock() - started > settings.time_budget_seconds:
                budget_ms = int(settings.time_budget_seconds * 1000)
                self._logger.warning("duplicate_detection_budget_exhausted", budget_ms=budget_ms)
                warnings.append(
                    f"Fuzzy duplicate detection stopped after {budget_ms}ms "
                    "(optimized with length bucketing)"
                )
                break
            pair = self._compare(ordered, summaries, left, right)
            if pair is not None:
                pairs.append(pair)

        pairs.sort(key=lambda pair: (pair.first, pair.second))
        for pair in pairs:
            if pair.identical:
                warnings.append(
                    f"Identical changeset summaries:\n  - {pair.first}\n  - {pair.second}"
                )
            else:
                warnings.append(
                    f"Potentially duplicate changesets ({round(pair.similarity * 100)}% similar):"
                    f"\n  - {pair.first}\n  - {pair.second}"
                )
        return warnings, pairs

    def _compare(
        self,
        ordered: Sequence[ChangeDescriptor],
        summaries: Sequence[str],
        left: int,
        right: int,
    ) -> SimilarPair | None:
        settings = self._settings
        first, second = summaries[left], summaries[right]
        names = (ordered[left].filename, ordered[right].filename)

        if min(len(first), len(second)) < settings.min_fuzzy_length:
            if first == second:
                return SimilarPair(names[0], names[1], 1.0, identical=True)
            return None

        longest = max(len(first), len(second))
        if abs(len(first) - len(second)) > longest * settings.max_length_difference_ratio:
            return None

        score = similarity(first, second)
        if score > settings.similarity_threshold:
            return SimilarPair(names[0], names[1], score, identical=False)
        return None


def _candidate_pairs(buckets: Mapping[int, Sequence[int]]) -> Iterator[tuple[int, int]]:
    """Each unordered pair once: within a length bucket and against the next bucket up."""

    for bucket in sorted(buckets):
        members = buckets[bucket]
        above = buckets.get(bucket + 1, ())
        for position, left in enumerate(members):
            for right in members[position + 1 :]:
                yield left, right
            for right in above:
                yield (left, right) if left < right else (right, left)


def _release_collisions(ordered: Sequence[ChangeDescriptor]) -> tuple[list[str], list[str]]:
    by_release: dict[tuple[str, BumpType], list[str]] = defaultdict(list)
    by_package: dict[str, dict[str, BumpType]] = defaultdict(dict)
    for descriptor in ordered:
        for release in descriptor.releases:
            by_release[(release.name, release.bump_type)].append(descriptor.filename)
            by_package[release.name].setdefault(descriptor.filename, release.bump_type)

    errors: list[str] = []
    for (package, bump_type), files in sorted(by_release.items()):
        unique_files = list(dict.fromkeys(files))
        if len(unique_files) > 1:
            errors.append(
                "Multiple changesets with same package and version type:\n"
                f"  Package: {package} ({bump_type.value})\n"
                f"  Files: {', '.join(unique_files)}"
            )

    warnings: list[str] = []
    for package, files in sorted(by_package.items()):
        if len(files) > 1 and len(set(files.values())) > 1:
            listing = ", ".join(f"{name} ({bump.value})" for name, bump in files.items())
            warnings.append(
                f"Multiple changesets affecting {package} with different version types: {listing}"
            )
    return errors, warnings


__all__ = [
    "DuplicateDetector",
    "DuplicateReport",
    "DuplicateSettings",
    "SimilarPair",
    "levenshtein",
    "similarity",
]
