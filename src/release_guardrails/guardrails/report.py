"""
release-guardrails — report assembly helpers

File: src/release_guardrails/guardrails/report.py
Last updated: 2026-10-18

Purpose
- Collect the optional report sections (git info, package quality score) and persist the
  final report.

What should be included in this file
- ``collect_git_info``: branch, detected base branch, and ``mergeBase..HEAD`` range.
- ``calculate_quality_score``: export maps, ``sideEffects`` and tree-shaking readiness
  averaged over every package manifest.
- ``write_report``: atomic JSON write of a ``GuardrailReport``.

Functional requirements
- Git and manifest problems degrade to "section omitted", never to a failed run.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import structlog

from release_guardrails.changesets.git import GitCommandError, GitReader
from release_guardrails.changesets.workspace import WorkspaceInspector
from release_guardrails.domain.models import GitInfo, GuardrailReport, QualityScore
from release_guardrails.utils.fs import atomic_write

_logger = structlog.get_logger(__name__)


def write_report(path: str | Path, report: GuardrailReport) -> Path:
    target = Path(path)
    atomic_write(target, report.to_json() + "\n", create_parents=True)
    _logger.info("report_written", path=str(target), failed=report.summary.failed)
    return target


def collect_git_info(git: GitReader) -> GitInfo | None:
    try:
        branch = git.current_branch()
        base = git.detect_base()
    except GitCommandError as exc:
        _logger.info("git_info_unavailable", error=str(exc))
        return None
    return GitInfo(
        branch=branch,
        base_branch=base.branch,
        commit_range=f"{base.merge_base}..HEAD",
    )


def export_map_score(manifest: Mapping[str, Any]) -> int:
    exports = manifest.get("exports")
    if not exports:
        return 0
    if not isinstance(exports, Mapping | list):
        return 50
    rendered = json.dumps(exports)
    return sum(
        points
        for condition, points in (("types", 40), ("import", 30), ("require", 30))
        if condition in rendered
    )


def side_effects_score(manifest: Mapping[str, Any]) -> int:
    if "sideEffects" not in manifest:
        return 0
    return 100 if manifest["sideEffects"] is False else 50


def tree_shaking_score(manifest: Mapping[str, Any]) -> int:
    if manifest.get("type") == "module" or manifest.get("exports"):
        return 100
    if manifest.get("module"):
        return 75
    return 25


def score_manifests(manifests: Sequence[Mapping[str, Any]]) -> QualityScore | None:
    """Average each component over all manifests; a missing field contributes zero."""

    if not manifests:
        return None
    export_avg = _rounded_mean([export_map_score(m) for m in manifests])
    side_avg = _rounded_mean([side_effects_score(m) for m in manifests])
    tree_avg = _rounded_mean([tree_shaking_score(m) for m in manifests])
    return QualityScore(
        overall=_rounded_mean([export_avg, side_avg, tree_avg]),
        export_maps=export_avg,
        side_effects=side_avg,
        tree_shaking=tree_avg,
    )


def calculate_quality_score(
    workspace: WorkspaceInspector, package_dirs: Sequence[str]
) -> QualityScore | None:
    manifests = [manifest for _, manifest in workspace.manifests_under(package_dirs)]
    return score_manifests(manifests)


def _rounded_mean(values: Sequence[int]) -> int:
    if not values:
        return 0
    # Half-up rounding, not banker's rounding.
    return int(sum(values) / len(values) + 0.5)


__all__ = [
    "calculate_quality_score",
    "collect_git_info",
    "export_map_score",
    "score_manifests",
    "side_effects_score",
    "tree_shaking_score",
    "write_report",
]
