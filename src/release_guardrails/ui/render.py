"""Console rendering for guardrail reports.

File: src/release_guardrails/ui/render.py
Last updated: 2026-10-18

Purpose
- Render a ``GuardrailReport`` as a colorized, human-readable summary using ``rich``.
- Respect the NO_COLOR environment variable and the --no-color CLI flag.

What should be included in this file
- ``ReportRenderer`` with methods for the report, single check results, fix outcomes, and
  CI policy rejections.
- Factory function to create a renderer with appropriate settings.

Functional requirements
- Every failed or warned check shows why: its message plus its details.
- Plain output (no ANSI escapes) whenever color is disabled or stdout is not a terminal.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, TextIO

from rich.console import Console
from rich.style import Style
from rich.text import Text

from release_guardrails.domain.models import CheckResult, CheckStatus, GuardrailReport

if TYPE_CHECKING:
    from release_guardrails.guardrails.fixes import FixOutcome

_S_PASS = Style(color="green", bold=True)
_S_WARN = Style(color="yellow", bold=True)
_S_FAIL = Style(color="red", bold=True)
_S_SKIP = Style(color="bright_black")
_S_HEADER = Style(color="cyan", bold=True)
_S_DIM = Style(dim=True)

_STATUS_STYLES: Mapping[CheckStatus, Style] = {
    CheckStatus.PASS: _S_PASS,
    CheckStatus.WARN: _S_WARN,
    CheckStatus.FAIL: _S_FAIL,
    CheckStatus.SKIP: _S_SKIP,
}


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class ReportRenderer:
    """Human-readable guardrail output on top of a ``rich`` console."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        target = stream if stream is not None else sys.stdout
        self.verbose = verbose
        self._color = _color_allowed(no_color, target)
        self._console = Console(
            file=target,
            no_color=not self._color,
            color_system="auto" if self._color else None,
            highlight=False,
            soft_wrap=True,
        )

    @property
    def color_enabled(self) -> bool:
        return self._color

    def heading(self, text: str) -> None:
        self._console.print(Text(text, style=_S_HEADER))

    def text(self, line: str) -> None:
        self._console.print(Text(line))

    def result(self, result: CheckResult) -> None:
        line = Text("  ")
        line.append(f"{result.status.value.upper():<4}", style=_STATUS_STYLES[result.status])
        line.append(f"  {result.name}")
        if result.is_diagnostic:
            line.append(" [diagnostic]", style=_S_DIM)
        line.append(f" ({result.duration_ms}ms)", style=_S_DIM)
        line.append(f": {result.message}")
        self._console.print(line)

        show_details = result.status in (CheckStatus.FAIL, CheckStatus.WARN) or self.verbose
        if show_details:
            for detail in result.details:
                self._console.print(Text(f"        {detail}", style=_S_DIM))
        if self.verbose:
            for task in result.sub_tasks:
                self._console.print(
                    Text(
                        f"        - {task.name}: {task.status.value} ({task.duration_ms}ms)",
                        style=_S_DIM,
                    )
                )

    def report(self, report: GuardrailReport) -> None:
        title = "Pre-release guardrails"
        if report.from_cache:
            title = f"{title} (cached results)"
        self.heading(title)
        if report.git_info is not None:
            info = report.git_info
            self.text(f"  Branch: {info.branch} (base {info.base_branch}, {info.commit_range})")
        self._console.print()

        for item in report.results:
            self.result(item)

        summary = report.summary
        self._console.print()
        counts = Text("  ")
        counts.append(f"{summary.passed} passed", style=_S_PASS)
        counts.append(", ")
        counts.append(f"{summary.warned} warned", style=_S_WARN)
        counts.append(", ")
        counts.append(f"{summary.failed} failed", style=_S_FAIL)
        counts.append(", ")
        counts.append(f"{summary.skipped} skipped", style=_S_SKIP)
        counts.append(f" in {summary.total_duration_ms}ms", style=_S_DIM)
        self._console.print(counts)

        if report.quality_score is not None:
            score = report.quality_score
            self.text(
                f"  Package quality: {score.overall}/100 (export maps {score.export_maps}, "
                f"sideEffects {score.side_effects}, tree shaking {score.tree_shaking})"
            )

        if report.blocked:
            names = ", ".join(item.name for item in report.failed_results)
            self._console.print(Text(f"\nRelease blocked: {names}", style=_S_FAIL))
        else:
            self._console.print(Text("\nAll guardrails passed", style=_S_PASS))

    def fixes(self, outcomes: Sequence[FixOutcome]) -> None:
        self._console.print()
        if not outcomes:
            self.text("No automatic fixes available")
            return
        self.heading("Automatic fixes")
        for outcome in outcomes:
            style = _S_PASS if outcome.succeeded else _S_WARN
            line = Text("  ")
            line.append("OK  " if outcome.succeeded else "SKIP", style=style)
            line.append(f"  {outcome.description}: {outcome.message}")
            self._console.print(line)
        if any(outcome.succeeded for outcome in outcomes):
            self.text("Re-run guardrails to verify fixes")

    def error(self, message: str, hints: Sequence[str] = ()) -> None:
        self._console.print(Text(message, style=_S_FAIL))
        for hint in hints:
            self._console.print(Text(f"  {hint}", style=_S_DIM))


def create_renderer(
    *, no_color: bool = False, verbose: bool = False, stream: TextIO | None = None
) -> ReportRenderer:
    """Create a report renderer with the given settings."""

    return ReportRenderer(no_color=no_color, verbose=verbose, stream=stream)


__all__ = ["ReportRenderer", "create_renderer"]
