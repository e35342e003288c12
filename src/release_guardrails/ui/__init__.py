"""UI package exports for the CLI router and console rendering."""

from release_guardrails.ui.cli import build_parser, run_cli
from release_guardrails.ui.render import ReportRenderer, create_renderer

__all__ = [
    "ReportRenderer",
    "build_parser",
    "create_renderer",
    "run_cli",
]
