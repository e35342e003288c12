"""Guardrail catalog, runner, cache, orchestrator, and report helpers."""

from release_guardrails.guardrails.cache import (
    Cache,
    CacheEntry,
    CacheKey,
    ContentHasher,
    FileCache,
    MemoryCache,
)
from release_guardrails.guardrails.catalog import (
    BuiltinHandler,
    BuiltinInvocation,
    CatalogSettings,
    GuardrailCheck,
    ScriptInvocation,
    build_catalog,
    resolve_script,
)
from release_guardrails.guardrails.commits import ConventionalCommitsCheck
from release_guardrails.guardrails.fixes import FixOutcome, apply_fixes
from release_guardrails.guardrails.orchestrator import Orchestrator
from release_guardrails.guardrails.report import (
    calculate_quality_score,
    collect_git_info,
    write_report,
)
from release_guardrails.guardrails.runner import CheckRunner, downgrade

__all__ = [
    "BuiltinHandler",
    "BuiltinInvocation",
    "Cache",
    "CacheEntry",
    "CacheKey",
    "CatalogSettings",
    "CheckRunner",
    "ContentHasher",
    "ConventionalCommitsCheck",
    "FileCache",
    "FixOutcome",
    "GuardrailCheck",
    "MemoryCache",
    "Orchestrator",
    "ScriptInvocation",
    "apply_fixes",
    "build_catalog",
    "calculate_quality_score",
    "collect_git_info",
    "downgrade",
    "resolve_script",
    "write_report",
]
