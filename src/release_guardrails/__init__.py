"""
release-guardrails — package root

File: src/release_guardrails/__init__.py
Last updated: 2026-10-18

Purpose
- Pre-release guardrail pipeline: tiered checks, result caching, changeset duplicate
  detection, and a baseline-aware vulnerability audit, folded into one release verdict.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "2.0.0"

__all__ = ["__version__"]
