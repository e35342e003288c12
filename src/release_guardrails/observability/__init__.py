"""Logging configuration for guardrail runs."""

from release_guardrails.observability.logging import configure_logging

__all__ = ["configure_logging"]
