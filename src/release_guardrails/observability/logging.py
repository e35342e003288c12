"""Structured logging setup: structlog events rendered to stderr as text or JSON lines."""

from __future__ import annotations

import logging
import sys
from typing import Final, TextIO

import structlog

_DEFAULT_LOGGER_NAME: Final[str] = "release_guardrails"
_LOG_FORMATS: Final[tuple[str, ...]] = ("json", "text")


def configure_logging(
    level: int | str = "WARNING",
    log_format: str = "text",
    *,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Route structlog events through stdlib logging onto ``stream`` (stderr by default).

    stdout stays reserved for the report so ``--json`` output remains machine readable.
    """

    if log_format not in _LOG_FORMATS:
        raise ValueError(f"log_format must be one of {', '.join(_LOG_FORMATS)}")
    resolved_level = _resolve_level(level)

    shared_processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    renderer: structlog.typing.Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    logger = logging.getLogger(_DEFAULT_LOGGER_NAME)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.addHandler(handler)
    logger.setLevel(resolved_level)
    logger.propagate = False
    return logger


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level {level!r}")
    return resolved


__all__ = ["configure_logging"]
