"""Persisted vulnerability baseline: the accepted per-severity counts at a point in time."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from release_guardrails.audit.parsers import VulnerabilityCounts
from release_guardrails.domain.models import format_timestamp, parse_timestamp, utc_now
from release_guardrails.utils.fs import atomic_write_json, read_json_object


@dataclass(frozen=True, slots=True)
class VulnerabilityBaseline:
    timestamp: datetime
    counts: VulnerabilityCounts

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "vulnerabilities": self.counts.to_dict(),
        }


class BaselineStore:
    """Loads and atomically saves the baseline file."""

    def __init__(self, path: str | Path, *, logger: Any | None = None) -> None:
        self._path = Path(path)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> VulnerabilityBaseline | None:
        """Return the baseline, or ``None`` when absent or unreadable."""

        if not self._path.exists():
            return None
        try:
            payload = read_json_object(self._path)
            raw_counts = payload.get("vulnerabilities")
            if not isinstance(raw_counts, dict):
                raise ValueError("baseline 'vulnerabilities' must be an object")
            baseline = VulnerabilityBaseline(
                timestamp=parse_timestamp(payload.get("timestamp")),
                counts=VulnerabilityCounts.from_dict(raw_counts),
            )
        except (OSError, ValueError) as exc:
            self._logger.warning("audit_baseline_unreadable", path=str(self._path), error=str(exc))
            return None
        return baseline

    def save(
        self, counts: VulnerabilityCounts, *, timestamp: datetime | None = None
    ) -> VulnerabilityBaseline:
        baseline = VulnerabilityBaseline(
            timestamp=timestamp if timestamp is not None else utc_now(),
            counts=counts,
        )
        atomic_write_json(self._path, baseline.to_dict(), create_parents=True)
        self._logger.info("audit_baseline_saved", path=str(self._path), total=counts.total)
        return baseline


__all__ = ["BaselineStore", "VulnerabilityBaseline"]
