"""
release-guardrails — change descriptor store.

File: src/release_guardrails/changesets/store.py
Last updated: 2026-10-18

Purpose
- Discover and parse ``.changeset/*.md`` descriptors (YAML frontmatter + markdown summary).

Functional requirements
- ``README.md`` is never a descriptor.
- Frontmatter entries whose value is not ``major``/``minor``/``patch`` are ignored.
- A file that cannot be read or parsed is reported, never silently dropped.
- Creation time comes from the last git commit touching the file, falling back to the
  filesystem timestamp for files not yet committed.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Final

import structlog
import yaml

from release_guardrails.changesets.git import GitCommandError

_FRONTMATTER_DELIMITER: Final[str] = "---"
_EXCLUDED_FILES: Final[frozenset[str]] = frozenset({"README.md"})

TimestampSource = Callable[[Path], datetime | None]


class BumpType(StrEnum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


@dataclass(frozen=True, slots=True)
class Release:
    name: str
    bump_type: BumpType


@dataclass(frozen=True, slots=True)
class ChangeDescriptor:
    """One parsed changeset file."""

    filename: str
    summary: str
    releases: tuple[Release, ...]
    created_at: datetime

    @property
    def packages(self) -> tuple[str, ...]:
        return tuple(release.name for release in self.releases)


class DescriptorParseError(ValueError):
    """Raised when a descriptor file cannot be parsed."""

    def __init__(self, filename: str, reason: str) -> None:
        super().__init__(f"Failed to parse changeset {filename}: {reason}")
        self.filename = filename
        self.reason = reason


@dataclass(frozen=True, slots=True)
class StoreLoadResult:
    descriptors: tuple[ChangeDescriptor, ...]
    errors: tuple[str, ...]


def parse_descriptor(filename: str, content: str, created_at: datetime) -> ChangeDescriptor:
    """Parse descriptor text; raises ``DescriptorParseError`` on malformed frontmatter."""

    frontmatter, body = _split_frontmatter(filename, content)
    releases: list[Release] = []
    for package_name, bump in frontmatter.items():
        if not isinstance(package_name, str) or not isinstance(bump, str):
            continue
        try:
            bump_type = BumpType(bump)
        except ValueError:
            continue
        releases.append(Release(name=package_name, bump_type=bump_type))
    return ChangeDescriptor(
        filename=filename,
        summary=body.strip(),
        releases=tuple(releases),
        created_at=created_at,
    )


class ChangesetStore:
    """Loads every descriptor under the changeset directory."""

    def __init__(
        self,
        directory: str | Path,
        *,
        timestamp_source: TimestampSource | None = None,
        logger: Any | None = None,
    ) -> None:
        self._directory = Path(directory)
        self._timestamp_source = timestamp_source
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def directory(self) -> Path:
        return self._directory

    def exists(self) -> bool:
        return self._directory.is_dir()

    def descriptor_paths(self) -> list[Path]:
        if not self.exists():
            return []
        return sorted(
            path
            for path in self._directory.iterdir()
            if path.is_file() and path.suffix == ".md" and path.name not in _EXCLUDED_FILES
        )

    def load(self) -> StoreLoadResult:
        descriptors: list[ChangeDescriptor] = []
        errors: list[str] = []
        for path in self.descriptor_paths():
            filename = f"{self._directory.name}/{path.name}"
            try:
                content = path.read_text(encoding="utf-8")
                descriptors.append(parse_descriptor(filename, content, self._created_at(path)))
            except DescriptorParseError as exc:
                errors.append(str(exc))
            except (OSError, UnicodeDecodeError) as exc:
                errors.append(str(DescriptorParseError(filename, str(exc))))
        self._logger.debug(
            "changeset_store_loaded", descriptors=len(descriptors), errors=len(errors)
        )
        return StoreLoadResult(descriptors=tuple(descriptors), errors=tuple(errors))

    def _created_at(self, path: Path) -> datetime:
        if self._timestamp_source is not None:
            try:
                committed = self._timestamp_source(path)
            except (GitCommandError, ValueError) as exc:
                self._logger.debug("changeset_git_time_unavailable", path=str(path), error=str(exc))
                committed = None
            if committed is not None:
                return committed
        stat = path.stat()
        created = getattr(stat, "st_birthtime", None)
        return datetime.fromtimestamp(created if created is not None else stat.st_mtime, tz=UTC)


def _split_frontmatter(filename: str, content: str) -> tuple[dict[object, object], str]:
    text = content.lstrip("\ufeff")
    lines = text.splitlines()
    if not lines or lines[0].strip() != _FRONTMATTER_DELIMITER:
        return {}, text

    for index in range(1, len(lines)):
        if lines[index].strip() == _FRONTMATTER_DELIMITER:
            raw = "\n".join(lines[1:index])
            body = "\n".join(lines[index + 1 :])
            break
    else:
        raise DescriptorParseError(filename, "unterminated frontmatter block")

    try:
        data = yaml.safe_load(raw) if raw.strip() else {}
    except yaml.YAMLError as exc:
        raise DescriptorParseError(filename, f"invalid YAML frontmatter: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise DescriptorParseError(filename, "frontmatter must be a mapping")
    return data, body


__all__ = [
    "BumpType",
    "ChangeDescriptor",
    "ChangesetStore",
    "DescriptorParseError",
    "Release",
    "StoreLoadResult",
    "parse_descriptor",
]
