"""
release-guardrails — result cache

File: src/release_guardrails/guardrails/cache.py
Last updated: 2026-10-18

Purpose
- Skip a full guardrail run when nothing that influences it has changed since the last
  successful run.

What should be included in this file
- ``ContentHasher``: SHA-256 of the lockfile and of every package manifest directly under
  the configured manifest directories, plus the run-options fingerprint.
- ``CacheEntry`` with its persisted JSON form.
- ``Cache`` protocol with file-backed and in-memory implementations.

Functional requirements
- An entry is valid only when every hash matches and its age is in ``[0, ttl)``.
- A corrupt or unreadable cache file is a miss, never an error.
- The file cache never reads or writes inside CI.

Non-functional requirements
- Writes are atomic (temp file then rename); write failures are logged and ignored.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Final, Protocol, runtime_checkable

import structlog

from release_guardrails.domain.models import (
    CheckResult,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from release_guardrails.domain.options import RunOptions
from release_guardrails.utils.fs import atomic_write_json, read_json_object
from release_guardrails.utils.hashing import sha256_file

NO_LOCKFILE: Final[str] = "no-lockfile"
DEFAULT_TTL_SECONDS: Final[float] = 3600.0

Now = Callable[[], datetime]


@dataclass(frozen=True, slots=True)
class CacheKey:
    lockfile_hash: str
    manifest_hashes: Mapping[str, str] = field(default_factory=dict)
    options_fingerprint: str = ""

    def matches(self, other: CacheKey) -> bool:
        return (
            self.lockfile_hash == other.lockfile_hash
            and dict(self.manifest_hashes) == dict(other.manifest_hashes)
            and self.options_fingerprint == other.options_fingerprint
        )


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: CacheKey
    results: tuple[CheckResult, ...]
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "lockfileHash": self.key.lockfile_hash,
            "manifestHashes": dict(sorted(self.key.manifest_hashes.items())),
            "optionsFingerprint": self.key.options_fingerprint,
            "results": [result.to_dict() for result in self.results],
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CacheEntry:
        lockfile_hash = data.get("lockfileHash")
        manifest_hashes = data.get("manifestHashes", {})
        fingerprint = data.get("optionsFingerprint", "")
        raw_results = data.get("results")
        if not isinstance(lockfile_hash, str):
            raise ValueError("cache.lockfileHash: expected string")
        if not isinstance(manifest_hashes, Mapping) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in manifest_hashes.items()
        ):
            raise ValueError("cache.manifestHashes: expected object of strings")
        if not isinstance(fingerprint, str):
            raise ValueError("cache.optionsFingerprint: expected string")
        if not isinstance(raw_results, list):
            raise ValueError("cache.results: expected list")
        results: list[CheckResult] = []
        for item in raw_results:
            if not isinstance(item, Mapping):
                raise ValueError("cache.results[]: expected object")
            results.append(CheckResult.from_dict(item))
        return cls(
            key=CacheKey(
                lockfile_hash=lockfile_hash,
                manifest_hashes=dict(manifest_hashes),
                options_fingerprint=fingerprint,
            ),
            results=tuple(results),
            timestamp=parse_timestamp(data.get("timestamp"), "cache.timestamp"),
        )


@runtime_checkable
class Cache(Protocol):
    def get(self, key: CacheKey) -> CacheEntry | None: ...

    def put(self, entry: CacheEntry) -> None: ...


def entry_is_fresh(entry: CacheEntry, now: datetime, ttl_seconds: float) -> bool:
    age = (now - entry.timestamp).total_seconds()
    return 0 <= age < ttl_seconds


class MemoryCache(Cache):
    """Single-slot in-process cache with the same validity rules as ``FileCache``."""

    def __init__(
        self, *, ttl_seconds: float = DEFAULT_TTL_SECONDS, now: Now | None = None
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._now: Now = now if now is not None else utc_now
        self._entry: CacheEntry | None = None
        self.puts = 0

    def get(self, key: CacheKey) -> CacheEntry | None:
        entry = self._entry
        if entry is None or not entry.key.matches(key):
            return None
        if not entry_is_fresh(entry, self._now(), self._ttl_seconds):
            return None
        return entry

    def put(self, entry: CacheEntry) -> None:
        self._entry = entry
        self.puts += 1


class FileCache(Cache):
    def __init__(
        self,
        path: str | Path,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        ci: bool = False,
        now: Now | None = None,
        logger: Any | None = None,
    ) -> None:
        self._path = Path(path)
        self._ttl_seconds = ttl_seconds
        self._ci = ci
        self._now: Now = now if now is not None else utc_now
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: CacheKey) -> CacheEntry | None:
        if self._ci:
            return None
        try:
            entry = CacheEntry.from_dict(read_json_object(self._path))
        except FileNotFoundError:
            self._logger.debug("cache_miss", reason="missing", path=str(self._path))
            return None
        except (OSError, ValueError) as exc:
            self._logger.info("cache_miss", reason="corrupt", path=str(self._path), error=str(exc))
            return None

        if not entry.key.matches(key):
            self._logger.info("cache_miss", reason="hash_mismatch")
            return None
        if not entry_is_fresh(entry, self._now(), self._ttl_seconds):
            self._logger.info("cache_miss", reason="expired")
            return None
        self._logger.info("cache_hit", path=str(self._path), results=len(entry.results))
        return entry

    def put(self, entry: CacheEntry) -> None:
        if self._ci:
            return
        try:
            atomic_write_json(self._path, entry.to_dict(), create_parents=True)
        except OSError as exc:
            self._logger.warning("cache_write_failed", path=str(self._path), error=str(exc))
            return
        self._logger.info("cache_written", path=str(self._path), results=len(entry.results))


class ContentHasher:
    """Computes the cache key for the workspace rooted at ``root``."""

    def __init__(
        self,
        root: str | Path,
        *,
        lockfile: str = "pnpm-lock.yaml",
        manifest_dirs: Sequence[str] = ("packages", "apps"),
    ) -> None:
        self._root = Path(root)
        self._lockfile = lockfile
        self._manifest_dirs = tuple(manifest_dirs)

    def lockfile_hash(self) -> str:
        path = self._root / self._lockfile
        if not path.is_file():
            return NO_LOCKFILE
        return sha256_file(path)

    def manifest_hashes(self) -> dict[str, str]:
        hashes: dict[str, str] = {}
        for directory in self._manifest_dirs:
            base = self._root / directory
            if not base.is_dir():
                continue
            for manifest in sorted(base.glob("*/package.json")):
                if manifest.is_file():
                    hashes[manifest.relative_to(self._root).as_posix()] = sha256_file(manifest)
        return hashes

    def compute_key(self, options: RunOptions) -> CacheKey:
        return CacheKey(
            lockfile_hash=self.lockfile_hash(),
            manifest_hashes=self.manifest_hashes(),
            options_fingerprint=options.cache_fingerprint(),
        )


__all__ = [
    "DEFAULT_TTL_SECONDS",
    "NO_LOCKFILE",
    "Cache",
    "CacheEntry",
    "CacheKey",
    "ContentHasher",
    "FileCache",
    "MemoryCache",
    "entry_is_fresh",
]
