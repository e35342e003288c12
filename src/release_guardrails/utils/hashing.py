"""
release-guardrails — hashing utilities

File: src/release_guardrails/utils/hashing.py
Last updated: 2026-10-18

Purpose
- Deterministic SHA-256 digests for cache keys: raw bytes, files, and JSON-like payloads.

Non-functional requirements
- Standard library only; identical inputs hash identically across platforms.
"""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path

PathLike = str | os.PathLike[str]

_FILE_READ_CHUNK_BYTES = 1024 * 1024

__all__ = [
    "sha256_bytes",
    "sha256_file",
    "sha256_json",
]


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_file(path: PathLike, *, chunk_size: int = _FILE_READ_CHUNK_BYTES) -> str:
    """Return SHA-256 hex digest for a file read in chunks."""

    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    digest = hashlib.sha256()
    with Path(path).open("rb") as file_handle:
        while chunk := file_handle.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def sha256_json(payload: object) -> str:
    """Hash the canonical JSON rendering of ``payload`` (sorted keys, compact separators)."""

    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return sha256_bytes(canonical.encode("utf-8"))
