"""
release-guardrails — filesystem utilities

File: src/release_guardrails/utils/fs.py
Last updated: 2026-10-18

Purpose
- Atomic replacement of persisted state (cache, baseline, report) and tolerant JSON reads.

Functional requirements
- Atomic writes use a temp file in the destination directory and replace in a single step.
- Readers never observe a partially written file.

Non-functional requirements
- Standard library only and cross-platform behavior where feasible.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "atomic_write_json",
    "read_json_object",
]


def atomic_write(
    path: PathLike,
    data: bytes | str,
    *,
    encoding: str = "utf-8",
    create_parents: bool = False,
) -> None:
    """
    Atomically write ``data`` to ``path``.

    The temp file lives next to the target (``.<name>.*.tmp``) so ``os.replace`` never
    crosses filesystems. Concurrent readers see either the old or the new content.
    """

    target = Path(path)
    if create_parents:
        target.parent.mkdir(parents=True, exist_ok=True)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)
    payload = data if isinstance(data, bytes) else data.encode(encoding)

    try:
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(temp_path, target)
        _fsync_directory(target_parent)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def atomic_write_json(path: PathLike, payload: object, *, create_parents: bool = False) -> None:
    """Serialize ``payload`` as indented JSON and write it atomically."""

    text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    atomic_write(path, text, create_parents=create_parents)


def read_json_object(path: PathLike) -> dict[str, Any]:
    """Read a JSON file whose root must be an object."""

    with Path(path).open("r", encoding="utf-8") as handle:
        parsed = json.load(handle)
    if not isinstance(parsed, dict):
        raise ValueError(f"{path}: JSON root must be an object")
    return parsed


def _fsync_directory(path: Path) -> None:
    # Directory fsync is unsupported on some platforms/filesystems.
    if os.name == "nt":
        return

    flags = os.O_RDONLY
    if hasattr(os, "O_DIRECTORY"):
        flags |= os.O_DIRECTORY

    try:
        dir_fd = os.open(path, flags)
    except OSError:
        return

    try:
        os.fsync(dir_fd)
    except OSError:
        return
    finally:
        os.close(dir_fd)
