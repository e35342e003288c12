"""Utility exports for filesystem, hashing, and concurrency helpers."""

from release_guardrails.utils.concurrency import CancellationToken, WorkerPool, run_with_timeout
from release_guardrails.utils.fs import atomic_write, atomic_write_json, read_json_object
from release_guardrails.utils.hashing import sha256_bytes, sha256_file, sha256_json

__all__ = [
    "CancellationToken",
    "WorkerPool",
    "atomic_write",
    "atomic_write_json",
    "read_json_object",
    "run_with_timeout",
    "sha256_bytes",
    "sha256_file",
    "sha256_json",
]
