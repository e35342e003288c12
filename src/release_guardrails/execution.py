"""
release-guardrails — command execution

File: src/release_guardrails/execution.py
Last updated: 2026-10-18

Purpose
- Typed, shell-free subprocess invocation used by external checks, the audit adapter,
  and auto-remediation.

What should be included in this file
- ``CommandSpec`` (argv tuple, cwd, env overlay, timeout) and ``CommandResult``.
- ``CommandExecutor`` protocol so tests can substitute deterministic fakes.
- ``LocalSubprocessExecutor`` built on ``asyncio.create_subprocess_exec``.

Functional requirements
- A timeout kills the child process and is reported as ``timed_out`` (never hangs).
- A process that cannot start is reported through ``error``, not raised.
- Oversized output is capped by keeping its head and tail.
"""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass, field
from typing import NoReturn, Protocol, runtime_checkable

_DEFAULT_MAX_OUTPUT_CHARS = 1_000_000


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """Portable command invocation contract."""

    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None
    inherit_env: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.argv, tuple) or not self.argv:
            _fail("CommandSpec.argv", "must be a non-empty tuple")
        if not all(isinstance(part, str) and part for part in self.argv):
            _fail("CommandSpec.argv", "items must be non-empty strings")
        if self.timeout_seconds is not None and (
            isinstance(self.timeout_seconds, bool) or self.timeout_seconds <= 0
        ):
            _fail("CommandSpec.timeout_seconds", "must be > 0")

    def build_env(self) -> dict[str, str]:
        env = dict(os.environ) if self.inherit_env else {}
        env.update(self.env)
        return env


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Command execution outcome."""

    argv: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    error: str | None = None

    def __post_init__(self) -> None:
        if self.timed_out and self.exit_code is not None:
            _fail("CommandResult.exit_code", "must be None when timed_out is true")
        if self.duration_ms < 0:
            _fail("CommandResult.duration_ms", "must be >= 0")

    @property
    def is_success(self) -> bool:
        return not self.timed_out and self.error is None and self.exit_code == 0

    @property
    def started(self) -> bool:
        """False when the executable could not be launched at all."""

        return self.error is None or self.timed_out


@runtime_checkable
class CommandExecutor(Protocol):
    """Pluggable async command execution interface."""

    async def run(self, spec: CommandSpec) -> CommandResult: ...


class LocalSubprocessExecutor(CommandExecutor):
    """Async local subprocess executor with timeout and output capping."""

    def __init__(self, *, max_output_chars: int | None = _DEFAULT_MAX_OUTPUT_CHARS) -> None:
        if max_output_chars is not None and max_output_chars <= 0:
            _fail("LocalSubprocessExecutor.max_output_chars", "must be > 0")
        self._max_output_chars = max_output_chars

    async def run(self, spec: CommandSpec) -> CommandResult:
        started_ns = time.monotonic_ns()
        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.cwd,
                env=spec.build_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                stdout="",
                stderr="",
                duration_ms=_elapsed_ms(started_ns),
                error=str(exc),
            )

        try:
            stdout_bytes, stderr_bytes = await _communicate_with_timeout(
                process, spec.timeout_seconds
            )
            timed_out = False
            error_text: str | None = None
            exit_code = process.returncode
        except _CommandTimeoutError as exc:
            stdout_bytes = exc.stdout
            stderr_bytes = exc.stderr
            timed_out = True
            error_text = f"command timed out after {spec.timeout_seconds or 0.0:.3f}s"
            exit_code = None

        return CommandResult(
            argv=spec.argv,
            exit_code=exit_code,
            stdout=cap_output(_normalize_output_text(stdout_bytes), self._max_output_chars),
            stderr=cap_output(_normalize_output_text(stderr_bytes), self._max_output_chars),
            duration_ms=_elapsed_ms(started_ns),
            timed_out=timed_out,
            error=error_text,
        )


def cap_output(text: str, max_chars: int | None) -> str:
    """Keep the head and tail of ``text`` when it exceeds ``max_chars``."""

    if max_chars is None or len(text) <= max_chars:
        return text
    head = max_chars // 2
    tail = max_chars - head
    omitted = len(text) - max_chars
    return f"{text[:head]}\n...[truncated {omitted} chars]...\n{text[-tail:]}"


class _CommandTimeoutError(Exception):
    def __init__(self, stdout: bytes, stderr: bytes) -> None:
        super().__init__("command timed out")
        self.stdout = stdout
        self.stderr = stderr


async def _communicate_with_timeout(
    process: asyncio.subprocess.Process,
    timeout_seconds: float | None,
) -> tuple[bytes, bytes]:
    try:
        if timeout_seconds is None:
            return await process.communicate()
        return await asyncio.wait_for(process.communicate(), timeout=timeout_seconds)
    except TimeoutError as exc:
        with suppress(ProcessLookupError):
            process.kill()
        stdout_bytes, stderr_bytes = await process.communicate()
        raise _CommandTimeoutError(stdout_bytes, stderr_bytes) from exc
    except asyncio.CancelledError:
        with suppress(ProcessLookupError):
            process.kill()
        await process.communicate()
        raise


def _elapsed_ms(started_ns: int) -> int:
    delta_ns = time.monotonic_ns() - started_ns
    if delta_ns < 0:
        return 0
    return delta_ns // 1_000_000


def _normalize_output_text(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "LocalSubprocessExecutor",
    "cap_output",
]
