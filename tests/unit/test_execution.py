"""
release-guardrails — unit tests for command execution

File: tests/unit/test_execution.py
Last updated: 2026-10-18

Purpose
- Validate the local subprocess executor against real short-lived Python child processes.

What this test file should cover
- Exit codes, stdout/stderr capture, and env overlays.
- Timeouts kill the child and surface ``timed_out``.
- Missing executables surface ``error`` instead of raising.
- Output capping keeps head and tail.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from release_guardrails.execution import (
    CommandResult,
    CommandSpec,
    LocalSubprocessExecutor,
    cap_output,
)


def _python(code: str, **kwargs: object) -> CommandSpec:
    return CommandSpec(argv=(sys.executable, "-c", code), **kwargs)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_captures_exit_code_and_streams(tmp_path: Path) -> None:
    executor = LocalSubprocessExecutor()
    code = (
        "import os, sys; print(os.environ['GUARDRAILS_RUN']); "
        "print('oops', file=sys.stderr); sys.exit(3)"
    )

    result = await executor.run(_python(code, cwd=str(tmp_path), env={"GUARDRAILS_RUN": "1"}))

    assert result.exit_code == 3
    assert result.stdout == "1\n"
    assert result.stderr == "oops\n"
    assert not result.is_success
    assert result.started


@pytest.mark.asyncio
async def test_timeout_kills_child() -> None:
    executor = LocalSubprocessExecutor()

    result = await executor.run(_python("import time; time.sleep(30)", timeout_seconds=0.2))

    assert result.timed_out
    assert result.exit_code is None
    assert result.error is not None and "timed out" in result.error
    assert result.started


@pytest.mark.asyncio
async def test_missing_executable_reports_error() -> None:
    executor = LocalSubprocessExecutor()

    result = await executor.run(CommandSpec(argv=("definitely-not-a-real-binary-xyz",)))

    assert not result.started
    assert result.exit_code is None
    assert result.error


@pytest.mark.asyncio
async def test_large_output_is_capped() -> None:
    executor = LocalSubprocessExecutor(max_output_chars=100)

    result = await executor.run(_python("print('x' * 1000)"))

    assert "[truncated" in result.stdout
    assert result.stdout.startswith("x" * 50)


def test_cap_output_passes_short_text_through() -> None:
    assert cap_output("short", 10) == "short"
    assert cap_output("abcdefghij", None) == "abcdefghij"
    assert cap_output("abcdefghij", 4) == "ab\n...[truncated 6 chars]...\nij"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"argv": ()},
        {"argv": ("pnpm", "")},
        {"argv": ("pnpm",), "timeout_seconds": 0},
    ],
)
def test_command_spec_validation(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValueError, match="CommandSpec"):
        CommandSpec(**kwargs)  # type: ignore[arg-type]


def test_timed_out_result_may_not_carry_exit_code() -> None:
    with pytest.raises(ValueError, match="exit_code"):
        CommandResult(argv=("x",), exit_code=1, stdout="", stderr="", duration_ms=0, timed_out=True)
