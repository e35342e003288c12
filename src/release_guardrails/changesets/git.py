"""Read-only git queries used by changeset validation and report git info."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

FALLBACK_BASE: Final[str] = "HEAD~1"
DEFAULT_BASE_BRANCHES: Final[tuple[str, ...]] = ("origin/main", "origin/master", "main", "master")


class GitCommandError(RuntimeError):
    """Raised when a git subprocess command exits non-zero or cannot start."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class BaseRef:
    """Comparison point for "what changed on this branch"."""

    branch: str
    merge_base: str

    @property
    def is_fallback(self) -> bool:
        return self.branch == FALLBACK_BASE


class GitReader:
    """Synchronous git wrapper rooted at a repository working tree."""

    def __init__(
        self,
        repo_path: str | Path,
        *,
        base_branches: Sequence[str] = DEFAULT_BASE_BRANCHES,
        environ: Mapping[str, str] | None = None,
        logger: Any | None = None,
    ) -> None:
        self.repo_path = Path(repo_path)
        self._base_branches = tuple(base_branches)
        self._environ = environ
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def current_branch(self) -> str:
        return self._run_git(("rev-parse", "--abbrev-ref", "HEAD")).strip()

    def detect_base(self) -> BaseRef:
        """Resolve the base branch and its merge base with ``HEAD``.

        ``GITHUB_BASE_REF`` wins when set; otherwise the first configured candidate that
        exists. Falls back to ``HEAD~1`` when nothing resolves.
        """

        env = os.environ if self._environ is None else self._environ
        candidates: list[str] = []
        github_base = env.get("GITHUB_BASE_REF", "").strip()
        if github_base:
            candidates.append(f"origin/{github_base}")
        candidates.extend(self._base_branches)

        for candidate in candidates:
            if not self._ref_exists(candidate):
                continue
            try:
                merge_base = self._run_git(("merge-base", "HEAD", candidate)).strip()
            except GitCommandError:
                continue
            if merge_base:
                return BaseRef(branch=candidate, merge_base=merge_base)

        self._logger.warning("git_base_branch_fallback", fallback=FALLBACK_BASE)
        return BaseRef(branch=FALLBACK_BASE, merge_base=FALLBACK_BASE)

    def changed_files(self, merge_base: str) -> list[str]:
        """Union of committed, staged, unstaged, and untracked paths (first-seen order)."""

        sources: tuple[tuple[str, ...], ...] = (
            ("diff", "--name-only", f"{merge_base}..HEAD"),
            ("diff", "--cached", "--name-only"),
            ("diff", "--name-only"),
            ("ls-files", "--others", "--exclude-standard"),
        )
        seen: dict[str, None] = {}
        for args in sources:
            try:
                output = self._run_git(args)
            except GitCommandError as exc:
                self._logger.debug(
                    "git_changed_files_source_failed", args=list(args), error=str(exc)
                )
                continue
            for line in output.splitlines():
                path = line.strip()
                if path:
                    seen.setdefault(path, None)
        return list(seen)

    def show_file(self, ref: str, path: str) -> str | None:
        """Return file content at ``ref``, or ``None`` when it does not exist there."""

        try:
            return self._run_git(("show", f"{ref}:{path}"))
        except GitCommandError:
            return None

    def list_tree(self, ref: str, directory: str) -> list[str]:
        try:
            output = self._run_git(("ls-tree", "--name-only", f"{ref}:{directory}"))
        except GitCommandError:
            return []
        return [line.strip() for line in output.splitlines() if line.strip()]

    def last_commit_time(self, path: str | Path) -> datetime | None:
        output = self._run_git(("log", "-1", "--format=%ct", "--", str(path))).strip()
        if not output:
            return None
        return datetime.fromtimestamp(int(output), tz=UTC)

    def commit_subjects(self, revision_range: str) -> list[str]:
        output = self._run_git(("log", "--format=%s", revision_range))
        return [line.strip() for line in output.splitlines() if line.strip()]

    def _ref_exists(self, ref: str) -> bool:
        try:
            self._run_git(("rev-parse", "--verify", "--quiet", ref))
        except GitCommandError:
            return False
        return True

    def _run_git(self, args: Sequence[str]) -> str:
        command = ("git", *args)
        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"
        try:
            completed = subprocess.run(
                command,
                cwd=self.repo_path,
                env=env,
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            raise GitCommandError(
                command=command, returncode=-1, stdout="", stderr=str(exc)
            ) from exc

        if completed.returncode != 0:
            raise GitCommandError(
                command=command,
                returncode=completed.returncode,
                stdout=completed.stdout,
                stderr=completed.stderr,
            )
        return completed.stdout


__all__ = [
    "DEFAULT_BASE_BRANCHES",
    "FALLBACK_BASE",
    "BaseRef",
    "GitCommandError",
    "GitReader",
]
