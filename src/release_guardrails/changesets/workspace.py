"""
release-guardrails — workspace and manifest analysis.

File: src/release_guardrails/changesets/workspace.py
Last updated: 2026-10-18

Purpose
- Answer "which packages exist" (now and at a git ref) and "does this path change need a
  changeset".

What should be included in this file
- Workspace discovery from root ``package.json`` ``workspaces`` and ``pnpm-workspace.yaml``.
- Ignorable-path patterns for docs, tests, build output, tool config, CI, and temp files.
- Manifest significance: only consumer-affecting ``package.json`` changes count.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog
import yaml

from release_guardrails.changesets.git import GitReader

PACKAGE_MANIFEST: Final[str] = "package.json"
PNPM_WORKSPACE_FILE: Final[str] = "pnpm-workspace.yaml"

CONSUMER_FIELDS: Final[tuple[str, ...]] = (
    "dependencies",
    "peerDependencies",
    "optionalDependencies",
    "exports",
    "main",
    "module",
    "types",
    "bin",
    "files",
    "publishConfig",
    "engines",
    "type",
)
BUILD_TOOL_PREFIXES: Final[tuple[str, ...]] = (
    "typescript",
    "tsup",
    "esbuild",
    "webpack",
    "rollup",
    "vite",
    "@types/",
)

IGNORABLE_PATTERNS: Final[tuple[re.Pattern[str], ...]] = tuple(
    re.compile(pattern, flags)
    for pattern, flags in (
        # docs
        (r"/README\.md$", re.IGNORECASE),
        (r"/CHANGELOG\.md$", re.IGNORECASE),
        (r"/CONTRIBUTING\.md$", re.IGNORECASE),
        (r"/docs/", 0),
        (r"/LICENSE$", re.IGNORECASE),
        # tests
        (r"\.test\.[jt]sx?$", 0),
        (r"\.spec\.[jt]sx?$", 0),
        (r"/__tests__/", 0),
        (r"/__fixtures__/", 0),
        (r"/__mocks__/", 0),
        (r"\.test-d\.ts$", 0),
        (r"/test/", 0),
        (r"/tests/", 0),
        (r"\.e2e\.[jt]sx?$", 0),
        (r"\.integration\.[jt]sx?$", 0),
        # build output
        (r"/dist/", 0),
        (r"/build/", 0),
        (r"/coverage/", 0),
        (r"/\.turbo/", 0),
        (r"/node_modules/", 0),
        (r"/\.next/", 0),
        (r"/out/", 0),
        # tool config
        (r"/tsconfig\.json$", 0),
        (r"/tsconfig\..*\.json$", 0),
        (r"/\.eslintrc(\.json|\.js)?$", 0),
        (r"/eslint\.config\.[jt]s$", 0),
        (r"/\.prettierrc(\.json)?$", 0),
        (r"/prettier\.config\.[jt]s$", 0),
        (r"/jest\.config\.[jt]s$", 0),
        (r"/vitest\.config\.[jt]s$", 0),
        (r"/vite\.config\.[jt]s$", 0),
        (r"/next\.config\.[jt]s$", 0),
        (r"/turbo\.jsonc?$", 0),
        (r"/\.env\.(example|sample|template)$", 0),
        (r"/\.nvmrc$", 0),
        (r"/\.node-version$", 0),
        (r"/\.npmrc$", 0),
        (r"/\.yarnrc$", 0),
        (r"/\.pnpmfile\.cjs$", 0),
        (r"/\.vscode/", 0),
        (r"/\.idea/", 0),
        (r"/\.(git|npm|prettier|eslint|docker)ignore$", 0),
        (r"/\.gitattributes$", 0),
        (r"/\.editorconfig$", 0),
        # ci
        (r"/\.github/", 0),
        (r"/\.gitlab-ci\.yml$", 0),
        (r"/\.circleci/", 0),
        (r"/\.travis\.yml$", 0),
        (r"/Dockerfile$", 0),
        (r"/docker-compose\.yml$", 0),
        # temp
        (r"\.tmp$", 0),
        (r"\.bak$", 0),
        (r"~$", 0),
        (r"\.swp$", 0),
        (r"\.DS_Store$", 0),
        (r"Thumbs\.db$", 0),
    )
)


@dataclass(frozen=True, slots=True)
class WorkspacePackage:
    name: str
    path: str
    private: bool = False


def is_ignorable_path(path: str) -> bool:
    return any(pattern.search(path) for pattern in IGNORABLE_PATTERNS)


def is_under(path: str, directories: Iterable[str]) -> bool:
    return any(path.startswith(f"{directory.rstrip('/')}/") for directory in directories)


def manifest_change_is_significant(old_text: str | None, new_text: str | None) -> bool:
    """Decide whether a ``package.json`` edit affects consumers of the package.

    Missing or unparseable versions are treated as significant.
    """

    if old_text is None or new_text is None:
        return True
    try:
        old = json.loads(old_text)
        new = json.loads(new_text)
    except json.JSONDecodeError:
        return True
    if not isinstance(old, dict) or not isinstance(new, dict):
        return True

    for field in CONSUMER_FIELDS:
        if old.get(field) != new.get(field):
            return True

    old_dev = old.get("devDependencies") or {}
    new_dev = new.get("devDependencies") or {}
    if not isinstance(old_dev, dict) or not isinstance(new_dev, dict):
        return old_dev != new_dev
    for name in set(old_dev) | set(new_dev):
        if _is_build_tool(name) and old_dev.get(name) != new_dev.get(name):
            return True
    return False


class WorkspaceInspector:
    """Workspace package discovery for the working tree and for git refs."""

    def __init__(
        self,
        root: str | Path,
        git: GitReader,
        *,
        logger: Any | None = None,
    ) -> None:
        self._root = Path(root)
        self._git = git
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def root(self) -> Path:
        return self._root

    def workspace_patterns(self) -> list[str]:
        return _patterns_from_sources(
            self._read_text(PACKAGE_MANIFEST), self._read_text(PNPM_WORKSPACE_FILE)
        )

    def packages(self) -> list[WorkspacePackage]:
        found: dict[str, WorkspacePackage] = {}
        for directory in self._expand_patterns(self.workspace_patterns()):
            manifest = _parse_manifest(self._read_text(f"{directory}/{PACKAGE_MANIFEST}"))
            name = manifest.get("name") if manifest is not None else None
            if isinstance(name, str) and name:
                found.setdefault(
                    name,
                    WorkspacePackage(
                        name=name, path=directory, private=manifest.get("private") is True
                    ),
                )
        return list(found.values())

    def package_names(self) -> set[str]:
        return {package.name for package in self.packages()}

    def package_names_at(self, ref: str) -> set[str]:
        patterns = _patterns_from_sources(
            self._git.show_file(ref, PACKAGE_MANIFEST),
            self._git.show_file(ref, PNPM_WORKSPACE_FILE),
        )
        names: set[str] = set()
        for pattern in patterns:
            if pattern.endswith("/*"):
                base = pattern[:-2]
                directories = [f"{base}/{entry}" for entry in self._git.list_tree(ref, base)]
            else:
                directories = [pattern.rstrip("/")]
            for directory in directories:
                manifest = _parse_manifest(
                    self._git.show_file(ref, f"{directory}/{PACKAGE_MANIFEST}")
                )
                name = manifest.get("name") if manifest is not None else None
                if isinstance(name, str) and name:
                    names.add(name)
        return names

    def manifest_is_significant(self, path: str, base_ref: str) -> bool:
        return manifest_change_is_significant(
            self._git.show_file(base_ref, path), self._read_text(path)
        )

    def read_manifest(self, path: str) -> dict[str, Any] | None:
        return _parse_manifest(self._read_text(path))

    def manifests_under(self, directories: Sequence[str]) -> list[tuple[str, dict[str, Any]]]:
        """``(relative path, parsed manifest)`` for every ``<dir>/*/package.json``."""

        manifests: list[tuple[str, dict[str, Any]]] = []
        for directory in directories:
            base = self._root / directory
            if not base.is_dir():
                continue
            for child in sorted(base.iterdir()):
                relative = f"{directory}/{child.name}/{PACKAGE_MANIFEST}"
                manifest = self.read_manifest(relative) if child.is_dir() else None
                if manifest is not None:
                    manifests.append((relative, manifest))
        return manifests

    def _expand_patterns(self, patterns: Sequence[str]) -> list[str]:
        directories: list[str] = []
        for pattern in patterns:
            if pattern.endswith("/*"):
                base = pattern[:-2]
                base_path = self._root / base
                if base_path.is_dir():
                    directories.extend(
                        f"{base}/{child.name}"
                        for child in sorted(base_path.iterdir())
                        if child.is_dir()
                    )
            else:
                directories.append(pattern.rstrip("/"))
        return directories

    def _read_text(self, relative: str) -> str | None:
        try:
            return (self._root / relative).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None


def _patterns_from_sources(manifest_text: str | None, pnpm_text: str | None) -> list[str]:
    patterns: list[str] = []
    manifest = _parse_manifest(manifest_text)
    if manifest is not None:
        workspaces = manifest.get("workspaces")
        if isinstance(workspaces, Mapping):
            workspaces = workspaces.get("packages")
        if isinstance(workspaces, list):
            patterns.extend(item for item in workspaces if isinstance(item, str))

    if pnpm_text is not None:
        try:
            document = yaml.safe_load(pnpm_text)
        except yaml.YAMLError:
            document = None
        if isinstance(document, Mapping) and isinstance(document.get("packages"), list):
            patterns.extend(item for item in document["packages"] if isinstance(item, str))

    return [
        pattern
        for pattern in dict.fromkeys(patterns)
        if pattern and not pattern.startswith("!")
    ]


def _parse_manifest(text: str | None) -> dict[str, Any] | None:
    if text is None:
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _is_build_tool(name: str) -> bool:
    return any(name == prefix or name.startswith(prefix) for prefix in BUILD_TOOL_PREFIXES)


__all__ = [
    "BUILD_TOOL_PREFIXES",
    "CONSUMER_FIELDS",
    "IGNORABLE_PATTERNS",
    "WorkspaceInspector",
    "WorkspacePackage",
    "is_ignorable_path",
    "is_under",
    "manifest_change_is_significant",
]
