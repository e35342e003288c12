"""Change descriptor (changeset) discovery, duplicate detection, and validation."""

from release_guardrails.changesets.duplicates import (
    DuplicateDetector,
    DuplicateReport,
    DuplicateSettings,
    SimilarPair,
    levenshtein,
    similarity,
)
from release_guardrails.changesets.git import BaseRef, GitCommandError, GitReader
from release_guardrails.changesets.store import (
    BumpType,
    ChangeDescriptor,
    ChangesetStore,
    DescriptorParseError,
    Release,
    parse_descriptor,
)
from release_guardrails.changesets.validator import (
    CHANGESET_VALIDATION_NAME,
    ChangesetSettings,
    ChangesetValidator,
    ValidationResult,
    fold_results,
)
from release_guardrails.changesets.workspace import (
    WorkspaceInspector,
    WorkspacePackage,
    is_ignorable_path,
    manifest_change_is_significant,
)

__all__ = [
    "CHANGESET_VALIDATION_NAME",
    "BaseRef",
    "BumpType",
    "ChangeDescriptor",
    "ChangesetSettings",
    "ChangesetStore",
    "ChangesetValidator",
    "DescriptorParseError",
    "DuplicateDetector",
    "DuplicateReport",
    "DuplicateSettings",
    "GitCommandError",
    "GitReader",
    "Release",
    "SimilarPair",
    "ValidationResult",
    "WorkspaceInspector",
    "WorkspacePackage",
    "fold_results",
    "is_ignorable_path",
    "levenshtein",
    "manifest_change_is_significant",
    "parse_descriptor",
    "similarity",
]
