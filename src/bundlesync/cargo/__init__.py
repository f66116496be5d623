"""
Cargo manifest model: validation, semantic versions and file diffs.
"""

from .manifest import (
    Author,
    FileRef,
    Manifest,
    ManifestDiff,
    ManifestFile,
    Repo,
    UpdatableCheck,
    ValidatedManifest,
    ValidatedMiniManifest,
    diff_manifest_files,
    manifest_is_updatable,
    validate_manifest,
    validate_mini_manifest,
)
from .version import SemVer

__all__ = [
    "Author",
    "FileRef",
    "Manifest",
    "ManifestDiff",
    "ManifestFile",
    "Repo",
    "SemVer",
    "UpdatableCheck",
    "ValidatedManifest",
    "ValidatedMiniManifest",
    "diff_manifest_files",
    "manifest_is_updatable",
    "validate_manifest",
    "validate_mini_manifest",
]
