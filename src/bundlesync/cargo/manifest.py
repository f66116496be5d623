"""
Cargo manifest model.

A cargo manifest (``cargo.json``) describes a downloadable package: its
identity, version, entry point and the files it is made of. This module turns
untrusted JSON into validated dataclasses, compares manifests and computes the
file-level difference between two versions of a cargo.

Validation never raises. Problems are accumulated as human-readable messages
in the ``errors`` list of the returned value, and the manifest is filled in as
far as the input allows.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote, unquote

from bundlesync.constants import (
    ALL_CRATE_VERSIONS,
    DEFAULT_CARGO_NAME,
    DEFAULT_REPO_TYPE,
    INVALIDATION_DEFAULT,
    INVALIDATION_PURGE,
    INVALIDATION_URL_DIFF,
    LATEST_CRATE_VERSION,
    NULL_FIELD,
    NULL_MANIFEST_VERSION,
    UUID_LENGTH,
)
from bundlesync.utils import strip_relative_path

from .version import SemVer

# Characters encodeURIComponent leaves untouched besides alphanumerics
_URL_SAFE = "-_.!~*'()"


@dataclass
class ManifestFile:
    name: str
    bytes: int = 0
    invalidation: str = INVALIDATION_DEFAULT


@dataclass
class Author:
    name: str
    email: str = NULL_FIELD
    url: str = NULL_FIELD


@dataclass
class Repo:
    type: str = DEFAULT_REPO_TYPE
    url: str = NULL_FIELD


@dataclass
class Manifest:
    """A validated cargo manifest."""

    uuid: str = NULL_FIELD
    crate_version: str = LATEST_CRATE_VERSION
    name: str = DEFAULT_CARGO_NAME
    version: str = NULL_MANIFEST_VERSION
    entry: str = ""
    files: List[ManifestFile] = field(default_factory=list)
    invalidation: str = INVALIDATION_DEFAULT
    description: str = NULL_FIELD
    authors: List[Author] = field(default_factory=list)
    crate_logo_url: str = NULL_FIELD
    keywords: List[str] = field(default_factory=list)
    license: str = NULL_FIELD
    repo: Repo = field(default_factory=Repo)
    homepage_url: str = NULL_FIELD

    @property
    def total_bytes(self) -> int:
        return sum(f.bytes for f in self.files)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the ``cargo.json`` wire format."""
        return {
            "uuid": self.uuid,
            "crateVersion": self.crate_version,
            "name": self.name,
            "version": self.version,
            "entry": self.entry,
            "files": [
                {"name": f.name, "bytes": f.bytes, "invalidation": f.invalidation}
                for f in self.files
            ],
            "invalidation": self.invalidation,
            "description": self.description,
            "authors": [
                {"name": a.name, "email": a.email, "url": a.url} for a in self.authors
            ],
            "crateLogoUrl": self.crate_logo_url,
            "keywords": list(self.keywords),
            "license": self.license,
            "repo": {"type": self.repo.type, "url": self.repo.url},
            "homepageUrl": self.homepage_url,
        }

    def to_mini_dict(self) -> Dict[str, str]:
        """Serialize to the ``cargo.mini.json`` wire format."""
        return {"version": self.version}


@dataclass
class ValidatedManifest:
    manifest: Manifest
    errors: List[str]
    semantic_version: SemVer

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class ValidatedMiniManifest:
    version: str
    errors: List[str]
    semantic_version: SemVer

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class FileRef:
    name: str
    bytes: int


@dataclass
class ManifestDiff:
    """Files to fetch and files to remove when moving between two manifests."""

    add: List[FileRef] = field(default_factory=list)
    delete: List[FileRef] = field(default_factory=list)


@dataclass
class UpdatableCheck:
    old_manifest: ValidatedManifest
    new_manifest: ValidatedManifest
    update_available: bool = False


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _or_null(value: Any) -> str:
    return value if isinstance(value, str) and value else NULL_FIELD


def _expect_string(raw: Dict[str, Any], key: str, errors: List[str]) -> bool:
    if isinstance(raw.get(key), str):
        return True
    errors.append(f'{key} should be a string, got "{_type_name(raw.get(key))}"')
    return False


def to_invalidation(value: Any) -> str:
    """Coerce an invalidation strategy, mapping anything unknown to "default"."""
    if value in (INVALIDATION_PURGE, INVALIDATION_URL_DIFF):
        return value
    return INVALIDATION_DEFAULT


def _is_url_safe(token: str) -> bool:
    return quote(unquote(token), safe=_URL_SAFE) == token


def _validate_files(raw_files: Any, errors: List[str]) -> List[ManifestFile]:
    if not isinstance(raw_files, list):
        errors.append(f'files should be an array, got "{_type_name(raw_files)}"')
        return []

    seen = set()
    files: List[ManifestFile] = []
    for i, raw_file in enumerate(raw_files):
        if isinstance(raw_file, str):
            raw_file = {"name": raw_file, "bytes": 0}
        if not isinstance(raw_file, dict):
            errors.append(
                f'file {i} is not an object. Expected an object with a "name" field, got {_type_name(raw_file)}'
            )
            continue
        name = raw_file.get("name")
        invalidation = raw_file.get("invalidation") or INVALIDATION_DEFAULT
        if not isinstance(name, str) or not isinstance(invalidation, str):
            errors.append(
                f"file {i} is not a valid file format, file.name and file.invalidation must be a string"
            )
            continue
        std_name = strip_relative_path(name)
        # Cross-origin files are never cached; duplicates keep the first entry
        if std_name.startswith(("https://", "http://")) or std_name in seen:
            continue
        seen.add(std_name)
        raw_bytes = raw_file.get("bytes", 0)
        if isinstance(raw_bytes, bool) or not isinstance(raw_bytes, (int, float)):
            raw_bytes = 0
        elif isinstance(raw_bytes, float) and not math.isfinite(raw_bytes):
            raw_bytes = 0
        files.append(
            ManifestFile(
                name=std_name,
                bytes=max(int(raw_bytes), 0),
                invalidation=to_invalidation(invalidation),
            )
        )
    return files


def validate_manifest(raw: Any) -> ValidatedManifest:
    """
    Validate an untrusted ``cargo.json`` document.

    Parameters:
        raw (Any): Decoded JSON.

    Returns:
        ValidatedManifest: The manifest with every usable field filled in, the list of
        validation errors (empty when valid) and the parsed semantic version
        (0.0.0 when the version is missing or invalid).
    """
    out = ValidatedManifest(manifest=Manifest(), errors=[], semantic_version=SemVer.null())
    manifest, errors = out.manifest, out.errors
    if not isinstance(raw, dict):
        errors.append(f'expected cargo to be type "object" got "{_type_name(raw)}"')
        return out

    if _expect_string(raw, "uuid", errors):
        uuid = raw["uuid"]
        if len(uuid) != UUID_LENGTH:
            errors.append(
                f"uuid should be {UUID_LENGTH} characters got {len(uuid)} characters"
            )
        elif not _is_url_safe(uuid):
            errors.append("uuid should only contain url safe characters")
    manifest.uuid = _or_null(raw.get("uuid"))

    crate_version = raw.get("crateVersion")
    if not isinstance(crate_version, str) or crate_version not in ALL_CRATE_VERSIONS:
        errors.append(
            f'crate version is invalid, got "{crate_version}", valid={",".join(sorted(ALL_CRATE_VERSIONS))}'
        )
    manifest.crate_version = (
        crate_version if isinstance(crate_version, str) and crate_version else LATEST_CRATE_VERSION
    )

    _expect_string(raw, "name", errors)
    manifest.name = _or_null(raw.get("name"))

    if _expect_string(raw, "version", errors):
        semver = SemVer.from_string(raw["version"])
        if semver is None:
            errors.append(f"{raw['version']} is not a valid semantic version")
        else:
            out.semantic_version = semver
    manifest.version = _or_null(raw.get("version"))

    manifest.files = _validate_files(raw.get("files"), errors)

    entry = ""
    if _expect_string(raw, "entry", errors):
        entry = strip_relative_path(raw["entry"])
    manifest.entry = entry
    if manifest.files and entry not in {f.name for f in manifest.files}:
        errors.append(f"entry must be one of package listed files, got {entry}")

    manifest.invalidation = to_invalidation(raw.get("invalidation"))
    manifest.description = _or_null(raw.get("description"))
    raw_authors = raw.get("authors") if isinstance(raw.get("authors"), list) else []
    manifest.authors = [
        Author(name=a["name"], email=_or_null(a.get("email")), url=_or_null(a.get("url")))
        for a in raw_authors
        if isinstance(a, dict) and isinstance(a.get("name"), str)
    ]
    manifest.crate_logo_url = strip_relative_path(_or_null(raw.get("crateLogoUrl")))
    raw_keywords = raw.get("keywords") if isinstance(raw.get("keywords"), list) else []
    manifest.keywords = [k for k in raw_keywords if isinstance(k, str)]
    manifest.license = _or_null(raw.get("license"))
    repo = raw.get("repo") if isinstance(raw.get("repo"), dict) else {}
    manifest.repo = Repo(type=_or_null(repo.get("type")), url=_or_null(repo.get("url")))
    manifest.homepage_url = _or_null(raw.get("homepageUrl"))
    return out


def validate_mini_manifest(raw: Any) -> ValidatedMiniManifest:
    """
    Validate an untrusted ``cargo.mini.json`` document.

    Returns:
        ValidatedMiniManifest: The version string, accumulated errors and parsed version.
    """
    out = ValidatedMiniManifest(
        version=NULL_MANIFEST_VERSION, errors=[], semantic_version=SemVer.null()
    )
    if not isinstance(raw, dict):
        out.errors.append(f'expected mini cargo to be type "object" got "{_type_name(raw)}"')
        return out
    if not _expect_string(raw, "version", out.errors):
        return out
    out.version = raw["version"]
    semver = SemVer.from_string(raw["version"])
    if semver is None:
        out.errors.append(f"{raw['version']} is not a valid semantic version")
        return out
    out.semantic_version = semver
    return out


def manifest_is_updatable(new_raw: Any, old_raw: Any) -> UpdatableCheck:
    """
    Decide whether `new_raw` is an update over `old_raw`.

    Both documents must validate without errors. A null (0.0.0) new version is
    never an update; a null old version with a concrete new version always is.
    Otherwise the new semantic version must be strictly greater.
    """
    validated_old = validate_manifest(old_raw)
    validated_new = validate_manifest(new_raw)
    out = UpdatableCheck(old_manifest=validated_old, new_manifest=validated_new)
    if validated_old.errors or validated_new.errors:
        return out

    old_is_null = validated_old.manifest.version == NULL_MANIFEST_VERSION
    new_is_null = validated_new.manifest.version == NULL_MANIFEST_VERSION
    if new_is_null:
        return out
    if old_is_null:
        out.update_available = True
        return out
    out.update_available = validated_new.semantic_version.is_greater(
        validated_old.semantic_version
    )
    return out


def diff_manifest_files(
    new_manifest: Manifest,
    old_manifest: Manifest,
    default_invalidation: str = INVALIDATION_URL_DIFF,
) -> ManifestDiff:
    """
    Compute which files to fetch and which to delete when replacing `old_manifest`.

    A new file whose invalidation is "default" takes `default_invalidation`.
    A file is added when it is absent from the old manifest or its effective
    invalidation is "purge"; an old file is deleted when it is absent from the
    new manifest or its effective invalidation in the new manifest is "purge".
    Purged files therefore show up in both lists even when their names match.

    Parameters:
        new_manifest (Manifest): Incoming manifest.
        old_manifest (Manifest): Currently installed manifest.
        default_invalidation (str): Strategy substituted for "default" ("url-diff" or "purge").

    Returns:
        ManifestDiff: Files to add and to delete, in manifest order.
    """
    new_strategies: Dict[str, str] = {}
    for f in new_manifest.files:
        new_strategies[f.name] = (
            default_invalidation if f.invalidation == INVALIDATION_DEFAULT else f.invalidation
        )
    old_names = {f.name for f in old_manifest.files}

    diff = ManifestDiff()
    for f in new_manifest.files:
        if f.name not in old_names or new_strategies[f.name] == INVALIDATION_PURGE:
            diff.add.append(FileRef(name=f.name, bytes=f.bytes))
    for f in old_manifest.files:
        strategy: Optional[str] = new_strategies.get(f.name)
        if strategy is None or strategy == INVALIDATION_PURGE:
            diff.delete.append(FileRef(name=f.name, bytes=f.bytes))
    return diff
