"""
Update checking for cargos.

The checker compares the manifest stored locally for a cargo against the one
served remotely and works out which files must be fetched and which must be
removed. When a previous installation exists, the small ``cargo.mini.json``
is probed first so an unchanged cargo costs a single tiny request.

All failures are reported through ``UpdateCheckResult.errors``; nothing here
raises for network, encoding or validation problems.
"""

from typing import Any, List, Optional, Tuple

from bundlesync.cargo.manifest import (
    Manifest,
    ValidatedManifest,
    diff_manifest_files,
    validate_manifest,
    validate_mini_manifest,
)
from bundlesync.constants import (
    INVALIDATION_URL_DIFF,
    MANIFEST_NAME,
    MANIFEST_RETRY_COUNT,
    MINI_MANIFEST_NAME,
)
from bundlesync.log_utils import logger
from bundlesync.store.interfaces import FileCache
from bundlesync.utils import add_slash_to_end, string_bytes, strip_relative_path

from .interfaces import (
    CargoReference,
    DownloadableResource,
    FetchFunction,
    UpdateCheckResult,
)


def _resources(
    names_and_bytes: List[Tuple[str, int]], request_base: str, storage_base: str
) -> List[DownloadableResource]:
    resources = []
    for name, size in names_and_bytes:
        filename = strip_relative_path(name)
        resources.append(
            DownloadableResource(
                request_url=f"{request_base}{filename}",
                storage_url=f"{storage_base}{filename}",
                bytes=size,
            )
        )
    return resources


class UpdateChecker:
    """
    Decides whether a cargo needs updating.

    Parameters:
        fetch (FetchFunction): Retrying fetch primitive, called as `fetch(url, retry_count=n)`.
        store (FileCache): Persistent store holding previously installed manifests.
    """

    def __init__(self, fetch: FetchFunction, store: FileCache):
        self.fetch = fetch
        self.store = store

    def _base_result(self, reference: CargoReference) -> UpdateCheckResult:
        return UpdateCheckResult(
            id=reference.id,
            name=reference.name,
            request_root_url=add_slash_to_end(reference.request_root_url),
            storage_root_url=add_slash_to_end(reference.storage_root_url),
        )

    def _error(
        self, result: UpdateCheckResult, message: str, previous_version_exists: bool
    ) -> UpdateCheckResult:
        logger.warning(f"Update check for '{result.name or result.id}' failed: {message}")
        result.errors.append(message)
        result.previous_version_exists = previous_version_exists
        return result

    def _fetch_manifest(
        self, url: str, name: str
    ) -> Tuple[Optional[ValidatedManifest], str, int, str]:
        """
        Fetch and validate a full manifest.

        Returns:
            Tuple of (validated manifest or None, error message, serialized byte size, resolved URL).
        """
        response_result = self.fetch(url, retry_count=MANIFEST_RETRY_COUNT)
        if not response_result.success:
            return None, f'error when requesting new cargo for "{name}": {response_result.error_message}', 0, ""
        response = response_result.data
        if not response.ok:
            return (
                None,
                f'error http code when requesting new cargo for "{name}": status={response.status}, status_text={response.status_text}',
                0,
                "",
            )
        try:
            text = response.text()
        except UnicodeDecodeError as e:
            return None, f'new cargo for "{name}" found no text. Error: {e}', 0, ""
        try:
            raw = response.json()
        except ValueError as e:
            return None, f'new cargo for "{name}" was not json encoded. Error: {e}', 0, ""
        validated = validate_manifest(raw)
        if validated.errors:
            return (
                None,
                f'new cargo for "{name}" is not a valid {MANIFEST_NAME}. Errors: {",".join(validated.errors)}',
                0,
                "",
            )
        return validated, "", string_bytes(text), response.url or url

    def _mini_manifest_not_newer(self, url: str, installed: ValidatedManifest) -> bool:
        response_result = self.fetch(url, retry_count=MANIFEST_RETRY_COUNT)
        if not response_result.success or not response_result.data.ok:
            return False
        try:
            raw: Any = response_result.data.json()
        except (UnicodeDecodeError, ValueError):
            return False
        mini = validate_mini_manifest(raw)
        if mini.errors:
            return False
        return not installed.semantic_version.is_lower(mini.semantic_version)

    def check_for_updates(self, reference: CargoReference) -> UpdateCheckResult:
        """
        Check one cargo for updates.

        Steps:
        1. Look up the stored manifest at `{storage_root}/cargo.json`; a stored entry with a
           non-404 error status is fatal.
        2. Without a stored manifest, fetch and validate the remote one; every listed file is
           downloadable.
        3. With a stored manifest, probe the mini manifest and stop if its version is not newer;
           otherwise fetch the full manifest, require a matching uuid and a newer version, and
           diff the file lists using "url-diff" as the default invalidation.

        Parameters:
            reference (CargoReference): Request and storage roots of the cargo.

        Returns:
            UpdateCheckResult: Files to download and delete, byte totals and any errors.
        """
        result = self._base_result(reference)
        request_base = result.request_root_url
        storage_base = result.storage_root_url
        name = reference.name or reference.id
        stored_url = f"{storage_base}{MANIFEST_NAME}"

        stored = self.store.get_file(stored_url)
        if stored is not None and not stored.ok and stored.status != 404:
            return self._error(
                result,
                f'error when requesting stored cargo "{name}": status={stored.status}, status_text={stored.status_text}',
                previous_version_exists=False,
            )

        if stored is None or stored.status == 404:
            logger.debug(f"No stored manifest for '{name}', checking fresh install")
            validated, error, manifest_bytes, resolved_url = self._fetch_manifest(
                f"{request_base}{MANIFEST_NAME}", name
            )
            if validated is None:
                return self._error(result, error, previous_version_exists=False)
            new_manifest = validated.manifest
            result.downloadable_resources = _resources(
                [(f.name, f.bytes) for f in new_manifest.files], request_base, storage_base
            )
            result.bytes_to_download = sum(r.bytes for r in result.downloadable_resources)
            result.total_bytes = new_manifest.total_bytes
            result.manifest_bytes = manifest_bytes
            result.resolved_url = resolved_url
            result.new_manifest = new_manifest
            result.version = new_manifest.version
            result.previous_version_exists = False
            return result

        try:
            installed = validate_manifest(stored.json())
        except (UnicodeDecodeError, ValueError) as e:
            return self._error(
                result, f'stored cargo for "{name}" is not json encoded: {e}', previous_version_exists=True
            )
        result.previous_version_exists = True
        result.previous_version = installed.manifest.version
        result.old_manifest = installed.manifest

        if self._mini_manifest_not_newer(f"{request_base}{MINI_MANIFEST_NAME}", installed):
            logger.debug(f"'{name}' is up to date at {installed.manifest.version}")
            result.version = installed.manifest.version
            return result

        validated, error, manifest_bytes, resolved_url = self._fetch_manifest(
            f"{request_base}{MANIFEST_NAME}", name
        )
        if validated is None:
            return self._error(result, error, previous_version_exists=True)
        new_manifest: Manifest = validated.manifest

        if new_manifest.uuid != installed.manifest.uuid:
            return self._error(
                result,
                f"new cargo has different uuid than old: old={installed.manifest.uuid}, new={new_manifest.uuid}",
                previous_version_exists=True,
            )

        if not installed.semantic_version.is_lower(validated.semantic_version):
            logger.debug(
                f"'{name}' remote version {new_manifest.version} does not advance {installed.manifest.version}"
            )
            result.version = installed.manifest.version
            return result

        diff = diff_manifest_files(new_manifest, installed.manifest, INVALIDATION_URL_DIFF)
        result.downloadable_resources = _resources(
            [(f.name, f.bytes) for f in diff.add], request_base, storage_base
        )
        result.resources_to_delete = _resources(
            [(f.name, f.bytes) for f in diff.delete], request_base, storage_base
        )
        result.bytes_to_download = sum(r.bytes for r in result.downloadable_resources)
        result.bytes_to_delete = sum(r.bytes for r in result.resources_to_delete)
        result.total_bytes = new_manifest.total_bytes
        result.manifest_bytes = manifest_bytes
        result.resolved_url = resolved_url
        result.new_manifest = new_manifest
        result.version = new_manifest.version
        logger.info(
            f"Update available for '{name}': {installed.manifest.version} -> {new_manifest.version} "
            f"({len(result.downloadable_resources)} to fetch, {len(result.resources_to_delete)} to delete)"
        )
        return result
