"""
Download Client

DownloadClient is the entry point a host application uses to keep cargos up
to date. It wires the update checker, disk quota advisor, orchestrator,
background download manager and reconciler around a single persistent store
and origin, and exposes the high-level operations:

* check_for_updates: compare installed and remote manifests
* execute_updates: admit and queue a background download
* install_now: apply an update in the foreground with bounded retries
* retry_failed_downloads: re-queue what a failed/aborted download left behind
* delete_cargo: remove every stored file of a cargo
* get_download_progress / add_progress_listener: follow a download until it is ready

Index documents are read-modify-written under one lock shared with the
reconciler, so a single client instance is safe to use from several threads.
"""

import threading
from dataclasses import asdict, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from bundlesync.cargo.manifest import Manifest, validate_manifest
from bundlesync.config import ClientConfig
from bundlesync.constants import (
    DEFAULT_MIME_TYPE,
    MANIFEST_NAME,
    MANIFEST_RETRY_COUNT,
    MINI_MANIFEST_NAME,
    NULL_FIELD,
    OFFLINE_PAGE_NAME,
    PROGRESS_DOWNLOADING,
    PROGRESS_FAILED,
    PROGRESS_INSTALLING,
    PROGRESS_POLL_INTERVAL,
    PROGRESS_READY,
    RETRYABLE_STATES,
    STATE_CACHED,
    STATE_DELETED,
    STATE_UPDATE_FAILED,
    STATE_UPDATING,
)
from bundlesync.log_utils import logger
from bundlesync.response import ResourceResponse
from bundlesync.result import Result
from bundlesync.store.filesystem import FileSystemCache
from bundlesync.store.indices import (
    CargoIndex,
    CargoIndexCollection,
    DownloadIndex,
    IndexStore,
    OperationCode,
    ResourceMeta,
    read_json_document,
    remove_download_index,
    update_cargo_index,
    update_download_index,
)
from bundlesync.store.interfaces import FileCache
from bundlesync.utils import (
    RetryingFetcher,
    cache_headers,
    friendly_bytes,
    join_url,
    mime_from_url,
    now_millis,
)

from .interfaces import (
    BackgroundFetchEvent,
    CargoReference,
    DownloadableResource,
    DownloadManager,
    DownloadProgress,
    DownloadState,
    FetchFunction,
    ProgressCallback,
    UpdateCheckResult,
)
from .manager import ThreadedDownloadManager
from .orchestrator import DownloadOrchestrator, UpdatePartition, failed_update_checkpoint_url
from .quota import DiskInfo, DiskQuotaAdvisor
from .reconciler import BackgroundFetchReconciler, UpdateUICallback
from .update_check import UpdateChecker

ProgressListener = Callable[[DownloadProgress], None]


class ClientStatus(str, Enum):
    """Outcome codes of DownloadClient operations."""

    UPDATE_QUEUED = "update-queued"
    UPDATE_RETRY_QUEUED = "update-retry-queued"
    NO_DOWNLOADABLE_RESOURCES = "no-downloadable-resources"
    INSTALLED = "installed"
    CACHED = "cached"
    DELETED = "deleted"
    UPDATE_IMPOSSIBLE = "update-impossible"
    NEW_CARGO_MISSING = "new-cargo-missing"
    INSUFFICIENT_DISK_SPACE = "insufficient-disk-space"
    UPDATE_ALREADY_QUEUED = "update-already-queued"
    UPDATE_RETRY_IMPOSSIBLE = "update-retry-impossible"
    ERROR_INDEX_NOT_FOUND = "error-index-not-found"
    QUEUE_FAILED = "queue-failed"
    UPDATE_FAILED = "update-failed"
    NOT_FOUND = "not-found"

    @property
    def is_error(self) -> bool:
        return self not in _SUCCESS_STATUSES


_SUCCESS_STATUSES = frozenset(
    {
        ClientStatus.UPDATE_QUEUED,
        ClientStatus.UPDATE_RETRY_QUEUED,
        ClientStatus.NO_DOWNLOADABLE_RESOURCES,
        ClientStatus.INSTALLED,
        ClientStatus.CACHED,
        ClientStatus.DELETED,
    }
)


def _rejected(status: ClientStatus, message: str = "") -> Result[ClientStatus]:
    return Result.err(message or status.value.replace("-", " "), data=status)


def create_resource_map(resources: List[DownloadableResource]) -> Dict[str, ResourceMeta]:
    """
    Map request URLs to where and how their responses are stored.

    The MIME type is guessed from the request URL and falls back to "text/plain".
    """
    return {
        r.request_url: ResourceMeta(
            storage_url=r.storage_url,
            bytes=r.bytes,
            mime=mime_from_url(r.request_url) or DEFAULT_MIME_TYPE,
        )
        for r in resources
    }


class DownloadClient:
    """
    High-level cargo installation and update client.

    Parameters:
        config (ClientConfig): Origin, storage and worker settings.
        store (Optional[FileCache]): Persistent store; a FileSystemCache under `config.cache_dir` by default.
        fetch (Optional[FetchFunction]): Retrying fetch primitive; a RetryingFetcher by default.
        download_manager (Optional[DownloadManager]): Background download facility; a
            ThreadedDownloadManager by default.
        update_ui (Optional[UpdateUICallback]): Completion notification hook.
    """

    def __init__(
        self,
        config: ClientConfig,
        store: Optional[FileCache] = None,
        fetch: Optional[FetchFunction] = None,
        download_manager: Optional[DownloadManager] = None,
        update_ui: Optional[UpdateUICallback] = None,
    ):
        self.config = config
        self.store = store or FileSystemCache(config.cache_dir, config.quota_bytes)
        self._owned_fetcher = None
        if fetch is None:
            self._owned_fetcher = RetryingFetcher(timeout=config.request_timeout)
            fetch = self._owned_fetcher
        self.fetch = fetch
        self.index_store = IndexStore(self.store, config.origin)
        self.origin = self.index_store.origin
        self._lock = threading.RLock()

        self.checker = UpdateChecker(self.fetch, self.store)
        self.quota = DiskQuotaAdvisor(self.store, config.reserved_bytes)
        self.orchestrator = DownloadOrchestrator(
            self.fetch,
            self.store,
            concurrent=config.concurrent_downloads,
            max_workers=config.max_workers,
            attempts=config.update_attempts,
        )
        self.reconciler = BackgroundFetchReconciler(
            self.index_store,
            update_ui=update_ui,
            batch_size=config.batch_size,
            lock=self._lock,
        )
        self.download_manager = download_manager or ThreadedDownloadManager(
            self.fetch, max_workers=config.max_workers
        )
        self.download_manager.add_completion_listener(self.on_download_complete)

        self.progress_interval = PROGRESS_POLL_INTERVAL
        self._progress_listeners: Dict[str, ProgressListener] = {}
        self._progress_lock = threading.Lock()
        self._poller: Optional[Tuple[threading.Thread, threading.Event]] = None

    # ------------------------------------------------------------------ #
    # queries
    # ------------------------------------------------------------------ #

    def check_for_updates(self, reference: CargoReference) -> UpdateCheckResult:
        return self.checker.check_for_updates(reference)

    def disk_info(self) -> DiskInfo:
        return self.quota.disk_info(self.index_store.get_download_indices())

    def get_cargo_indices(self) -> CargoIndexCollection:
        return self.index_store.get_cargo_indices()

    def get_cargo_index(self, cargo_id: str) -> Optional[CargoIndex]:
        return self.index_store.get_cargo_indices().get(cargo_id)

    def get_download_state(self, download_id: str) -> Optional[DownloadState]:
        return self.download_manager.get_download_state(download_id)

    def cancel_download(self, download_id: str) -> bool:
        return self.download_manager.cancel_download(download_id)

    def get_download_progress(self, cargo_id: str) -> Optional[DownloadProgress]:
        """
        Report how far a cargo's download has come.

        The background manager is asked first. Once it no longer reports a running
        download, the indices decide: a cargo in a failed state is "failed", a cargo
        whose download index is still pending (or that is still marked updating) is
        "installing", and a cached cargo is "ready".

        Returns:
            Optional[DownloadProgress]: None when the cargo is unknown or deleted.
        """
        state = self.download_manager.get_download_state(cargo_id)
        if state is not None and not state.finished:
            return DownloadProgress(**asdict(state), phase=PROGRESS_DOWNLOADING)

        base = DownloadProgress(**asdict(state)) if state is not None else DownloadProgress(id=cargo_id)
        with self._lock:
            cargo = self.index_store.get_cargo_indices().get(cargo_id)
            download = self.index_store.get_download_indices().get(cargo_id)
        if cargo is None or cargo.state == STATE_DELETED:
            return None
        if cargo.state in RETRYABLE_STATES:
            return replace(
                base, phase=PROGRESS_FAILED, failed=True, finished=True, failure_reason=cargo.state
            )
        if download is not None or cargo.state == STATE_UPDATING:
            return replace(base, phase=PROGRESS_INSTALLING, installing=True, finished=True)
        return replace(
            base, phase=PROGRESS_READY, ready=True, finished=True, failed=False, failure_reason=""
        )

    # ------------------------------------------------------------------ #
    # progress listeners
    # ------------------------------------------------------------------ #

    def add_progress_listener(self, cargo_id: str, callback: ProgressListener) -> None:
        """
        Call `callback` with the cargo's DownloadProgress every `progress_interval` seconds.

        Registering again for the same cargo replaces the callback. A listener is
        dropped after it has been told the cargo is ready or failed, or when the
        cargo is no longer known.
        """
        with self._progress_lock:
            self._progress_listeners[cargo_id] = callback
            if self._poller is None:
                stop = threading.Event()
                self._poller = (
                    threading.Thread(
                        target=self._poll_progress, args=(stop,), name="bundlesync-progress", daemon=True
                    ),
                    stop,
                )
                self._poller[0].start()

    def remove_progress_listener(self, cargo_id: str) -> bool:
        with self._progress_lock:
            removed = self._progress_listeners.pop(cargo_id, None) is not None
            if not self._progress_listeners:
                self._stop_poller()
        return removed

    def _stop_poller(self) -> None:
        if self._poller is not None:
            self._poller[1].set()
            self._poller = None

    def _poll_progress(self, stop: threading.Event) -> None:
        while not stop.wait(self.progress_interval):
            self.poll_progress_listeners()
            with self._progress_lock:
                if not self._progress_listeners and not stop.is_set():
                    self._stop_poller()
                    return

    def poll_progress_listeners(self) -> int:
        """
        Notify every progress listener once.

        Returns:
            int: Number of listeners still registered afterwards.
        """
        with self._progress_lock:
            listeners = list(self._progress_listeners.items())
        for cargo_id, callback in listeners:
            progress = self.get_download_progress(cargo_id)
            if progress is not None:
                try:
                    callback(progress)
                except Exception:  # noqa: BLE001 - Catch-all so one listener cannot block the rest
                    logger.exception(f"Progress listener failed for {cargo_id}")
            if progress is None or progress.phase in (PROGRESS_READY, PROGRESS_FAILED):
                with self._progress_lock:
                    if self._progress_listeners.get(cargo_id) is callback:
                        del self._progress_listeners[cargo_id]
        with self._progress_lock:
            return len(self._progress_listeners)

    def get_stored_manifest(self, cargo_id: str) -> Optional[Manifest]:
        """
        Return the installed manifest of a cargo, if it is stored and readable.
        """
        cargo = self.get_cargo_index(cargo_id)
        if cargo is None:
            return None
        raw = read_json_document(self.store, join_url(cargo.storage_root_url, MANIFEST_NAME))
        if raw is None:
            return None
        return validate_manifest(raw).manifest

    # ------------------------------------------------------------------ #
    # helpers
    # ------------------------------------------------------------------ #

    def _write_manifests(self, check: UpdateCheckResult) -> bool:
        manifest = check.new_manifest
        written = True
        for name, document in (
            (MANIFEST_NAME, manifest.to_dict()),
            (MINI_MANIFEST_NAME, manifest.to_mini_dict()),
        ):
            url = join_url(check.storage_root_url, name)
            written = self.index_store.write_document(url, document).success and written
        return written

    def _cargo_index_for(self, check: UpdateCheckResult, state: str) -> CargoIndex:
        manifest = check.new_manifest
        entry = NULL_FIELD if not manifest.entry else join_url(check.storage_root_url, manifest.entry)
        return CargoIndex(
            id=check.id,
            name=manifest.name if manifest.name != NULL_FIELD else (check.name or check.id),
            storage_root_url=check.storage_root_url,
            request_root_url=check.request_root_url,
            bytes=check.total_bytes,
            entry=entry,
            version=manifest.version,
            state=state,
        )

    def _admission_status(self, check: UpdateCheckResult) -> Optional[ClientStatus]:
        if check.has_errors():
            logger.error(f"Cannot update '{check.name or check.id}': {'; '.join(check.errors)}")
            return ClientStatus.UPDATE_IMPOSSIBLE
        if not check.update_available():
            return ClientStatus.NEW_CARGO_MISSING
        downloads = self.index_store.get_download_indices()
        if downloads.get(check.id) is not None or check.id in self.download_manager.current_download_ids():
            logger.warning(f"An update for '{check.id}' is already in progress")
            return ClientStatus.UPDATE_ALREADY_QUEUED
        if not self.quota.admit(downloads, check.bytes_to_download):
            return ClientStatus.INSUFFICIENT_DISK_SPACE
        return None

    # ------------------------------------------------------------------ #
    # background updates
    # ------------------------------------------------------------------ #

    def execute_updates(self, check: UpdateCheckResult, title: str = "") -> Result[ClientStatus]:
        """
        Admit an update and queue it with the background download manager.

        The new manifest is written and stale files are deleted immediately; the cargo is
        marked "updating" until the reconciler processes the download's completion event.
        An update without files to fetch is committed straight away.

        Parameters:
            check (UpdateCheckResult): Result of check_for_updates.
            title (str): Human-readable title of the download.

        Returns:
            Result[ClientStatus]: UPDATE_QUEUED or NO_DOWNLOADABLE_RESOURCES on success, an error status otherwise.
        """
        title = title or f"Updating {check.name or check.id}"
        with self._lock:
            rejected = self._admission_status(check)
            if rejected is not None:
                return _rejected(rejected)

            has_downloads = len(check.downloadable_resources) > 0
            self._write_manifests(check)
            for resource in check.resources_to_delete:
                self.store.delete_file(resource.storage_url)
            self.index_store.delete_error_download_index(check.storage_root_url)

            cargo_indices = self.index_store.get_cargo_indices()
            state = STATE_UPDATING if has_downloads else STATE_CACHED
            update_cargo_index(cargo_indices, self._cargo_index_for(check, state))
            self.index_store.save_cargo_indices(cargo_indices)
            if not has_downloads:
                logger.info(f"'{check.name or check.id}' updated to {check.version} without downloads")
                return Result.ok(ClientStatus.NO_DOWNLOADABLE_RESOURCES)

            downloads = self.index_store.get_download_indices()
            update_download_index(
                downloads,
                DownloadIndex(
                    id=check.id,
                    title=title,
                    storage_root_url=check.storage_root_url,
                    version=check.version,
                    previous_version=check.previous_version,
                    resource_map=create_resource_map(check.downloadable_resources),
                    total_bytes=check.bytes_to_download,
                    started_at=now_millis(),
                ),
            )
            self.index_store.save_download_indices(downloads)

        queued = self.download_manager.queue_download(
            check.id,
            [r.request_url for r in check.downloadable_resources],
            title,
            check.bytes_to_download,
        )
        if not queued.success:
            self._abandon_download(check.id, queued.error_message)
            return _rejected(ClientStatus.QUEUE_FAILED)
        logger.info(
            f"Queued '{title}': {len(check.downloadable_resources)} file(s), "
            f"{friendly_bytes(check.bytes_to_download)}"
        )
        return Result.ok(ClientStatus.UPDATE_QUEUED)

    def _abandon_download(self, cargo_id: str, reason: str) -> None:
        logger.error(f"Could not queue download for '{cargo_id}': {reason}")
        with self._lock:
            downloads = self.index_store.get_download_indices()
            download = downloads.get(cargo_id)
            remove_download_index(downloads, cargo_id)
            self.index_store.save_download_indices(downloads)
            cargo_indices = self.index_store.get_cargo_indices()
            cargo = cargo_indices.get(cargo_id)
            if cargo is not None:
                cargo.state = STATE_UPDATE_FAILED
                update_cargo_index(cargo_indices, cargo)
                self.index_store.save_cargo_indices(cargo_indices)
            if download is not None:
                download.title = f"Failed {download.title}"
                self.index_store.save_error_download_index(download)

    def on_download_complete(self, event: BackgroundFetchEvent) -> None:
        """Completion listener registered with the download manager."""
        self.reconciler.reconcile(event)

    def wait_for_download(self, download_id: str, timeout: Optional[float] = None) -> bool:
        """
        Block until a background download has been reconciled.

        Only supported by download managers that expose `wait()`.
        """
        wait = getattr(self.download_manager, "wait", None)
        if wait is None:
            return False
        return wait(download_id, timeout)

    def retry_failed_downloads(self, cargo_id: str, title: str = "") -> Result[ClientStatus]:
        """
        Re-queue the resources a failed or aborted download did not store.

        Only cargos in the "update-failed" or "update-aborted" state can be retried. The
        error index left by the reconciler becomes the new download index, and is deleted
        once the retry is queued.

        Returns:
            Result[ClientStatus]: UPDATE_RETRY_QUEUED on success, an error status otherwise.
        """
        with self._lock:
            cargo_indices = self.index_store.get_cargo_indices()
            cargo = cargo_indices.get(cargo_id)
            if cargo is None:
                return _rejected(ClientStatus.NOT_FOUND)
            if cargo.state not in RETRYABLE_STATES:
                logger.warning(f"'{cargo_id}' is {cargo.state}; only failed or aborted updates can be retried")
                return _rejected(ClientStatus.UPDATE_RETRY_IMPOSSIBLE)
            error_index = self.index_store.get_error_download_index(cargo.storage_root_url)
            if error_index is None or not error_index.resource_map:
                return _rejected(ClientStatus.ERROR_INDEX_NOT_FOUND)
            downloads = self.index_store.get_download_indices()
            if downloads.get(cargo_id) is not None or cargo_id in self.download_manager.current_download_ids():
                return _rejected(ClientStatus.UPDATE_ALREADY_QUEUED)

            title = title or f"Retrying {cargo.name}"
            retry_index = DownloadIndex(
                id=cargo_id,
                title=title,
                storage_root_url=error_index.storage_root_url,
                version=error_index.version,
                previous_version=error_index.previous_version,
                resource_map={
                    url: ResourceMeta(storage_url=m.storage_url, bytes=m.bytes, mime=m.mime)
                    for url, m in error_index.resource_map.items()
                },
                total_bytes=sum(m.bytes for m in error_index.resource_map.values()),
                started_at=now_millis(),
            )
            update_download_index(downloads, retry_index)
            self.index_store.save_download_indices(downloads)
            cargo.state = STATE_UPDATING
            update_cargo_index(cargo_indices, cargo)
            self.index_store.save_cargo_indices(cargo_indices)
            self.index_store.delete_error_download_index(cargo.storage_root_url)

        queued = self.download_manager.queue_download(
            cargo_id, list(retry_index.resource_map), title, retry_index.total_bytes
        )
        if not queued.success:
            self._abandon_download(cargo_id, queued.error_message)
            return _rejected(ClientStatus.QUEUE_FAILED)
        logger.info(f"Retrying {len(retry_index.resource_map)} file(s) of '{cargo_id}'")
        return Result.ok(ClientStatus.UPDATE_RETRY_QUEUED)

    # ------------------------------------------------------------------ #
    # foreground updates
    # ------------------------------------------------------------------ #

    def install_now(
        self, check: UpdateCheckResult, on_progress: Optional[ProgressCallback] = None
    ) -> Result[ClientStatus]:
        """
        Apply an update in the foreground through the orchestrator.

        On failure the cargo is left "update-failed" with a failed-update checkpoint that
        resume_install() continues from.

        Returns:
            Result[ClientStatus]: INSTALLED on success; on failure the error message names the checkpoint.
        """
        with self._lock:
            rejected = self._admission_status(check)
            if rejected is not None:
                return _rejected(rejected)
            self._write_manifests(check)
            cargo_indices = self.index_store.get_cargo_indices()
            update_cargo_index(cargo_indices, self._cargo_index_for(check, STATE_UPDATING))
            self.index_store.save_cargo_indices(cargo_indices)

        outcome = self.orchestrator.execute_update(
            [UpdatePartition.from_check(check)], on_progress=on_progress
        )
        return self._finish_foreground(check.id, outcome.success, outcome.error_message)

    def resume_install(
        self, cargo_id: str, on_progress: Optional[ProgressCallback] = None
    ) -> Result[ClientStatus]:
        cargo = self.get_cargo_index(cargo_id)
        if cargo is None:
            return Result.err(f"cargo {cargo_id} is not installed", data=ClientStatus.NOT_FOUND)
        outcome = self.orchestrator.resume_update(cargo.storage_root_url, on_progress=on_progress)
        return self._finish_foreground(cargo_id, outcome.success, outcome.error_message)

    def _finish_foreground(self, cargo_id: str, success: bool, error_message: str) -> Result[ClientStatus]:
        with self._lock:
            cargo_indices = self.index_store.get_cargo_indices()
            cargo = cargo_indices.get(cargo_id)
            if cargo is not None:
                cargo.state = STATE_CACHED if success else STATE_UPDATE_FAILED
                update_cargo_index(cargo_indices, cargo)
                self.index_store.save_cargo_indices(cargo_indices)
        if success:
            return Result.ok(ClientStatus.INSTALLED)
        logger.error(error_message)
        return Result.err(error_message, data=ClientStatus.UPDATE_FAILED)

    # ------------------------------------------------------------------ #
    # maintenance
    # ------------------------------------------------------------------ #

    def delete_cargo(self, cargo_id: str) -> Result[ClientStatus]:
        """
        Delete every stored file of a cargo and mark it "deleted".

        Returns:
            Result[ClientStatus]: DELETED, NOT_FOUND, or UPDATE_ALREADY_QUEUED while a download is running.
        """
        with self._lock:
            cargo_indices = self.index_store.get_cargo_indices()
            cargo = cargo_indices.get(cargo_id)
            if cargo is None:
                return _rejected(ClientStatus.NOT_FOUND)
            if cargo_id in self.download_manager.current_download_ids():
                return _rejected(ClientStatus.UPDATE_ALREADY_QUEUED)
            manifest_url = join_url(cargo.storage_root_url, MANIFEST_NAME)
            raw = read_json_document(self.store, manifest_url)
            removed = 0
            if raw is not None:
                for f in validate_manifest(raw).manifest.files:
                    if self.store.delete_file(join_url(cargo.storage_root_url, f.name)):
                        removed += 1
            for url in (
                manifest_url,
                join_url(cargo.storage_root_url, MINI_MANIFEST_NAME),
                failed_update_checkpoint_url(cargo.storage_root_url),
            ):
                self.store.delete_file(url)
            self.index_store.delete_error_download_index(cargo.storage_root_url)

            downloads = self.index_store.get_download_indices()
            if remove_download_index(downloads, cargo_id) == OperationCode.REMOVED:
                self.index_store.save_download_indices(downloads)
            cargo.state = STATE_DELETED
            cargo.bytes = 0
            update_cargo_index(cargo_indices, cargo)
            self.index_store.save_cargo_indices(cargo_indices)
        logger.info(f"Deleted '{cargo_id}' ({removed} file(s) removed)")
        return Result.ok(ClientStatus.DELETED)

    def cache_root_document_fallback(self) -> Result[ClientStatus]:
        """
        Cache the origin's root document as the offline fallback page.

        Returns:
            Result[ClientStatus]: CACHED, or a failure when the root document could not be
            fetched or is not HTML.
        """
        root_url = f"{self.origin}/"
        fetched = self.fetch(root_url, retry_count=MANIFEST_RETRY_COUNT)
        if not fetched.success or not fetched.data.ok:
            return Result.err("root document request failed")
        response = fetched.data
        mime = response.headers.get("Content-Type", "")
        if not mime.startswith("text/html"):
            found = f"got {mime}" if mime else "couldn't find header 'Content-Type'"
            return Result.err(f"root document caching failed, expected mime text/html, {found}")
        fallback_url = f"{self.origin}/{OFFLINE_PAGE_NAME}"
        stored = self.store.put_file(
            fallback_url,
            ResourceResponse(
                body=response.body,
                headers=cache_headers(mime, len(response.body)),
                url=fallback_url,
            ),
        )
        if not stored:
            return Result.err(f"could not store {fallback_url}")
        return Result.ok(ClientStatus.CACHED)

    def close(self) -> None:
        with self._progress_lock:
            self._progress_listeners.clear()
            self._stop_poller()
        if self._owned_fetcher is not None:
            self._owned_fetcher.close()
