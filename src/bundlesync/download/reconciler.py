"""
Background download reconciliation.

When the background download facility reports that a download has ended,
the reconciler matches every completed request against the download index
created when the update was queued, commits successful bodies to the
persistent store and moves the cargo to its next state:

    success -> cached
    abort   -> update-aborted
    fail    -> update-failed

Resources that did not make it into the store are collected into an error
index saved next to the cargo, so a later retry only fetches that subset.
Responses whose URL is not part of the download index ("orphans") are logged
and ignored.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set

from bundlesync.constants import (
    FETCH_RESULT_ABORT,
    FETCH_RESULT_FAIL,
    FETCH_RESULT_SUCCESS,
    RECONCILE_BATCH_SIZE,
    STATE_CACHED,
    STATE_UPDATE_ABORTED,
    STATE_UPDATE_FAILED,
)
from bundlesync.log_utils import logger
from bundlesync.response import ResourceResponse
from bundlesync.store.indices import (
    DownloadIndex,
    IndexStore,
    ResourceMeta,
    remove_download_index,
    update_cargo_index,
)
from bundlesync.utils import cache_headers, now_millis, resolve_mime

from .interfaces import BackgroundFetchEvent, BackgroundFetchRecord

UpdateUICallback = Callable[[str], None]

STATE_FOR_RESULT = {
    FETCH_RESULT_SUCCESS: STATE_CACHED,
    FETCH_RESULT_ABORT: STATE_UPDATE_ABORTED,
    FETCH_RESULT_FAIL: STATE_UPDATE_FAILED,
}


@dataclass
class ReconcileResult:
    resources_processed: int = 0
    fail_count: int = 0
    orphans: List[str] = field(default_factory=list)
    state: str = ""
    error_index_saved: bool = False


def _log_ui_update(message: str) -> None:
    logger.info(message)


class BackgroundFetchReconciler:
    """
    Commits the records of a finished background download.

    Parameters:
        index_store (IndexStore): Index documents of the origin (its store also receives the assets).
        update_ui (Optional[UpdateUICallback]): Host notification hook, called with a
            completion message on success and failure. Defaults to logging the message.
        batch_size (int): Maximum number of record bodies loaded and committed at once.
        lock (Optional[threading.RLock]): Lock shared with other writers of the same indices.
    """

    def __init__(
        self,
        index_store: IndexStore,
        update_ui: Optional[UpdateUICallback] = None,
        batch_size: int = RECONCILE_BATCH_SIZE,
        lock: Optional["threading.RLock"] = None,
    ):
        self.index_store = index_store
        self.store = index_store.store
        self.update_ui = update_ui or _log_ui_update
        self.batch_size = max(1, batch_size)
        # Serializes index read-modify-write for this origin
        self._lock = lock or threading.RLock()

    def _target_url(self, url: str) -> str:
        if url.startswith(("https://", "http://")):
            return url
        path = url if url.startswith("/") else f"/{url}"
        return f"{self.index_store.origin}{path}"

    def _commit(
        self,
        record: BackgroundFetchRecord,
        download_index: DownloadIndex,
        error_index: DownloadIndex,
        committed: Set[str],
        result: ReconcileResult,
        stats_lock: threading.Lock,
    ) -> None:
        try:
            self._commit_record(record, download_index, error_index, committed, result, stats_lock)
        finally:
            record.release()

    def _commit_record(
        self,
        record: BackgroundFetchRecord,
        download_index: DownloadIndex,
        error_index: DownloadIndex,
        committed: Set[str],
        result: ReconcileResult,
        stats_lock: threading.Lock,
    ) -> None:
        target_url = self._target_url(record.request_url)
        meta = download_index.resource_map.get(target_url)
        if meta is None:
            with stats_lock:
                if target_url not in result.orphans:
                    result.orphans.append(target_url)
            logger.warning(
                f"Response for {target_url} is not part of download {download_index.id}; skipping"
            )
            return

        response = record.response
        stored = False
        loaded = record.response_ready() if response is not None and response.ok else None
        if loaded is not None:
            cached = ResourceResponse(
                body=loaded.body,
                status=loaded.status,
                status_text=loaded.status_text or "OK",
                headers=cache_headers(resolve_mime(target_url, loaded), len(loaded.body)),
                url=meta.storage_url,
            )
            stored = self.store.put_file(meta.storage_url, cached)
            if not stored:
                logger.error(f"Could not store {target_url} at {meta.storage_url}")

        with stats_lock:
            result.resources_processed += 1
            if stored:
                committed.add(target_url)
                return
            result.fail_count += 1
            if response is None:
                status, status_text = 0, "NETWORK ERROR"
            elif response.ok:
                status, status_text = response.status, "STORE WRITE FAILED"
            else:
                status, status_text = response.status, response.status_text or "UNKNOWN STATUS"
            error_index.resource_map[target_url] = ResourceMeta(
                storage_url=meta.storage_url,
                bytes=meta.bytes,
                mime=meta.mime,
                status=status,
                status_text=status_text,
            )
            error_index.total_bytes += meta.bytes

    def reconcile(self, event: BackgroundFetchEvent) -> Optional[ReconcileResult]:
        """
        Reconcile one finished background download.

        Parameters:
            event (BackgroundFetchEvent): Completion event raised by the download facility.

        Returns:
            Optional[ReconcileResult]: Processing statistics, or None when the event was
            ignored (records not yet available, or the download is not one of ours).
        """
        if not event.records_available:
            logger.debug(f"Records for download {event.id} are not available yet")
            return None
        new_state = STATE_FOR_RESULT.get(event.result)
        if new_state is None:
            logger.warning(f"Ignoring download {event.id} with unknown result '{event.result}'")
            return None

        with self._lock:
            download_indices = self.index_store.get_download_indices()
            download_index = download_indices.get(event.id)
            cargo_indices = self.index_store.get_cargo_indices()
            cargo_index = cargo_indices.get(event.id)
            if download_index is None or cargo_index is None:
                logger.debug(f"Download {event.id} is not tracked by this origin; ignoring")
                return None

            result = ReconcileResult(state=new_state)
            title = event.title or download_index.title
            error_index = DownloadIndex(
                id=download_index.id,
                title=f"Failed {title}",
                storage_root_url=download_index.storage_root_url,
                version=download_index.version,
                previous_version=download_index.previous_version,
                started_at=now_millis(),
            )
            committed: Set[str] = set()
            stats_lock = threading.Lock()

            records = event.records
            logger.info(
                f"Processing {len(records)} record(s) of download '{title}' ({event.result})"
            )
            with ThreadPoolExecutor(max_workers=self.batch_size) as executor:
                for start in range(0, len(records), self.batch_size):
                    batch = records[start : start + self.batch_size]
                    # list() waits for the whole batch before the next one starts
                    list(
                        executor.map(
                            lambda record: self._commit(
                                record, download_index, error_index, committed, result, stats_lock
                            ),
                            batch,
                        )
                    )

            if event.result != FETCH_RESULT_SUCCESS:
                for url, meta in download_index.resource_map.items():
                    if url in committed or url in error_index.resource_map:
                        continue
                    error_index.resource_map[url] = ResourceMeta(
                        storage_url=meta.storage_url,
                        bytes=meta.bytes,
                        mime=meta.mime,
                        status=0,
                        status_text="NOT FETCHED",
                    )
                    error_index.total_bytes += meta.bytes

            remove_download_index(download_indices, download_index.id)
            cargo_index.state = new_state
            update_cargo_index(cargo_indices, cargo_index)
            self.index_store.save_download_indices(download_indices)
            self.index_store.save_cargo_indices(cargo_indices)

            if event.result in (FETCH_RESULT_ABORT, FETCH_RESULT_FAIL):
                result.error_index_saved = self.index_store.save_error_download_index(
                    error_index
                ).success

        if result.orphans:
            logger.warning(
                f"{len(result.orphans)} orphaned response(s) in download {event.id}: {', '.join(result.orphans)}"
            )
        logger.info(
            f"Download '{title}' reconciled: {result.resources_processed} processed, "
            f"{result.fail_count} failed, cargo is now {new_state}"
        )
        if event.result == FETCH_RESULT_SUCCESS:
            self.update_ui(f"{title} finished!")
        elif event.result == FETCH_RESULT_FAIL:
            self.update_ui(f"{title} failed!")
        return result


