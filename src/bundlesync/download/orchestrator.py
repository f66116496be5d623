"""
Download Orchestrator

This module fetches asset lists into the persistent store and drives whole
updates with bounded retries. Individual resources fail in isolation: a
resource that cannot be fetched or stored is collected into
``failed_requests`` and its siblings carry on.

A whole update deletes stale files first, then persists new ones. Between
attempts, the resources that are still missing are written to a checkpoint
document (``{storage_root}/__failed-update__.json``) so an interrupted update
can be resumed with ``resume_update`` instead of restarting from scratch.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from bundlesync.constants import (
    ASSET_RETRY_COUNT,
    DEFAULT_MAX_WORKERS,
    FAILED_UPDATE_CHECKPOINT_NAME,
    UPDATE_ATTEMPTS,
)
from bundlesync.log_utils import logger
from bundlesync.response import ResourceResponse
from bundlesync.result import Result
from bundlesync.store.indices import read_json_document, write_json_document
from bundlesync.store.interfaces import FileCache
from bundlesync.utils import (
    cache_headers,
    friendly_bytes,
    join_url,
    now_millis,
    resolve_mime,
)

from .interfaces import (
    DownloadableResource,
    FailedRequest,
    FetchFunction,
    PersistResult,
    ProgressCallback,
    UpdateCheckResult,
)


def failed_update_checkpoint_url(storage_root_url: str) -> str:
    return join_url(storage_root_url, FAILED_UPDATE_CHECKPOINT_NAME)


@dataclass
class UpdatePartition:
    """The slice of an update that belongs to one cargo."""

    id: str
    storage_root_url: str
    downloadable_resources: List[DownloadableResource] = field(default_factory=list)
    resources_to_delete: List[DownloadableResource] = field(default_factory=list)

    @classmethod
    def from_check(cls, check: UpdateCheckResult) -> "UpdatePartition":
        return cls(
            id=check.id,
            storage_root_url=check.storage_root_url,
            downloadable_resources=list(check.downloadable_resources),
            resources_to_delete=list(check.resources_to_delete),
        )


@dataclass
class UpdateReport:
    """Summary of a whole-update run."""

    attempts: int = 0
    bytes_completed: int = 0
    total_bytes: int = 0
    failed_requests: List[FailedRequest] = field(default_factory=list)
    checkpoint_urls: List[str] = field(default_factory=list)
    deleted: int = 0


def _persist_one(
    resource: DownloadableResource, fetch: FetchFunction, store: FileCache
) -> Optional[FailedRequest]:
    """
    Fetch one resource and commit it to the store under its storage URL.

    Returns:
        Optional[FailedRequest]: None on success, the failure record otherwise.
    """
    fetched = fetch(resource.request_url, retry_count=ASSET_RETRY_COUNT)
    if not fetched.success:
        return FailedRequest(
            request_url=resource.request_url,
            storage_url=resource.storage_url,
            bytes=resource.bytes,
            reason=fetched.error_message,
        )
    response = fetched.data
    if not response.ok:
        return FailedRequest(
            request_url=resource.request_url,
            storage_url=resource.storage_url,
            bytes=resource.bytes,
            reason=f"status={response.status}, status_text={response.status_text}",
            status=response.status,
        )

    mime = resolve_mime(resource.request_url, response)
    cached = ResourceResponse(
        body=response.body,
        status=200,
        status_text="OK",
        headers=cache_headers(mime, len(response.body)),
        url=resource.storage_url,
    )
    if not store.put_file(resource.storage_url, cached):
        return FailedRequest(
            request_url=resource.request_url,
            storage_url=resource.storage_url,
            bytes=resource.bytes,
            reason="could not write to persistent store",
            status=response.status,
        )
    return None


def persist_asset_list(
    files: List[DownloadableResource],
    fetch: FetchFunction,
    store: FileCache,
    concurrent: bool = False,
    total_bytes: int = 0,
    bytes_completed: int = 0,
    on_progress: Optional[ProgressCallback] = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> PersistResult:
    """
    Fetch every resource in `files` and store it at its storage URL.

    Each resource is requested with up to three attempts (no backoff). Successful
    bodies are stored with a MIME type taken from the URL extension, the response's
    Content-Type, or "text/plain", in that order. Failures never abort the remaining
    resources.

    Parameters:
        files (List[DownloadableResource]): Resources to fetch.
        fetch (FetchFunction): Retrying fetch primitive.
        store (FileCache): Destination store.
        concurrent (bool): Use a bounded worker pool instead of fetching one file at a time.
        total_bytes (int): Total reported to `on_progress`.
        bytes_completed (int): Bytes already completed before this call.
        on_progress (Optional[ProgressCallback]): Called with `(bytes_completed, total_bytes)` after each stored file.
        max_workers (int): Worker pool size in concurrent mode.

    Returns:
        PersistResult: The failed requests and the updated completed-bytes counter.
    """
    result = PersistResult(bytes_completed=bytes_completed)
    lock = threading.Lock()

    def record(resource: DownloadableResource, failure: Optional[FailedRequest]) -> None:
        with lock:
            if failure is not None:
                logger.warning(
                    f"Failed to persist {resource.request_url}: {failure.reason}"
                )
                result.failed_requests.append(failure)
                return
            result.bytes_completed += resource.bytes
            completed = result.bytes_completed
        logger.debug(f"Stored {resource.request_url} at {resource.storage_url}")
        if on_progress is not None:
            on_progress(completed, total_bytes)

    if not concurrent or len(files) < 2:
        for resource in files:
            record(resource, _persist_one(resource, fetch, store))
        return result

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = {
            executor.submit(_persist_one, resource, fetch, store): resource
            for resource in files
        }
        for future in as_completed(futures):
            resource = futures[future]
            try:
                failure = future.result()
            except Exception as e:  # noqa: BLE001 - Catch-all for unexpected worker errors
                logger.exception(f"Unexpected error persisting {resource.request_url}")
                failure = FailedRequest(
                    request_url=resource.request_url,
                    storage_url=resource.storage_url,
                    bytes=resource.bytes,
                    reason=f"unexpected error: {e}",
                )
            record(resource, failure)
    return result


class DownloadOrchestrator:
    """
    Runs foreground updates: stale-file deletion, asset persistence and
    bounded whole-update retries with a durable checkpoint.
    """

    def __init__(
        self,
        fetch: FetchFunction,
        store: FileCache,
        concurrent: bool = False,
        max_workers: int = DEFAULT_MAX_WORKERS,
        attempts: int = UPDATE_ATTEMPTS,
    ):
        self.fetch = fetch
        self.store = store
        self.concurrent = concurrent
        self.max_workers = max_workers
        self.attempts = max(1, attempts)

    def persist_asset_list(
        self,
        files: List[DownloadableResource],
        total_bytes: int = 0,
        bytes_completed: int = 0,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PersistResult:
        return persist_asset_list(
            files,
            self.fetch,
            self.store,
            concurrent=self.concurrent,
            total_bytes=total_bytes,
            bytes_completed=bytes_completed,
            on_progress=on_progress,
            max_workers=self.max_workers,
        )

    def _save_checkpoint(
        self, partition: UpdatePartition, pending: List[DownloadableResource], attempt: int
    ) -> str:
        url = failed_update_checkpoint_url(partition.storage_root_url)
        write_json_document(
            self.store,
            url,
            {
                "id": partition.id,
                "storage_root_url": partition.storage_root_url,
                "attempt": attempt,
                "pending": [asdict(r) for r in pending],
                "updated_at": now_millis(),
            },
        )
        return url

    def load_checkpoint(self, storage_root_url: str) -> Optional[UpdatePartition]:
        """
        Read the failed-update checkpoint of a cargo.

        Returns:
            Optional[UpdatePartition]: A partition holding only the pending resources, or
            None when there is no usable checkpoint.
        """
        url = failed_update_checkpoint_url(storage_root_url)
        data = read_json_document(self.store, url)
        if not isinstance(data, dict):
            return None
        try:
            pending = [
                DownloadableResource(
                    request_url=str(r["request_url"]),
                    storage_url=str(r["storage_url"]),
                    bytes=int(r["bytes"]),
                )
                for r in data["pending"]
            ]
            return UpdatePartition(
                id=str(data["id"]),
                storage_root_url=str(data["storage_root_url"]),
                downloadable_resources=pending,
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            logger.warning(f"Ignoring malformed checkpoint at {url}: {e}")
            return None

    def execute_update(
        self,
        partitions: List[UpdatePartition],
        on_progress: Optional[ProgressCallback] = None,
    ) -> Result[UpdateReport]:
        """
        Apply an update made of one or more cargo partitions.

        Stale files of every partition are deleted first. New files are then persisted;
        each further attempt only retries the files that failed before. Progress bytes
        accumulate across attempts.

        Parameters:
            partitions (List[UpdatePartition]): Per-cargo files to delete and to fetch.
            on_progress (Optional[ProgressCallback]): Progress callback.

        Returns:
            Result[UpdateReport]: Success when every file was stored. On failure the
            error message names the checkpoint URL(s) and the report lists the files
            that are still missing.
        """
        report = UpdateReport(
            total_bytes=sum(
                r.bytes for p in partitions for r in p.downloadable_resources
            )
        )

        for partition in partitions:
            for resource in partition.resources_to_delete:
                if self.store.delete_file(resource.storage_url):
                    report.deleted += 1

        pending: Dict[str, List[DownloadableResource]] = {
            p.id: list(p.downloadable_resources) for p in partitions
        }
        by_id = {p.id: p for p in partitions}

        for attempt in range(1, self.attempts + 1):
            report.attempts = attempt
            report.failed_requests = []
            still_pending: Dict[str, List[DownloadableResource]] = {}
            for partition_id, resources in pending.items():
                if not resources:
                    continue
                persisted = self.persist_asset_list(
                    resources,
                    total_bytes=report.total_bytes,
                    bytes_completed=report.bytes_completed,
                    on_progress=on_progress,
                )
                report.bytes_completed = persisted.bytes_completed
                if persisted.failed_requests:
                    report.failed_requests.extend(persisted.failed_requests)
                    failed_urls = {f.request_url for f in persisted.failed_requests}
                    remaining = [r for r in resources if r.request_url in failed_urls]
                    still_pending[partition_id] = remaining
                    self._save_checkpoint(by_id[partition_id], remaining, attempt)

            for partition_id in pending:
                if partition_id not in still_pending:
                    self.store.delete_file(
                        failed_update_checkpoint_url(by_id[partition_id].storage_root_url)
                    )

            if not still_pending:
                logger.info(
                    f"Update complete: {friendly_bytes(report.bytes_completed)} stored "
                    f"in {attempt} attempt(s)"
                )
                return Result.ok(report)

            pending = still_pending
            remaining_count = sum(len(r) for r in pending.values())
            logger.warning(
                f"Attempt {attempt}/{self.attempts} left {remaining_count} file(s) missing"
            )

        report.checkpoint_urls = [
            failed_update_checkpoint_url(by_id[pid].storage_root_url) for pid in pending
        ]
        return Result.err(
            f"update failed after {self.attempts} attempt(s); "
            f"{len(report.failed_requests)} file(s) missing, progress saved at "
            f"{', '.join(report.checkpoint_urls)}",
            data=report,
        )

    def resume_update(
        self, storage_root_url: str, on_progress: Optional[ProgressCallback] = None
    ) -> Result[UpdateReport]:
        """
        Continue an update from its failed-update checkpoint.

        Returns:
            Result[UpdateReport]: The outcome of retrying the pending files, or a failure
            when no checkpoint exists.
        """
        partition = self.load_checkpoint(storage_root_url)
        if partition is None:
            return Result.err(
                f"no failed update to resume at {failed_update_checkpoint_url(storage_root_url)}"
            )
        logger.info(
            f"Resuming update of {partition.id} with {len(partition.downloadable_resources)} pending file(s)"
        )
        return self.execute_update([partition], on_progress=on_progress)
