"""
Threaded background download facility.

ThreadedDownloadManager runs each queued download on its own thread, fetching
URLs through a bounded worker pool. Response bodies are spooled to a per-download
temporary directory as they arrive, so only headers and status stay in memory.
When the download ends the records are handed to registered completion
listeners as a BackgroundFetchEvent, which is what the reconciler consumes;
the spool directory is removed once every listener has returned.

A download ends with:
* "abort" when cancel_download() was called before it finished,
* "fail" when any request produced no response or a non-2xx status,
* "success" otherwise.
"""

import os
import shutil
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional

from bundlesync.constants import (
    APP_NAME,
    ASSET_RETRY_COUNT,
    DEFAULT_MAX_WORKERS,
    FETCH_RESULT_ABORT,
    FETCH_RESULT_FAIL,
    FETCH_RESULT_SUCCESS,
)
from bundlesync.log_utils import logger
from bundlesync.result import Result
from bundlesync.store.files import _atomic_write_bytes

from .interfaces import (
    BackgroundFetchEvent,
    BackgroundFetchRecord,
    DownloadManager,
    DownloadState,
    FetchFunction,
)


@dataclass
class _DownloadJob:
    id: str
    urls: List[str]
    title: str
    state: DownloadState
    cancel_event: threading.Event = field(default_factory=threading.Event)
    done_event: threading.Event = field(default_factory=threading.Event)
    records: List[BackgroundFetchRecord] = field(default_factory=list)
    spool_dir: str = ""
    thread: Optional[threading.Thread] = None


class ThreadedDownloadManager(DownloadManager):
    """
    Runs downloads on background threads and reports completion events.

    Parameters:
        fetch (FetchFunction): Retrying fetch primitive.
        max_workers (int): Concurrent requests per download.
        retry_count (int): Attempts per request.
        spool_root (Optional[str]): Parent of the per-download spool directories
            (the system temporary directory when None).
    """

    def __init__(
        self,
        fetch: FetchFunction,
        max_workers: int = DEFAULT_MAX_WORKERS,
        retry_count: int = ASSET_RETRY_COUNT,
        spool_root: Optional[str] = None,
    ):
        self.fetch = fetch
        self.max_workers = max(1, max_workers)
        self.retry_count = retry_count
        self.spool_root = spool_root
        self._jobs: Dict[str, _DownloadJob] = {}
        self._listeners: List[Callable[[BackgroundFetchEvent], None]] = []
        self._lock = threading.Lock()

    def add_completion_listener(
        self, listener: Callable[[BackgroundFetchEvent], None]
    ) -> None:
        with self._lock:
            self._listeners.append(listener)

    def queue_download(
        self, download_id: str, urls: List[str], title: str, download_total: int
    ) -> Result[str]:
        with self._lock:
            existing = self._jobs.get(download_id)
            if existing is not None and not existing.state.finished:
                return Result.err(f"download {download_id} is already queued")
            job = _DownloadJob(
                id=download_id,
                urls=list(urls),
                title=title,
                state=DownloadState(id=download_id, total=download_total),
            )
            self._jobs[download_id] = job
            job.thread = threading.Thread(
                target=self._run, args=(job,), name=f"bundlesync-download-{download_id}", daemon=True
            )
        logger.info(f"Queued download '{title}' ({len(urls)} file(s))")
        job.thread.start()
        return Result.ok(download_id)

    def _fetch_one(
        self, job: _DownloadJob, position: int, url: str
    ) -> Optional[BackgroundFetchRecord]:
        if job.cancel_event.is_set():
            return None
        fetched = self.fetch(url, retry_count=self.retry_count)
        response = fetched.data if fetched.success else None
        if response is None:
            logger.debug(f"Background request for {url} failed: {fetched.error_message}")
            return BackgroundFetchRecord(request_url=url, response=None)

        size = len(response.body)
        body_path = os.path.join(job.spool_dir, f"{position}.body")
        if _atomic_write_bytes(body_path, response.body):
            response = replace(response, body=b"")
        else:
            logger.warning(f"Could not spool {url}; keeping its body in memory")
            body_path = None
        with self._lock:
            job.state.downloaded += size
        return BackgroundFetchRecord(request_url=url, response=response, body_path=body_path)

    def _run(self, job: _DownloadJob) -> None:
        job.spool_dir = tempfile.mkdtemp(prefix=f"{APP_NAME}-", dir=self.spool_root)
        try:
            self._download(job)
        finally:
            shutil.rmtree(job.spool_dir, ignore_errors=True)
            job.records = []
            job.done_event.set()

    def _download(self, job: _DownloadJob) -> None:
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            records = list(
                executor.map(
                    lambda item: self._fetch_one(job, *item), enumerate(job.urls)
                )
            )
        job.records = [r for r in records if r is not None]

        if job.cancel_event.is_set():
            outcome, reason = FETCH_RESULT_ABORT, "aborted"
        else:
            bad = [
                r for r in job.records if r.response is None or not r.response.ok
            ]
            if bad:
                outcome, reason = FETCH_RESULT_FAIL, f"{len(bad)} request(s) failed"
            else:
                outcome, reason = FETCH_RESULT_SUCCESS, ""

        with self._lock:
            job.state.finished = True
            job.state.failed = outcome != FETCH_RESULT_SUCCESS
            job.state.failure_reason = reason
            listeners = list(self._listeners)

        event = BackgroundFetchEvent(
            id=job.id,
            result=outcome,
            title=job.title,
            records_available=True,
            records=job.records,
            failure_reason=reason,
        )
        logger.debug(f"Download {job.id} ended with '{outcome}'")
        for listener in listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001 - Catch-all so one listener cannot block the rest
                logger.exception(f"Completion listener failed for download {job.id}")

    def get_download_state(self, download_id: str) -> Optional[DownloadState]:
        with self._lock:
            job = self._jobs.get(download_id)
            return replace(job.state) if job is not None else None

    def cancel_download(self, download_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(download_id)
            if job is None or job.state.finished:
                return False
            job.cancel_event.set()
        logger.info(f"Cancelling download {download_id}")
        return True

    def current_download_ids(self) -> List[str]:
        with self._lock:
            return [job_id for job_id, job in self._jobs.items() if not job.state.finished]

    def wait(self, download_id: str, timeout: Optional[float] = None) -> bool:
        """
        Block until a download and its completion listeners have finished.

        Returns:
            bool: True if the download finished within `timeout`.
        """
        with self._lock:
            job = self._jobs.get(download_id)
        if job is None:
            return False
        return job.done_event.wait(timeout)
