"""
Core Interfaces for the bundlesync download subsystem

This module defines the data structures exchanged between the update checker,
the orchestrator, the background download facility and the reconciler, along
with the abstract download manager contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Callable, List, Optional

from bundlesync.log_utils import logger
from bundlesync.result import Result
from bundlesync.response import ResourceResponse
from bundlesync.store.files import _remove_quietly
from bundlesync.utils import remove_slash_at_end

if TYPE_CHECKING:
    from bundlesync.cargo.manifest import Manifest

# (url, retry_count=1) -> Result[ResourceResponse]
FetchFunction = Callable[..., Result[ResourceResponse]]

# (bytes_completed, total_bytes) -> None
ProgressCallback = Callable[[int, int], None]


@dataclass
class CargoReference:
    """Where a cargo is fetched from and where its files are stored."""

    request_root_url: str
    """Remote root the manifest and files are requested from"""

    storage_root_url: str
    """Root URL the files are stored under in the persistent store"""

    name: str = ""
    """Display name"""

    id: str = ""
    """Stable identifier; defaults to the request root URL"""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = remove_slash_at_end(self.request_root_url)


@dataclass
class DownloadableResource:
    request_url: str
    storage_url: str
    bytes: int


@dataclass
class UpdateCheckResult:
    """Outcome of checking one cargo for updates."""

    id: str
    name: str
    request_root_url: str
    storage_root_url: str
    version: str = ""
    """Version that would be installed"""

    previous_version: str = ""
    """Currently installed version, if any"""

    previous_version_exists: bool = False
    errors: List[str] = field(default_factory=list)
    downloadable_resources: List[DownloadableResource] = field(default_factory=list)
    resources_to_delete: List[DownloadableResource] = field(default_factory=list)
    bytes_to_download: int = 0
    bytes_to_delete: int = 0
    total_bytes: int = 0
    """Bytes of the cargo once the update is applied"""

    manifest_bytes: int = 0
    """Serialized size of the new manifest"""

    resolved_url: str = ""
    """URL the new manifest was finally served from"""

    new_manifest: Optional["Manifest"] = None
    old_manifest: Optional["Manifest"] = None

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def update_available(self) -> bool:
        return not self.has_errors() and self.new_manifest is not None


@dataclass
class FailedRequest:
    """A resource that could not be fetched or stored."""

    request_url: str
    storage_url: str
    bytes: int
    reason: str = ""
    status: Optional[int] = None


@dataclass
class PersistResult:
    failed_requests: List[FailedRequest] = field(default_factory=list)
    bytes_completed: int = 0


@dataclass
class DownloadState:
    """Progress snapshot of a queued background download."""

    id: str
    downloaded: int = 0
    total: int = 0
    failed: bool = False
    finished: bool = False
    failure_reason: str = ""


@dataclass
class DownloadProgress(DownloadState):
    """
    Download state combined with what the indices say about the cargo.

    `phase` is "downloading" while the background download runs, "installing"
    once it finished but its records are not yet committed, "ready" when the
    cargo is cached and "failed" when the cargo ended up update-failed or
    update-aborted (the state name is the failure reason).
    """

    phase: str = ""
    installing: bool = False
    ready: bool = False


@dataclass
class BackgroundFetchRecord:
    """
    One completed request of a background download.

    The body may be spooled to ``body_path`` instead of being held in memory,
    in which case ``response.body`` is empty until response_ready() loads it.
    """

    request_url: str
    response: Optional[ResourceResponse]
    """None when the request never produced a response"""

    body_path: Optional[str] = None
    """Spool file holding the response body, if any"""

    def response_ready(self) -> Optional[ResourceResponse]:
        """
        Return the response with its body loaded.

        Returns:
            Optional[ResourceResponse]: A copy of the response carrying the spooled body, the
            response itself when nothing was spooled, or None if the request failed or the
            spool file can no longer be read.
        """
        if self.response is None or self.body_path is None:
            return self.response
        try:
            with open(self.body_path, "rb") as f:
                body = f.read()
        except OSError as e:
            logger.error(f"Could not read spooled body of {self.request_url}: {e}")
            return None
        return replace(self.response, body=body)

    def release(self) -> None:
        """Drop the spooled body once it has been consumed."""
        if self.body_path is not None:
            _remove_quietly(self.body_path)
            self.body_path = None


@dataclass
class BackgroundFetchEvent:
    """Completion event raised by the background download facility."""

    id: str
    result: str
    """One of success, abort or fail"""

    title: str = ""
    records_available: bool = True
    records: List[BackgroundFetchRecord] = field(default_factory=list)
    failure_reason: str = ""


class DownloadManager(ABC):
    """
    Host facility that runs long downloads independently of the caller.

    When a queued download ends, the manager raises a BackgroundFetchEvent to
    every registered completion listener.
    """

    @abstractmethod
    def queue_download(
        self, download_id: str, urls: List[str], title: str, download_total: int
    ) -> Result[str]:
        """Queue `urls` for download under `download_id`."""

    @abstractmethod
    def get_download_state(self, download_id: str) -> Optional[DownloadState]:
        """Return progress for `download_id`, or None if unknown."""

    @abstractmethod
    def cancel_download(self, download_id: str) -> bool:
        """Request cancellation; the download ends with an "abort" event."""

    @abstractmethod
    def current_download_ids(self) -> List[str]:
        """Ids of downloads that have not finished yet."""

    @abstractmethod
    def add_completion_listener(
        self, listener: Callable[[BackgroundFetchEvent], None]
    ) -> None:
        """Register a callback invoked with each completion event."""
