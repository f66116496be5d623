"""
Update checking, foreground and background downloads, and their reconciliation.
"""

from .client import ClientStatus, DownloadClient, create_resource_map
from .interfaces import (
    BackgroundFetchEvent,
    BackgroundFetchRecord,
    CargoReference,
    DownloadableResource,
    DownloadManager,
    DownloadProgress,
    DownloadState,
    FailedRequest,
    PersistResult,
    UpdateCheckResult,
)
from .manager import ThreadedDownloadManager
from .orchestrator import (
    DownloadOrchestrator,
    UpdatePartition,
    UpdateReport,
    failed_update_checkpoint_url,
    persist_asset_list,
)
from .quota import DiskInfo, DiskQuotaAdvisor
from .reconciler import BackgroundFetchReconciler, ReconcileResult
from .update_check import UpdateChecker

__all__ = [
    "BackgroundFetchEvent",
    "BackgroundFetchReconciler",
    "BackgroundFetchRecord",
    "CargoReference",
    "ClientStatus",
    "DiskInfo",
    "DiskQuotaAdvisor",
    "DownloadClient",
    "DownloadManager",
    "DownloadOrchestrator",
    "DownloadProgress",
    "DownloadState",
    "DownloadableResource",
    "FailedRequest",
    "PersistResult",
    "ReconcileResult",
    "ThreadedDownloadManager",
    "UpdateCheckResult",
    "UpdateChecker",
    "UpdatePartition",
    "UpdateReport",
    "create_resource_map",
    "failed_update_checkpoint_url",
    "persist_asset_list",
]
