"""
Persistent store contract, store implementations and the durable indices kept in them.
"""

from .filesystem import FileSystemCache
from .indices import (
    CargoIndex,
    CargoIndexCollection,
    DownloadIndex,
    DownloadIndexCollection,
    IndexStore,
    OperationCode,
    ResourceMeta,
    remove_cargo_index,
    remove_download_index,
    update_cargo_index,
    update_download_index,
)
from .interfaces import FileCache, ResourceResponse, StorageUsage
from .memory import InMemoryCache

__all__ = [
    "CargoIndex",
    "CargoIndexCollection",
    "DownloadIndex",
    "DownloadIndexCollection",
    "FileCache",
    "FileSystemCache",
    "InMemoryCache",
    "IndexStore",
    "OperationCode",
    "ResourceMeta",
    "ResourceResponse",
    "StorageUsage",
    "remove_cargo_index",
    "remove_download_index",
    "update_cargo_index",
    "update_download_index",
]
