"""
Durable indices of installed cargos and in-flight downloads.

Two JSON documents are kept per origin in the persistent store:

* ``{origin}/__cargo-indices__.json``: one CargoIndex per installed cargo.
* ``{origin}/__download-indices__.json``: one DownloadIndex per in-flight or
  failed update, with a running ``total_bytes`` equal to the sum of members.

A failed or aborted background download additionally leaves an error index at
``{storage_root}/__err-download-index__.json`` holding only the resources that
still need fetching.

Reads never fail: a missing or corrupt document yields a fresh, empty
collection. There is no cross-writer locking, so callers must serialize
read-modify-write sequences for a given origin.
"""

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from bundlesync.constants import (
    CARGO_INDICES_NAME,
    DOWNLOAD_INDICES_NAME,
    ERROR_DOWNLOAD_INDEX_NAME,
    JSON_MIME_TYPE,
    STATE_CACHED,
)
from bundlesync.log_utils import logger
from bundlesync.result import Result
from bundlesync.utils import cache_headers, join_url, now_millis, remove_slash_at_end

from .interfaces import FileCache, ResourceResponse


class OperationCode(str, Enum):
    """Outcome codes for index collection operations."""

    UPDATED_EXISTING = "updated-existing"
    CREATED_NEW = "created-new"
    NOT_FOUND = "not-found"
    REMOVED = "removed"
    SAVED = "saved"


@dataclass
class ResourceMeta:
    storage_url: str
    bytes: int
    mime: str
    status: Optional[int] = None
    status_text: Optional[str] = None


@dataclass
class CargoIndex:
    """Durable record of one installed cargo."""

    id: str
    name: str
    storage_root_url: str
    request_root_url: str
    bytes: int
    entry: str
    version: str
    state: str = STATE_CACHED
    created_at: int = 0
    updated_at: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CargoIndex":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            storage_root_url=str(data["storage_root_url"]),
            request_root_url=str(data["request_root_url"]),
            bytes=int(data["bytes"]),
            entry=str(data["entry"]),
            version=str(data["version"]),
            state=str(data.get("state", STATE_CACHED)),
            created_at=int(data.get("created_at", 0)),
            updated_at=int(data.get("updated_at", 0)),
        )


@dataclass
class DownloadIndex:
    """Durable record of one in-flight or failed bulk download."""

    id: str
    title: str
    storage_root_url: str
    version: str
    previous_version: str
    resource_map: Dict[str, ResourceMeta] = field(default_factory=dict)
    total_bytes: int = 0
    started_at: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DownloadIndex":
        resource_map = {
            str(url): ResourceMeta(
                storage_url=str(meta["storage_url"]),
                bytes=int(meta["bytes"]),
                mime=str(meta["mime"]),
                status=meta.get("status"),
                status_text=meta.get("status_text"),
            )
            for url, meta in dict(data.get("resource_map") or {}).items()
        }
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            storage_root_url=str(data["storage_root_url"]),
            version=str(data["version"]),
            previous_version=str(data["previous_version"]),
            resource_map=resource_map,
            total_bytes=int(data.get("total_bytes", 0)),
            started_at=int(data.get("started_at", 0)),
        )


def _timestamps() -> Dict[str, int]:
    now = now_millis()
    return {"created_at": now, "updated_at": now, "saved_at": now}


@dataclass
class CargoIndexCollection:
    cargos: List[CargoIndex] = field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0
    saved_at: int = 0

    @classmethod
    def empty(cls) -> "CargoIndexCollection":
        return cls(**_timestamps())

    def get(self, cargo_id: str) -> Optional[CargoIndex]:
        for cargo in self.cargos:
            if cargo.id == cargo_id:
                return cargo
        return None


@dataclass
class DownloadIndexCollection:
    downloads: List[DownloadIndex] = field(default_factory=list)
    total_bytes: int = 0
    created_at: int = 0
    updated_at: int = 0
    saved_at: int = 0

    @classmethod
    def empty(cls) -> "DownloadIndexCollection":
        return cls(**_timestamps())

    def get(self, download_id: str) -> Optional[DownloadIndex]:
        for download in self.downloads:
            if download.id == download_id:
                return download
        return None


def cargo_indices_url(origin: str) -> str:
    return f"{remove_slash_at_end(origin)}/{CARGO_INDICES_NAME}"


def download_indices_url(origin: str) -> str:
    return f"{remove_slash_at_end(origin)}/{DOWNLOAD_INDICES_NAME}"


def error_download_index_url(storage_root_url: str) -> str:
    return join_url(storage_root_url, ERROR_DOWNLOAD_INDEX_NAME)


def read_json_document(store: FileCache, url: str) -> Optional[Any]:
    """
    Read a JSON document from the store.

    Returns:
        Optional[Any]: The decoded JSON, or None if the entry is missing, not ok or unparsable.
    """
    response = store.get_file(url)
    if response is None or not response.ok:
        return None
    try:
        return response.json()
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Ignoring corrupt document at {url}: {e}")
        return None


def write_json_document(store: FileCache, url: str, data: Any) -> Result[OperationCode]:
    body = json.dumps(data).encode("utf-8")
    response = ResourceResponse(
        body=body, headers=cache_headers(JSON_MIME_TYPE, len(body)), url=url
    )
    if not store.put_file(url, response):
        logger.error(f"Could not persist document {url}")
        return Result.err(f"could not persist {url}")
    return Result.ok(OperationCode.SAVED)


def update_cargo_index(collection: CargoIndexCollection, entry: CargoIndex) -> OperationCode:
    """
    Insert or replace a cargo index by id.

    The stored entry keeps its original `created_at`; `updated_at` is stamped.

    Returns:
        OperationCode: CREATED_NEW or UPDATED_EXISTING.
    """
    now = now_millis()
    collection.updated_at = now
    entry.updated_at = now
    for i, existing in enumerate(collection.cargos):
        if existing.id == entry.id:
            entry.created_at = existing.created_at
            collection.cargos[i] = entry
            return OperationCode.UPDATED_EXISTING
    entry.created_at = now
    collection.cargos.append(entry)
    return OperationCode.CREATED_NEW


def remove_cargo_index(collection: CargoIndexCollection, cargo_id: str) -> OperationCode:
    for i, existing in enumerate(collection.cargos):
        if existing.id == cargo_id:
            del collection.cargos[i]
            collection.updated_at = now_millis()
            return OperationCode.REMOVED
    return OperationCode.NOT_FOUND


def update_download_index(
    collection: DownloadIndexCollection, entry: DownloadIndex
) -> OperationCode:
    """
    Insert or replace a download index by id, keeping the collection byte total exact.

    Replacing an entry adjusts `collection.total_bytes` by the difference between the
    new and old entry totals; inserting adds the new entry's total.

    Returns:
        OperationCode: CREATED_NEW or UPDATED_EXISTING.
    """
    collection.updated_at = now_millis()
    for i, existing in enumerate(collection.downloads):
        if existing.id == entry.id:
            collection.total_bytes += entry.total_bytes - existing.total_bytes
            collection.downloads[i] = entry
            return OperationCode.UPDATED_EXISTING
    collection.total_bytes += entry.total_bytes
    collection.downloads.append(entry)
    return OperationCode.CREATED_NEW


def remove_download_index(
    collection: DownloadIndexCollection, download_id: str
) -> OperationCode:
    """
    Remove a download index by id and subtract its bytes from the collection total.

    Returns:
        OperationCode: REMOVED, or NOT_FOUND when no entry has that id.
    """
    for i, existing in enumerate(collection.downloads):
        if existing.id == download_id:
            del collection.downloads[i]
            collection.total_bytes -= existing.total_bytes
            collection.updated_at = now_millis()
            return OperationCode.REMOVED
    return OperationCode.NOT_FOUND


class IndexStore:
    """
    Reads and writes index documents for one origin.

    Every document is stored as a JSON response in the persistent store, so
    indices share the store's durability with the cached assets.
    """

    def __init__(self, store: FileCache, origin: str):
        self.store = store
        self.origin = remove_slash_at_end(origin)

    # ------------------------------------------------------------------ #
    # generic documents
    # ------------------------------------------------------------------ #

    def read_document(self, url: str) -> Optional[Any]:
        return read_json_document(self.store, url)

    def write_document(self, url: str, data: Any) -> Result[OperationCode]:
        return write_json_document(self.store, url, data)

    def delete_document(self, url: str) -> bool:
        return self.store.delete_file(url)

    # ------------------------------------------------------------------ #
    # cargo indices
    # ------------------------------------------------------------------ #

    def get_cargo_indices(self) -> CargoIndexCollection:
        url = cargo_indices_url(self.origin)
        data = self.read_document(url)
        if data is None:
            return CargoIndexCollection.empty()
        try:
            return CargoIndexCollection(
                cargos=[CargoIndex.from_dict(c) for c in data["cargos"]],
                created_at=int(data.get("created_at", 0)),
                updated_at=int(data.get("updated_at", 0)),
                saved_at=int(data.get("saved_at", 0)),
            )
        except (KeyError, TypeError, ValueError, OverflowError, AttributeError) as e:
            logger.warning(f"Cargo indices at {url} are malformed, starting fresh: {e}")
            return CargoIndexCollection.empty()

    def save_cargo_indices(self, collection: CargoIndexCollection) -> Result[OperationCode]:
        collection.saved_at = now_millis()
        return self.write_document(cargo_indices_url(self.origin), asdict(collection))

    # ------------------------------------------------------------------ #
    # download indices
    # ------------------------------------------------------------------ #

    def get_download_indices(self) -> DownloadIndexCollection:
        url = download_indices_url(self.origin)
        data = self.read_document(url)
        if data is None:
            return DownloadIndexCollection.empty()
        try:
            return DownloadIndexCollection(
                downloads=[DownloadIndex.from_dict(d) for d in data["downloads"]],
                total_bytes=int(data.get("total_bytes", 0)),
                created_at=int(data.get("created_at", 0)),
                updated_at=int(data.get("updated_at", 0)),
                saved_at=int(data.get("saved_at", 0)),
            )
        except (KeyError, TypeError, ValueError, OverflowError, AttributeError) as e:
            logger.warning(f"Download indices at {url} are malformed, starting fresh: {e}")
            return DownloadIndexCollection.empty()

    def save_download_indices(
        self, collection: DownloadIndexCollection
    ) -> Result[OperationCode]:
        collection.saved_at = now_millis()
        return self.write_document(download_indices_url(self.origin), asdict(collection))

    # ------------------------------------------------------------------ #
    # error index
    # ------------------------------------------------------------------ #

    def get_error_download_index(self, storage_root_url: str) -> Optional[DownloadIndex]:
        url = error_download_index_url(storage_root_url)
        data = self.read_document(url)
        if data is None:
            return None
        try:
            return DownloadIndex.from_dict(data)
        except (KeyError, TypeError, ValueError, OverflowError, AttributeError) as e:
            logger.warning(f"Error index at {url} is malformed: {e}")
            return None

    def save_error_download_index(self, index: DownloadIndex) -> Result[OperationCode]:
        return self.write_document(
            error_download_index_url(index.storage_root_url), asdict(index)
        )

    def delete_error_download_index(self, storage_root_url: str) -> bool:
        return self.delete_document(error_download_index_url(storage_root_url))
