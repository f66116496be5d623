"""
Filesystem-backed persistent store.

Each entry is kept as two files named after the SHA-256 of its URL: the raw
body (``<hash>.body``) and a JSON sidecar holding the URL, status and headers
(``<hash>.meta.json``). The sidecar is written last, so an entry only becomes
visible once its body is fully in place.
"""

import hashlib
import os
import shutil
import threading
from typing import List, Optional

import platformdirs

from bundlesync.constants import APP_NAME
from bundlesync.log_utils import logger

from .files import _atomic_write_bytes, _atomic_write_json, _read_json, _remove_quietly
from .interfaces import FileCache, ResourceResponse, StorageUsage

BODY_SUFFIX = ".body"
META_SUFFIX = ".meta.json"


class FileSystemCache(FileCache):
    """
    Stores responses on disk under a cache directory.

    Entries are sharded into sub-directories by the first two hex digits of the URL
    hash to keep directory sizes small.
    """

    def __init__(self, cache_dir: Optional[str] = None, quota_bytes: Optional[int] = None):
        """
        Initialize the store.

        Parameters:
            cache_dir (Optional[str]): Directory for entries. Defaults to the platform user cache directory.
            quota_bytes (Optional[int]): Fixed quota to report. When None, the quota is the
                space already used plus the free space left on the volume.
        """
        self.cache_dir = os.path.join(
            cache_dir or platformdirs.user_cache_dir(APP_NAME), "store"
        )
        self.quota_bytes = quota_bytes
        self._lock = threading.Lock()
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
        except OSError as e:
            logger.error(f"Could not create cache directory {self.cache_dir}: {e}")
            raise

    def _entry_paths(self, url: str) -> tuple:
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
        shard = os.path.join(self.cache_dir, digest[:2])
        return (
            os.path.join(shard, f"{digest}{BODY_SUFFIX}"),
            os.path.join(shard, f"{digest}{META_SUFFIX}"),
        )

    def get_file(self, url: str) -> Optional[ResourceResponse]:
        body_path, meta_path = self._entry_paths(url)
        meta = _read_json(meta_path)
        if not isinstance(meta, dict) or meta.get("url") != url:
            return None
        try:
            with open(body_path, "rb") as f:
                body = f.read()
        except OSError as e:
            logger.debug(f"Cache entry for {url} has no readable body: {e}")
            return None
        return ResourceResponse(
            body=body,
            status=int(meta.get("status", 200)),
            status_text=str(meta.get("status_text", "OK")),
            headers=meta.get("headers") or {},
            url=url,
        )

    def put_file(self, url: str, response: ResourceResponse) -> bool:
        body_path, meta_path = self._entry_paths(url)
        meta = {
            "url": url,
            "status": response.status,
            "status_text": response.status_text,
            "headers": dict(response.headers),
        }
        with self._lock:
            # Hide the old entry while its body is being replaced
            _remove_quietly(meta_path)
            if not _atomic_write_bytes(body_path, response.body):
                return False
            return _atomic_write_json(meta_path, meta)

    def delete_file(self, url: str) -> bool:
        body_path, meta_path = self._entry_paths(url)
        with self._lock:
            existed = _remove_quietly(meta_path)
            _remove_quietly(body_path)
        return existed

    def list_urls(self) -> List[str]:
        """
        List the URLs of every stored entry.

        Returns:
            List[str]: Sorted entry URLs.
        """
        urls = []
        for root, _dirs, files in os.walk(self.cache_dir):
            for name in files:
                if not name.endswith(META_SUFFIX):
                    continue
                meta = _read_json(os.path.join(root, name))
                if isinstance(meta, dict) and isinstance(meta.get("url"), str):
                    urls.append(meta["url"])
        return sorted(urls)

    def query_usage(self) -> StorageUsage:
        used = 0
        for root, _dirs, files in os.walk(self.cache_dir):
            for name in files:
                try:
                    used += os.path.getsize(os.path.join(root, name))
                except OSError:
                    continue
        if self.quota_bytes is not None:
            return StorageUsage(used=used, quota=self.quota_bytes)
        free = shutil.disk_usage(self.cache_dir).free
        return StorageUsage(used=used, quota=used + free)
