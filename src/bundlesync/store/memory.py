import copy
import threading
from typing import Dict, List, Optional

from .interfaces import FileCache, ResourceResponse, StorageUsage


class InMemoryCache(FileCache):
    """Process-local store, used for tests and ephemeral sessions."""

    def __init__(self, quota_bytes: int = 2**40):
        self.quota_bytes = quota_bytes
        self._entries: Dict[str, ResourceResponse] = {}
        self._lock = threading.Lock()

    def get_file(self, url: str) -> Optional[ResourceResponse]:
        with self._lock:
            entry = self._entries.get(url)
        if entry is None:
            return None
        return copy.deepcopy(entry)

    def put_file(self, url: str, response: ResourceResponse) -> bool:
        stored = copy.deepcopy(response)
        stored.url = url
        with self._lock:
            self._entries[url] = stored
        return True

    def delete_file(self, url: str) -> bool:
        with self._lock:
            return self._entries.pop(url, None) is not None

    def list_urls(self) -> List[str]:
        with self._lock:
            return sorted(self._entries)

    def query_usage(self) -> StorageUsage:
        with self._lock:
            used = sum(len(entry.body) for entry in self._entries.values())
        return StorageUsage(used=used, quota=self.quota_bytes)
