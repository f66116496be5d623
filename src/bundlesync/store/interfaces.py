"""
Core Interfaces for the bundlesync persistent store

This module defines the abstract store contract that both indices and cached
assets live in. Entries are ResourceResponse records keyed by URL.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from bundlesync.response import ResourceResponse

__all__ = ["FileCache", "ResourceResponse", "StorageUsage"]


@dataclass
class StorageUsage:
    """Storage accounting reported by a store."""

    used: int
    """Bytes currently used"""

    quota: int
    """Bytes the store may use in total"""


class FileCache(ABC):
    """
    Abstract persistent key-value store keyed by URL.

    Implementations must be safe to call from multiple worker threads.
    """

    @abstractmethod
    def get_file(self, url: str) -> Optional[ResourceResponse]:
        """
        Look up a stored response.

        Returns:
            Optional[ResourceResponse]: The stored response, or None if absent.
        """

    @abstractmethod
    def put_file(self, url: str, response: ResourceResponse) -> bool:
        """
        Store a response under `url`, replacing any existing entry.

        Returns:
            bool: True if the entry was written.
        """

    @abstractmethod
    def delete_file(self, url: str) -> bool:
        """
        Delete the entry for `url`.

        Returns:
            bool: True if an entry existed and was removed.
        """

    @abstractmethod
    def query_usage(self) -> StorageUsage:
        """Report used bytes and the quota available to the store."""

    @abstractmethod
    def list_urls(self) -> List[str]:
        """List the URLs of every stored entry."""
