"""
bundlesync keeps versioned bundles of static files ("cargos") cached and up to date.
"""

from bundlesync.config import ClientConfig, load_config
from bundlesync.download.client import ClientStatus, DownloadClient
from bundlesync.download.interfaces import CargoReference
from bundlesync.routing.policy import FetchPolicyRouter

__version__ = "0.1.0"

__all__ = [
    "CargoReference",
    "ClientConfig",
    "ClientStatus",
    "DownloadClient",
    "FetchPolicyRouter",
    "load_config",
]
