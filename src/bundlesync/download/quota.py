from dataclasses import dataclass

from bundlesync.constants import DISK_CLEAR_MULTIPLIER, SYSTEM_RESERVED_BYTES
from bundlesync.log_utils import logger
from bundlesync.store.indices import DownloadIndexCollection
from bundlesync.store.interfaces import FileCache
from bundlesync.utils import friendly_bytes


@dataclass
class DiskInfo:
    used: int
    """Bytes stored plus bytes promised to in-flight downloads"""

    total: int
    """Quota minus the reserved system buffer (never negative)"""

    left: int
    """total - used; negative when over budget"""


class DiskQuotaAdvisor:
    """
    Admission control for updates.

    Projected growth is compared against the store's quota less a fixed
    reserved buffer, counting bytes that in-flight downloads will still add.
    """

    def __init__(self, store: FileCache, reserved_bytes: int = SYSTEM_RESERVED_BYTES):
        self.store = store
        self.reserved_bytes = reserved_bytes

    def disk_info(self, download_indices: DownloadIndexCollection) -> DiskInfo:
        usage = self.store.query_usage()
        used = usage.used + download_indices.total_bytes
        total = max(usage.quota - self.reserved_bytes, 0)
        return DiskInfo(used=used, total=total, left=total - used)

    @staticmethod
    def has_enough_space(info: DiskInfo, bytes_to_add: int) -> bool:
        return info.total > 0 and info.used + bytes_to_add < info.total

    @staticmethod
    def bytes_needed(info: DiskInfo, bytes_to_add: int) -> int:
        """
        Bytes the host should free before retrying an update of `bytes_to_add` bytes.

        The exact shortfall is scaled by DISK_CLEAR_MULTIPLIER. Returns 0 if the update
        already fits.
        """
        if DiskQuotaAdvisor.has_enough_space(info, bytes_to_add):
            return 0
        shortfall = max(info.used + bytes_to_add - info.total + 1, 0)
        return shortfall * DISK_CLEAR_MULTIPLIER

    def admit(self, download_indices: DownloadIndexCollection, bytes_to_add: int) -> bool:
        """
        Decide whether an update adding `bytes_to_add` bytes may be queued.

        Returns:
            bool: True if the projected usage stays below the budget.
        """
        info = self.disk_info(download_indices)
        if self.has_enough_space(info, bytes_to_add):
            return True
        logger.warning(
            f"Not enough storage for {friendly_bytes(bytes_to_add)}: "
            f"{friendly_bytes(self.bytes_needed(info, bytes_to_add))} more needed "
            f"({friendly_bytes(info.used)} used of {friendly_bytes(info.total)})"
        )
        return False
