"""
Tests for storage admission control.
"""

import pytest

from bundlesync.download.quota import DiskInfo, DiskQuotaAdvisor
from bundlesync.response import ResourceResponse
from bundlesync.store.indices import DownloadIndex, DownloadIndexCollection, update_download_index
from bundlesync.store.memory import InMemoryCache

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]


def _pending(total_bytes):
    collection = DownloadIndexCollection.empty()
    update_download_index(
        collection,
        DownloadIndex(
            id="https://cdn.example.com/pong",
            title="Pong",
            storage_root_url="https://games.example.com/pong/",
            version="0.2.0",
            previous_version="0.1.0",
            total_bytes=total_bytes,
        ),
    )
    return collection


class TestDiskInfo:
    """Test usage accounting."""

    def test_counts_in_flight_downloads(self):
        """Test pending download bytes count as used."""
        store = InMemoryCache(quota_bytes=10_000)
        store.put_file("https://games.example.com/a", ResourceResponse(body=b"x" * 300))
        info = DiskQuotaAdvisor(store, reserved_bytes=1_000).disk_info(_pending(700))
        assert info == DiskInfo(used=1_000, total=9_000, left=8_000)

    def test_total_never_negative(self):
        """Test a quota smaller than the reserve leaves no budget."""
        store = InMemoryCache(quota_bytes=100)
        info = DiskQuotaAdvisor(store, reserved_bytes=1_000).disk_info(
            DownloadIndexCollection.empty()
        )
        assert info.total == 0
        assert info.left == 0


class TestAdmission:
    """Test admission decisions."""

    def test_admits_when_it_fits(self):
        """Test updates below the budget are admitted."""
        advisor = DiskQuotaAdvisor(InMemoryCache(quota_bytes=10_000), reserved_bytes=0)
        assert advisor.admit(DownloadIndexCollection.empty(), 9_999)

    def test_rejects_at_budget(self):
        """Test reaching the budget exactly is rejected."""
        advisor = DiskQuotaAdvisor(InMemoryCache(quota_bytes=10_000), reserved_bytes=0)
        assert not advisor.admit(DownloadIndexCollection.empty(), 10_000)

    def test_in_flight_bytes_reduce_headroom(self):
        """Test queued downloads are counted before admitting another."""
        advisor = DiskQuotaAdvisor(InMemoryCache(quota_bytes=10_000), reserved_bytes=0)
        assert advisor.admit(DownloadIndexCollection.empty(), 6_000)
        assert not advisor.admit(_pending(6_000), 6_000)

    def test_no_budget_rejects_everything(self):
        """Test an empty budget rejects even zero-byte updates."""
        advisor = DiskQuotaAdvisor(InMemoryCache(quota_bytes=100), reserved_bytes=1_000)
        assert not advisor.admit(DownloadIndexCollection.empty(), 0)

    def test_bytes_needed(self):
        """Test the shortfall is scaled by the disk clear multiplier."""
        info = DiskInfo(used=900, total=1_000, left=100)
        assert DiskQuotaAdvisor.bytes_needed(info, 50) == 0
        # 101 bytes short, times 3
        assert DiskQuotaAdvisor.bytes_needed(info, 200) == 303

    def test_bytes_needed_exact_fit(self):
        """Test filling the budget exactly needs one byte, scaled."""
        info = DiskInfo(used=900, total=1_000, left=100)
        assert DiskQuotaAdvisor.bytes_needed(info, 100) == 3
