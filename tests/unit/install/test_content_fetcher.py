"""Unit tests for package fetching and the download pool."""

from __future__ import annotations

import pytest

from core.errors import PackInstallFailure
from fakes import FakeFetcher, write_package
from install.content_fetcher import (
    FeedDirectoryFetcher,
    OfflineCacheFetcher,
    PackageDownloader,
    package_file_name,
)


class _FlakyFetcher(FakeFetcher):
    def __init__(self, failures_before_success: int) -> None:
        super().__init__()
        self._remaining_failures = failures_before_success

    def download(self, package_id, version, dest_dir):
        if self._remaining_failures:
            self._remaining_failures -= 1
            self.calls.append((package_id, version))
            raise ConnectionError("feed unavailable")
        return super().download(package_id, version, dest_dir)


def test_fetch_retries_transient_failures(tmp_path) -> None:
    """A transient failure is retried within the attempt budget."""
    fetcher = _FlakyFetcher(failures_before_success=2)
    downloader = PackageDownloader(fetcher, workers=1, retries=3)

    downloaded = downloader.fetch("Pack.A", "1.0.0", tmp_path)

    assert downloaded.is_file() and len(fetcher.calls) == 3


def test_fetch_raises_after_retries_exhausted(tmp_path) -> None:
    """Exhausting retries surfaces a pack install failure."""
    fetcher = FakeFetcher()
    fetcher.failures["Pack.A"] = ConnectionError("feed unavailable")
    downloader = PackageDownloader(fetcher, workers=1, retries=2)

    with pytest.raises(PackInstallFailure, match="after 2 attempts"):
        downloader.fetch("Pack.A", "1.0.0", tmp_path)

    assert len(fetcher.calls) == 2


def test_fetch_all_aborts_batch_on_first_failure(tmp_path) -> None:
    """One failing package fails the whole batch."""
    fetcher = FakeFetcher()
    fetcher.failures["Pack.B"] = ConnectionError("feed unavailable")
    downloader = PackageDownloader(fetcher, workers=2, retries=1)

    with pytest.raises(PackInstallFailure, match="Pack.B"):
        downloader.fetch_all([("Pack.A", "1.0.0"), ("Pack.B", "1.0.0")], tmp_path)


def test_fetch_all_deduplicates_requests(tmp_path) -> None:
    """Duplicate requests download once."""
    fetcher = FakeFetcher()
    downloader = PackageDownloader(fetcher, workers=4, retries=1)

    downloaded = downloader.fetch_all([("Pack.A", "1.0.0"), ("Pack.A", "1.0.0")], tmp_path)

    assert list(downloaded) == [("Pack.A", "1.0.0")] and len(fetcher.calls) == 1


def test_offline_cache_miss_is_a_hard_failure(tmp_path) -> None:
    """A cache miss never falls back and is not retried."""
    cache_dir = tmp_path / "cache"
    write_package(cache_dir / package_file_name("Pack.A", "1.0.0"), {"a": "b"})
    downloader = PackageDownloader(OfflineCacheFetcher(cache_dir), workers=1, retries=3)

    hit = downloader.fetch("Pack.A", "1.0.0", tmp_path / "scratch")

    with pytest.raises(PackInstallFailure, match="Offline cache"):
        downloader.fetch("Pack.B", "1.0.0", tmp_path / "scratch")
    assert hit == cache_dir / package_file_name("Pack.A", "1.0.0")


def test_feed_directory_fetcher_copies_archives(tmp_path) -> None:
    """Local feeds copy the archive into the scratch directory."""
    feed_dir = tmp_path / "feed"
    write_package(feed_dir / package_file_name("Pack.A", "1.0.0"), {"a": "b"})

    copied = FeedDirectoryFetcher(feed_dir).download("Pack.A", "1.0.0", tmp_path / "dest")

    assert copied.parent == tmp_path / "dest" and copied.is_file()
