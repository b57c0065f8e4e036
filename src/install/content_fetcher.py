"""Package archive fetching.

This module provides the offline-cache and local-feed fetchers plus the
bounded download pool the installer uses. Downloads run on a fixed-size
thread pool with per-package retries; one package exhausting its retries
aborts the whole batch. Calls block until every download has settled.
"""

from __future__ import annotations

import shutil
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Sequence

from core.constants import DEFAULT_DOWNLOAD_RETRIES, DEFAULT_DOWNLOAD_WORKERS, OFFLINE_PACKAGE_EXTENSION
from core.errors import PackInstallFailure
from core.logging_config import get_logger
from resolve.interfaces import ContentFetcher

_LOGGER = get_logger(__name__)

PackageRequest = tuple[str, str]


def package_file_name(package_id: str, version: str) -> str:
    return f"{package_id}.{version}{OFFLINE_PACKAGE_EXTENSION}"


class OfflineCacheFetcher:
    """Reads package archives from a pre-populated cache directory.

    A missing archive is a hard failure; there is no fallback to a feed.
    """

    def __init__(self, cache_dir: Path) -> None:
        self._cache_dir = cache_dir

    def download(self, package_id: str, version: str, dest_dir: Path) -> Path:
        cached = self._cache_dir / package_file_name(package_id, version)
        if not cached.is_file():
            raise PackInstallFailure(
                f"Offline cache {self._cache_dir} is missing package {package_id} {version}. "
                "Populate the cache with the package or install online."
            )
        _LOGGER.info("package_read_from_cache", package_id=package_id, version=version)
        return cached


class FeedDirectoryFetcher:
    """Copies package archives out of a local feed directory."""

    def __init__(self, feed_dir: Path) -> None:
        self._feed_dir = feed_dir

    def download(self, package_id: str, version: str, dest_dir: Path) -> Path:
        source = self._feed_dir / package_file_name(package_id, version)
        if not source.is_file():
            raise FileNotFoundError(f"Package {package_id} {version} not found in feed {self._feed_dir}.")
        dest_dir.mkdir(parents=True, exist_ok=True)
        target = dest_dir / source.name
        shutil.copyfile(source, target)
        return target


class PackageDownloader:
    """Bounded, retrying front end over a content fetcher."""

    def __init__(
        self,
        fetcher: ContentFetcher,
        workers: int = DEFAULT_DOWNLOAD_WORKERS,
        retries: int = DEFAULT_DOWNLOAD_RETRIES,
    ) -> None:
        self._fetcher = fetcher
        self._workers = workers
        self._retries = retries

    def fetch(self, package_id: str, version: str, download_dir: Path) -> Path:
        """Fetch one package, retrying transient failures.

        Raises:
            PackInstallFailure: If the cache misses or retries are exhausted.
        """
        dest_dir = download_dir / f"{package_id}.{version}"
        last_error: Exception | None = None
        for attempt in range(1, self._retries + 1):
            try:
                return self._fetcher.download(package_id, version, dest_dir)
            except PackInstallFailure:
                raise
            except Exception as error:
                last_error = error
                _LOGGER.warning(
                    "package_download_retry",
                    package_id=package_id,
                    version=version,
                    attempt=attempt,
                    max_attempts=self._retries,
                    error=str(error),
                )
        raise PackInstallFailure(
            f"Failed to download package {package_id} {version} after {self._retries} attempts: "
            f"{last_error}. Check the package feed and retry."
        ) from last_error

    def fetch_all(
        self, requests: Sequence[PackageRequest], download_dir: Path
    ) -> dict[PackageRequest, Path]:
        """Fetch packages concurrently; any failure aborts the batch.

        Downloads that already started are allowed to finish before the
        first failure is raised, so none are left running.
        """
        unique_requests = list(dict.fromkeys(requests))
        if not unique_requests:
            return {}
        workers = min(self._workers, len(unique_requests))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="loadout-download") as pool:
            futures: dict[Future[Path], PackageRequest] = {
                pool.submit(self.fetch, package_id, version, download_dir): (package_id, version)
                for package_id, version in unique_requests
            }
            _, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in pending:
                future.cancel()
        for future in futures:
            error = None if future.cancelled() else future.exception()
            if error is not None:
                raise error
        return {
            request: future.result()
            for future, request in futures.items()
            if not future.cancelled()
        }
