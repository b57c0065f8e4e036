"""Protocols for collaborators owned outside the install engine.

The workload resolver, content fetcher, SDK enumerator, and manifest feed
are supplied by the host; the engine only depends on these shapes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Protocol, Sequence

from core.feature_band import SdkFeatureBand
from core.types import InstalledManifest, ManifestId, ManifestVersion, PackInfo, WorkloadId


class WorkloadResolver(Protocol):
    """Expands workloads to packs using the manifests in effect for one band."""

    def get_available_workloads(self) -> Sequence[WorkloadId]:
        """Return workload ids defined by the manifests in effect."""
        ...

    def get_packs_in_workload(self, workload_id: WorkloadId) -> Sequence[str]:
        """Return pack ids for an available workload."""
        ...

    def try_get_pack_info(self, pack_id: str) -> PackInfo | None:
        """Return resolved pack info, or None when the pack has no match."""
        ...

    def get_installed_manifests(self) -> Sequence[InstalledManifest]:
        """Return manifests currently in effect for the resolver's band."""
        ...

    def is_workload_supported(self, workload_id: WorkloadId) -> bool:
        """Return whether the workload installs on the current platform."""
        ...

    def refresh_manifests(self) -> None:
        """Reload manifests after manifest content or pins changed."""
        ...


ResolverFactory = Callable[[SdkFeatureBand], WorkloadResolver]


class ContentFetcher(Protocol):
    """Fetches package archives from a feed or an offline cache."""

    def download(self, package_id: str, version: str, dest_dir: Path) -> Path:
        """Place the package archive under ``dest_dir`` and return its path."""
        ...


class SdkEnumerator(Protocol):
    """Lists the feature bands of SDKs installed on the machine."""

    def list_installed_sdk_feature_bands(self) -> Sequence[SdkFeatureBand]:
        ...


class ManifestFeed(Protocol):
    """Advertises the latest available manifest versions."""

    def get_latest_manifest(
        self, manifest_id: ManifestId, feature_band: SdkFeatureBand
    ) -> tuple[ManifestVersion, SdkFeatureBand] | None:
        ...
