"""In-memory collaborators for install engine tests."""

from __future__ import annotations

import threading
import zipfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping

from semver import Version

from core.config import LoadoutConfig
from core.feature_band import SdkFeatureBand
from core.types import InstalledManifest, ManifestId, ManifestVersion, PackInfo, WorkloadId
from install.content_fetcher import package_file_name
from store.install_state import InstallStateStore
from store.reference_records import ReferenceRecordStore
from versioning.manifest_version import parse_versioned_band

BAND_800 = SdkFeatureBand.parse("8.0.100")
PREVIEW_BAND = SdkFeatureBand.parse("9.0.100-preview.2")
RC_BAND = SdkFeatureBand.parse("9.0.100-rc.1")


def write_package(archive_path: Path, files: Mapping[str, str]) -> Path:
    """Write a zip package archive holding ``files``."""
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive_path, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return archive_path


def make_config(tmp_path: Path, **overrides: object) -> LoadoutConfig:
    """Config rooted under ``tmp_path`` with a small download pool."""
    config = LoadoutConfig(
        global_root=tmp_path / "dotnet",
        user_root=tmp_path / "user",
        install_context="global",
        installer_kind="file",
        download_workers=4,
        download_retries=2,
        offline_cache=None,
        temp_dir=None,
    )
    return replace(config, **overrides)


def sdk_pack(pack_id: str, version: str = "1.0.0", kind: str = "sdk") -> PackInfo:
    return PackInfo(pack_id=pack_id, version=version, resolved_package_id=pack_id, kind=kind)


class FakeFetcher:
    """Builds package archives on demand, with per-package failure injection.

    Attributes:
        failures: Package id to exception raised on every download attempt.
        corrupt: Package ids served as bytes that are not a zip archive.
        package_files: Package id to archive contents; defaults to one file.
        calls: (package id, version) for every download attempt.
    """

    def __init__(self) -> None:
        self.failures: dict[str, Exception] = {}
        self.corrupt: set[str] = set()
        self.package_files: dict[str, dict[str, str]] = {}
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def download(self, package_id: str, version: str, dest_dir: Path) -> Path:
        with self._lock:
            self.calls.append((package_id, version))
        if package_id in self.failures:
            raise self.failures[package_id]
        target = dest_dir / package_file_name(package_id, version)
        if package_id in self.corrupt:
            dest_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(b"not a zip archive")
            return target
        files = self.package_files.get(package_id, {"content.txt": f"{package_id} {version}"})
        return write_package(target, files)


@dataclass
class FakeCatalog:
    """Workload catalog shared by every band's resolver.

    Attributes:
        workloads: Workload id to pack ids.
        packs: Pack id to resolved pack info.
        unsupported: Workloads unsupported on this platform.
        baseline_manifests: Manifests in effect before anything is installed.
    """

    workloads: dict[str, list[str]] = field(default_factory=dict)
    packs: dict[str, PackInfo] = field(default_factory=dict)
    unsupported: set[str] = field(default_factory=set)
    baseline_manifests: dict[str, tuple[ManifestVersion, SdkFeatureBand]] = field(
        default_factory=dict
    )

    def add_workload(self, workload_id: str, packs: list[PackInfo]) -> None:
        self.workloads[workload_id] = [pack.pack_id for pack in packs]
        for pack in packs:
            self.packs[pack.pack_id] = pack


class FakeResolver:
    """Resolver whose in-effect manifests follow references and pins on disk."""

    def __init__(self, catalog: FakeCatalog, feature_band: SdkFeatureBand, install_root: Path) -> None:
        self._catalog = catalog
        self._band = feature_band
        self._install_root = install_root
        self.refresh_count = 0
        self._manifests: dict[ManifestId, InstalledManifest] = {}
        self._load_manifests()

    def get_available_workloads(self) -> list[WorkloadId]:
        return [WorkloadId(workload_id) for workload_id in self._catalog.workloads]

    def get_packs_in_workload(self, workload_id: WorkloadId) -> list[str]:
        return list(self._catalog.workloads[workload_id])

    def try_get_pack_info(self, pack_id: str) -> PackInfo | None:
        return self._catalog.packs.get(pack_id)

    def get_installed_manifests(self) -> list[InstalledManifest]:
        return sorted(self._manifests.values(), key=lambda manifest: manifest.manifest_id)

    def is_workload_supported(self, workload_id: WorkloadId) -> bool:
        return workload_id not in self._catalog.unsupported

    def refresh_manifests(self) -> None:
        self.refresh_count += 1
        self._load_manifests()

    def _load_manifests(self) -> None:
        manifests = {
            ManifestId(manifest_id): InstalledManifest(ManifestId(manifest_id), version, band)
            for manifest_id, (version, band) in self._catalog.baseline_manifests.items()
        }
        references = ReferenceRecordStore(self._install_root).all_manifest_references()
        for (manifest_id, version, manifest_band), bands in sorted(references.items()):
            if self._band not in bands:
                continue
            candidate = InstalledManifest(manifest_id, Version.parse(version), manifest_band)
            current = manifests.get(manifest_id)
            if current is None or candidate.version > current.version:
                manifests[manifest_id] = candidate
        state = InstallStateStore(self._install_root).read(self._band)
        for manifest_id, pinned in (state.manifests or {}).items():
            version, band = parse_versioned_band(pinned, self._band)
            manifests[ManifestId(manifest_id)] = InstalledManifest(ManifestId(manifest_id), version, band)
        self._manifests = manifests


class FakeResolverFactory:
    """Resolver factory keeping the last resolver built per band."""

    def __init__(self, catalog: FakeCatalog, install_root: Path) -> None:
        self._catalog = catalog
        self._install_root = install_root
        self.resolvers: dict[SdkFeatureBand, FakeResolver] = {}

    def __call__(self, feature_band: SdkFeatureBand) -> FakeResolver:
        resolver = FakeResolver(self._catalog, feature_band, self._install_root)
        self.resolvers[feature_band] = resolver
        return resolver


class FakeSdkEnumerator:
    def __init__(self, bands: list[SdkFeatureBand]) -> None:
        self.bands = bands

    def list_installed_sdk_feature_bands(self) -> list[SdkFeatureBand]:
        return list(self.bands)


class FakeManifestFeed:
    """Advertises fixed latest manifest versions."""

    def __init__(self, latest: Mapping[str, tuple[str, SdkFeatureBand]]) -> None:
        self._latest = {
            manifest_id: (Version.parse(version), band) for manifest_id, (version, band) in latest.items()
        }

    def get_latest_manifest(
        self, manifest_id: ManifestId, feature_band: SdkFeatureBand
    ) -> tuple[ManifestVersion, SdkFeatureBand] | None:
        return self._latest.get(manifest_id)
