"""File-based workload installer.

This installer places packs, manifests, and workload sets directly under
the install root. Every mutation runs through a Transaction with a
compensation that restores the previous on-disk state, and installation
records are only written once all content is in place.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence
from uuid import uuid4

from core.config import LoadoutConfig
from core.constants import (
    MANIFEST_PACKAGE_DATA_DIR_NAME,
    MANIFEST_PACKAGE_SUFFIX,
    SDK_MANIFESTS_DIR_NAME,
    WORKLOAD_SET_MANIFEST_ID,
    WORKLOAD_SETS_DIR_NAME,
)
from core.errors import LoadoutError, PackInstallFailure
from core.feature_band import SdkFeatureBand
from core.logging_config import get_logger
from core.types import InstallContext, ManifestId, ManifestVersionUpdate, PackInfo, WorkloadId
from install.content_fetcher import OfflineCacheFetcher, PackageDownloader
from install.transaction import Transaction
from resolve.interfaces import ContentFetcher
from resolve.workload_set import WorkloadSet
from store.install_state import InstallState, InstallStateStore
from store.installation_records import InstallationRecordStore
from store.pack_store import PackStore, extract_archive
from store.reference_records import ReferenceRecordStore
from versioning.workload_set_version import encode_workload_set_version

_LOGGER = get_logger(__name__)


@dataclass
class _PackageInstallState:
    """Mutable bookkeeping shared by one package action and its undo."""

    archive: Path | None = None
    backup_dir: Path | None = None
    target_created: bool = False


class FileBasedInstaller:
    """Installs workload content as plain files under the install root."""

    kind = "file"

    def __init__(self, config: LoadoutConfig, fetcher: ContentFetcher) -> None:
        self._config = config
        self._install_root = config.install_root
        self._scratch_root = config.scratch_root
        self._downloader = _build_downloader(config, fetcher)
        self.records = InstallationRecordStore(self._install_root, config.install_context)
        self.references = ReferenceRecordStore(self._install_root)
        self.install_state = InstallStateStore(self._install_root)
        self.packs = PackStore(self._install_root)

    @property
    def install_root(self) -> Path:
        return self._install_root

    @property
    def context(self) -> InstallContext:
        return self._config.install_context

    def manifest_dir(self, manifest_id: ManifestId, version: str, manifest_band: SdkFeatureBand) -> Path:
        return self._install_root / SDK_MANIFESTS_DIR_NAME / str(manifest_band) / manifest_id / version

    def workload_set_dir(self, version: str, set_band: SdkFeatureBand) -> Path:
        return self._install_root / SDK_MANIFESTS_DIR_NAME / str(set_band) / WORKLOAD_SETS_DIR_NAME / version

    def install_packs(
        self,
        packs: Sequence[PackInfo],
        feature_band: SdkFeatureBand,
        transaction: Transaction,
        offline_cache: Path | None = None,
    ) -> list[PackInfo]:
        """Install packs and reference them from ``feature_band``.

        Missing packs are downloaded together on the bounded pool before any
        pack is placed. Returns the packs whose content was newly placed.
        """
        downloader = self._downloader_for(offline_cache)
        scratch_dir = self._new_scratch_dir(transaction)
        missing = [pack for pack in dict.fromkeys(packs) if not self.packs.is_installed(pack)]
        archives = transaction.run(
            lambda: downloader.fetch_all(
                [(pack.resolved_package_id, pack.version) for pack in missing], scratch_dir
            ),
            description="download packs",
        )
        placed: list[PackInfo] = []
        for pack in dict.fromkeys(packs):
            if self._install_pack(pack, feature_band, archives, scratch_dir, transaction):
                placed.append(pack)
        return placed

    def install_manifest(
        self,
        update: ManifestVersionUpdate,
        feature_band: SdkFeatureBand,
        transaction: Transaction,
        offline_cache: Path | None = None,
    ) -> None:
        """Install one manifest version and reference it from ``feature_band``.

        Raises:
            PackInstallFailure: If the manifest package cannot be installed.
        """
        version = str(update.new_version)
        package_id = manifest_package_id(update.manifest_id, update.new_feature_band)
        target_dir = self.manifest_dir(update.manifest_id, version, update.new_feature_band)
        _LOGGER.info(
            "manifest_install_started",
            manifest_id=update.manifest_id,
            version=version,
            manifest_band=str(update.new_feature_band),
        )
        try:
            self._install_package(package_id, version, target_dir, transaction, offline_cache)
        except LoadoutError:
            raise
        except Exception as error:
            raise PackInstallFailure(
                f"Failed to install workload manifest {update.manifest_id} {version}: {error}."
            ) from error
        had_reference = self.references.has_manifest_reference(
            update.manifest_id, version, update.new_feature_band, feature_band
        )
        transaction.run(
            lambda: self.references.write_manifest_reference(
                update.manifest_id, version, update.new_feature_band, feature_band
            ),
            rollback=None
            if had_reference
            else lambda: self.references.delete_manifest_reference(
                update.manifest_id, version, update.new_feature_band, feature_band
            ),
            description=f"manifest reference {update.manifest_id} {version}",
        )

    def install_workload_set(
        self,
        workload_set_version: str,
        feature_band: SdkFeatureBand,
        transaction: Transaction,
        offline_cache: Path | None = None,
    ) -> WorkloadSet:
        """Install a workload-set package and return its parsed contents.

        Raises:
            InvalidVersionFormat: If the version is malformed.
            PackInstallFailure: If the workload-set package cannot be installed.
        """
        encoded = encode_workload_set_version(workload_set_version)
        package_id = workload_set_package_id(encoded.feature_band)
        target_dir = self.workload_set_dir(workload_set_version, encoded.feature_band)
        try:
            self._install_package(
                package_id, encoded.package_version, target_dir, transaction, offline_cache
            )
        except LoadoutError:
            raise
        except Exception as error:
            raise PackInstallFailure(
                f"Failed to install workload set {workload_set_version}: {error}."
            ) from error
        had_reference = self.references.has_workload_set_reference(
            workload_set_version, encoded.feature_band, feature_band
        )
        transaction.run(
            lambda: self.references.write_workload_set_reference(
                workload_set_version, encoded.feature_band, feature_band
            ),
            rollback=None
            if had_reference
            else lambda: self.references.delete_workload_set_reference(
                workload_set_version, encoded.feature_band, feature_band
            ),
            description=f"workload set reference {workload_set_version}",
        )
        return WorkloadSet.from_directory(target_dir, workload_set_version)

    def update_install_state(
        self,
        feature_band: SdkFeatureBand,
        transaction: Transaction,
        manifests: Mapping[str, str] | None,
        workload_version: str | None,
    ) -> None:
        """Replace the band's manifest pins and workload-set pin."""
        previous = self.install_state.read(feature_band)
        existed = self.install_state.exists(feature_band)

        def apply() -> None:
            self.install_state.write(
                feature_band,
                InstallState(
                    manifests=manifests,
                    workload_version=workload_version,
                    extra_fields=previous.extra_fields,
                ),
            )

        def undo() -> None:
            if existed:
                self.install_state.write(feature_band, previous)
            else:
                self.install_state.delete(feature_band)

        transaction.run(
            apply,
            rollback=undo,
            description=f"install state {feature_band}",
        )

    def write_installation_records(
        self,
        workload_ids: Sequence[WorkloadId],
        feature_band: SdkFeatureBand,
        transaction: Transaction,
    ) -> list[WorkloadId]:
        """Record workloads as installed; returns the ids that were new."""
        written: list[WorkloadId] = []

        def apply() -> None:
            for workload_id in workload_ids:
                if self.records.write(workload_id, feature_band):
                    written.append(workload_id)

        def undo() -> None:
            for workload_id in written:
                self.records.delete(workload_id, feature_band)

        transaction.run(apply, rollback=undo, description=f"installation records {feature_band}")
        return written

    def delete_installation_records(
        self,
        workload_ids: Sequence[WorkloadId],
        feature_band: SdkFeatureBand,
        transaction: Transaction,
    ) -> list[WorkloadId]:
        """Remove installation records; returns the ids that were present."""
        deleted: list[WorkloadId] = []

        def apply() -> None:
            for workload_id in workload_ids:
                if self.records.delete(workload_id, feature_band):
                    deleted.append(workload_id)

        def undo() -> None:
            for workload_id in deleted:
                self.records.write(workload_id, feature_band)

        transaction.run(apply, rollback=undo, description=f"delete records {feature_band}")
        return deleted

    def _install_pack(
        self,
        pack: PackInfo,
        feature_band: SdkFeatureBand,
        archives: Mapping[tuple[str, str], Path],
        scratch_dir: Path,
        transaction: Transaction,
    ) -> bool:
        package_key = (pack.resolved_package_id, pack.version)
        was_installed = self.packs.is_installed(pack)
        had_reference = self.references.has_pack_reference(
            pack.resolved_package_id, pack.version, feature_band
        )

        def apply() -> None:
            if was_installed:
                _LOGGER.info(
                    "pack_already_installed",
                    package_id=pack.resolved_package_id,
                    version=pack.version,
                )
            else:
                self.packs.install(pack, archives[package_key], scratch_dir)
                _LOGGER.info(
                    "pack_installed",
                    package_id=pack.resolved_package_id,
                    version=pack.version,
                    feature_band=str(feature_band),
                )
            self.references.write_pack_reference(pack, feature_band)

        def undo() -> None:
            if not had_reference:
                self.references.delete_pack_reference(
                    pack.resolved_package_id, pack.version, feature_band
                )
            if not was_installed and not self.references.pack_has_references(*package_key):
                _LOGGER.info("rolling_back_pack_install", package_id=pack.resolved_package_id)
                self.packs.delete(pack)

        transaction.run(
            apply, rollback=undo, description=f"pack {pack.resolved_package_id} {pack.version}"
        )
        return not was_installed

    def _install_package(
        self,
        package_id: str,
        version: str,
        target_dir: Path,
        transaction: Transaction,
        offline_cache: Path | None,
    ) -> None:
        """Download a manifest-style package and extract its data folder to ``target_dir``.

        An existing, non-empty target is moved aside first and restored by
        the compensation.
        """
        downloader = self._downloader_for(offline_cache)
        scratch_dir = self._new_scratch_dir(transaction)
        state = _PackageInstallState()

        def apply() -> None:
            state.archive = downloader.fetch(package_id, version, scratch_dir)
            if target_dir.is_dir() and any(target_dir.iterdir()):
                state.backup_dir = scratch_dir / f"{package_id}-{version}-backup"
                shutil.move(str(target_dir), str(state.backup_dir))
            extraction_dir = scratch_dir / f"{package_id}-{version}-extracted"
            extract_archive(state.archive, extraction_dir)
            data_dir = extraction_dir / MANIFEST_PACKAGE_DATA_DIR_NAME
            if target_dir.exists():
                shutil.rmtree(target_dir)
            target_dir.parent.mkdir(parents=True, exist_ok=True)
            state.target_created = True
            shutil.move(str(data_dir if data_dir.is_dir() else extraction_dir), str(target_dir))

        def undo() -> None:
            if state.target_created and target_dir.exists():
                shutil.rmtree(target_dir)
            if state.backup_dir is not None and state.backup_dir.exists():
                shutil.move(str(state.backup_dir), str(target_dir))

        transaction.run(apply, rollback=undo, description=f"package {package_id} {version}")

    def _new_scratch_dir(self, transaction: Transaction) -> Path:
        scratch_dir = self._scratch_root / f"{transaction.name}-{uuid4().hex[:12]}"

        def remove_scratch() -> None:
            if scratch_dir.exists():
                shutil.rmtree(scratch_dir)

        transaction.run(
            lambda: scratch_dir.mkdir(parents=True, exist_ok=True),
            cleanup=remove_scratch,
            description="scratch directory",
        )
        return scratch_dir

    def _downloader_for(self, offline_cache: Path | None) -> PackageDownloader:
        if offline_cache is None:
            return self._downloader
        return PackageDownloader(
            OfflineCacheFetcher(offline_cache),
            workers=self._config.download_workers,
            retries=self._config.download_retries,
        )


def manifest_package_id(manifest_id: ManifestId, manifest_band: SdkFeatureBand) -> str:
    """Return the package id that carries a manifest for a band."""
    return f"{manifest_id}.{MANIFEST_PACKAGE_SUFFIX}-{manifest_band}"


def workload_set_package_id(set_band: SdkFeatureBand) -> str:
    """Return the package id that carries workload sets for a band."""
    return f"{WORKLOAD_SET_MANIFEST_ID}.{set_band}"


def _build_downloader(config: LoadoutConfig, fetcher: ContentFetcher) -> PackageDownloader:
    """Build the default downloader for an installer.

    Args:
        config: Runtime settings for pool size, retries, and offline cache.
        fetcher: Feed fetcher used when no offline cache is configured.

    Returns:
        Downloader reading from the offline cache when one is configured.
    """
    if config.offline_cache is not None:
        fetcher = OfflineCacheFetcher(config.offline_cache)
    return PackageDownloader(
        fetcher, workers=config.download_workers, retries=config.download_retries
    )
