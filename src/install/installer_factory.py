"""Installer kind selection.

The installer mechanism is chosen once from configuration. Each kind is a
class satisfying the Installer protocol; callers never inspect the
concrete type afterwards.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Protocol, Sequence

from core.config import LoadoutConfig
from core.errors import LoadoutConfigError
from core.feature_band import SdkFeatureBand
from core.types import InstallContext, ManifestId, ManifestVersionUpdate, PackInfo, WorkloadId
from install.file_based_installer import FileBasedInstaller
from install.transaction import Transaction
from resolve.interfaces import ContentFetcher
from resolve.workload_set import WorkloadSet
from store.install_state import InstallStateStore
from store.installation_records import InstallationRecordStore
from store.pack_store import PackStore
from store.reference_records import ReferenceRecordStore


class Installer(Protocol):
    """Capability set every installer kind provides."""

    records: InstallationRecordStore
    references: ReferenceRecordStore
    install_state: InstallStateStore
    packs: PackStore

    @property
    def install_root(self) -> Path: ...

    @property
    def context(self) -> InstallContext: ...

    def manifest_dir(
        self, manifest_id: ManifestId, version: str, manifest_band: SdkFeatureBand
    ) -> Path: ...

    def workload_set_dir(self, version: str, set_band: SdkFeatureBand) -> Path: ...

    def install_packs(
        self,
        packs: Sequence[PackInfo],
        feature_band: SdkFeatureBand,
        transaction: Transaction,
        offline_cache: Path | None = None,
    ) -> list[PackInfo]: ...

    def install_manifest(
        self,
        update: ManifestVersionUpdate,
        feature_band: SdkFeatureBand,
        transaction: Transaction,
        offline_cache: Path | None = None,
    ) -> None: ...

    def install_workload_set(
        self,
        workload_set_version: str,
        feature_band: SdkFeatureBand,
        transaction: Transaction,
        offline_cache: Path | None = None,
    ) -> WorkloadSet: ...

    def update_install_state(
        self,
        feature_band: SdkFeatureBand,
        transaction: Transaction,
        manifests: Mapping[str, str] | None,
        workload_version: str | None,
    ) -> None: ...

    def write_installation_records(
        self,
        workload_ids: Sequence[WorkloadId],
        feature_band: SdkFeatureBand,
        transaction: Transaction,
    ) -> list[WorkloadId]: ...

    def delete_installation_records(
        self,
        workload_ids: Sequence[WorkloadId],
        feature_band: SdkFeatureBand,
        transaction: Transaction,
    ) -> list[WorkloadId]: ...


INSTALLER_KINDS: dict[str, type[FileBasedInstaller]] = {
    FileBasedInstaller.kind: FileBasedInstaller,
}


def create_installer(config: LoadoutConfig, fetcher: ContentFetcher) -> Installer:
    """Build the installer named by ``config.installer_kind``.

    Raises:
        LoadoutConfigError: If the kind is not registered.
    """
    installer_class = INSTALLER_KINDS.get(config.installer_kind)
    if installer_class is None:
        supported = ", ".join(sorted(INSTALLER_KINDS))
        raise LoadoutConfigError(
            f"Unsupported installer kind '{config.installer_kind}'. "
            f"Set LOADOUT_INSTALLER_KIND to one of: {supported}."
        )
    return installer_class(config, fetcher)
