"""Shared typed models.

This module defines immutable data models used by the resolver, store,
installer, and garbage collector layers to keep interfaces explicit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, NewType

from semver import Version

from core.constants import SINGLE_FILE_PACK_KINDS
from core.feature_band import SdkFeatureBand

WorkloadId = NewType("WorkloadId", str)
ManifestId = NewType("ManifestId", str)
ManifestVersion = Version
InstallContext = Literal["user-local", "global"]
SUPPORTED_INSTALL_CONTEXTS: tuple[InstallContext, ...] = ("user-local", "global")
PackKind = Literal["sdk", "framework", "library", "template", "tool"]


@dataclass(frozen=True)
class PackInfo:
    """Resolved content unit owned by the workload resolver.

    Attributes:
        pack_id: Logical pack identifier declared by a manifest.
        version: Pack package version.
        resolved_package_id: Package id after platform alias resolution.
        kind: Pack kind; library and template packs are single files.
    """

    pack_id: str
    version: str
    resolved_package_id: str
    kind: PackKind = "sdk"

    @property
    def is_single_file(self) -> bool:
        return self.kind in SINGLE_FILE_PACK_KINDS


@dataclass(frozen=True)
class InstalledManifest:
    """One manifest currently in effect for a feature band."""

    manifest_id: ManifestId
    version: ManifestVersion
    feature_band: SdkFeatureBand


@dataclass(frozen=True)
class ManifestVersionUpdate:
    """Planned change of one manifest from an existing to a new version.

    Attributes:
        manifest_id: Manifest family identifier.
        existing_version: Currently installed version, if any.
        existing_feature_band: Band of the installed version, if any.
        new_version: Target version.
        new_feature_band: Band of the target version.
    """

    manifest_id: ManifestId
    existing_version: ManifestVersion | None
    existing_feature_band: SdkFeatureBand | None
    new_version: ManifestVersion
    new_feature_band: SdkFeatureBand

    @property
    def is_noop(self) -> bool:
        return (
            self.existing_version == self.new_version
            and self.existing_feature_band == self.new_feature_band
        )


@dataclass(frozen=True)
class InstallReport:
    """Outcome of one install or update call.

    Attributes:
        newly_installed: Workloads that gained an installation record.
        already_installed: Requested workloads that were already recorded.
        manifest_updates: Manifest updates applied before pack install.
        garbage_collection_error: Warning text when post-install GC failed.
    """

    newly_installed: tuple[WorkloadId, ...]
    already_installed: tuple[WorkloadId, ...]
    manifest_updates: tuple[ManifestVersionUpdate, ...] = ()
    garbage_collection_error: str | None = None


@dataclass(frozen=True)
class GarbageCollectionReport:
    """Content reclaimed by one garbage collection pass."""

    deleted_packs: tuple[tuple[str, str], ...] = ()
    deleted_manifests: tuple[tuple[ManifestId, str, str], ...] = ()
    deleted_workload_sets: tuple[str, ...] = ()
    removed_bands: tuple[SdkFeatureBand, ...] = ()


@dataclass(frozen=True)
class UninstallReport:
    """Outcome of one uninstall call."""

    removed: tuple[WorkloadId, ...]
    not_installed: tuple[WorkloadId, ...]
    garbage_collection_error: str | None = None
