"""Reference records linking installed content to feature bands.

Packs, manifests, and workload sets are shared across bands. Each band
that needs one leaves a reference file; content with no references left
is garbage. Layout under ``metadata/workloads``:

- ``InstalledPacks/v1/{packageId}/{version}/{band}`` (PackInfo JSON)
- ``InstalledManifests/v1/{id}/{version}/{manifestBand}/{band}``
- ``InstalledWorkloadSets/v1/{version}/{setBand}/{band}``
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict
from pathlib import Path
from typing import Iterator, cast

from core.constants import (
    INSTALLED_MANIFESTS_DIR_NAME,
    INSTALLED_PACKS_DIR_NAME,
    INSTALLED_WORKLOAD_SETS_DIR_NAME,
    METADATA_DIR_NAME,
    REFERENCE_RECORDS_SCHEMA_DIR_NAME,
    WORKLOADS_METADATA_DIR_NAME,
)
from core.errors import LoadoutStoreError
from core.feature_band import SdkFeatureBand
from core.json_io import delete_file_and_empty_parents, read_json_file, write_json_file
from core.types import ManifestId, PackInfo, PackKind

PackKey = tuple[str, str]
ManifestKey = tuple[ManifestId, str, SdkFeatureBand]
WorkloadSetKey = tuple[str, SdkFeatureBand]


class ReferenceRecordStore:
    """Filesystem-backed reference records for shared content."""

    def __init__(self, install_root: Path) -> None:
        metadata_root = install_root / METADATA_DIR_NAME / WORKLOADS_METADATA_DIR_NAME
        self._packs_root = metadata_root / INSTALLED_PACKS_DIR_NAME / REFERENCE_RECORDS_SCHEMA_DIR_NAME
        self._manifests_root = (
            metadata_root / INSTALLED_MANIFESTS_DIR_NAME / REFERENCE_RECORDS_SCHEMA_DIR_NAME
        )
        self._workload_sets_root = (
            metadata_root / INSTALLED_WORKLOAD_SETS_DIR_NAME / REFERENCE_RECORDS_SCHEMA_DIR_NAME
        )

    # Packs

    def write_pack_reference(self, pack: PackInfo, feature_band: SdkFeatureBand) -> None:
        path = self._pack_path(pack.resolved_package_id, pack.version, feature_band)
        write_json_file(path, asdict(pack))

    def delete_pack_reference(
        self, package_id: str, version: str, feature_band: SdkFeatureBand
    ) -> None:
        delete_file_and_empty_parents(self._pack_path(package_id, version, feature_band), max_parents=2)

    def has_pack_reference(self, package_id: str, version: str, feature_band: SdkFeatureBand) -> bool:
        return self._pack_path(package_id, version, feature_band).is_file()

    def pack_has_references(self, package_id: str, version: str) -> bool:
        version_dir = self._packs_root / package_id / version
        return version_dir.is_dir() and any(path.is_file() for path in version_dir.iterdir())

    def read_pack_reference(
        self, package_id: str, version: str, feature_band: SdkFeatureBand
    ) -> PackInfo:
        path = self._pack_path(package_id, version, feature_band)
        payload = read_json_file(path)
        if not isinstance(payload, dict):
            raise LoadoutStoreError(f"Invalid pack reference at {path}: expected a JSON object.")
        try:
            return PackInfo(
                pack_id=str(payload["pack_id"]),
                version=str(payload["version"]),
                resolved_package_id=str(payload["resolved_package_id"]),
                kind=cast(PackKind, str(payload.get("kind", "sdk"))),
            )
        except KeyError as error:
            raise LoadoutStoreError(
                f"Invalid pack reference at {path}: missing field {error.args[0]!r}."
            ) from error

    def all_pack_references(self) -> dict[PackKey, list[SdkFeatureBand]]:
        references: dict[PackKey, list[SdkFeatureBand]] = defaultdict(list)
        for (package_id, version), band in _walk_records(self._packs_root, depth=2):
            references[(package_id, version)].append(band)
        return dict(references)

    # Manifests

    def write_manifest_reference(
        self,
        manifest_id: ManifestId,
        version: str,
        manifest_band: SdkFeatureBand,
        feature_band: SdkFeatureBand,
    ) -> None:
        path = self._manifest_path(manifest_id, version, manifest_band, feature_band)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(exist_ok=True)

    def has_manifest_reference(
        self,
        manifest_id: ManifestId,
        version: str,
        manifest_band: SdkFeatureBand,
        feature_band: SdkFeatureBand,
    ) -> bool:
        return self._manifest_path(manifest_id, version, manifest_band, feature_band).is_file()

    def delete_manifest_reference(
        self,
        manifest_id: ManifestId,
        version: str,
        manifest_band: SdkFeatureBand,
        feature_band: SdkFeatureBand,
    ) -> None:
        path = self._manifest_path(manifest_id, version, manifest_band, feature_band)
        delete_file_and_empty_parents(path, max_parents=3)

    def all_manifest_references(self) -> dict[ManifestKey, list[SdkFeatureBand]]:
        references: dict[ManifestKey, list[SdkFeatureBand]] = defaultdict(list)
        for (manifest_id, version, manifest_band), band in _walk_records(self._manifests_root, depth=3):
            key = (ManifestId(manifest_id), version, SdkFeatureBand.parse(manifest_band))
            references[key].append(band)
        return dict(references)

    # Workload sets

    def write_workload_set_reference(
        self, version: str, set_band: SdkFeatureBand, feature_band: SdkFeatureBand
    ) -> None:
        path = self._workload_set_path(version, set_band, feature_band)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(exist_ok=True)

    def has_workload_set_reference(
        self, version: str, set_band: SdkFeatureBand, feature_band: SdkFeatureBand
    ) -> bool:
        return self._workload_set_path(version, set_band, feature_band).is_file()

    def delete_workload_set_reference(
        self, version: str, set_band: SdkFeatureBand, feature_band: SdkFeatureBand
    ) -> None:
        path = self._workload_set_path(version, set_band, feature_band)
        delete_file_and_empty_parents(path, max_parents=2)

    def all_workload_set_references(self) -> dict[WorkloadSetKey, list[SdkFeatureBand]]:
        references: dict[WorkloadSetKey, list[SdkFeatureBand]] = defaultdict(list)
        for (version, set_band), band in _walk_records(self._workload_sets_root, depth=2):
            references[(version, SdkFeatureBand.parse(set_band))].append(band)
        return dict(references)

    def _pack_path(self, package_id: str, version: str, feature_band: SdkFeatureBand) -> Path:
        return self._packs_root / package_id / version / str(feature_band)

    def _manifest_path(
        self,
        manifest_id: ManifestId,
        version: str,
        manifest_band: SdkFeatureBand,
        feature_band: SdkFeatureBand,
    ) -> Path:
        return self._manifests_root / manifest_id / version / str(manifest_band) / str(feature_band)

    def _workload_set_path(
        self, version: str, set_band: SdkFeatureBand, feature_band: SdkFeatureBand
    ) -> Path:
        return self._workload_sets_root / version / str(set_band) / str(feature_band)


def _walk_records(root: Path, depth: int) -> Iterator[tuple[tuple[str, ...], SdkFeatureBand]]:
    """Yield (key path parts, referencing band) for record files ``depth`` levels down."""
    if not root.is_dir():
        return
    for record_path in sorted(root.glob("/".join(["*"] * (depth + 1)))):
        if not record_path.is_file() or record_path.name.startswith("."):
            continue
        parts = record_path.relative_to(root).parts
        yield parts[:depth], SdkFeatureBand.parse(parts[depth])
