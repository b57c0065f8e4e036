"""Reference-counted garbage collection of installed content.

Each feature band is its own namespace. A band keeps a reference to a pack
while one of its recorded workloads still resolves to that pack, to a
manifest while the band's resolver reports it in effect, and to a workload
set while the band's install state pins it. References that no longer hold
are removed, and content is deleted once no band references it.
"""

from __future__ import annotations

import shutil
from collections import defaultdict
from pathlib import Path
from typing import Iterable

from core.errors import GarbageCollectionFailure
from core.feature_band import SdkFeatureBand
from core.logging_config import get_logger
from core.types import GarbageCollectionReport
from install.installer_factory import Installer
from resolve.interfaces import ResolverFactory, SdkEnumerator
from store.reference_records import ManifestKey, PackKey, WorkloadSetKey

_LOGGER = get_logger(__name__)


class GarbageCollector:
    """Removes packs, manifests, and workload sets no band still needs."""

    def __init__(
        self,
        installer: Installer,
        resolver_factory: ResolverFactory,
        sdk_enumerator: SdkEnumerator | None = None,
    ) -> None:
        self._installer = installer
        self._resolver_factory = resolver_factory
        self._sdk_enumerator = sdk_enumerator

    def collect(
        self, current_band: SdkFeatureBand, clean_all_packs: bool = False
    ) -> GarbageCollectionReport:
        """Run one collection pass over every band.

        Args:
            current_band: Band of the running SDK; never treated as removed.
            clean_all_packs: Also drop bands with no installed SDK.

        Returns:
            What was deleted.

        Raises:
            GarbageCollectionFailure: If any step of the pass fails.
        """
        _LOGGER.info(
            "garbage_collection_started",
            feature_band=str(current_band),
            clean_all_packs=clean_all_packs,
        )
        try:
            report = self._collect(current_band, clean_all_packs)
        except GarbageCollectionFailure:
            raise
        except Exception as error:
            raise GarbageCollectionFailure(
                f"Garbage collection failed: {error}. Installed workloads are unaffected; "
                "rerun garbage collection to reclaim disk space."
            ) from error
        _LOGGER.info(
            "garbage_collection_finished",
            deleted_packs=len(report.deleted_packs),
            deleted_manifests=len(report.deleted_manifests),
            deleted_workload_sets=len(report.deleted_workload_sets),
            removed_bands=[str(band) for band in report.removed_bands],
        )
        return report

    def _collect(self, current_band: SdkFeatureBand, clean_all_packs: bool) -> GarbageCollectionReport:
        references = self._installer.references
        pack_references = references.all_pack_references()
        manifest_references = references.all_manifest_references()
        workload_set_references = references.all_workload_set_references()

        known_bands = set(self._installer.records.list_bands())
        known_bands.add(current_band)
        for referencing_bands in (
            *pack_references.values(),
            *manifest_references.values(),
            *workload_set_references.values(),
        ):
            known_bands.update(referencing_bands)

        removed_bands = self._removed_bands(known_bands, current_band) if clean_all_packs else set()
        for band in sorted(removed_bands):
            self._forget_band(band)

        live_bands = sorted(known_bands - removed_bands)
        live_packs: dict[SdkFeatureBand, set[PackKey]] = {}
        live_manifests: dict[SdkFeatureBand, set[ManifestKey]] = {}
        for band in live_bands:
            live_packs[band], live_manifests[band] = self._live_content(
                band, needs_manifests=_is_referenced_by(band, manifest_references.values())
            )

        deleted_packs = self._collect_packs(pack_references, live_packs)
        deleted_manifests = self._collect_manifests(manifest_references, live_manifests)
        deleted_workload_sets = self._collect_workload_sets(
            workload_set_references, self._live_workload_sets(live_bands)
        )
        return GarbageCollectionReport(
            deleted_packs=tuple(deleted_packs),
            deleted_manifests=tuple(
                (manifest_id, version, str(manifest_band))
                for manifest_id, version, manifest_band in deleted_manifests
            ),
            deleted_workload_sets=tuple(version for version, _ in deleted_workload_sets),
            removed_bands=tuple(sorted(removed_bands)),
        )

    def _removed_bands(
        self, known_bands: set[SdkFeatureBand], current_band: SdkFeatureBand
    ) -> set[SdkFeatureBand]:
        if self._sdk_enumerator is None:
            _LOGGER.warning("sdk_enumerator_missing", detail="clean_all_packs keeps every band")
            return set()
        installed = set(self._sdk_enumerator.list_installed_sdk_feature_bands())
        installed.add(current_band)
        return {band for band in known_bands if band not in installed}

    def _forget_band(self, band: SdkFeatureBand) -> None:
        records = self._installer.records
        for workload_id in records.list(band):
            records.delete(workload_id, band)
        if self._installer.install_state.exists(band):
            self._installer.install_state.delete(band)
        _LOGGER.info("feature_band_removed", feature_band=str(band))

    def _live_content(
        self, band: SdkFeatureBand, needs_manifests: bool
    ) -> tuple[set[PackKey], set[ManifestKey]]:
        workload_ids = self._installer.records.list(band)
        if not workload_ids and not needs_manifests:
            return set(), set()
        resolver = self._resolver_factory(band)
        packs: set[PackKey] = set()
        for workload_id in workload_ids:
            for pack_id in resolver.get_packs_in_workload(workload_id):
                pack = resolver.try_get_pack_info(pack_id)
                if pack is not None:
                    packs.add((pack.resolved_package_id, pack.version))
        manifests = {
            (manifest.manifest_id, str(manifest.version), manifest.feature_band)
            for manifest in resolver.get_installed_manifests()
        }
        return packs, manifests

    def _live_workload_sets(self, live_bands: Iterable[SdkFeatureBand]) -> dict[SdkFeatureBand, str]:
        pinned: dict[SdkFeatureBand, str] = {}
        for band in live_bands:
            workload_version = self._installer.install_state.read(band).workload_version
            if workload_version:
                pinned[band] = workload_version
        return pinned

    def _collect_packs(
        self,
        pack_references: dict[PackKey, list[SdkFeatureBand]],
        live_packs: dict[SdkFeatureBand, set[PackKey]],
    ) -> list[PackKey]:
        references = self._installer.references
        deleted: list[PackKey] = []
        for pack_key, bands in sorted(pack_references.items()):
            package_id, version = pack_key
            pack = references.read_pack_reference(package_id, version, bands[0])
            for band in bands:
                if pack_key not in live_packs.get(band, set()):
                    references.delete_pack_reference(package_id, version, band)
                    _LOGGER.info(
                        "pack_reference_removed",
                        package_id=package_id,
                        version=version,
                        feature_band=str(band),
                    )
            if not references.pack_has_references(package_id, version):
                self._installer.packs.delete(pack)
                deleted.append(pack_key)
        return deleted

    def _collect_manifests(
        self,
        manifest_references: dict[ManifestKey, list[SdkFeatureBand]],
        live_manifests: dict[SdkFeatureBand, set[ManifestKey]],
    ) -> list[ManifestKey]:
        references = self._installer.references
        remaining: dict[ManifestKey, int] = defaultdict(int)
        for manifest_key, bands in manifest_references.items():
            manifest_id, version, manifest_band = manifest_key
            for band in bands:
                if manifest_key in live_manifests.get(band, set()):
                    remaining[manifest_key] += 1
                    continue
                references.delete_manifest_reference(manifest_id, version, manifest_band, band)
        deleted: list[ManifestKey] = []
        for manifest_key in sorted(manifest_references, key=_manifest_sort_key):
            if remaining[manifest_key]:
                continue
            manifest_id, version, manifest_band = manifest_key
            _delete_tree(self._installer.manifest_dir(manifest_id, version, manifest_band))
            _LOGGER.info(
                "manifest_deleted",
                manifest_id=manifest_id,
                version=version,
                manifest_band=str(manifest_band),
            )
            deleted.append(manifest_key)
        return deleted

    def _collect_workload_sets(
        self,
        workload_set_references: dict[WorkloadSetKey, list[SdkFeatureBand]],
        pinned: dict[SdkFeatureBand, str],
    ) -> list[WorkloadSetKey]:
        references = self._installer.references
        deleted: list[WorkloadSetKey] = []
        for set_key, bands in sorted(workload_set_references.items(), key=_workload_set_sort_key):
            version, set_band = set_key
            kept = 0
            for band in bands:
                if pinned.get(band) == version:
                    kept += 1
                    continue
                references.delete_workload_set_reference(version, set_band, band)
            if kept:
                continue
            _delete_tree(self._installer.workload_set_dir(version, set_band))
            _LOGGER.info("workload_set_deleted", version=version, set_band=str(set_band))
            deleted.append(set_key)
        return deleted


def _is_referenced_by(band: SdkFeatureBand, referencing_bands: Iterable[list[SdkFeatureBand]]) -> bool:
    return any(band in bands for bands in referencing_bands)


def _delete_tree(directory: Path) -> None:
    """Delete a content directory and prune its now-empty parent."""
    if directory.is_dir():
        shutil.rmtree(directory)
    parent = directory.parent
    if parent.is_dir() and not any(parent.iterdir()):
        parent.rmdir()


def _manifest_sort_key(key: ManifestKey) -> tuple[str, str, SdkFeatureBand]:
    return (key[0].casefold(), key[1], key[2])


def _workload_set_sort_key(item: tuple[WorkloadSetKey, list[SdkFeatureBand]]) -> tuple[str, SdkFeatureBand]:
    return item[0]
