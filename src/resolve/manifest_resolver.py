"""Manifest update calculation.

This module computes which manifests must change for a feature band from
exactly one source: a rollback definition, a workload set, or the latest
versions a feed advertises. Results are sorted by manifest id and exclude
updates the installed manifests already satisfy, so identical inputs
always produce identical output.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence, Union

from core.errors import InvalidRollbackDefinition, LoadoutConfigError
from core.feature_band import SdkFeatureBand
from core.logging_config import get_logger
from core.types import InstalledManifest, ManifestId, ManifestVersion, ManifestVersionUpdate
from resolve.interfaces import ManifestFeed
from resolve.rollback_file import RollbackDefinition
from resolve.workload_set import WorkloadSet

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class LatestManifests:
    """Select the newest manifests advertised by the feed."""


ManifestUpdateSource = Union[LatestManifests, RollbackDefinition, WorkloadSet]


class ManifestResolver:
    """Pure calculator of manifest version updates."""

    def __init__(self, feed: ManifestFeed | None = None) -> None:
        self._feed = feed

    def calculate_updates(
        self,
        source: ManifestUpdateSource,
        installed: Sequence[InstalledManifest],
        feature_band: SdkFeatureBand,
    ) -> list[ManifestVersionUpdate]:
        """Compute manifest updates from one update source.

        Args:
            source: Rollback definition, workload set, or latest marker.
            installed: Manifests currently in effect for the band.
            feature_band: Active feature band.

        Returns:
            Non-noop updates sorted by manifest id.

        Raises:
            InvalidRollbackDefinition: If a rollback names unknown manifests.
            LoadoutConfigError: If latest is requested without a feed.
        """
        installed_by_id = {manifest.manifest_id: manifest for manifest in installed}
        if isinstance(source, RollbackDefinition):
            updates = _rollback_updates(source, installed_by_id)
        elif isinstance(source, WorkloadSet):
            updates = _pinned_updates(source.manifest_versions, installed_by_id)
        else:
            updates = self._latest_updates(installed_by_id, feature_band)
        result = sorted((update for update in updates if not update.is_noop), key=_update_key)
        _LOGGER.info(
            "manifest_updates_calculated",
            source=type(source).__name__,
            feature_band=str(feature_band),
            update_count=len(result),
        )
        return result

    def _latest_updates(
        self,
        installed_by_id: Mapping[ManifestId, InstalledManifest],
        feature_band: SdkFeatureBand,
    ) -> list[ManifestVersionUpdate]:
        if self._feed is None:
            raise LoadoutConfigError(
                "Cannot resolve latest manifests: no manifest feed is configured. "
                "Provide a feed, a workload set, or a rollback file."
            )
        updates: list[ManifestVersionUpdate] = []
        for manifest_id, manifest in installed_by_id.items():
            advertised = self._feed.get_latest_manifest(manifest_id, feature_band)
            if advertised is None:
                continue
            new_version, new_band = advertised
            # Latest never downgrades.
            if (new_version, new_band) <= (manifest.version, manifest.feature_band):
                continue
            updates.append(_build_update(manifest_id, manifest, new_version, new_band))
        return updates


def _rollback_updates(
    rollback: RollbackDefinition,
    installed_by_id: Mapping[ManifestId, InstalledManifest],
) -> list[ManifestVersionUpdate]:
    unknown_ids = sorted(
        manifest_id for manifest_id in rollback.manifest_versions if manifest_id not in installed_by_id
    )
    if unknown_ids:
        raise InvalidRollbackDefinition(
            f"Rollback definition {rollback.source} names manifests that are not installed: "
            f"{', '.join(unknown_ids)}. Remove them or install the workloads that provide them."
        )
    return _pinned_updates(rollback.manifest_versions, installed_by_id)


def _pinned_updates(
    pins: Mapping[ManifestId, tuple[ManifestVersion, SdkFeatureBand]],
    installed_by_id: Mapping[ManifestId, InstalledManifest],
) -> list[ManifestVersionUpdate]:
    return [
        _build_update(manifest_id, installed_by_id.get(manifest_id), new_version, new_band)
        for manifest_id, (new_version, new_band) in pins.items()
    ]


def _build_update(
    manifest_id: ManifestId,
    existing: InstalledManifest | None,
    new_version: ManifestVersion,
    new_band: SdkFeatureBand,
) -> ManifestVersionUpdate:
    return ManifestVersionUpdate(
        manifest_id=manifest_id,
        existing_version=existing.version if existing else None,
        existing_feature_band=existing.feature_band if existing else None,
        new_version=new_version,
        new_feature_band=new_band,
    )


def _update_key(update: ManifestVersionUpdate) -> tuple[str, str]:
    return (update.manifest_id.casefold(), update.manifest_id)
