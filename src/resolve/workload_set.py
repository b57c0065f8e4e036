"""Workload-set model and loaders.

A workload set pins one version of every manifest family under a single
version string. Its files map manifest ids to ``version/featureBand``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from core.constants import WORKLOAD_SET_FILE_SUFFIX
from core.errors import InvalidVersionFormat, LoadoutStoreError
from core.feature_band import SdkFeatureBand
from core.types import ManifestId, ManifestVersion
from versioning.manifest_version import parse_versioned_band
from versioning.workload_set_version import encode_workload_set_version


@dataclass(frozen=True)
class WorkloadSet:
    """Pinned combination of manifest versions.

    Attributes:
        version: Display workload-set version.
        feature_band: Band encoded in the workload-set version.
        manifest_versions: Manifest id to pinned version and band.
    """

    version: str
    feature_band: SdkFeatureBand
    manifest_versions: Mapping[ManifestId, tuple[ManifestVersion, SdkFeatureBand]]

    @classmethod
    def from_mapping(cls, version: str, payload: Mapping[str, object]) -> "WorkloadSet":
        """Build a workload set from a ``{manifestId: "version/band"}`` mapping.

        Raises:
            InvalidVersionFormat: If the set version or an entry is malformed.
        """
        feature_band = encode_workload_set_version(version).feature_band
        manifest_versions: dict[ManifestId, tuple[ManifestVersion, SdkFeatureBand]] = {}
        for manifest_id, raw_value in payload.items():
            if not isinstance(raw_value, str):
                raise InvalidVersionFormat(
                    f"Invalid workload set entry for '{manifest_id}': expected "
                    "a 'version/featureBand' string."
                )
            manifest_versions[ManifestId(manifest_id)] = parse_versioned_band(
                raw_value, feature_band
            )
        return cls(version=version, feature_band=feature_band, manifest_versions=manifest_versions)

    @classmethod
    def from_directory(cls, workload_set_dir: Path, version: str) -> "WorkloadSet":
        """Load every workload-set file in an extracted workload-set package.

        Raises:
            LoadoutStoreError: If files are missing, unreadable, or conflict.
        """
        set_files = sorted(workload_set_dir.glob(f"*{WORKLOAD_SET_FILE_SUFFIX}"))
        if not set_files:
            raise LoadoutStoreError(
                f"No workload set files found in {workload_set_dir}. "
                "Reinstall the workload set package."
            )
        merged: dict[str, object] = {}
        for set_file in set_files:
            for manifest_id, raw_value in _read_set_file(set_file).items():
                if manifest_id in merged and merged[manifest_id] != raw_value:
                    raise LoadoutStoreError(
                        f"Workload set {version} pins '{manifest_id}' twice with "
                        f"different versions ({merged[manifest_id]} and {raw_value})."
                    )
                merged[manifest_id] = raw_value
        return cls.from_mapping(version, merged)


def _read_set_file(set_file: Path) -> dict[str, object]:
    try:
        payload = json.loads(set_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as error:
        raise LoadoutStoreError(f"Failed to read workload set file {set_file}: {error}.") from error
    if not isinstance(payload, dict):
        raise LoadoutStoreError(
            f"Invalid workload set file {set_file}: expected a JSON object."
        )
    return payload
