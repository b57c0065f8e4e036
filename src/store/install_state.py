"""Per-band install state.

The install state pins manifest versions and the selected workload-set
version for one feature band. It is stored as ``default.json`` under
``metadata/workloads/InstallState/{band}``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from core.constants import (
    INSTALL_STATE_DIR_NAME,
    INSTALL_STATE_FILE_NAME,
    METADATA_DIR_NAME,
    WORKLOADS_METADATA_DIR_NAME,
)
from core.errors import LoadoutStoreError
from core.feature_band import SdkFeatureBand
from core.json_io import delete_file_and_empty_parents, read_json_file, write_json_file


@dataclass(frozen=True)
class InstallState:
    """Pinned manifest versions and workload-set version for one band.

    Attributes:
        manifests: Manifest id to ``version/featureBand``, or None when unpinned.
        workload_version: Pinned workload-set version, or None.
    """

    manifests: Mapping[str, str] | None = None
    workload_version: str | None = None
    extra_fields: Mapping[str, object] = field(default_factory=dict)


class InstallStateStore:
    """Reads and replaces install-state files."""

    def __init__(self, install_root: Path) -> None:
        self._state_root = (
            install_root / METADATA_DIR_NAME / WORKLOADS_METADATA_DIR_NAME / INSTALL_STATE_DIR_NAME
        )

    def read(self, feature_band: SdkFeatureBand) -> InstallState:
        payload = read_json_file(self._state_path(feature_band), default_value={})
        return _state_from_payload(payload, self._state_path(feature_band))

    def exists(self, feature_band: SdkFeatureBand) -> bool:
        return self._state_path(feature_band).is_file()

    def delete(self, feature_band: SdkFeatureBand) -> None:
        delete_file_and_empty_parents(self._state_path(feature_band), max_parents=1)

    def write(self, feature_band: SdkFeatureBand, state: InstallState) -> None:
        payload: dict[str, object] = dict(state.extra_fields)
        payload["manifests"] = dict(state.manifests) if state.manifests is not None else None
        payload["workloadVersion"] = state.workload_version
        write_json_file(self._state_path(feature_band), payload)

    def _state_path(self, feature_band: SdkFeatureBand) -> Path:
        return self._state_root / str(feature_band) / INSTALL_STATE_FILE_NAME


def _state_from_payload(payload: object, state_path: Path) -> InstallState:
    if not isinstance(payload, dict):
        raise LoadoutStoreError(f"Invalid install state at {state_path}: expected a JSON object.")
    manifests = payload.get("manifests")
    if manifests is not None and not isinstance(manifests, dict):
        raise LoadoutStoreError(f"Invalid install state at {state_path}: manifests must be an object.")
    workload_version = payload.get("workloadVersion")
    extra_fields = {
        key: value for key, value in payload.items() if key not in ("manifests", "workloadVersion")
    }
    return InstallState(
        manifests={str(key): str(value) for key, value in manifests.items()} if manifests else manifests,
        workload_version=str(workload_version) if workload_version else None,
        extra_fields=extra_fields,
    )
