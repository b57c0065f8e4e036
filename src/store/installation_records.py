"""Workload installation record persistence.

This module stores one empty marker file per installed workload under
``metadata/workloads/InstalledWorkloads/{band}/{workload}``. Each feature
band directory is its own namespace, so ``9.0.100-preview.2`` and
``9.0.100-rc.1`` never share records.
"""

from __future__ import annotations

from pathlib import Path

from core.constants import (
    INSTALLED_WORKLOADS_DIR_NAME,
    METADATA_DIR_NAME,
    WORKLOADS_METADATA_DIR_NAME,
)
from core.errors import InvalidVersionFormat, LoadoutStoreError
from core.feature_band import SdkFeatureBand
from core.logging_config import get_logger
from core.types import InstallContext, WorkloadId

_LOGGER = get_logger(__name__)


class InstallationRecordStore:
    """Filesystem-backed set of (workload, feature band) records for one context."""

    def __init__(self, install_root: Path, context: InstallContext) -> None:
        self._context = context
        self._records_root = (
            install_root / METADATA_DIR_NAME / WORKLOADS_METADATA_DIR_NAME / INSTALLED_WORKLOADS_DIR_NAME
        )

    @property
    def context(self) -> InstallContext:
        return self._context

    def write(self, workload_id: WorkloadId, feature_band: SdkFeatureBand) -> bool:
        """Insert a record; return False when it already existed."""
        record_path = self._record_path(workload_id, feature_band)
        if record_path.exists():
            return False
        try:
            record_path.parent.mkdir(parents=True, exist_ok=True)
            record_path.touch(exist_ok=True)
        except OSError as error:
            raise LoadoutStoreError(
                f"Failed to write installation record {record_path}: {error}."
            ) from error
        _LOGGER.info(
            "installation_record_written",
            workload_id=workload_id,
            feature_band=str(feature_band),
            context=self._context,
        )
        return True

    def delete(self, workload_id: WorkloadId, feature_band: SdkFeatureBand) -> bool:
        """Remove a record; return False when it was already absent."""
        record_path = self._record_path(workload_id, feature_band)
        if not record_path.exists():
            return False
        try:
            record_path.unlink(missing_ok=True)
            band_dir = record_path.parent
            if band_dir.is_dir() and not any(band_dir.iterdir()):
                band_dir.rmdir()
        except OSError as error:
            raise LoadoutStoreError(
                f"Failed to delete installation record {record_path}: {error}."
            ) from error
        _LOGGER.info(
            "installation_record_deleted",
            workload_id=workload_id,
            feature_band=str(feature_band),
            context=self._context,
        )
        return True

    def contains(self, workload_id: WorkloadId, feature_band: SdkFeatureBand) -> bool:
        return self._record_path(workload_id, feature_band).exists()

    def list(self, feature_band: SdkFeatureBand) -> tuple[WorkloadId, ...]:
        """Return workloads recorded for a band, sorted by id."""
        band_dir = self._records_root / str(feature_band)
        if not band_dir.is_dir():
            return ()
        return tuple(sorted(WorkloadId(path.name) for path in band_dir.iterdir() if path.is_file()))

    def list_bands(self) -> tuple[SdkFeatureBand, ...]:
        """Return every band holding at least one record, sorted."""
        if not self._records_root.is_dir():
            return ()
        bands = []
        for band_dir in self._records_root.iterdir():
            if not band_dir.is_dir() or not any(path.is_file() for path in band_dir.iterdir()):
                continue
            try:
                bands.append(SdkFeatureBand.parse(band_dir.name))
            except InvalidVersionFormat:
                _LOGGER.warning("installation_record_band_skipped", directory=str(band_dir))
        return tuple(sorted(bands))

    def _record_path(self, workload_id: WorkloadId, feature_band: SdkFeatureBand) -> Path:
        return self._records_root / str(feature_band) / workload_id
