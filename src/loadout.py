"""Public SDK surface for Loadout.

This module provides a stable import path for hosts embedding the
workload install engine. It re-exports the service, its typed reports,
and the manifest update sources.
"""

from __future__ import annotations

from core.config import LoadoutConfig
from core.errors import (
    GarbageCollectionFailure,
    InstallCancelled,
    InvalidRollbackDefinition,
    InvalidVersionFormat,
    LoadoutError,
    PackInstallFailure,
    RollbackFailure,
    UnsupportedOnPlatform,
    WorkloadNotFound,
)
from core.feature_band import SdkFeatureBand
from core.types import (
    GarbageCollectionReport,
    InstalledManifest,
    InstallReport,
    ManifestId,
    ManifestVersionUpdate,
    PackInfo,
    UninstallReport,
    WorkloadId,
)
from install.content_fetcher import FeedDirectoryFetcher, OfflineCacheFetcher
from install.transaction import CancellationToken
from install.workload_service import WorkloadService
from resolve.manifest_resolver import LatestManifests, ManifestResolver
from resolve.rollback_file import RollbackDefinition, load_rollback_definition
from resolve.workload_set import WorkloadSet
from versioning.workload_set_version import decode_workload_set_version, encode_workload_set_version

__all__ = [
    "CancellationToken",
    "FeedDirectoryFetcher",
    "GarbageCollectionFailure",
    "GarbageCollectionReport",
    "InstallCancelled",
    "InstallReport",
    "InstalledManifest",
    "InvalidRollbackDefinition",
    "InvalidVersionFormat",
    "LatestManifests",
    "LoadoutConfig",
    "LoadoutError",
    "ManifestId",
    "ManifestResolver",
    "ManifestVersionUpdate",
    "OfflineCacheFetcher",
    "PackInfo",
    "PackInstallFailure",
    "RollbackDefinition",
    "RollbackFailure",
    "SdkFeatureBand",
    "UninstallReport",
    "UnsupportedOnPlatform",
    "WorkloadId",
    "WorkloadNotFound",
    "WorkloadService",
    "WorkloadSet",
    "decode_workload_set_version",
    "encode_workload_set_version",
    "load_rollback_definition",
]
