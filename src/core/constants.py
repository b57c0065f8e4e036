"""Core constants used across Loadout modules.

This module centralizes non-domain-specific constants.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_GLOBAL_ROOT = Path(".loadout") / "global"
DEFAULT_USER_ROOT = Path("~") / ".loadout"
DEFAULT_INSTALL_CONTEXT = "global"
DEFAULT_INSTALLER_KIND = "file"
DEFAULT_DOWNLOAD_WORKERS = 16
DEFAULT_DOWNLOAD_RETRIES = 3
METADATA_DIR_NAME = "metadata"
WORKLOADS_METADATA_DIR_NAME = "workloads"
INSTALLED_WORKLOADS_DIR_NAME = "InstalledWorkloads"
INSTALLED_PACKS_DIR_NAME = "InstalledPacks"
INSTALLED_MANIFESTS_DIR_NAME = "InstalledManifests"
INSTALLED_WORKLOAD_SETS_DIR_NAME = "InstalledWorkloadSets"
REFERENCE_RECORDS_SCHEMA_DIR_NAME = "v1"
INSTALL_STATE_DIR_NAME = "InstallState"
INSTALL_STATE_FILE_NAME = "default.json"
PACKS_DIR_NAME = "packs"
SDK_MANIFESTS_DIR_NAME = "sdk-manifests"
WORKLOAD_SETS_DIR_NAME = "workloadsets"
TEMP_DIR_NAME = "tmp"
MANIFEST_PACKAGE_DATA_DIR_NAME = "data"
WORKLOAD_SET_FILE_SUFFIX = ".workloadset.json"
WORKLOAD_SET_MANIFEST_ID = "Loadout.Workloads"
MANIFEST_PACKAGE_SUFFIX = "Manifest"
OFFLINE_PACKAGE_EXTENSION = ".nupkg"
SUPPORT_BAND_PRERELEASE_LABELS = ("preview", "rc")
FEATURE_BAND_PATCH_WIDTH = 100
SINGLE_FILE_PACK_KINDS = ("library", "template")
