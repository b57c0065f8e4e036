"""Rollback definition loading.

Rollback files pin manifests to explicit versions. They are JSON or YAML
mappings of manifest id to ``version`` or ``version/featureBand``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, cast

import yaml

from core.errors import InvalidRollbackDefinition, InvalidVersionFormat
from core.feature_band import SdkFeatureBand
from core.types import ManifestId, ManifestVersion
from versioning.manifest_version import parse_versioned_band


@dataclass(frozen=True)
class RollbackDefinition:
    """Parsed rollback file.

    Attributes:
        manifest_versions: Manifest id to target version and band.
        source: File path or label the definition came from.
    """

    manifest_versions: Mapping[ManifestId, tuple[ManifestVersion, SdkFeatureBand]]
    source: str


def load_rollback_definition(rollback_path: Path, feature_band: SdkFeatureBand) -> RollbackDefinition:
    """Load and validate a rollback file from disk.

    Args:
        rollback_path: JSON or YAML rollback file.
        feature_band: Band applied to entries that name none.

    Returns:
        Parsed rollback definition.

    Raises:
        InvalidRollbackDefinition: If the file is missing or malformed.
    """
    rollback_file = rollback_path.expanduser().resolve()
    try:
        payload = cast(object, yaml.safe_load(rollback_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise InvalidRollbackDefinition(
            f"Failed to read rollback file {rollback_file}: {error}. Check the path and retry."
        ) from error
    except yaml.YAMLError as error:
        raise InvalidRollbackDefinition(
            f"Failed to parse rollback file {rollback_file}: {error}. Fix the syntax and retry."
        ) from error
    if not isinstance(payload, Mapping):
        raise InvalidRollbackDefinition(
            f"Invalid rollback file {rollback_file}: expected a mapping of manifest ids to versions."
        )
    return parse_rollback_definition(payload, feature_band, str(rollback_file))


def parse_rollback_definition(
    payload: Mapping[object, object], feature_band: SdkFeatureBand, source: str
) -> RollbackDefinition:
    """Validate an in-memory rollback mapping."""
    manifest_versions: dict[ManifestId, tuple[ManifestVersion, SdkFeatureBand]] = {}
    for raw_id, raw_value in payload.items():
        if not isinstance(raw_id, str) or not isinstance(raw_value, str):
            raise InvalidRollbackDefinition(
                f"Invalid rollback entry {raw_id!r} in {source}: "
                "expected string manifest ids and 'version[/featureBand]' values."
            )
        try:
            manifest_versions[ManifestId(raw_id)] = parse_versioned_band(raw_value, feature_band)
        except InvalidVersionFormat as error:
            raise InvalidRollbackDefinition(
                f"Invalid rollback entry for '{raw_id}' in {source}: {error}"
            ) from error
    return RollbackDefinition(manifest_versions=manifest_versions, source=source)
