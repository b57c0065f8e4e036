"""Strict semantic-version parsing for workload manifests."""

from __future__ import annotations

from semver import Version

from core.errors import InvalidVersionFormat
from core.feature_band import SdkFeatureBand
from core.types import ManifestVersion


def parse_manifest_version(raw_version: str) -> ManifestVersion:
    """Parse a strict semver manifest version.

    Raises:
        InvalidVersionFormat: If the value is not valid semver.
    """
    try:
        return Version.parse(raw_version.strip())
    except (TypeError, ValueError) as error:
        raise InvalidVersionFormat(
            f"Invalid manifest version '{raw_version}': expected strict semver "
            "such as 34.0.43 or 9.0.0-preview.2.1."
        ) from error


def parse_versioned_band(raw_value: str, default_band: SdkFeatureBand) -> tuple[ManifestVersion, SdkFeatureBand]:
    """Parse ``version`` or ``version/featureBand`` entries.

    Args:
        raw_value: Entry from a rollback or workload-set file.
        default_band: Band used when the entry names none.

    Returns:
        Manifest version and its feature band.
    """
    version_text, separator, band_text = raw_value.partition("/")
    version = parse_manifest_version(version_text)
    if not separator:
        return version, default_band
    return version, SdkFeatureBand.parse(band_text)
