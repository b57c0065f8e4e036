"""Workload-set version encoding.

A workload-set display version ``MAJOR.MINOR.PATCH[.REVISION][-PRERELEASE]``
maps to a feature band and a package version ``MAJOR.PATCH.REVISION``.
The minor version travels in the feature band, so decoding needs both.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from core.constants import FEATURE_BAND_PATCH_WIDTH
from core.errors import InvalidVersionFormat
from core.feature_band import SdkFeatureBand, support_band_prerelease

# Numbers carry no leading zeros so the display string survives int().
_NUMBER = r"(?:0|[1-9]\d*)"
_PRERELEASE = r"(?:-(?P<prerelease>[0-9A-Za-z][0-9A-Za-z.-]*))?"
_WORKLOAD_SET_VERSION_PATTERN = re.compile(
    rf"^(?P<major>{_NUMBER})\.(?P<minor>{_NUMBER})\.(?P<patch>{_NUMBER})"
    rf"(?:\.(?P<revision>{_NUMBER}))?" + _PRERELEASE + "$"
)
_PACKAGE_VERSION_PATTERN = re.compile(
    rf"^(?P<major>{_NUMBER})\.(?P<patch>{_NUMBER})\.(?P<revision>{_NUMBER})" + _PRERELEASE + "$"
)


@dataclass(frozen=True)
class WorkloadSetPackageVersion:
    """Encoded form of a workload-set version.

    Attributes:
        feature_band: Band the workload set belongs to.
        package_version: Version of the workload-set package in the feed.
    """

    feature_band: SdkFeatureBand
    package_version: str


def encode_workload_set_version(workload_set_version: str) -> WorkloadSetPackageVersion:
    """Convert a display version into its feature band and package version.

    Args:
        workload_set_version: Version such as ``8.0.203.1`` or ``9.0.100-preview.2.3``.

    Returns:
        Feature band and package version pair.

    Raises:
        InvalidVersionFormat: If the version does not match the grammar.
    """
    match = _WORKLOAD_SET_VERSION_PATTERN.match(workload_set_version)
    if match is None:
        raise InvalidVersionFormat(
            f"Invalid workload set version '{workload_set_version}': expected "
            "MAJOR.MINOR.PATCH[.REVISION][-PRERELEASE], for example 8.0.203.1."
        )
    major = int(match["major"])
    patch = int(match["patch"])
    revision = int(match["revision"] or 0)
    prerelease = match["prerelease"]
    feature_band = SdkFeatureBand(
        major=major,
        minor=int(match["minor"]),
        patch=(patch // FEATURE_BAND_PATCH_WIDTH) * FEATURE_BAND_PATCH_WIDTH,
        prerelease=support_band_prerelease(prerelease),
    )
    package_version = f"{major}.{patch}.{revision}"
    if prerelease:
        package_version = f"{package_version}-{prerelease}"
    return WorkloadSetPackageVersion(feature_band=feature_band, package_version=package_version)


def decode_workload_set_version(feature_band: SdkFeatureBand, package_version: str) -> str:
    """Reconstruct the display version from a band and package version.

    The prerelease comes from the package version, never from the band,
    because the band only keeps the support-band prefix.

    Args:
        feature_band: Band the workload-set package was published for.
        package_version: Package version such as ``8.203.1``.

    Returns:
        Display workload-set version.

    Raises:
        InvalidVersionFormat: If the package version is malformed or does
            not belong to the band.
    """
    match = _PACKAGE_VERSION_PATTERN.match(package_version)
    if match is None:
        raise InvalidVersionFormat(
            f"Invalid workload set package version '{package_version}': "
            "expected MAJOR.PATCH.REVISION[-PRERELEASE]."
        )
    major = int(match["major"])
    if major != feature_band.major:
        raise InvalidVersionFormat(
            f"Workload set package version '{package_version}' does not belong to "
            f"feature band {feature_band}: major versions differ."
        )
    patch = int(match["patch"])
    if (patch // FEATURE_BAND_PATCH_WIDTH) * FEATURE_BAND_PATCH_WIDTH != feature_band.patch:
        raise InvalidVersionFormat(
            f"Workload set package version '{package_version}' does not belong to "
            f"feature band {feature_band}: patch {patch} is outside the band."
        )
    if support_band_prerelease(match["prerelease"]) != feature_band.prerelease:
        raise InvalidVersionFormat(
            f"Workload set package version '{package_version}' does not belong to "
            f"feature band {feature_band}: the prerelease names a different support band."
        )
    display = f"{major}.{feature_band.minor}.{patch}"
    revision = int(match["revision"])
    if revision:
        display = f"{display}.{revision}"
    if match["prerelease"]:
        display = f"{display}-{match['prerelease']}"
    return display
