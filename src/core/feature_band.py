"""SDK feature band value type.

A feature band is the compatibility scope derived from an SDK version:
``{major}.{minor}.{floor100(patch)}`` plus an optional support-band
prerelease qualifier such as ``preview.2`` or ``rc.1``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering

from core.constants import FEATURE_BAND_PATCH_WIDTH, SUPPORT_BAND_PRERELEASE_LABELS
from core.errors import InvalidVersionFormat

_SDK_VERSION_PATTERN = re.compile(
    r"^(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)"
    r"(?:\.(?P<revision>\d+))?"
    r"(?:-(?P<prerelease>[0-9A-Za-z][0-9A-Za-z.-]*))?"
    r"(?:\+[0-9A-Za-z.-]+)?$"
)


@total_ordering
@dataclass(frozen=True)
class SdkFeatureBand:
    """Immutable SDK feature band.

    Attributes:
        major: SDK major version.
        minor: SDK minor version.
        patch: Patch rounded down to the nearest hundred.
        prerelease: Support-band qualifier such as ``preview.2``, or None.
    """

    major: int
    minor: int
    patch: int
    prerelease: str | None = None

    @classmethod
    def parse(cls, sdk_version: str) -> "SdkFeatureBand":
        """Derive a feature band from an SDK version or band string.

        Args:
            sdk_version: Version such as ``9.0.105`` or ``9.0.100-rc.1.24452.12``.

        Returns:
            Derived feature band.

        Raises:
            InvalidVersionFormat: If the version lacks MAJOR.MINOR.PATCH.
        """
        match = _SDK_VERSION_PATTERN.match(sdk_version.strip())
        if match is None:
            raise InvalidVersionFormat(
                f"Invalid SDK version '{sdk_version}': expected MAJOR.MINOR.PATCH "
                "with an optional .REVISION and -PRERELEASE suffix."
            )
        patch = int(match["patch"])
        return cls(
            major=int(match["major"]),
            minor=int(match["minor"]),
            patch=(patch // FEATURE_BAND_PATCH_WIDTH) * FEATURE_BAND_PATCH_WIDTH,
            prerelease=support_band_prerelease(match["prerelease"]),
        )

    def __str__(self) -> str:
        band = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            return f"{band}-{self.prerelease}"
        return band

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SdkFeatureBand):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def _sort_key(self) -> tuple[int, int, int, int, str]:
        # A release band sorts after every prerelease band with the same numbers.
        release_rank = 0 if self.prerelease else 1
        return (self.major, self.minor, self.patch, release_rank, self.prerelease or "")


def support_band_prerelease(prerelease: str | None) -> str | None:
    """Return the support-band qualifier kept from a prerelease, if any.

    Only ``preview.N`` and ``rc.N`` prefixes survive; every other prerelease
    is build or servicing noise and is dropped from the band.

    Args:
        prerelease: Full prerelease text without the leading dash.

    Returns:
        ``{label}.{number}`` or None.
    """
    if not prerelease:
        return None
    labels = prerelease.split(".")
    if len(labels) < 2:
        return None
    label, number = labels[0], labels[1]
    if label.lower() not in SUPPORT_BAND_PRERELEASE_LABELS or not number.isdigit():
        return None
    return f"{label.lower()}.{number}"
