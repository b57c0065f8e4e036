"""Shared pack-content store.

Pack content is keyed by (package id, version) and is independent of the
feature band. Directory packs live at ``packs/{packageId}/{version}/``;
single-file packs are the archive itself at the same path.
"""

from __future__ import annotations

import shutil
import zipfile
from pathlib import Path

from core.constants import PACKS_DIR_NAME
from core.errors import LoadoutStoreError, PackInstallFailure
from core.logging_config import get_logger
from core.types import PackInfo

_LOGGER = get_logger(__name__)


class PackStore:
    """Filesystem pack store rooted under the install root."""

    def __init__(self, install_root: Path) -> None:
        self._packs_root = install_root / PACKS_DIR_NAME

    def pack_path(self, pack: PackInfo) -> Path:
        return self._packs_root / pack.resolved_package_id / pack.version

    def is_installed(self, pack: PackInfo) -> bool:
        path = self.pack_path(pack)
        return path.is_file() if pack.is_single_file else path.is_dir()

    def install(self, pack: PackInfo, archive_path: Path, scratch_dir: Path) -> Path:
        """Place pack content from a package archive.

        Directory packs are extracted to ``scratch_dir`` first and then moved
        into place, so a failed extraction never leaves a partial pack.

        Raises:
            PackInstallFailure: If the archive cannot be copied or extracted.
        """
        target = self.pack_path(pack)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if pack.is_single_file:
                shutil.copyfile(archive_path, target)
                return target
            extraction_dir = scratch_dir / f"{pack.resolved_package_id}-{pack.version}-extracted"
            extract_archive(archive_path, extraction_dir)
            shutil.move(str(extraction_dir), str(target))
        except (OSError, zipfile.BadZipFile) as error:
            raise PackInstallFailure(
                f"Failed to install pack {pack.resolved_package_id} {pack.version} "
                f"from {archive_path}: {error}."
            ) from error
        return target

    def delete(self, pack: PackInfo) -> bool:
        """Delete pack content if present and prune the empty package directory."""
        target = self.pack_path(pack)
        if not target.exists():
            return False
        try:
            if target.is_dir():
                shutil.rmtree(target)
            else:
                target.unlink()
            package_dir = target.parent
            if package_dir.is_dir() and not any(package_dir.iterdir()):
                package_dir.rmdir()
        except OSError as error:
            raise LoadoutStoreError(f"Failed to delete pack content at {target}: {error}.") from error
        _LOGGER.info("pack_deleted", package_id=pack.resolved_package_id, version=pack.version)
        return True

    def list_installed(self) -> list[tuple[str, str]]:
        """Return (package id, version) for every pack on disk, sorted."""
        if not self._packs_root.is_dir():
            return []
        return sorted(
            (package_dir.name, version_path.name)
            for package_dir in self._packs_root.iterdir()
            if package_dir.is_dir()
            for version_path in package_dir.iterdir()
        )


def extract_archive(archive_path: Path, target_dir: Path) -> None:
    """Extract a zip package archive into a fresh directory."""
    if target_dir.exists():
        shutil.rmtree(target_dir)
    target_dir.mkdir(parents=True)
    with zipfile.ZipFile(archive_path) as archive:
        archive.extractall(target_dir)
