"""Workload install, update, and uninstall orchestration.

This module wires the manifest resolver, the configured installer, and the
garbage collector into the public operations. Validation and manifest
update calculation happen before any mutation; every mutation runs in one
Transaction; garbage collection runs after commit and only ever warns.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from core.config import LoadoutConfig
from core.errors import (
    GarbageCollectionFailure,
    LoadoutConfigError,
    UnsupportedOnPlatform,
    WorkloadNotFound,
)
from core.feature_band import SdkFeatureBand
from core.logging_config import configure_logging, get_logger
from core.types import (
    GarbageCollectionReport,
    InstallReport,
    ManifestVersionUpdate,
    PackInfo,
    UninstallReport,
    WorkloadId,
)
from install.garbage_collector import GarbageCollector
from install.installer_factory import Installer, create_installer
from install.transaction import CancellationToken, Transaction
from resolve.interfaces import (
    ContentFetcher,
    ManifestFeed,
    ResolverFactory,
    SdkEnumerator,
    WorkloadResolver,
)
from resolve.manifest_resolver import LatestManifests, ManifestResolver, ManifestUpdateSource
from resolve.rollback_file import RollbackDefinition
from resolve.workload_set import WorkloadSet
from versioning.workload_set_version import encode_workload_set_version

_LOGGER = get_logger(__name__)


class WorkloadService:
    """Public entry point for workload operations on one install root."""

    def __init__(
        self,
        config: LoadoutConfig,
        resolver_factory: ResolverFactory,
        fetcher: ContentFetcher,
        manifest_feed: ManifestFeed | None = None,
        sdk_enumerator: SdkEnumerator | None = None,
        cancellation: CancellationToken | None = None,
    ) -> None:
        configure_logging(config.log_level)
        self._config = config
        self._resolver_factory = resolver_factory
        self._manifest_feed = manifest_feed
        self._cancellation = cancellation
        self._installer: Installer = create_installer(config, fetcher)
        self._manifest_resolver = ManifestResolver(manifest_feed)
        self._garbage_collector = GarbageCollector(
            self._installer, resolver_factory, sdk_enumerator
        )

    @property
    def installer(self) -> Installer:
        return self._installer

    def list_installed(self, feature_band: SdkFeatureBand) -> tuple[WorkloadId, ...]:
        return self._installer.records.list(feature_band)

    def install_workloads(
        self,
        workload_ids: Sequence[WorkloadId],
        feature_band: SdkFeatureBand,
        *,
        source: ManifestUpdateSource | None = None,
        workload_set_version: str | None = None,
        skip_manifest_update: bool = False,
        offline_cache: Path | None = None,
    ) -> InstallReport:
        """Install workloads for one feature band.

        Args:
            workload_ids: Workloads to install.
            feature_band: Band the workloads are recorded under.
            source: Manifest update source; defaults to the feed's latest
                manifests unless the band is pinned.
            workload_set_version: Workload set to install and pin.
            skip_manifest_update: Install against the manifests in effect.
            offline_cache: Read packages from this cache instead of the feed.

        Returns:
            Newly installed and already installed workloads.

        Raises:
            WorkloadNotFound: If a workload id is unknown.
            UnsupportedOnPlatform: If a workload cannot install here.
            InvalidRollbackDefinition: If a rollback names unknown manifests.
            PackInstallFailure: If content installation fails; nothing is kept.
            LoadoutConfigError: If update options conflict.
        """
        if skip_manifest_update and (source is not None or workload_set_version is not None):
            raise LoadoutConfigError(
                "skip_manifest_update cannot be combined with a manifest update source "
                "or a workload set version. Drop one of them."
            )
        requested = list(dict.fromkeys(workload_ids))
        resolver = self._resolver_factory(feature_band)
        _validate_workloads(resolver, requested)
        already_installed = [
            workload_id
            for workload_id in requested
            if self._installer.records.contains(workload_id, feature_band)
        ]
        _LOGGER.info(
            "workload_install_started",
            workload_ids=requested,
            feature_band=str(feature_band),
            context=self._installer.context,
        )
        newly_installed, updates = self._apply(
            resolver,
            feature_band,
            requested,
            source=source,
            workload_set_version=workload_set_version,
            resolve_default_source=not skip_manifest_update,
            offline_cache=offline_cache,
            transaction_name="install",
        )
        return InstallReport(
            newly_installed=tuple(newly_installed),
            already_installed=tuple(already_installed),
            manifest_updates=tuple(updates),
            garbage_collection_error=self._collect_garbage_safely(feature_band),
        )

    def update_workloads(
        self,
        feature_band: SdkFeatureBand,
        *,
        source: ManifestUpdateSource | None = None,
        workload_set_version: str | None = None,
        offline_cache: Path | None = None,
    ) -> InstallReport:
        """Move the band to new manifests and reinstall its recorded workloads.

        A rollback definition pins manifests, a workload set pins the set
        version, and an explicit LatestManifests clears both pins.
        """
        resolver = self._resolver_factory(feature_band)
        installed = list(self._installer.records.list(feature_band))
        _LOGGER.info(
            "workload_update_started",
            workload_ids=installed,
            feature_band=str(feature_band),
            source=type(source).__name__ if source else workload_set_version,
        )
        _, updates = self._apply(
            resolver,
            feature_band,
            [],
            source=source,
            workload_set_version=workload_set_version,
            resolve_default_source=True,
            offline_cache=offline_cache,
            transaction_name="update",
        )
        return InstallReport(
            newly_installed=(),
            already_installed=tuple(installed),
            manifest_updates=tuple(updates),
            garbage_collection_error=self._collect_garbage_safely(feature_band),
        )

    def uninstall_workloads(
        self, workload_ids: Sequence[WorkloadId], feature_band: SdkFeatureBand
    ) -> UninstallReport:
        """Remove installation records, then reclaim unreferenced content."""
        requested = list(dict.fromkeys(workload_ids))
        with Transaction("uninstall", self._cancellation) as transaction:
            removed = self._installer.delete_installation_records(
                requested, feature_band, transaction
            )
        not_installed = [workload_id for workload_id in requested if workload_id not in removed]
        _LOGGER.info(
            "workloads_uninstalled",
            removed=removed,
            not_installed=not_installed,
            feature_band=str(feature_band),
        )
        return UninstallReport(
            removed=tuple(removed),
            not_installed=tuple(not_installed),
            garbage_collection_error=self._collect_garbage_safely(feature_band),
        )

    def garbage_collect(
        self, feature_band: SdkFeatureBand, clean_all_packs: bool = False
    ) -> GarbageCollectionReport:
        """Run garbage collection directly; failures are raised to the caller."""
        return self._garbage_collector.collect(feature_band, clean_all_packs=clean_all_packs)

    def _apply(
        self,
        resolver: WorkloadResolver,
        feature_band: SdkFeatureBand,
        requested: list[WorkloadId],
        *,
        source: ManifestUpdateSource | None,
        workload_set_version: str | None,
        resolve_default_source: bool,
        offline_cache: Path | None,
        transaction_name: str,
    ) -> tuple[list[WorkloadId], list[ManifestVersionUpdate]]:
        if source is not None and workload_set_version is not None:
            raise LoadoutConfigError(
                "Pass either a manifest update source or a workload set version, not both."
            )
        if workload_set_version is not None:
            encode_workload_set_version(workload_set_version)
        elif source is None and resolve_default_source:
            source = self._default_source(feature_band)
        updates: list[ManifestVersionUpdate] = []
        if source is not None and not isinstance(source, WorkloadSet):
            updates = self._manifest_resolver.calculate_updates(
                source, resolver.get_installed_manifests(), feature_band
            )
        offline_cache = offline_cache or self._config.offline_cache

        with Transaction(transaction_name, self._cancellation) as transaction:
            # Registered first so the resolver reloads after every other undo.
            transaction.run(
                lambda: None, rollback=resolver.refresh_manifests, description="reload manifests"
            )
            if workload_set_version is not None:
                source = self._installer.install_workload_set(
                    workload_set_version, feature_band, transaction, offline_cache
                )
            if isinstance(source, WorkloadSet):
                updates = self._manifest_resolver.calculate_updates(
                    source, resolver.get_installed_manifests(), feature_band
                )
            for update in updates:
                self._installer.install_manifest(update, feature_band, transaction, offline_cache)
            state_changed = self._update_install_state(feature_band, source, transaction)
            if updates or state_changed:
                transaction.run(resolver.refresh_manifests, description="reload manifests")
            workloads = list(dict.fromkeys([*self._installer.records.list(feature_band), *requested]))
            if not requested or updates or state_changed:
                pack_workloads = workloads
            else:
                pack_workloads = requested
            packs = _resolve_packs(resolver, pack_workloads)
            self._installer.install_packs(packs, feature_band, transaction, offline_cache)
            newly_installed = self._installer.write_installation_records(
                requested, feature_band, transaction
            )
        return newly_installed, updates

    def _default_source(self, feature_band: SdkFeatureBand) -> ManifestUpdateSource | None:
        state = self._installer.install_state.read(feature_band)
        if state.manifests or state.workload_version:
            _LOGGER.info(
                "manifest_update_skipped_for_pinned_band",
                feature_band=str(feature_band),
                workload_version=state.workload_version,
            )
            return None
        if self._manifest_feed is None:
            return None
        return LatestManifests()

    def _update_install_state(
        self,
        feature_band: SdkFeatureBand,
        source: ManifestUpdateSource | None,
        transaction: Transaction,
    ) -> bool:
        state = self._installer.install_state.read(feature_band)
        if isinstance(source, RollbackDefinition):
            manifests: dict[str, str] | None = {
                manifest_id: f"{version}/{band}"
                for manifest_id, (version, band) in sorted(source.manifest_versions.items())
            }
            workload_version = None
        elif isinstance(source, WorkloadSet):
            manifests, workload_version = None, source.version
        elif isinstance(source, LatestManifests) and (state.manifests or state.workload_version):
            manifests, workload_version = None, None
        else:
            return False
        if state.manifests == manifests and state.workload_version == workload_version:
            return False
        self._installer.update_install_state(feature_band, transaction, manifests, workload_version)
        return True

    def _collect_garbage_safely(self, feature_band: SdkFeatureBand) -> str | None:
        try:
            self._garbage_collector.collect(feature_band)
        except GarbageCollectionFailure as error:
            _LOGGER.warning(
                "garbage_collection_failed", feature_band=str(feature_band), error=str(error)
            )
            return str(error)
        return None


def _validate_workloads(resolver: WorkloadResolver, workload_ids: Sequence[WorkloadId]) -> None:
    _require_available(resolver, workload_ids)
    for workload_id in workload_ids:
        if not resolver.is_workload_supported(workload_id):
            raise UnsupportedOnPlatform(
                f"Workload '{workload_id}' is not supported on this platform. "
                "Remove it from the request or install on a supported platform."
            )


def _require_available(resolver: WorkloadResolver, workload_ids: Sequence[WorkloadId]) -> None:
    available = set(resolver.get_available_workloads())
    for workload_id in workload_ids:
        if workload_id not in available:
            raise WorkloadNotFound(
                f"Workload '{workload_id}' is not recognized by the manifests in effect. "
                "Check the workload id or update manifests first."
            )


def _resolve_packs(resolver: WorkloadResolver, workload_ids: Sequence[WorkloadId]) -> list[PackInfo]:
    _require_available(resolver, workload_ids)
    packs: dict[PackInfo, None] = {}
    for workload_id in workload_ids:
        for pack_id in resolver.get_packs_in_workload(workload_id):
            pack = resolver.try_get_pack_info(pack_id)
            if pack is None:
                _LOGGER.info("pack_not_applicable", workload_id=workload_id, pack_id=pack_id)
                continue
            packs[pack] = None
    return list(packs)
