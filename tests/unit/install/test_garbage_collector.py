"""Unit tests for reference-counted garbage collection."""

from __future__ import annotations

import pytest

from core.errors import GarbageCollectionFailure
from core.types import ManifestId, WorkloadId
from fakes import (
    BAND_800,
    PREVIEW_BAND,
    RC_BAND,
    FakeCatalog,
    FakeFetcher,
    FakeResolverFactory,
    FakeSdkEnumerator,
    make_config,
    sdk_pack,
)
from install.file_based_installer import FileBasedInstaller
from install.garbage_collector import GarbageCollector
from install.transaction import Transaction


def _setup(tmp_path):
    catalog = FakeCatalog()
    catalog.add_workload("wasm-tools", [sdk_pack("Wasm.Pack"), sdk_pack("Shared.Pack")])
    catalog.add_workload("maui", [sdk_pack("Maui.Pack"), sdk_pack("Shared.Pack")])
    installer = FileBasedInstaller(make_config(tmp_path), FakeFetcher())
    factory = FakeResolverFactory(catalog, installer.install_root)
    return catalog, installer, factory


def _install(installer, catalog, workload_id: str, band) -> None:
    packs = [catalog.packs[pack_id] for pack_id in catalog.workloads[workload_id]]
    with Transaction("install") as transaction:
        installer.install_packs(packs, band, transaction)
        installer.write_installation_records([WorkloadId(workload_id)], band, transaction)


def _pin_workload_set(installer, workload_version) -> None:
    with Transaction("update") as transaction:
        installer.update_install_state(BAND_800, transaction, None, workload_version)


def test_collect_is_noop_when_everything_is_live(tmp_path) -> None:
    """Packs resolved from recorded workloads survive."""
    catalog, installer, factory = _setup(tmp_path)
    _install(installer, catalog, "wasm-tools", BAND_800)

    report = GarbageCollector(installer, factory).collect(BAND_800)

    assert report.deleted_packs == () and len(installer.packs.list_installed()) == 2


def test_bands_are_independent_namespaces(tmp_path) -> None:
    """Uninstalling on rc never touches packs live under preview."""
    catalog, installer, factory = _setup(tmp_path)
    _install(installer, catalog, "wasm-tools", PREVIEW_BAND)
    _install(installer, catalog, "maui", RC_BAND)
    installer.records.delete(WorkloadId("maui"), RC_BAND)

    report = GarbageCollector(installer, factory).collect(RC_BAND)

    assert report.deleted_packs == (("Maui.Pack", "1.0.0"),)
    assert installer.packs.list_installed() == [("Shared.Pack", "1.0.0"), ("Wasm.Pack", "1.0.0")]
    assert installer.references.all_pack_references()[("Shared.Pack", "1.0.0")] == [PREVIEW_BAND]


def test_clean_all_packs_drops_bands_without_sdk(tmp_path) -> None:
    """Bands with no installed SDK lose their records and content."""
    catalog, installer, factory = _setup(tmp_path)
    _install(installer, catalog, "wasm-tools", PREVIEW_BAND)
    _install(installer, catalog, "maui", BAND_800)
    collector = GarbageCollector(installer, factory, FakeSdkEnumerator([BAND_800]))

    report = collector.collect(BAND_800, clean_all_packs=True)

    assert report.removed_bands == (PREVIEW_BAND,)
    assert installer.records.list_bands() == (BAND_800,)
    assert installer.packs.list_installed() == [("Maui.Pack", "1.0.0"), ("Shared.Pack", "1.0.0")]


def test_unneeded_manifests_and_workload_sets_are_deleted(tmp_path) -> None:
    """Superseded manifests and unpinned workload sets are removed."""
    _, installer, factory = _setup(tmp_path)
    old_manifest_dir = installer.manifest_dir(ManifestId("android"), "34.0.1", BAND_800)
    new_manifest_dir = installer.manifest_dir(ManifestId("android"), "34.0.43", BAND_800)
    old_manifest_dir.mkdir(parents=True)
    new_manifest_dir.mkdir(parents=True)
    set_dir = installer.workload_set_dir("8.0.101", BAND_800)
    set_dir.mkdir(parents=True)
    installer.references.write_workload_set_reference("8.0.101", BAND_800, BAND_800)
    _pin_workload_set(installer, "8.0.101")
    installer.references.write_manifest_reference(ManifestId("android"), "34.0.1", BAND_800, BAND_800)
    installer.references.write_manifest_reference(ManifestId("android"), "34.0.43", BAND_800, BAND_800)
    collector = GarbageCollector(installer, factory)

    first = collector.collect(BAND_800)
    _pin_workload_set(installer, None)
    second = collector.collect(BAND_800)

    assert first.deleted_workload_sets == () and second.deleted_workload_sets == ("8.0.101",)
    assert first.deleted_manifests == (("android", "34.0.1", "8.0.100"),)
    assert not old_manifest_dir.exists() and new_manifest_dir.exists() and not set_dir.exists()


def test_resolver_errors_become_garbage_collection_failures(tmp_path) -> None:
    """A failing pass reports GarbageCollectionFailure and deletes nothing."""
    catalog, installer, factory = _setup(tmp_path)
    _install(installer, catalog, "wasm-tools", BAND_800)
    del catalog.workloads["wasm-tools"]

    with pytest.raises(GarbageCollectionFailure):
        GarbageCollector(installer, factory).collect(BAND_800)

    assert len(installer.packs.list_installed()) == 2
