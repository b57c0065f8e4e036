"""Unit tests for the file-based installer."""

from __future__ import annotations

import json

import pytest
from semver import Version

from core.errors import PackInstallFailure
from core.feature_band import SdkFeatureBand
from core.types import ManifestId, ManifestVersionUpdate, WorkloadId
from fakes import BAND_800, FakeFetcher, make_config, sdk_pack, write_package
from install.content_fetcher import package_file_name
from install.file_based_installer import FileBasedInstaller, manifest_package_id
from install.transaction import Transaction

PACKS = [sdk_pack("Pack.A"), sdk_pack("Pack.B"), sdk_pack("Pack.C")]


def _fail_later_step() -> None:
    raise RuntimeError("later step failed")


def _installer(tmp_path, fetcher: FakeFetcher | None = None, **overrides) -> FileBasedInstaller:
    return FileBasedInstaller(make_config(tmp_path, **overrides), fetcher or FakeFetcher())


def test_install_packs_places_content_and_references(tmp_path) -> None:
    """Installed packs get content and a reference from the band."""
    installer = _installer(tmp_path)

    with Transaction("install") as transaction:
        placed = installer.install_packs(PACKS, BAND_800, transaction)

    assert placed == PACKS
    assert all(installer.packs.is_installed(pack) for pack in PACKS)
    assert sorted(installer.references.all_pack_references()) == [
        ("Pack.A", "1.0.0"),
        ("Pack.B", "1.0.0"),
        ("Pack.C", "1.0.0"),
    ]
    assert not any(installer.install_root.joinpath("tmp").glob("*"))


def test_install_packs_skips_existing_content(tmp_path) -> None:
    """Packs already on disk are neither downloaded nor copied again."""
    fetcher = FakeFetcher()
    installer = _installer(tmp_path, fetcher)
    with Transaction("install") as transaction:
        installer.install_packs(PACKS, BAND_800, transaction)

    with Transaction("install") as transaction:
        placed = installer.install_packs(PACKS, BAND_800, transaction)

    assert placed == [] and len(fetcher.calls) == 3


@pytest.mark.parametrize("failing_index", [0, 1, 2])
def test_corrupt_pack_rolls_back_every_pack(tmp_path, failing_index: int) -> None:
    """A failure on any pack leaves none of the three behind."""
    fetcher = FakeFetcher()
    fetcher.corrupt.add(PACKS[failing_index].resolved_package_id)
    installer = _installer(tmp_path, fetcher)

    with pytest.raises(PackInstallFailure):
        with Transaction("install") as transaction:
            installer.install_packs(PACKS, BAND_800, transaction)

    assert installer.packs.list_installed() == []
    assert installer.references.all_pack_references() == {}


def test_rollback_keeps_packs_referenced_by_other_bands(tmp_path) -> None:
    """Rollback only removes content the transaction placed."""
    installer = _installer(tmp_path)
    other_band = SdkFeatureBand.parse("8.0.200")
    with Transaction("install") as transaction:
        installer.install_packs(PACKS[:1], other_band, transaction)

    with pytest.raises(RuntimeError):
        with Transaction("install") as transaction:
            installer.install_packs(PACKS[:1], BAND_800, transaction)
            transaction.run(_fail_later_step)

    assert installer.packs.is_installed(PACKS[0])
    assert installer.references.all_pack_references() == {("Pack.A", "1.0.0"): [other_band]}


def test_offline_cache_replaces_feed(tmp_path) -> None:
    """An offline cache is read instead of the fetcher."""
    fetcher = FakeFetcher()
    cache_dir = tmp_path / "cache"
    write_package(cache_dir / package_file_name("Pack.A", "1.0.0"), {"a": "b"})
    installer = _installer(tmp_path, fetcher)

    with Transaction("install") as transaction:
        installer.install_packs(PACKS[:1], BAND_800, transaction, offline_cache=cache_dir)

    assert installer.packs.is_installed(PACKS[0]) and fetcher.calls == []


def test_offline_cache_miss_fails_install(tmp_path) -> None:
    """A cache miss aborts the install without touching the feed."""
    fetcher = FakeFetcher()
    installer = _installer(tmp_path, fetcher)

    with pytest.raises(PackInstallFailure, match="Offline cache"):
        with Transaction("install") as transaction:
            installer.install_packs(PACKS, BAND_800, transaction, offline_cache=tmp_path / "empty")

    assert fetcher.calls == [] and installer.packs.list_installed() == []


def test_install_manifest_extracts_data_folder(tmp_path) -> None:
    """Manifest packages contribute their data folder to sdk-manifests."""
    fetcher = FakeFetcher()
    package_id = manifest_package_id(ManifestId("android"), BAND_800)
    fetcher.package_files[package_id] = {"data/WorkloadManifest.json": "{}"}
    installer = _installer(tmp_path, fetcher)
    update = ManifestVersionUpdate(ManifestId("android"), None, None, Version.parse("34.0.43"), BAND_800)

    with Transaction("update") as transaction:
        installer.install_manifest(update, BAND_800, transaction)

    manifest_dir = installer.manifest_dir(ManifestId("android"), "34.0.43", BAND_800)
    assert (manifest_dir / "WorkloadManifest.json").is_file()
    assert installer.references.has_manifest_reference(ManifestId("android"), "34.0.43", BAND_800, BAND_800)


def test_install_manifest_rollback_restores_previous_content(tmp_path) -> None:
    """A rolled-back reinstall restores the directory it replaced."""
    installer = _installer(tmp_path)
    manifest_dir = installer.manifest_dir(ManifestId("android"), "34.0.43", BAND_800)
    manifest_dir.mkdir(parents=True)
    (manifest_dir / "WorkloadManifest.json").write_text("original", encoding="utf-8")
    update = ManifestVersionUpdate(ManifestId("android"), None, None, Version.parse("34.0.43"), BAND_800)

    with pytest.raises(RuntimeError):
        with Transaction("update") as transaction:
            installer.install_manifest(update, BAND_800, transaction)
            transaction.run(_fail_later_step)

    assert (manifest_dir / "WorkloadManifest.json").read_text(encoding="utf-8") == "original"
    assert installer.references.all_manifest_references() == {}


def test_install_workload_set_returns_parsed_set(tmp_path) -> None:
    """Workload-set packages are extracted and parsed."""
    fetcher = FakeFetcher()
    fetcher.package_files["Loadout.Workloads.8.0.200"] = {
        "data/microsoft.net.workloads.workloadset.json": json.dumps({"android": "34.0.43/8.0.100"})
    }
    installer = _installer(tmp_path, fetcher)

    with Transaction("update") as transaction:
        workload_set = installer.install_workload_set("8.0.201", BAND_800, transaction)

    assert fetcher.calls == [("Loadout.Workloads.8.0.200", "8.201.0")]
    assert list(workload_set.manifest_versions) == ["android"]
    assert installer.references.all_workload_set_references() == {
        ("8.0.201", workload_set.feature_band): [BAND_800]
    }


def test_install_state_rollback_removes_new_state_file(tmp_path) -> None:
    """Rolling back the first pin leaves no state file behind."""
    installer = _installer(tmp_path)

    with pytest.raises(RuntimeError):
        with Transaction("update") as transaction:
            installer.update_install_state(BAND_800, transaction, None, "8.0.201")
            transaction.run(_fail_later_step)

    assert not installer.install_state.exists(BAND_800)


def test_installation_records_are_undone_on_rollback(tmp_path) -> None:
    """Only the records written by the transaction are removed."""
    installer = _installer(tmp_path)
    installer.records.write(WorkloadId("maui"), BAND_800)

    with pytest.raises(RuntimeError):
        with Transaction("install") as transaction:
            written = installer.write_installation_records(
                [WorkloadId("maui"), WorkloadId("android")], BAND_800, transaction
            )
            transaction.run(_fail_later_step)

    assert written == ["android"] and installer.records.list(BAND_800) == ("maui",)
