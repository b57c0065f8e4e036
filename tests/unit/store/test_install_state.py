"""Unit tests for per-band install state files."""

from __future__ import annotations

import json

from fakes import BAND_800, RC_BAND
from store.install_state import InstallState, InstallStateStore


def test_read_missing_state_is_unpinned(tmp_path) -> None:
    """Bands without a state file have no pins."""
    state = InstallStateStore(tmp_path).read(BAND_800)

    assert state.manifests is None and state.workload_version is None


def test_rewrite_keeps_unknown_fields(tmp_path) -> None:
    """Pins should round-trip while unrelated fields survive rewrites."""
    store = InstallStateStore(tmp_path)
    state_path = tmp_path / "metadata" / "workloads" / "InstallState" / "8.0.100" / "default.json"
    state_path.parent.mkdir(parents=True)
    state_path.write_text(json.dumps({"useWorkloadSets": True}), encoding="utf-8")

    previous = store.read(BAND_800)
    store.write(
        BAND_800,
        InstallState(
            manifests={"android": "34.0.43/8.0.100"},
            workload_version="8.0.101",
            extra_fields=previous.extra_fields,
        ),
    )
    state = store.read(BAND_800)

    assert previous.manifests is None
    assert state.manifests == {"android": "34.0.43/8.0.100"}
    assert state.workload_version == "8.0.101"
    assert json.loads(state_path.read_text(encoding="utf-8"))["useWorkloadSets"] is True


def test_delete_removes_only_that_band(tmp_path) -> None:
    """Deleting one band's state leaves other bands alone."""
    store = InstallStateStore(tmp_path)
    store.write(BAND_800, InstallState(workload_version="8.0.101"))
    store.write(RC_BAND, InstallState(workload_version="9.0.100-rc.1.1"))

    store.delete(BAND_800)

    assert not store.exists(BAND_800) and store.exists(RC_BAND)
