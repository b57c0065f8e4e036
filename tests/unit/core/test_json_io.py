"""Unit tests for metadata JSON helpers."""

from __future__ import annotations

import pytest

from core.errors import LoadoutStoreError
from core.json_io import delete_file_and_empty_parents, read_json_file, write_json_file


def test_write_json_file_replaces_without_leaving_temp_files(tmp_path) -> None:
    """Writes should be atomic and leave only the target file."""
    target = tmp_path / "state" / "default.json"

    write_json_file(target, {"a": 1})
    write_json_file(target, {"a": 2})

    assert read_json_file(target) == {"a": 2}
    assert [path.name for path in target.parent.iterdir()] == ["default.json"]


def test_read_json_file_returns_default_when_missing(tmp_path) -> None:
    """Missing files should yield the provided default."""
    assert read_json_file(tmp_path / "missing.json", default_value={}) == {}


def test_read_json_file_raises_for_corrupt_payload(tmp_path) -> None:
    """Corrupt JSON should raise a store error."""
    target = tmp_path / "bad.json"
    target.write_text("{not json", encoding="utf-8")

    with pytest.raises(LoadoutStoreError):
        read_json_file(target)


def test_delete_file_and_empty_parents_stops_at_non_empty_directory(tmp_path) -> None:
    """Pruning should stop at the first directory that still has entries."""
    keep = tmp_path / "a" / "keep.txt"
    target = tmp_path / "a" / "b" / "c" / "record"
    keep.parent.mkdir(parents=True)
    keep.write_text("x", encoding="utf-8")
    target.parent.mkdir(parents=True)
    target.write_text("", encoding="utf-8")

    delete_file_and_empty_parents(target, max_parents=3)

    assert not (tmp_path / "a" / "b").exists() and keep.exists()
