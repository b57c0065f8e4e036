"""JSON I/O helpers for install metadata files."""

from __future__ import annotations

import json
import os
from pathlib import Path

from core.errors import LoadoutStoreError


def read_json_file(payload_path: Path, default_value: object | None = None) -> object:
    """Read JSON payload from disk with optional default when missing."""
    if default_value is not None and not payload_path.exists():
        return default_value
    try:
        return json.loads(payload_path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise LoadoutStoreError(
            f"Missing required install metadata at {payload_path}. Repair the install."
        ) from error
    except json.JSONDecodeError as error:
        raise LoadoutStoreError(f"Failed to parse JSON at {payload_path}: {error.msg}.") from error
    except OSError as error:
        raise LoadoutStoreError(f"Failed to read metadata file {payload_path}: {error}.") from error


def write_json_file(payload_path: Path, payload: object) -> None:
    """Atomically replace one JSON payload on disk with traceable errors."""
    temp_path = payload_path.with_name(f".{payload_path.name}.tmp")
    try:
        payload_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        os.replace(temp_path, payload_path)
    except OSError as error:
        raise LoadoutStoreError(f"Failed to write metadata file {payload_path}: {error}.") from error


def delete_file_and_empty_parents(file_path: Path, max_parents: int) -> None:
    """Delete a file if present, then prune up to ``max_parents`` empty directories."""
    try:
        file_path.unlink(missing_ok=True)
        directory = file_path.parent
        for _ in range(max_parents):
            if not directory.is_dir() or any(directory.iterdir()):
                return
            directory.rmdir()
            directory = directory.parent
    except OSError as error:
        raise LoadoutStoreError(f"Failed to delete metadata file {file_path}: {error}.") from error
