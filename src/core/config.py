"""Runtime configuration model for Loadout.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
An optional YAML file named by LOADOUT_CONFIG_FILE supplies defaults
that environment variables override.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, cast

import yaml

from core.constants import (
    DEFAULT_DOWNLOAD_RETRIES,
    DEFAULT_DOWNLOAD_WORKERS,
    DEFAULT_GLOBAL_ROOT,
    DEFAULT_INSTALL_CONTEXT,
    DEFAULT_INSTALLER_KIND,
    DEFAULT_USER_ROOT,
    TEMP_DIR_NAME,
)
from core.errors import LoadoutConfigError
from core.logging_config import DEFAULT_LOG_LEVEL, LOG_LEVELS
from core.types import SUPPORTED_INSTALL_CONTEXTS, InstallContext

_ENV_KEYS = {
    "global_root": "LOADOUT_DOTNET_ROOT",
    "user_root": "LOADOUT_USER_ROOT",
    "install_context": "LOADOUT_INSTALL_CONTEXT",
    "installer_kind": "LOADOUT_INSTALLER_KIND",
    "download_workers": "LOADOUT_DOWNLOAD_WORKERS",
    "download_retries": "LOADOUT_DOWNLOAD_RETRIES",
    "offline_cache": "LOADOUT_OFFLINE_CACHE",
    "temp_dir": "LOADOUT_TEMP_DIR",
    "log_level": "LOADOUT_LOG_LEVEL",
}


@dataclass(frozen=True)
class LoadoutConfig:
    """Validated runtime configuration.

    Attributes:
        global_root: Shared installation root used by the global context.
        user_root: Per-user installation root used by the user-local context.
        install_context: Which root installs and records target.
        installer_kind: Installer mechanism chosen once at startup.
        download_workers: Size of the bounded content download pool.
        download_retries: Attempts per package before the install aborts.
        offline_cache: Directory read instead of the feed when set.
        temp_dir: Scratch directory for downloads, extraction, and backups.
        log_level: structlog level threshold.
    """

    global_root: Path
    user_root: Path
    install_context: InstallContext
    installer_kind: str
    download_workers: int
    download_retries: int
    offline_cache: Path | None
    temp_dir: Path | None
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def install_root(self) -> Path:
        if self.install_context == "user-local":
            return self.user_root
        return self.global_root

    @property
    def scratch_root(self) -> Path:
        return self.temp_dir or self.install_root / TEMP_DIR_NAME

    @classmethod
    def from_env(cls) -> "LoadoutConfig":
        """Build config from the optional YAML file and environment variables.

        Returns:
            A validated config object.

        Raises:
            LoadoutConfigError: If file or environment values are invalid.
        """
        file_values = _load_config_file(os.getenv("LOADOUT_CONFIG_FILE"))
        values = {
            key: os.getenv(env_key, file_values.get(key))
            for key, env_key in _ENV_KEYS.items()
        }
        offline_cache = values["offline_cache"]
        temp_dir = values["temp_dir"]
        return cls(
            global_root=_parse_path(values["global_root"], DEFAULT_GLOBAL_ROOT),
            user_root=_parse_path(values["user_root"], DEFAULT_USER_ROOT),
            install_context=_parse_install_context(values["install_context"]),
            installer_kind=str(values["installer_kind"] or DEFAULT_INSTALLER_KIND),
            download_workers=_parse_positive_int(
                values["download_workers"], "LOADOUT_DOWNLOAD_WORKERS", DEFAULT_DOWNLOAD_WORKERS
            ),
            download_retries=_parse_positive_int(
                values["download_retries"], "LOADOUT_DOWNLOAD_RETRIES", DEFAULT_DOWNLOAD_RETRIES
            ),
            offline_cache=_parse_path(offline_cache, None) if offline_cache else None,
            temp_dir=_parse_path(temp_dir, None) if temp_dir else None,
            log_level=_parse_log_level(values["log_level"]),
        )


def _load_config_file(config_path: str | None) -> Mapping[str, object]:
    """Load the optional YAML config file.

    Args:
        config_path: Path from LOADOUT_CONFIG_FILE, or None.

    Returns:
        Config values keyed by setting name; empty when no file is set.

    Raises:
        LoadoutConfigError: If the file is missing, malformed, or has unknown keys.
    """
    if not config_path:
        return {}
    config_file = Path(config_path).expanduser().resolve()
    if not config_file.exists():
        raise LoadoutConfigError(
            f"Config file does not exist at {config_file}. "
            "Fix LOADOUT_CONFIG_FILE or unset it."
        )
    try:
        payload = cast(object, yaml.safe_load(config_file.read_text(encoding="utf-8")))
    except (OSError, yaml.YAMLError) as error:
        raise LoadoutConfigError(
            f"Failed to load config file {config_file}: {error}. Fix the YAML and retry."
        ) from error
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise LoadoutConfigError(
            f"Invalid config file {config_file}: expected a mapping at top level."
        )
    unknown_keys = sorted(str(key) for key in payload if key not in _ENV_KEYS)
    if unknown_keys:
        raise LoadoutConfigError(
            f"Invalid config file {config_file}: unknown keys {', '.join(unknown_keys)}. "
            f"Supported keys: {', '.join(_ENV_KEYS)}."
        )
    return {str(key): value for key, value in payload.items()}


def _parse_path(raw_value: object, default: Path | None) -> Path:
    """Parse a filesystem path setting.

    Args:
        raw_value: Raw value from file or environment.
        default: Path used when no value is set.

    Returns:
        Expanded absolute path.

    Raises:
        LoadoutConfigError: If neither a value nor a default exists.
    """
    value = Path(str(raw_value)) if raw_value is not None else default
    if value is None:
        raise LoadoutConfigError("Missing required path configuration value.")
    return value.expanduser().resolve()


def _parse_install_context(raw_value: object) -> InstallContext:
    """Parse the install context setting.

    Args:
        raw_value: Raw value from file or environment.

    Returns:
        ``user-local`` or ``global``.

    Raises:
        LoadoutConfigError: If the value names another context.
    """
    value = str(raw_value or DEFAULT_INSTALL_CONTEXT)
    if value in SUPPORTED_INSTALL_CONTEXTS:
        return cast(InstallContext, value)
    raise LoadoutConfigError(
        f"Invalid LOADOUT_INSTALL_CONTEXT value '{value}'. "
        f"Use one of: {', '.join(SUPPORTED_INSTALL_CONTEXTS)}."
    )


def _parse_log_level(raw_value: object) -> str:
    """Parse the log level setting.

    Args:
        raw_value: Raw value from file or environment.

    Returns:
        Lowercase level name from LOG_LEVELS.

    Raises:
        LoadoutConfigError: If the level is unknown.
    """
    value = str(raw_value or DEFAULT_LOG_LEVEL).lower()
    if value not in LOG_LEVELS:
        raise LoadoutConfigError(
            f"Invalid LOADOUT_LOG_LEVEL value '{raw_value}'. Use one of: {', '.join(LOG_LEVELS)}."
        )
    return value


def _parse_positive_int(raw_value: object, env_name: str, default: int) -> int:
    """Parse a positive integer setting.

    Args:
        raw_value: Raw value from file or environment.
        env_name: Environment variable name used in error messages.
        default: Value used when unset.

    Returns:
        Parsed integer.

    Raises:
        LoadoutConfigError: If value is not a positive integer.
    """
    if raw_value is None or raw_value == "":
        return default
    try:
        value = int(str(raw_value))
    except ValueError as error:
        raise LoadoutConfigError(
            f"Invalid {env_name} value: expected integer, got '{raw_value}'. "
            f"Set {env_name} to a positive number."
        ) from error
    if value < 1:
        raise LoadoutConfigError(
            f"Invalid {env_name} value {value}: must be at least 1."
        )
    return value
