# SPDX-License-Identifier: MIT
"""Configuration management for diskhub.

This module handles:
- Logging setup
- The storage manager configuration models
- Loading manager configuration from the environment
- Validating per-driver settings blobs
"""

from __future__ import annotations

import json
import logging
import os
import pathlib
import sys
from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import StorageError

# ---------- Logging configuration ----------
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
logger = logging.getLogger("diskhub")
# Handlers are the application's business; stay silent until it adds one
logger.addHandler(logging.NullHandler())


def configure_logging(level: str | None = None) -> None:
    """Send log records to stderr for applications without their own setup.

    Args:
        level: Log level name; defaults to ``LOG_LEVEL`` or ``INFO``.
    """
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


# ---------- Manager configuration ----------
class DiskConfig(BaseModel):
    """One named disk: which driver builds it and the driver's own settings.

    ``driver`` may be absent here; a missing driver is reported when the
    disk is first resolved, not when the configuration is parsed.
    """

    model_config = ConfigDict(frozen=True)

    driver: str | None = None
    config: Any = Field(default_factory=dict)


class StorageManagerConfig(BaseModel):
    """Top-level configuration: ``{"default": ..., "disks": {name: DiskConfig}}``."""

    default: str | None = None
    disks: dict[str, DiskConfig] = Field(default_factory=dict)


def _default_config() -> dict[str, Any]:
    root = os.getenv("DISKHUB_ROOT", "").strip() or os.getcwd()
    return {"default": "local", "disks": {"local": {"driver": "local", "config": {"root": root}}}}


def load_config() -> StorageManagerConfig:
    """Build the manager configuration from the environment.

    ``DISKHUB_CONFIG``
        Path to a JSON file shaped like :class:`StorageManagerConfig`.  When
        unset, a single ``local`` disk rooted at ``DISKHUB_ROOT`` (or the
        current working directory) is configured as the default.
    ``DISKHUB_DEFAULT_DISK``
        Overrides the file's ``default`` disk name.

    Raises:
        StorageError: ``INVALID_CONFIG`` if the file cannot be read or parsed.
    """
    config_path = os.getenv("DISKHUB_CONFIG", "").strip()
    if config_path:
        path = pathlib.Path(config_path).expanduser()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError.missing_setting("manager", f"  - DISKHUB_CONFIG: cannot load {path}: {e}", raw=e) from e
        logger.info("Loaded disk configuration from %s", path)
    else:
        data = _default_config()

    default_override = os.getenv("DISKHUB_DEFAULT_DISK", "").strip()
    if default_override:
        if not isinstance(data, dict):
            raise StorageError.missing_setting("manager", "  - DISKHUB_CONFIG: top-level value must be an object")
        data["default"] = default_override

    return parse_manager_config(data)


def parse_manager_config(data: StorageManagerConfig | Mapping[str, Any] | None) -> StorageManagerConfig:
    """Validate a manager configuration given as a model or a plain mapping.

    Raises:
        StorageError: ``INVALID_CONFIG`` if the structure is wrong.
    """
    if isinstance(data, StorageManagerConfig):
        return data
    try:
        return StorageManagerConfig.model_validate(data or {})
    except ValidationError as e:
        raise StorageError.missing_setting("manager", _format_errors(e), raw=e) from e


def parse_disk_config(name: str, data: DiskConfig | Mapping[str, Any]) -> DiskConfig:
    if isinstance(data, DiskConfig):
        return data
    try:
        return DiskConfig.model_validate(data)
    except ValidationError as e:
        raise StorageError.missing_setting(name, _format_errors(e), raw=e) from e


# ---------- Driver settings ----------
SettingsT = TypeVar("SettingsT", bound=BaseModel)


def parse_settings(model: type[SettingsT], driver: str, config: Any) -> SettingsT:
    """Validate a disk's opaque ``config`` blob against a driver's settings model.

    Raises:
        StorageError: ``INVALID_CONFIG`` listing every bad or missing setting.
    """
    if isinstance(config, model):
        return config
    if config is None:
        config = {}
    if not isinstance(config, Mapping):
        raise StorageError.missing_setting(driver, f"  - config must be a mapping, got {type(config).__name__}")
    try:
        return model.model_validate(dict(config))
    except ValidationError as e:
        raise StorageError.missing_setting(driver, _format_errors(e), raw=e) from e


def _format_errors(error: ValidationError) -> str:
    return "\n".join(
        f"  - {'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}" for err in error.errors()
    )
