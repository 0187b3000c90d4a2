# SPDX-License-Identifier: MIT
"""Disk registry.

:class:`StorageManager` owns the disk configurations, the registered driver
factories and the disks built from them.  A disk is constructed the first
time its name is resolved and the same instance is returned from then on.

Usage::

    from diskhub import StorageManager

    manager = StorageManager({
        "default": "local",
        "disks": {"local": {"driver": "local", "config": {"root": "/srv/files"}}},
    })
    await manager.disk().put("reports/today.txt", "hello")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from functools import lru_cache
from types import MappingProxyType
from typing import Any

from .config import DiskConfig, StorageManagerConfig, load_config, parse_disk_config, parse_manager_config
from .exceptions import StorageError
from .storage.factory import BUILTIN_DRIVERS
from .storage.protocol import Disk, DriverFactory

logger = logging.getLogger("diskhub")


class StorageManager:
    """Resolve disk names to live, cached storage adapters.

    Args:
        config: A :class:`StorageManagerConfig` or a plain mapping shaped like
            ``{"default": "name", "disks": {"name": {"driver": ..., "config": ...}}}``.
    """

    def __init__(self, config: StorageManagerConfig | Mapping[str, Any] | None = None) -> None:
        parsed = parse_manager_config(config)
        self._default_disk: str | None = parsed.default
        self._disk_configs: dict[str, DiskConfig] = dict(parsed.disks)
        self._drivers: dict[str, DriverFactory] = {}
        self._disks: dict[str, Disk] = {}
        # Guards the config mapping and the per-name construction locks;
        # cache hits never take either
        self._lock = threading.Lock()
        self._construction_locks: dict[str, threading.RLock] = {}

        for name, factory in BUILTIN_DRIVERS.items():
            self.register_driver(name, factory)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def default_disk(self) -> str | None:
        return self._default_disk

    @property
    def disks(self) -> Mapping[str, Disk]:
        """Read-only view of the disks instantiated so far."""
        return MappingProxyType(self._disks)

    @property
    def drivers(self) -> Mapping[str, DriverFactory]:
        """Read-only view of the registered driver factories."""
        return MappingProxyType(self._drivers)

    @property
    def disk_configs(self) -> Mapping[str, DiskConfig]:
        return MappingProxyType(self._disk_configs)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _construction_lock(self, name: str) -> threading.RLock:
        with self._lock:
            lock = self._construction_locks.get(name)
            if lock is None:
                lock = self._construction_locks[name] = threading.RLock()
            return lock

    def disk(self, name: str | None = None) -> Disk:
        """Return the disk called *name*, or the default disk.

        Raises:
            StorageError: ``INVALID_CONFIG`` when no name is given and there
                is no default, when the disk has no configuration, or when its
                configuration names no driver.  ``DRIVER_NOT_SUPPORTED`` when
                the driver is not registered.
        """
        name = name or self._default_disk
        if not name:
            raise StorageError.missing_disk_name()

        cached = self._disks.get(name)
        if cached is not None:
            return cached

        with self._construction_lock(name):
            # Another thread may have finished constructing it meanwhile
            cached = self._disks.get(name)
            if cached is not None:
                return cached

            disk_config = self._disk_configs.get(name)
            if disk_config is None:
                raise StorageError.missing_disk_config(name)
            if not disk_config.driver:
                raise StorageError.missing_disk_driver(name)

            factory = self._drivers.get(disk_config.driver)
            if factory is None:
                raise StorageError.driver_not_supported(disk_config.driver)

            # Factories may resolve other disks; only this name is held
            instance = factory(disk_config.config)
            self._disks[name] = instance

        logger.debug("Instantiated disk %r with driver %r", name, disk_config.driver)
        return instance

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_disk(self, name: str, config: DiskConfig | Mapping[str, Any]) -> None:
        """Add configuration for a new disk.

        Raises:
            StorageError: ``INVALID_CONFIG`` if a disk called *name* is
                already configured, whether or not it has been instantiated.
        """
        disk_config = parse_disk_config(name, config)
        with self._lock:
            if name in self._disk_configs:
                raise StorageError.duplicate_disk_name(name)
            self._disk_configs[name] = disk_config
        logger.debug("Added disk %r (driver %r)", name, disk_config.driver)

    def register_driver(self, name: str, factory: DriverFactory) -> None:
        """Register (or replace) the factory used for disks whose driver is *name*.

        The factory is called with the disk's ``config`` blob and must return
        an object implementing :class:`~diskhub.storage.protocol.Disk`.
        Disks already instantiated keep their adapter.
        """
        self._drivers[name] = factory
        logger.debug("Registered storage driver %r", name)


@lru_cache(maxsize=1)
def get_manager() -> StorageManager:
    """Return a process-wide :class:`StorageManager` built from :func:`~diskhub.config.load_config`."""
    return StorageManager(load_config())
