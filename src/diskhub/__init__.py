# SPDX-License-Identifier: MIT
"""diskhub - named storage disks over local and remote backends.

Usage::

    from diskhub import get_manager

    disk = get_manager().disk()
    await disk.put("hello.txt", "hi")
    print((await disk.get("hello.txt")).content)
"""

from .config import DiskConfig, StorageManagerConfig, configure_logging, load_config
from .exceptions import ConfigIssue, ErrorKind, StorageError
from .manager import StorageManager, get_manager
from .storage.protocol import Disk, DriverFactory

__all__ = [
    "ConfigIssue",
    "Disk",
    "DiskConfig",
    "DriverFactory",
    "ErrorKind",
    "StorageError",
    "StorageManager",
    "StorageManagerConfig",
    "configure_logging",
    "get_manager",
    "load_config",
]
