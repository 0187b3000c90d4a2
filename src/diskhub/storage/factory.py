# SPDX-License-Identifier: MIT
"""Built-in storage drivers.

Maps driver names to factories.  Object-storage SDKs are optional extras, so
their factories import the adapter on first use and report a missing SDK as
``DRIVER_NOT_SUPPORTED``.
"""

from __future__ import annotations

from typing import Any

from ..exceptions import StorageError
from .databricks import DatabricksVolumesStorage
from .local import LocalFileSystemStorage
from .protocol import Disk, DriverFactory


def s3_driver(config: Any) -> Disk:
    try:
        from .s3 import AmazonS3Storage
    except ImportError as exc:
        raise StorageError.driver_not_supported(
            "s3", "The S3 driver requires boto3. Install with: pip install 'diskhub[s3]'"
        ) from exc
    return AmazonS3Storage(config)


def gcs_driver(config: Any) -> Disk:
    try:
        from .gcs import GoogleCloudStorage
    except ImportError as exc:
        raise StorageError.driver_not_supported(
            "gcs", "The GCS driver requires google-cloud-storage. Install with: pip install 'diskhub[gcs]'"
        ) from exc
    return GoogleCloudStorage(config)


BUILTIN_DRIVERS: dict[str, DriverFactory] = {
    "local": LocalFileSystemStorage,
    "s3": s3_driver,
    "gcs": gcs_driver,
    "databricks": DatabricksVolumesStorage,
}
"""Drivers every :class:`~diskhub.manager.StorageManager` starts with."""
