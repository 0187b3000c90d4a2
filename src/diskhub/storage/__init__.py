# SPDX-License-Identifier: MIT
"""Storage adapters behind the :class:`Disk` protocol.

Built-in drivers:

- ``local``       – a directory on the local filesystem
- ``s3``          – S3-compatible object storage (``pip install 'diskhub[s3]'``)
- ``gcs``         – Google Cloud Storage (``pip install 'diskhub[gcs]'``)
- ``databricks``  – Databricks Unity Catalog Volumes
"""

from .factory import BUILTIN_DRIVERS
from .local import LocalFileSystemStorage
from .protocol import (
    ContentResponse,
    DeleteResponse,
    Disk,
    DriverFactory,
    ExistsResponse,
    FileListResponse,
    Response,
    SignedUrlResponse,
    StatResponse,
)

__all__ = [
    "BUILTIN_DRIVERS",
    "ContentResponse",
    "DeleteResponse",
    "Disk",
    "DriverFactory",
    "ExistsResponse",
    "FileListResponse",
    "LocalFileSystemStorage",
    "Response",
    "SignedUrlResponse",
    "StatResponse",
]
