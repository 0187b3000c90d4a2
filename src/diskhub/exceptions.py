# SPDX-License-Identifier: MIT
"""Error taxonomy shared by the disk registry and every storage adapter.

There is a single exception type, :class:`StorageError`.  What went wrong is
carried in :attr:`StorageError.kind` so callers branch on the tag instead of
on the exception class::

    try:
        await disk.get("report.txt")
    except StorageError as e:
        if e.kind is ErrorKind.FILE_NOT_FOUND:
            ...
        raise
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Normalised error kinds surfaced by the registry and adapters."""

    INVALID_CONFIG = "invalid_config"
    DRIVER_NOT_SUPPORTED = "driver_not_supported"
    FILE_NOT_FOUND = "file_not_found"
    NO_SUCH_BUCKET = "no_such_bucket"
    PERMISSION_MISSING = "permission_missing"
    AUTHORIZATION_REQUIRED = "authorization_required"
    WRONG_KEY_PATH = "wrong_key_path"
    METHOD_NOT_SUPPORTED = "method_not_supported"
    UNKNOWN = "unknown"


class ConfigIssue(str, Enum):
    """Which configuration rule an ``INVALID_CONFIG`` error broke."""

    MISSING_DISK_NAME = "missing_disk_name"
    MISSING_DISK_CONFIG = "missing_disk_config"
    MISSING_DISK_DRIVER = "missing_disk_driver"
    DUPLICATE_DISK_NAME = "duplicate_disk_name"
    MISSING_SETTING = "missing_setting"


class StorageError(Exception):
    """A tagged storage failure.

    Attributes:
        kind: What went wrong.
        path: Location the operation targeted, if any.
        bucket: Bucket name for object-storage failures.
        driver: Driver name for driver / method errors.
        disk: Disk name for registry errors.
        issue: Sub-reason for ``INVALID_CONFIG``.
        error_code: Backend-native error code (e.g. ``"NoSuchKey"`` or ``404``).
        raw: The backend-native exception, when there was one.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        path: str | None = None,
        bucket: str | None = None,
        driver: str | None = None,
        disk: str | None = None,
        issue: ConfigIssue | None = None,
        error_code: str | int | None = None,
        raw: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.path = path
        self.bucket = bucket
        self.driver = driver
        self.disk = disk
        self.issue = issue
        self.error_code = error_code
        self.raw = raw

    def __repr__(self) -> str:
        return f"StorageError(kind={self.kind.value!r}, message={str(self)!r})"

    # ------------------------------------------------------------------
    # Registry / configuration errors
    # ------------------------------------------------------------------

    @classmethod
    def missing_disk_name(cls) -> StorageError:
        return cls(
            ErrorKind.INVALID_CONFIG,
            "Make sure to define a default disk name inside config file",
            issue=ConfigIssue.MISSING_DISK_NAME,
        )

    @classmethod
    def missing_disk_config(cls, name: str) -> StorageError:
        return cls(
            ErrorKind.INVALID_CONFIG,
            f"Make sure to define config for {name!r} disk",
            disk=name,
            issue=ConfigIssue.MISSING_DISK_CONFIG,
        )

    @classmethod
    def missing_disk_driver(cls, name: str) -> StorageError:
        return cls(
            ErrorKind.INVALID_CONFIG,
            f"Make sure to define driver for {name!r} disk",
            disk=name,
            issue=ConfigIssue.MISSING_DISK_DRIVER,
        )

    @classmethod
    def duplicate_disk_name(cls, name: str) -> StorageError:
        return cls(
            ErrorKind.INVALID_CONFIG,
            f"A disk named {name!r} is already defined",
            disk=name,
            issue=ConfigIssue.DUPLICATE_DISK_NAME,
        )

    @classmethod
    def missing_setting(cls, driver: str, details: str, raw: BaseException | None = None) -> StorageError:
        return cls(
            ErrorKind.INVALID_CONFIG,
            f"Invalid {driver!r} disk configuration:\n{details}",
            driver=driver,
            issue=ConfigIssue.MISSING_SETTING,
            raw=raw,
        )

    @classmethod
    def driver_not_supported(cls, name: str, hint: str | None = None) -> StorageError:
        message = f"Driver {name!r} is not supported"
        if hint:
            message = f"{message}. {hint}"
        return cls(ErrorKind.DRIVER_NOT_SUPPORTED, message, driver=name)

    # ------------------------------------------------------------------
    # Adapter errors
    # ------------------------------------------------------------------

    @classmethod
    def method_not_supported(cls, method: str, driver: str) -> StorageError:
        return cls(
            ErrorKind.METHOD_NOT_SUPPORTED,
            f"Method {method!r} is not supported for the {driver!r} driver",
            driver=driver,
        )

    @classmethod
    def file_not_found(cls, path: str, raw: BaseException | None = None) -> StorageError:
        return cls(ErrorKind.FILE_NOT_FOUND, f"The file {path} doesn't exist", path=path, raw=raw)

    @classmethod
    def no_such_bucket(cls, bucket: str, raw: BaseException | None = None) -> StorageError:
        return cls(ErrorKind.NO_SUCH_BUCKET, f"The bucket {bucket} doesn't exist", bucket=bucket, raw=raw)

    @classmethod
    def permission_missing(cls, path: str, raw: BaseException | None = None) -> StorageError:
        return cls(
            ErrorKind.PERMISSION_MISSING,
            f"Missing permission for file {path}",
            path=path,
            raw=raw,
        )

    @classmethod
    def authorization_required(cls, path: str, raw: BaseException | None = None) -> StorageError:
        return cls(
            ErrorKind.AUTHORIZATION_REQUIRED,
            f"Unauthorized to access file {path}",
            path=path,
            raw=raw,
        )

    @classmethod
    def wrong_key_path(cls, path: str, reason: str, raw: BaseException | None = None) -> StorageError:
        return cls(ErrorKind.WRONG_KEY_PATH, f"{reason}: {path}", path=path, raw=raw)

    @classmethod
    def unknown(cls, path: str, error_code: str | int | None, raw: BaseException | None = None) -> StorageError:
        return cls(
            ErrorKind.UNKNOWN,
            f"An unknown error happened with the file {path} (code: {error_code})",
            path=path,
            error_code=error_code,
            raw=raw,
        )
