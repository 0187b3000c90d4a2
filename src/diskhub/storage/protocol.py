# SPDX-License-Identifier: MIT
"""Disk protocol and shared result types.

Defines the interface every storage adapter must implement.  Adapters do not
inherit from anything: a driver is any object that structurally satisfies
:class:`Disk`.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generic, Protocol, TypeVar, Union, runtime_checkable

ContentT = TypeVar("ContentT", str, bytes)

PutContent = Union[bytes, str, AsyncIterable[bytes]]
"""Anything :meth:`Disk.put` accepts."""

DEFAULT_SIGNED_URL_EXPIRY = 900
"""Seconds a signed URL stays valid when no expiry is given (15 minutes)."""

DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class Response:
    """Result of an operation with nothing to report besides the native response."""

    raw: Any = None


@dataclass(frozen=True)
class ExistsResponse:
    exists: bool
    raw: Any = None


@dataclass(frozen=True)
class ContentResponse(Generic[ContentT]):
    content: ContentT
    raw: Any = None


@dataclass(frozen=True)
class DeleteResponse:
    """Outcome of a delete.

    ``was_deleted`` is ``True`` when a file was removed, ``False`` when there
    was nothing to remove, and ``None`` when the backend cannot tell.
    """

    was_deleted: bool | None
    raw: Any = None


@dataclass(frozen=True)
class StatResponse:
    size: int
    modified: datetime
    raw: Any = None


@dataclass(frozen=True)
class SignedUrlResponse:
    signed_url: str
    raw: Any = None


@dataclass(frozen=True)
class FileListResponse:
    path: str
    raw: Any = None


@runtime_checkable
class Disk(Protocol):
    """Protocol for a named storage disk.

    Locations are forward-slash separated and relative to the disk's root
    (local) or bucket / volume (remote).  Every method returns a result
    carrying ``raw``, the backend-native response, for introspection.
    Adapters raise :class:`~diskhub.exceptions.StorageError` on failure.
    """

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def exists(self, location: str) -> ExistsResponse:
        """Check whether a file exists.

        Absence is a result (``exists=False``), never an error.
        """
        ...

    async def get(self, location: str, encoding: str = "utf-8") -> ContentResponse[str]:
        """Return file contents decoded as text.

        Raises:
            StorageError: ``FILE_NOT_FOUND`` if the file does not exist.
        """
        ...

    async def get_buffer(self, location: str) -> ContentResponse[bytes]:
        """Return raw file contents."""
        ...

    def get_stream(self, location: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield file contents lazily in chunks.

        Errors surface when iteration starts.
        """
        ...

    async def get_stat(self, location: str) -> StatResponse:
        """Return size in bytes and last modification time."""
        ...

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def put(self, location: str, content: PutContent, **options: Any) -> Response:
        """Create or replace a file, creating intermediate directories where the backend has them."""
        ...

    async def delete(self, location: str) -> DeleteResponse:
        """Delete a file.  Deleting a missing file is not an error."""
        ...

    async def copy(self, src: str, dest: str) -> Response:
        ...

    async def move(self, src: str, dest: str) -> Response:
        ...

    async def append(self, location: str, content: bytes | str) -> Response:
        """Append to a file.  Filesystem backends only."""
        ...

    async def prepend(self, location: str, content: bytes | str) -> Response:
        """Prepend to a file.  Filesystem backends only."""
        ...

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    async def get_signed_url(self, location: str, expiry: int = DEFAULT_SIGNED_URL_EXPIRY) -> SignedUrlResponse:
        """Return a time-limited URL granting read access.  Object storage only."""
        ...

    def get_url(self, location: str) -> str:
        """Return the plain URL for a location.

        Derived from configuration only; existence and visibility are not checked.
        """
        ...

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def flat_list(self, prefix: str = "") -> AsyncIterator[FileListResponse]:
        """Iterate over every file whose path starts with *prefix*.

        Each call starts a fresh listing.  Consumers may stop early.

        Raises:
            StorageError: ``WRONG_KEY_PATH`` if *prefix* has ``.`` or ``..`` components.
        """
        ...

    # ------------------------------------------------------------------
    # Escape hatch
    # ------------------------------------------------------------------

    def driver(self) -> Any:
        """Return the backend-native client or module."""
        ...


DriverFactory = Callable[[Any], Disk]
"""Builds a :class:`Disk` from a disk's ``config`` blob.  Adapter classes qualify."""
