# SPDX-License-Identifier: MIT
"""Local filesystem storage backend.

Every location is resolved under the configured ``root``; anything that would
land outside of it is refused with ``WRONG_KEY_PATH``.
"""

from __future__ import annotations

import logging
import os
import pathlib
import shutil
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

import aiofiles
import aiofiles.os
import anyio
from pydantic import BaseModel

from ..config import parse_settings
from ..exceptions import StorageError
from ..paths import resolve_under_root, to_posix_key, validate_list_prefix
from .content import is_stream, to_bytes
from .protocol import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_SIGNED_URL_EXPIRY,
    ContentResponse,
    DeleteResponse,
    ExistsResponse,
    FileListResponse,
    PutContent,
    Response,
    SignedUrlResponse,
    StatResponse,
)

logger = logging.getLogger("diskhub")

DRIVER_NAME = "local"


class LocalStorageConfig(BaseModel):
    root: pathlib.Path


def _handle_error(err: OSError, location: str) -> StorageError:
    if isinstance(err, FileNotFoundError):
        return StorageError.file_not_found(location, raw=err)
    if isinstance(err, PermissionError):
        return StorageError.permission_missing(location, raw=err)
    if isinstance(err, (IsADirectoryError, NotADirectoryError)):
        return StorageError.wrong_key_path(location, "Location is not a regular file", raw=err)
    return StorageError.unknown(location, err.errno, raw=err)


def _scan_dir(directory: pathlib.Path) -> list[os.DirEntry[str]]:
    try:
        with os.scandir(directory) as it:
            return sorted(it, key=lambda entry: entry.name)
    except (FileNotFoundError, NotADirectoryError):
        return []


class LocalFileSystemStorage:
    """Disk backed by a directory on the local filesystem.

    Args:
        config: Mapping with a ``root`` directory.  The directory does not
            need to exist yet; it is created on first write.
    """

    def __init__(self, config: LocalStorageConfig | dict[str, Any]) -> None:
        settings = parse_settings(LocalStorageConfig, DRIVER_NAME, config)
        self._root = settings.root.expanduser().resolve()

    @property
    def root(self) -> pathlib.Path:
        return self._root

    def _full_path(self, location: str) -> pathlib.Path:
        return resolve_under_root(self._root, location)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def exists(self, location: str) -> ExistsResponse:
        full_path = self._full_path(location)
        return ExistsResponse(exists=await aiofiles.os.path.exists(full_path))

    async def get(self, location: str, encoding: str = "utf-8") -> ContentResponse[str]:
        result = await self.get_buffer(location)
        return ContentResponse(content=result.content.decode(encoding), raw=result.raw)

    async def get_buffer(self, location: str) -> ContentResponse[bytes]:
        full_path = self._full_path(location)
        try:
            async with aiofiles.open(full_path, "rb") as f:
                data = await f.read()
        except OSError as e:
            raise _handle_error(e, location) from e
        return ContentResponse(content=data)

    async def get_stream(self, location: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        full_path = self._full_path(location)
        try:
            async with aiofiles.open(full_path, "rb") as f:
                while chunk := await f.read(chunk_size):
                    yield chunk
        except OSError as e:
            raise _handle_error(e, location) from e

    async def get_stat(self, location: str) -> StatResponse:
        full_path = self._full_path(location)
        try:
            st = await aiofiles.os.stat(full_path)
        except OSError as e:
            raise _handle_error(e, location) from e
        return StatResponse(
            size=st.st_size,
            modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            raw=st,
        )

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def put(self, location: str, content: PutContent, **options: Any) -> Response:
        """Create a file, making missing parent directories on the fly."""
        full_path = self._full_path(location)
        try:
            await aiofiles.os.makedirs(full_path.parent, exist_ok=True)
            async with aiofiles.open(full_path, "wb") as f:
                if is_stream(content):
                    async for chunk in content:  # type: ignore[union-attr]
                        await f.write(to_bytes(chunk))
                else:
                    await f.write(to_bytes(content))  # type: ignore[arg-type]
        except OSError as e:
            raise _handle_error(e, location) from e
        return Response()

    async def delete(self, location: str) -> DeleteResponse:
        full_path = self._full_path(location)
        try:
            await aiofiles.os.remove(full_path)
        except FileNotFoundError:
            return DeleteResponse(was_deleted=False)
        except OSError as e:
            raise _handle_error(e, location) from e
        logger.debug("Deleted %s", full_path)
        return DeleteResponse(was_deleted=True)

    async def copy(self, src: str, dest: str) -> Response:
        src_path = self._full_path(src)
        dest_path = self._full_path(dest)
        try:
            await aiofiles.os.makedirs(dest_path.parent, exist_ok=True)
            await anyio.to_thread.run_sync(shutil.copy2, src_path, dest_path)
        except shutil.SameFileError:
            # Copying a file onto itself leaves it unchanged
            return Response()
        except OSError as e:
            raise _handle_error(e, src) from e
        return Response()

    async def move(self, src: str, dest: str) -> Response:
        src_path = self._full_path(src)
        dest_path = self._full_path(dest)
        try:
            await aiofiles.os.makedirs(dest_path.parent, exist_ok=True)
            await anyio.to_thread.run_sync(shutil.move, src_path, dest_path)
        except OSError as e:
            raise _handle_error(e, src) from e
        return Response()

    async def append(self, location: str, content: bytes | str) -> Response:
        full_path = self._full_path(location)
        try:
            await aiofiles.os.makedirs(full_path.parent, exist_ok=True)
            async with aiofiles.open(full_path, "ab") as f:
                await f.write(to_bytes(content))
        except OSError as e:
            raise _handle_error(e, location) from e
        return Response()

    async def prepend(self, location: str, content: bytes | str) -> Response:
        if (await self.exists(location)).exists:
            existing = (await self.get_buffer(location)).content
            return await self.put(location, to_bytes(content) + existing)
        return await self.put(location, content)

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    async def get_signed_url(self, location: str, expiry: int = DEFAULT_SIGNED_URL_EXPIRY) -> SignedUrlResponse:
        raise StorageError.method_not_supported("get_signed_url", DRIVER_NAME)

    def get_url(self, location: str) -> str:
        raise StorageError.method_not_supported("get_url", DRIVER_NAME)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def flat_list(self, prefix: str = "") -> AsyncIterator[FileListResponse]:
        """Yield files under the root whose relative path starts with *prefix*.

        ``raw`` is the :class:`os.DirEntry` of each file.
        """
        validate_list_prefix(prefix)
        key_prefix = prefix.lstrip("/")
        if not key_prefix or key_prefix.endswith("/"):
            start = self._root / key_prefix
        else:
            start = (self._root / key_prefix).parent

        async for entry in self._walk(start, key_prefix):
            yield FileListResponse(path=to_posix_key(self._root, pathlib.Path(entry.path)), raw=entry)

    async def _walk(self, directory: pathlib.Path, key_prefix: str) -> AsyncIterator[os.DirEntry[str]]:
        try:
            entries = await anyio.to_thread.run_sync(_scan_dir, directory)
        except OSError as e:
            raise _handle_error(e, key_prefix) from e

        for entry in entries:
            key = to_posix_key(self._root, pathlib.Path(entry.path))
            if entry.is_dir(follow_symlinks=False):
                # Only descend where the prefix can still match
                if key.startswith(key_prefix) or key_prefix.startswith(key + "/"):
                    async for child in self._walk(pathlib.Path(entry.path), key_prefix):
                        yield child
            elif entry.is_file() and key.startswith(key_prefix):
                # A symlinked file is listed only if get() would serve it
                if entry.is_symlink() and not self._inside_root(pathlib.Path(entry.path)):
                    continue
                yield entry

    def _inside_root(self, path: pathlib.Path) -> bool:
        try:
            path.resolve().relative_to(self._root)
        except (ValueError, OSError):
            return False
        return True

    # ------------------------------------------------------------------
    # Escape hatch
    # ------------------------------------------------------------------

    def driver(self) -> Any:
        """Return the :mod:`aiofiles` module used for file I/O."""
        return aiofiles
