# SPDX-License-Identifier: MIT
"""Google Cloud Storage backend.

Uses ``google-cloud-storage``.  The SDK is synchronous, so calls run in a
worker thread via :func:`anyio.to_thread.run_sync`.  The client itself is
created on first use because resolving default credentials may contact the
metadata server.
"""

from __future__ import annotations

import functools
import logging
import threading
from collections.abc import AsyncIterator, Callable
from datetime import timedelta
from typing import Any, TypeVar
from urllib.parse import quote

import anyio
from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.auth.credentials import AnonymousCredentials
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage
from pydantic import AliasChoices, BaseModel, Field

from ..config import parse_settings
from ..exceptions import StorageError
from ..paths import validate_list_prefix
from .content import read_all
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

DRIVER_NAME = "gcs"
LIST_PAGE_SIZE = 1000
PUBLIC_HOST = "https://storage.googleapis.com"

T = TypeVar("T")

_GCS_ERRORS = (GoogleAPICallError, GoogleAuthError)


class GCSStorageConfig(BaseModel):
    """Settings for a Google Cloud Storage disk.

    Without ``key_filename`` the client uses Application Default Credentials.
    """

    bucket: str
    project: str | None = None
    key_filename: str | None = Field(default=None, validation_alias=AliasChoices("key_filename", "keyFilename"))
    api_endpoint: str | None = Field(default=None, validation_alias=AliasChoices("api_endpoint", "apiEndpoint"))
    anonymous: bool = False


def _handle_error(err: Exception, path: str, bucket: str) -> StorageError:
    if isinstance(err, GoogleAuthError):
        result = StorageError.authorization_required(path, raw=err)
    else:
        code = getattr(err, "code", None)
        if code == 401:
            result = StorageError.authorization_required(path, raw=err)
        elif code == 403:
            result = StorageError.permission_missing(path, raw=err)
        elif code == 404:
            result = StorageError.file_not_found(path, raw=err)
        else:
            result = StorageError.unknown(path, code, raw=err)
        result.error_code = code
    result.bucket = bucket
    return result


class GoogleCloudStorage:
    """Disk backed by a Google Cloud Storage bucket.

    Args:
        config: Mapping shaped like :class:`GCSStorageConfig`.
    """

    def __init__(self, config: GCSStorageConfig | dict[str, Any]) -> None:
        self._settings = parse_settings(GCSStorageConfig, DRIVER_NAME, config)
        self._bucket_name = self._settings.bucket
        self._client: storage.Client | None = None
        self._client_lock = threading.Lock()

    @property
    def bucket(self) -> str:
        return self._bucket_name

    def _get_client(self) -> storage.Client:
        with self._client_lock:
            if self._client is None:
                settings = self._settings
                client_options = {"api_endpoint": settings.api_endpoint} if settings.api_endpoint else None
                if settings.anonymous:
                    client = storage.Client(
                        project=settings.project or "<none>",
                        credentials=AnonymousCredentials(),
                        client_options=client_options,
                    )
                elif settings.key_filename:
                    client = storage.Client.from_service_account_json(
                        settings.key_filename, project=settings.project, client_options=client_options
                    )
                else:
                    client = storage.Client(project=settings.project, client_options=client_options)
                self._client = client
                logger.debug("Created GCS client for bucket '%s'", self._bucket_name)
            return self._client

    def _blob(self, location: str) -> storage.Blob:
        return self._get_client().bucket(self._bucket_name).blob(location)

    async def _run(self, func: Callable[[], T], path: str) -> T:
        try:
            return await anyio.to_thread.run_sync(func)
        except _GCS_ERRORS as e:
            raise _handle_error(e, path, self._bucket_name) from e

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def exists(self, location: str) -> ExistsResponse:
        exists = await self._run(lambda: self._blob(location).exists(), location)
        return ExistsResponse(exists=exists, raw=exists)

    async def get(self, location: str, encoding: str = "utf-8") -> ContentResponse[str]:
        result = await self.get_buffer(location)
        return ContentResponse(content=result.content.decode(encoding), raw=result.raw)

    async def get_buffer(self, location: str) -> ContentResponse[bytes]:
        data = await self._run(lambda: self._blob(location).download_as_bytes(), location)
        return ContentResponse(content=data, raw=data)

    async def get_stream(self, location: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        reader = await self._run(lambda: self._blob(location).open("rb"), location)
        try:
            while True:
                chunk = await self._run(functools.partial(reader.read, chunk_size), location)
                if not chunk:
                    break
                yield chunk
        finally:
            reader.close()

    async def get_stat(self, location: str) -> StatResponse:
        def _reload() -> storage.Blob:
            blob = self._blob(location)
            blob.reload()
            return blob

        blob = await self._run(_reload, location)
        return StatResponse(size=int(blob.size or 0), modified=blob.updated, raw=blob)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def put(self, location: str, content: PutContent, **options: Any) -> Response:
        """Upload an object.

        Extra keyword arguments (``content_type``, ...) go to
        ``Blob.upload_from_string``.  Streams are buffered in memory first.
        """
        data = await read_all(content)

        def _upload() -> storage.Blob:
            blob = self._blob(location)
            blob.upload_from_string(data, **options)
            return blob

        blob = await self._run(_upload, location)
        return Response(raw=blob)

    async def delete(self, location: str) -> DeleteResponse:
        try:
            await anyio.to_thread.run_sync(lambda: self._blob(location).delete())
        except NotFound:
            return DeleteResponse(was_deleted=False)
        except _GCS_ERRORS as e:
            raise _handle_error(e, location, self._bucket_name) from e
        logger.debug("Deleted gs://%s/%s", self._bucket_name, location)
        return DeleteResponse(was_deleted=True)

    async def copy(self, src: str, dest: str) -> Response:
        def _copy() -> storage.Blob:
            bucket = self._get_client().bucket(self._bucket_name)
            return bucket.copy_blob(bucket.blob(src), bucket, new_name=dest)

        return Response(raw=await self._run(_copy, src))

    async def move(self, src: str, dest: str) -> Response:
        def _rename() -> storage.Blob:
            bucket = self._get_client().bucket(self._bucket_name)
            return bucket.rename_blob(bucket.blob(src), new_name=dest)

        return Response(raw=await self._run(_rename, src))

    async def append(self, location: str, content: bytes | str) -> Response:
        raise StorageError.method_not_supported("append", DRIVER_NAME)

    async def prepend(self, location: str, content: bytes | str) -> Response:
        raise StorageError.method_not_supported("prepend", DRIVER_NAME)

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    async def get_signed_url(self, location: str, expiry: int = DEFAULT_SIGNED_URL_EXPIRY) -> SignedUrlResponse:
        url = await self._run(
            lambda: self._blob(location).generate_signed_url(
                version="v4", expiration=timedelta(seconds=expiry), method="GET"
            ),
            location,
        )
        return SignedUrlResponse(signed_url=url, raw=url)

    def get_url(self, location: str) -> str:
        return f"{PUBLIC_HOST}/{self._bucket_name}/{quote(location.lstrip('/'), safe='/')}"

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def flat_list(self, prefix: str = "") -> AsyncIterator[FileListResponse]:
        validate_list_prefix(prefix)
        iterator = await self._run(
            lambda: self._get_client().list_blobs(self._bucket_name, prefix=prefix or None, page_size=LIST_PAGE_SIZE),
            prefix,
        )
        pages = iterator.pages
        while True:
            page = await self._run(functools.partial(next, pages, None), prefix)
            if page is None:
                break
            for blob in page:
                yield FileListResponse(path=blob.name, raw=blob)

    # ------------------------------------------------------------------
    # Escape hatch
    # ------------------------------------------------------------------

    def driver(self) -> storage.Client:
        """Return the ``google.cloud.storage.Client`` (created on first call)."""
        return self._get_client()
