# SPDX-License-Identifier: MIT
"""S3-compatible object storage backend.

Works with AWS S3 and any S3-protocol endpoint (MinIO, DigitalOcean Spaces,
Cloudflare R2, ...).  boto3 is synchronous, so every SDK call runs in a worker
thread via :func:`anyio.to_thread.run_sync`.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote, urlsplit

import anyio
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from pydantic import AliasChoices, BaseModel, Field, field_validator

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

DRIVER_NAME = "s3"
LIST_PAGE_SIZE = 1000

_NO_SUCH_BUCKET = frozenset({"NoSuchBucket", "PermanentRedirect"})
_FILE_NOT_FOUND = frozenset({"NoSuchKey", "NotFound", "404"})
_PERMISSION_MISSING = frozenset({"AllAccessDisabled", "AccessDenied", "403"})
_AUTHORIZATION_REQUIRED = frozenset({"InvalidAccessKeyId", "SignatureDoesNotMatch", "401"})


class S3StorageConfig(BaseModel):
    """Settings for an S3-compatible disk.

    ``key`` / ``secret`` may be omitted to fall back on boto3's default
    credential chain (environment, shared config, instance role).
    """

    bucket: str
    key: str | None = None
    secret: str | None = None
    region: str | None = None
    endpoint: str | None = None
    force_path_style: bool = Field(default=False, validation_alias=AliasChoices("force_path_style", "forcePathStyle"))

    @field_validator("endpoint")
    @classmethod
    def _add_scheme(cls, v: str | None) -> str | None:
        if v and "://" not in v:
            return f"https://{v}"
        return v


def _error_code(err: Exception) -> str | None:
    if isinstance(err, ClientError):
        return err.response.get("Error", {}).get("Code")
    return None


def _handle_error(err: Exception, path: str, bucket: str) -> StorageError:
    code = _error_code(err)
    if code in _NO_SUCH_BUCKET:
        result = StorageError.no_such_bucket(bucket, raw=err)
    elif code in _FILE_NOT_FOUND:
        result = StorageError.file_not_found(path, raw=err)
    elif code in _PERMISSION_MISSING:
        result = StorageError.permission_missing(path, raw=err)
    elif code in _AUTHORIZATION_REQUIRED or isinstance(err, NoCredentialsError):
        result = StorageError.authorization_required(path, raw=err)
    else:
        result = StorageError.unknown(path, code or type(err).__name__, raw=err)
    result.bucket = bucket
    if code is not None:
        result.error_code = code
    if result.path is None:
        result.path = path
    return result


class AmazonS3Storage:
    """Disk backed by a bucket on an S3-compatible service.

    Args:
        config: Mapping shaped like :class:`S3StorageConfig`.
    """

    def __init__(self, config: S3StorageConfig | dict[str, Any]) -> None:
        self._settings = parse_settings(S3StorageConfig, DRIVER_NAME, config)
        self._bucket = self._settings.bucket

        client_kwargs: dict[str, Any] = {
            "region_name": self._settings.region,
            "endpoint_url": self._settings.endpoint,
            "config": BotoConfig(
                signature_version="s3v4",
                s3={"addressing_style": "path" if self._settings.force_path_style else "auto"},
            ),
        }
        if self._settings.key and self._settings.secret:
            client_kwargs["aws_access_key_id"] = self._settings.key
            client_kwargs["aws_secret_access_key"] = self._settings.secret

        self._client = boto3.client("s3", **client_kwargs)
        logger.debug(
            "Created S3 client for bucket '%s' with endpoint: %s",
            self._bucket,
            self._settings.endpoint or "default",
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    async def _call(self, method: str, **kwargs: Any) -> Any:
        return await anyio.to_thread.run_sync(functools.partial(getattr(self._client, method), **kwargs))

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def exists(self, location: str) -> ExistsResponse:
        try:
            result = await self._call("head_object", Bucket=self._bucket, Key=location)
        except ClientError as e:
            if _error_code(e) in _FILE_NOT_FOUND:
                return ExistsResponse(exists=False, raw=e.response)
            raise _handle_error(e, location, self._bucket) from e
        except BotoCoreError as e:
            raise _handle_error(e, location, self._bucket) from e
        return ExistsResponse(exists=True, raw=result)

    async def get(self, location: str, encoding: str = "utf-8") -> ContentResponse[str]:
        result = await self.get_buffer(location)
        return ContentResponse(content=result.content.decode(encoding), raw=result.raw)

    async def get_buffer(self, location: str) -> ContentResponse[bytes]:
        try:
            result = await self._call("get_object", Bucket=self._bucket, Key=location)
            data = await anyio.to_thread.run_sync(result["Body"].read)
        except (ClientError, BotoCoreError) as e:
            raise _handle_error(e, location, self._bucket) from e
        return ContentResponse(content=data, raw=result)

    async def get_stream(self, location: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        try:
            result = await self._call("get_object", Bucket=self._bucket, Key=location)
        except (ClientError, BotoCoreError) as e:
            raise _handle_error(e, location, self._bucket) from e

        body = result["Body"]
        chunks = body.iter_chunks(chunk_size)
        try:
            while True:
                try:
                    chunk = await anyio.to_thread.run_sync(next, chunks, b"")
                except (ClientError, BotoCoreError) as e:
                    raise _handle_error(e, location, self._bucket) from e
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def get_stat(self, location: str) -> StatResponse:
        try:
            result = await self._call("head_object", Bucket=self._bucket, Key=location)
        except (ClientError, BotoCoreError) as e:
            raise _handle_error(e, location, self._bucket) from e
        return StatResponse(size=result["ContentLength"], modified=result["LastModified"], raw=result)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def put(self, location: str, content: PutContent, **options: Any) -> Response:
        """Upload an object.

        Extra keyword arguments (``ContentType``, ``ACL``, ...) are passed to
        ``put_object`` unchanged.  Streams are buffered in memory first.
        """
        body = await read_all(content)
        try:
            result = await self._call("put_object", Bucket=self._bucket, Key=location, Body=body, **options)
        except (ClientError, BotoCoreError) as e:
            raise _handle_error(e, location, self._bucket) from e
        return Response(raw=result)

    async def delete(self, location: str) -> DeleteResponse:
        try:
            result = await self._call("delete_object", Bucket=self._bucket, Key=location)
        except (ClientError, BotoCoreError) as e:
            raise _handle_error(e, location, self._bucket) from e
        # S3 does not say whether anything was actually deleted
        return DeleteResponse(was_deleted=None, raw=result)

    async def copy(self, src: str, dest: str) -> Response:
        try:
            result = await self._call(
                "copy_object",
                Bucket=self._bucket,
                Key=dest,
                CopySource={"Bucket": self._bucket, "Key": src},
            )
        except (ClientError, BotoCoreError) as e:
            raise _handle_error(e, src, self._bucket) from e
        return Response(raw=result)

    async def move(self, src: str, dest: str) -> Response:
        """Copy *src* to *dest*, then delete *src*.  Not atomic."""
        await self.copy(src, dest)
        await self.delete(src)
        return Response()

    async def append(self, location: str, content: bytes | str) -> Response:
        raise StorageError.method_not_supported("append", DRIVER_NAME)

    async def prepend(self, location: str, content: bytes | str) -> Response:
        raise StorageError.method_not_supported("prepend", DRIVER_NAME)

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    async def get_signed_url(self, location: str, expiry: int = DEFAULT_SIGNED_URL_EXPIRY) -> SignedUrlResponse:
        try:
            url = self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": location},
                ExpiresIn=expiry,
            )
        except (ClientError, BotoCoreError) as e:
            raise _handle_error(e, location, self._bucket) from e
        return SignedUrlResponse(signed_url=url, raw=url)

    def get_url(self, location: str) -> str:
        """Public URL of an object.

        AWS endpoints use virtual-hosted style unless ``force_path_style`` is
        set; any other endpoint gets path style.
        """
        region = self._settings.region
        endpoint = self._settings.endpoint
        if not endpoint:
            endpoint = f"https://s3.{region}.amazonaws.com" if region else "https://s3.amazonaws.com"

        parts = urlsplit(endpoint)
        host = parts.netloc
        if host.startswith(f"{self._bucket}."):
            host = host[len(self._bucket) + 1 :]

        key = quote(location.lstrip("/"), safe="/")
        if host.endswith("amazonaws.com") and not self._settings.force_path_style:
            return f"{parts.scheme}://{self._bucket}.{host}/{key}"
        return f"{parts.scheme}://{host}/{self._bucket}/{key}"

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def flat_list(self, prefix: str = "") -> AsyncIterator[FileListResponse]:
        validate_list_prefix(prefix)
        params: dict[str, Any] = {"Bucket": self._bucket, "Prefix": prefix, "MaxKeys": LIST_PAGE_SIZE}
        while True:
            try:
                page = await self._call("list_objects_v2", **params)
            except (ClientError, BotoCoreError) as e:
                raise _handle_error(e, prefix, self._bucket) from e

            for obj in page.get("Contents", []):
                yield FileListResponse(path=obj["Key"], raw=obj)

            token = page.get("NextContinuationToken")
            if not page.get("IsTruncated") or not token:
                break
            params["ContinuationToken"] = token

    # ------------------------------------------------------------------
    # Escape hatch
    # ------------------------------------------------------------------

    def driver(self) -> Any:
        """Return the boto3 S3 client."""
        return self._client
