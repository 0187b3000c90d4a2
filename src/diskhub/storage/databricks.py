# SPDX-License-Identifier: MIT
"""Databricks Unity Catalog Volumes storage backend.

Uses the Databricks Files API (REST) for all file operations, with
OAuth client credentials for authentication.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..config import parse_settings
from ..exceptions import StorageError
from ..paths import validate_key, validate_list_prefix
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

DRIVER_NAME = "databricks"

_ENV_FALLBACKS: dict[str, str] = {
    "host": "DATABRICKS_HOST",
    "client_id": "DATABRICKS_CLIENT_ID",
    "client_secret": "DATABRICKS_CLIENT_SECRET",
    "volume_path": "DATABRICKS_VOLUME_PATH",
}


class DatabricksStorageConfig(BaseModel):
    """Settings for a Databricks Volumes disk.

    Any setting left out falls back to its environment variable::

        host            DATABRICKS_HOST            https://adb-123.11.azuredatabricks.net
        client_id       DATABRICKS_CLIENT_ID       OAuth service principal client ID
        client_secret   DATABRICKS_CLIENT_SECRET   OAuth service principal client secret
        volume_path     DATABRICKS_VOLUME_PATH     catalog/schema/volume
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    host: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    volume_path: str = Field(min_length=1)
    timeout: float = 300.0


def _with_env_fallbacks(config: Any) -> Any:
    if isinstance(config, DatabricksStorageConfig) or (config is not None and not isinstance(config, dict)):
        return config
    merged = dict(config or {})
    for field, env_var in _ENV_FALLBACKS.items():
        if not str(merged.get(field) or "").strip():
            value = os.getenv(env_var, "").strip()
            if value:
                merged[field] = value
    return merged


def _status_error(status_code: int, path: str, raw: BaseException | None = None) -> StorageError:
    if status_code == 401:
        result = StorageError.authorization_required(path, raw=raw)
    elif status_code == 403:
        result = StorageError.permission_missing(path, raw=raw)
    elif status_code == 404:
        result = StorageError.file_not_found(path, raw=raw)
    else:
        result = StorageError.unknown(path, status_code, raw=raw)
    result.error_code = status_code
    return result


def _check(resp: httpx.Response, path: str) -> httpx.Response:
    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise _status_error(resp.status_code, path, raw=e) from e
    return resp


class DatabricksVolumesStorage:
    """Disk backed by a Databricks Unity Catalog volume.

    Reads/writes files via the Databricks Files API and lists directories
    via the Directories API.  Authentication uses OAuth 2.0 client
    credentials with automatic token caching and refresh.
    """

    def __init__(self, config: DatabricksStorageConfig | dict[str, Any] | None = None) -> None:
        settings = parse_settings(DatabricksStorageConfig, DRIVER_NAME, _with_env_fallbacks(config))

        host = settings.host.rstrip("/")
        if not host.startswith(("https://", "http://")):
            host = f"https://{host}"
        self._host = host
        self._client_id = settings.client_id
        self._client_secret = settings.client_secret
        self._volume_path = settings.volume_path.strip("/")

        self._client = httpx.AsyncClient(timeout=settings.timeout)
        self._token: str | None = None
        self._token_expires_at: float = 0.0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close the underlying httpx client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> DatabricksVolumesStorage:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def _get_token(self) -> str:
        """Get an OAuth token, refreshing if expired or near-expiry."""
        now = time.monotonic()
        if self._token and now < self._token_expires_at - 60:
            return self._token

        try:
            resp = await self._client.post(
                f"{self._host}/oidc/v1/token",
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "scope": "all-apis",
                },
            )
        except httpx.HTTPError as e:
            raise StorageError.authorization_required(self._volume_path, raw=e) from e
        if resp.status_code in (400, 401, 403):
            raise StorageError.authorization_required(self._volume_path)
        _check(resp, self._volume_path)

        payload = resp.json()
        self._token = payload["access_token"]
        # Default to 1-hour expiry if not provided
        self._token_expires_at = now + payload.get("expires_in", 3600)
        logger.debug("Acquired Databricks OAuth token (expires in %ds)", payload.get("expires_in", 3600))
        return self._token

    async def _headers(self) -> dict[str, str]:
        token = await self._get_token()
        return {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, url: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {**await self._headers(), **kwargs.pop("headers", {})}
        try:
            return await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise StorageError.unknown(path, type(e).__name__, raw=e) from e

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    @property
    def volume_root(self) -> str:
        return f"/Volumes/{self._volume_path}"

    def _volume_file(self, location: str) -> str:
        return f"{self.volume_root}/{validate_key(location)}"

    def _file_url(self, location: str) -> str:
        return f"{self._host}/api/2.0/fs/files{quote(self._volume_file(location))}"

    def _dir_url(self, directory: str) -> str:
        return f"{self._host}/api/2.0/fs/directories{quote(directory)}"

    def _relative(self, absolute_path: str) -> str:
        return absolute_path[len(self.volume_root) :].lstrip("/")

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def exists(self, location: str) -> ExistsResponse:
        resp = await self._request("HEAD", self._file_url(location), location)
        if resp.status_code == 404:
            return ExistsResponse(exists=False, raw=resp)
        _check(resp, location)
        return ExistsResponse(exists=True, raw=resp)

    async def get(self, location: str, encoding: str = "utf-8") -> ContentResponse[str]:
        result = await self.get_buffer(location)
        return ContentResponse(content=result.content.decode(encoding), raw=result.raw)

    async def get_buffer(self, location: str) -> ContentResponse[bytes]:
        resp = _check(await self._request("GET", self._file_url(location), location), location)
        return ContentResponse(content=resp.content, raw=resp)

    async def get_stream(self, location: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        url = self._file_url(location)
        headers = await self._headers()
        try:
            async with self._client.stream("GET", url, headers=headers) as resp:
                if resp.is_error:
                    raise _status_error(resp.status_code, location)
                async for chunk in resp.aiter_bytes(chunk_size):
                    yield chunk
        except httpx.HTTPError as e:
            raise StorageError.unknown(location, type(e).__name__, raw=e) from e

    async def get_stat(self, location: str) -> StatResponse:
        resp = _check(await self._request("HEAD", self._file_url(location), location), location)
        last_modified = resp.headers.get("Last-Modified")
        modified = (
            parsedate_to_datetime(last_modified) if last_modified else datetime.fromtimestamp(0, tz=timezone.utc)
        )
        return StatResponse(size=int(resp.headers.get("Content-Length", 0)), modified=modified, raw=resp)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def put(self, location: str, content: PutContent, **options: Any) -> Response:
        """Upload a file, overwriting any existing one.

        .. warning::

            **Full in-memory buffering.** The Files API requires a complete PUT
            request body, so streams are collected in memory before uploading.
        """
        data = await read_all(content)
        resp = await self._request(
            "PUT",
            self._file_url(location),
            location,
            headers={"Content-Type": "application/octet-stream"},
            params={"overwrite": "true"},
            content=data,
        )
        return Response(raw=_check(resp, location))

    async def delete(self, location: str) -> DeleteResponse:
        resp = await self._request("DELETE", self._file_url(location), location)
        if resp.status_code == 404:
            return DeleteResponse(was_deleted=False, raw=resp)
        _check(resp, location)
        logger.debug("Deleted %s", self._volume_file(location))
        return DeleteResponse(was_deleted=True, raw=resp)

    async def copy(self, src: str, dest: str) -> Response:
        """Download *src* and upload it as *dest* (the Files API has no server-side copy)."""
        data = (await self.get_buffer(src)).content
        return await self.put(dest, data)

    async def move(self, src: str, dest: str) -> Response:
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
        raise StorageError.method_not_supported("get_signed_url", DRIVER_NAME)

    def get_url(self, location: str) -> str:
        """Files API URL of a location (requires a bearer token to fetch)."""
        return self._file_url(location)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def flat_list(self, prefix: str = "") -> AsyncIterator[FileListResponse]:
        validate_list_prefix(prefix)
        key_prefix = prefix.lstrip("/")
        start = key_prefix if not key_prefix or key_prefix.endswith("/") else key_prefix.rpartition("/")[0]
        start_dir = f"{self.volume_root}/{start}".rstrip("/")

        async for entry in self._walk(start_dir, key_prefix):
            yield FileListResponse(path=self._relative(entry["path"]), raw=entry)

    async def _walk(self, directory: str, key_prefix: str) -> AsyncIterator[dict[str, Any]]:
        params: dict[str, str] = {}
        while True:
            resp = await self._request("GET", self._dir_url(directory), key_prefix, params=params)
            if resp.status_code == 404:
                return
            payload = _check(resp, key_prefix).json()

            for entry in payload.get("contents", []):
                key = self._relative(entry.get("path", "")).rstrip("/")
                if not key:
                    continue
                if entry.get("is_directory", False):
                    if key.startswith(key_prefix) or key_prefix.startswith(key + "/"):
                        async for child in self._walk(entry["path"].rstrip("/"), key_prefix):
                            yield child
                elif key.startswith(key_prefix):
                    yield entry

            token = payload.get("next_page_token")
            if not token:
                return
            params = {"page_token": token}

    # ------------------------------------------------------------------
    # Escape hatch
    # ------------------------------------------------------------------

    def driver(self) -> httpx.AsyncClient:
        """Return the ``httpx.AsyncClient`` used for REST calls."""
        return self._client
