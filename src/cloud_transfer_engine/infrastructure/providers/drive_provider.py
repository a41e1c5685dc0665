"""Google Drive provider capability over the Drive v3 REST API."""

from __future__ import annotations

import json
import logging
import posixpath
import time
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote
from uuid import uuid4

import httpx

from cloud_transfer_engine.domain.errors import ProviderError, TransferValidationError
from cloud_transfer_engine.domain.providers import (
    DEFAULT_CONTENT_TYPE,
    AuthenticationResult,
    DownloadResult,
    FileInfo,
    ProgressCallback,
    TransferProgress,
    UploadResult,
)

DEFAULT_DRIVE_API_BASE_URL = "https://www.googleapis.com/drive/v3"
DEFAULT_DRIVE_UPLOAD_BASE_URL = "https://www.googleapis.com/upload/drive/v3"

_WORKSPACE_MIME_PREFIX = "application/vnd.google-apps."
_FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
_EXPORT_MIME_TYPES = {
    "application/vnd.google-apps.document": (
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    ),
    "application/vnd.google-apps.spreadsheet": (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    ),
    "application/vnd.google-apps.presentation": (
        "application/vnd.openxmlformats-officedocument.presentationml.presentation"
    ),
    "application/vnd.google-apps.drawing": "image/png",
}
_DEFAULT_EXPORT_MIME_TYPE = "application/pdf"
_FILE_FIELDS = "id,name,size,mimeType"
_UPLOAD_CHUNK_SIZE_BYTES = 256 * 1024

logger = logging.getLogger(__name__)


def export_mime_type(google_mime_type: str) -> str:
    """Return the download format used for a Google Workspace document."""

    return _EXPORT_MIME_TYPES.get(google_mime_type, _DEFAULT_EXPORT_MIME_TYPE)


class DriveProviderCapability:
    """Reads and writes files of one Google Drive account.

    Source paths are Drive file ids. A destination path is uploaded as a file
    named after its last segment into the folder given by the `folderId`
    credential, or the drive root. Requests carry the `accessToken` credential
    as a bearer token.
    """

    def __init__(
        self,
        credentials: dict[str, Any],
        *,
        api_base_url: str = DEFAULT_DRIVE_API_BASE_URL,
        upload_base_url: str = DEFAULT_DRIVE_UPLOAD_BASE_URL,
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        access_token = credentials.get("accessToken")
        if not isinstance(access_token, str) or not access_token:
            raise TransferValidationError("Google Drive credentials must include 'accessToken'.")
        self._access_token = access_token
        self._folder_id = str(credentials.get("folderId") or "root")
        self._api_base_url = api_base_url.rstrip("/")
        self._upload_base_url = upload_base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        self._authenticated = False

    async def authenticate(self) -> AuthenticationResult:
        """Check API access through the `about` resource."""

        try:
            async with self._client() as http_client:
                response = await http_client.get(
                    f"{self._api_base_url}/about",
                    params={"fields": "user,storageQuota"},
                )
        except httpx.HTTPError as exc:
            self._authenticated = False
            return AuthenticationResult(ok=False, meta={"error": f"Authentication failed: {exc}"})

        if not response.is_success:
            self._authenticated = False
            logger.warning("Google Drive authentication failed: %s", response.status_code)
            return AuthenticationResult(ok=False, meta={"error": _auth_failure_message(response)})

        self._authenticated = True
        payload = response.json()
        user = payload.get("user") or {}
        return AuthenticationResult(
            ok=True,
            meta={
                "user": user.get("emailAddress"),
                "storage": payload.get("storageQuota"),
            },
        )

    async def get_file_info(self, path: str) -> FileInfo:
        """Return metadata of the file whose id is `path`."""

        payload = await self._file_metadata(path)
        return FileInfo(
            name=str(payload.get("name") or path),
            path=path,
            size=int(payload.get("size") or 0),
            content_type=payload.get("mimeType"),
        )

    async def download_file(
        self,
        path: str,
        on_progress: ProgressCallback | None = None,
    ) -> DownloadResult:
        """Open a media or export download of the file whose id is `path`."""

        metadata = await self._file_metadata(path)
        mime_type = str(metadata.get("mimeType") or DEFAULT_CONTENT_TYPE)
        if mime_type == _FOLDER_MIME_TYPE:
            raise ProviderError(f"'{path}' is a folder and cannot be downloaded.")

        file_url = f"{self._api_base_url}/files/{quote(path, safe='')}"
        if mime_type.startswith(_WORKSPACE_MIME_PREFIX):
            content_type = export_mime_type(mime_type)
            url = f"{file_url}/export"
            params = {"mimeType": content_type}
        else:
            content_type = mime_type
            url = file_url
            params = {"alt": "media"}

        http_client = self._client()
        try:
            response = await http_client.send(
                http_client.build_request("GET", url, params=params),
                stream=True,
            )
        except httpx.HTTPError as exc:
            await http_client.aclose()
            raise ProviderError(f"Download failed: {exc}") from exc
        except BaseException:
            await http_client.aclose()
            raise
        if not response.is_success:
            await response.aread()
            await response.aclose()
            await http_client.aclose()
            if response.status_code == 404:
                raise ProviderError(f"File with ID '{path}' not found")
            raise ProviderError(f"Download failed: {response.status_code} {_detail(response)}")

        size = int(metadata.get("size") or 0)
        total = size or int(response.headers.get("content-length") or 0)
        file_info = FileInfo(
            name=str(metadata.get("name") or path),
            path=path,
            size=total,
            content_type=content_type,
        )
        return DownloadResult(
            stream=self._iter_response(http_client, response, total, on_progress),
            file_info=file_info,
        )

    async def upload_file(
        self,
        data: bytes,
        destination_path: str,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """Create a file with a multipart upload, reporting bytes as they are sent."""

        await self._ensure_authenticated()
        name = posixpath.basename(destination_path.rstrip("/")) or destination_path
        mime_type = content_type or DEFAULT_CONTENT_TYPE
        boundary = f"transfer-{uuid4().hex}"
        metadata = json.dumps({"name": name, "parents": [self._folder_id]})
        head = (
            f"--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{metadata}\r\n"
            f"--{boundary}\r\n"
            f"Content-Type: {mime_type}\r\n\r\n"
        ).encode()
        tail = f"\r\n--{boundary}--\r\n".encode()

        async def body() -> AsyncIterator[bytes]:
            yield head
            total = len(data)
            started = time.monotonic()
            for offset in range(0, total, _UPLOAD_CHUNK_SIZE_BYTES):
                chunk = data[offset : offset + _UPLOAD_CHUNK_SIZE_BYTES]
                yield chunk
                if on_progress is not None:
                    loaded = offset + len(chunk)
                    await on_progress(TransferProgress(loaded, total, _speed(loaded, started)))
            yield tail

        try:
            async with self._client() as http_client:
                response = await http_client.post(
                    f"{self._upload_base_url}/files",
                    params={"uploadType": "multipart", "fields": _FILE_FIELDS},
                    headers={
                        "Content-Type": f"multipart/related; boundary={boundary}",
                        "Content-Length": str(len(head) + len(data) + len(tail)),
                    },
                    content=body(),
                )
        except httpx.HTTPError as exc:
            raise ProviderError(f"Upload failed: {exc}") from exc
        if not response.is_success:
            raise ProviderError(f"Upload failed: {response.status_code} {_detail(response)}")

        payload = response.json()
        return UploadResult(
            location=str(payload.get("id") or ""),
            size=int(payload.get("size") or len(data)),
        )

    async def _file_metadata(self, file_id: str) -> dict[str, Any]:
        await self._ensure_authenticated()
        try:
            async with self._client() as http_client:
                response = await http_client.get(
                    f"{self._api_base_url}/files/{quote(file_id, safe='')}",
                    params={"fields": _FILE_FIELDS},
                )
        except httpx.HTTPError as exc:
            raise ProviderError(f"Failed to get file info: {exc}") from exc
        if response.status_code == 404:
            raise ProviderError(f"File with ID '{file_id}' not found")
        if not response.is_success:
            raise ProviderError(
                f"Failed to get file info: {response.status_code} {_detail(response)}"
            )
        payload = response.json()
        if not isinstance(payload, dict):
            raise ProviderError("Failed to get file info: unexpected response payload.")
        return payload

    async def _iter_response(
        self,
        http_client: httpx.AsyncClient,
        response: httpx.Response,
        total: int,
        on_progress: ProgressCallback | None,
    ) -> AsyncIterator[bytes]:
        loaded = 0
        started = time.monotonic()
        try:
            async for chunk in response.aiter_bytes():
                loaded += len(chunk)
                if on_progress is not None:
                    await on_progress(TransferProgress(loaded, total, _speed(loaded, started)))
                yield chunk
        finally:
            await response.aclose()
            await http_client.aclose()

    async def _ensure_authenticated(self) -> None:
        if self._authenticated:
            return
        result = await self.authenticate()
        if not result.ok:
            raise ProviderError(str(result.meta.get("error") or "Authentication failed"))

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout_seconds,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self._access_token}"},
        )


def _auth_failure_message(response: httpx.Response) -> str:
    if response.status_code == 401:
        return "Invalid Google Drive credentials"
    if response.status_code == 403:
        return "Account does not have access to Google Drive API"
    return f"Authentication failed: {response.status_code} {_detail(response)}"


def _detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        text = response.text.strip()
        return text or "<no response body>"

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return str(payload)


def _speed(loaded: int, started: float) -> float:
    elapsed = time.monotonic() - started
    if elapsed <= 0:
        return 0.0
    return loaded / elapsed


__all__ = [
    "DEFAULT_DRIVE_API_BASE_URL",
    "DEFAULT_DRIVE_UPLOAD_BASE_URL",
    "DriveProviderCapability",
    "export_mime_type",
]
