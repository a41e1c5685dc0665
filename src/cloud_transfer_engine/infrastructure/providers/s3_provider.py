"""Amazon S3 provider capability backed by boto3."""

from __future__ import annotations

import asyncio
import io
import logging
import posixpath
import time
from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol, cast

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

_DEFAULT_REGION = "us-east-1"
_DEFAULT_CHUNK_SIZE_BYTES = 1024 * 1024

logger = logging.getLogger(__name__)


class S3Client(Protocol):
    """Subset of S3 client operations used by the capability."""

    def list_objects_v2(self, *, Bucket: str, MaxKeys: int) -> dict[str, Any]:
        """List objects to verify bucket access."""

    def head_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        """Return object metadata."""

    def get_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        """Return object metadata and a streaming body."""

    def upload_fileobj(
        self,
        Fileobj: Any,
        Bucket: str,
        Key: str,
        ExtraArgs: dict[str, Any] | None = None,
        Callback: Callable[[int], None] | None = None,
    ) -> None:
        """Upload a file-like object, reporting transferred byte increments."""


S3ClientFactory = Callable[[dict[str, Any], str], S3Client]


class S3ProviderCapability:
    """Reads and writes objects of one S3 bucket.

    Credentials carry `accessKeyId`, `secretAccessKey`, `bucketName` and an
    optional `region`. boto3 calls are blocking and run in worker threads.
    The bucket is probed once before the first object operation.
    """

    def __init__(
        self,
        credentials: dict[str, Any],
        *,
        default_region: str = _DEFAULT_REGION,
        chunk_size_bytes: int = _DEFAULT_CHUNK_SIZE_BYTES,
        client_factory: S3ClientFactory | None = None,
    ) -> None:
        bucket = credentials.get("bucketName")
        if not isinstance(bucket, str) or not bucket:
            raise TransferValidationError("S3 credentials must include 'bucketName'.")
        self._credentials = credentials
        self._bucket = bucket
        self._region = str(credentials.get("region") or default_region)
        self._chunk_size_bytes = max(chunk_size_bytes, 1)
        self._client_factory = client_factory or _build_default_s3_client
        self._client: S3Client | None = None
        self._authenticated = False

    @property
    def bucket(self) -> str:
        return self._bucket

    async def authenticate(self) -> AuthenticationResult:
        """Check bucket access with a one-key listing."""

        try:
            await asyncio.to_thread(
                self._get_client().list_objects_v2,
                Bucket=self._bucket,
                MaxKeys=1,
            )
        except Exception as exc:  # noqa: BLE001
            self._authenticated = False
            logger.warning("S3 authentication failed for bucket '%s': %s", self._bucket, exc)
            return AuthenticationResult(
                ok=False,
                meta={"error": _describe_error(exc, self._bucket)},
            )

        self._authenticated = True
        return AuthenticationResult(ok=True, meta={"bucket": self._bucket, "region": self._region})

    async def get_file_info(self, path: str) -> FileInfo:
        """Return object metadata from `HeadObject`."""

        await self._ensure_authenticated()
        response = await asyncio.to_thread(
            self._get_client().head_object,
            Bucket=self._bucket,
            Key=path,
        )
        return FileInfo(
            name=posixpath.basename(path) or path,
            path=path,
            size=int(response.get("ContentLength") or 0),
            content_type=cast(str | None, response.get("ContentType")),
        )

    async def download_file(
        self,
        path: str,
        on_progress: ProgressCallback | None = None,
    ) -> DownloadResult:
        """Open the object body and stream it in fixed-size chunks."""

        await self._ensure_authenticated()
        try:
            response = await asyncio.to_thread(
                self._get_client().get_object,
                Bucket=self._bucket,
                Key=path,
            )
        except Exception as exc:
            if _error_code(exc) in {"NoSuchKey", "404"}:
                raise ProviderError(f"File '{path}' not found in bucket '{self._bucket}'.") from exc
            raise

        total = int(response.get("ContentLength") or 0)
        file_info = FileInfo(
            name=posixpath.basename(path) or path,
            path=path,
            size=total,
            content_type=cast(str | None, response.get("ContentType")),
        )
        return DownloadResult(
            stream=self._iter_body(response["Body"], total, on_progress),
            file_info=file_info,
        )

    async def upload_file(
        self,
        data: bytes,
        destination_path: str,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """Upload `data` with boto3's managed transfer, relaying its progress."""

        await self._ensure_authenticated()
        loop = asyncio.get_running_loop()
        increments: asyncio.Queue[int | None] = asyncio.Queue()

        def on_bytes(amount: int) -> None:
            loop.call_soon_threadsafe(increments.put_nowait, amount)

        upload = asyncio.ensure_future(
            asyncio.to_thread(
                self._get_client().upload_fileobj,
                io.BytesIO(data),
                self._bucket,
                destination_path,
                ExtraArgs={"ContentType": content_type or DEFAULT_CONTENT_TYPE},
                Callback=on_bytes,
            )
        )
        upload.add_done_callback(lambda _: increments.put_nowait(None))

        total = len(data)
        loaded = 0
        started = time.monotonic()
        try:
            while True:
                amount = await increments.get()
                if amount is None:
                    break
                loaded = min(total, loaded + amount)
                if on_progress is not None:
                    await on_progress(TransferProgress(loaded, total, _speed(loaded, started)))
        finally:
            if not upload.done():
                upload.cancel()

        await upload
        return UploadResult(location=f"s3://{self._bucket}/{destination_path}", size=total)

    async def _iter_body(
        self,
        body: Any,
        total: int,
        on_progress: ProgressCallback | None,
    ) -> AsyncIterator[bytes]:
        loaded = 0
        started = time.monotonic()
        try:
            while True:
                chunk = await asyncio.to_thread(body.read, self._chunk_size_bytes)
                if not chunk:
                    break
                loaded += len(chunk)
                if on_progress is not None:
                    await on_progress(TransferProgress(loaded, total, _speed(loaded, started)))
                yield chunk
        finally:
            body.close()

    async def _ensure_authenticated(self) -> None:
        if self._authenticated:
            return
        result = await self.authenticate()
        if not result.ok:
            raise ProviderError(str(result.meta.get("error") or "S3 authentication failed"))

    def _get_client(self) -> S3Client:
        if self._client is None:
            self._client = self._client_factory(self._credentials, self._region)
        return self._client


def _build_default_s3_client(credentials: dict[str, Any], region: str) -> S3Client:
    """Create a boto3 S3 client lazily to avoid import-time hard dependency."""

    try:
        import boto3  # type: ignore[import-not-found]
    except ModuleNotFoundError as exc:
        raise RuntimeError(
            "boto3 is required for S3 transfers. Install project dependencies first."
        ) from exc

    client = boto3.client(
        "s3",
        region_name=region,
        aws_access_key_id=credentials.get("accessKeyId"),
        aws_secret_access_key=credentials.get("secretAccessKey"),
    )
    return cast(S3Client, client)


def _speed(loaded: int, started: float) -> float:
    elapsed = time.monotonic() - started
    if elapsed <= 0:
        return 0.0
    return loaded / elapsed


def _error_code(exc: Exception) -> str | None:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return None
    error = response.get("Error")
    if not isinstance(error, dict):
        return None
    code = error.get("Code")
    return str(code) if code is not None else None


def _describe_error(exc: Exception, bucket: str) -> str:
    code = _error_code(exc)
    if code == "InvalidAccessKeyId":
        return "Invalid AWS Access Key ID"
    if code == "SignatureDoesNotMatch":
        return "Invalid AWS Secret Access Key"
    if code == "NoSuchBucket":
        return f"Bucket '{bucket}' does not exist"
    return f"S3 authentication failed: {exc}"


__all__ = ["S3Client", "S3ClientFactory", "S3ProviderCapability"]
