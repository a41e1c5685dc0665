from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from cloud_transfer_engine.application.services import TransferDispatcher
from cloud_transfer_engine.domain.providers import (
    AuthenticationResult,
    DownloadResult,
    FileInfo,
    ProgressCallback,
    ResolvedAccount,
    TransferProgress,
    UploadResult,
)
from cloud_transfer_engine.domain.records import TransferSpec
from cloud_transfer_engine.infrastructure.providers import DefaultProviderFactory
from cloud_transfer_engine.infrastructure.repositories import InMemoryTransferRepository

USER_ID = "user-1"
MEMORY_PROVIDER = "memory"


class MemoryCapability:
    """Provider capability serving files from a dict.

    Downloads are split into two equal chunks so progress is reported at 50%
    and 100% of the download. A download can be held until its event is set.
    """

    def __init__(
        self,
        files: dict[str, bytes],
        *,
        probe_error: Exception | None = None,
        download_errors: dict[str, Exception] | None = None,
        holds: dict[str, asyncio.Event] | None = None,
    ) -> None:
        self.files = files
        self.uploads: dict[str, bytes] = {}
        self.upload_content_types: dict[str, str | None] = {}
        self._probe_error = probe_error
        self._download_errors = download_errors or {}
        self._holds = holds or {}

    async def authenticate(self) -> AuthenticationResult:
        return AuthenticationResult(ok=True)

    async def get_file_info(self, path: str) -> FileInfo:
        if self._probe_error is not None:
            raise self._probe_error
        return FileInfo(name=path, path=path, size=len(self.files[path]), content_type="text/plain")

    async def download_file(
        self,
        path: str,
        on_progress: ProgressCallback | None = None,
    ) -> DownloadResult:
        hold = self._holds.get(path)
        if hold is not None:
            await hold.wait()
        error = self._download_errors.get(path)
        if error is not None:
            raise error
        data = self.files[path]
        return DownloadResult(
            stream=self._chunks(data, on_progress),
            file_info=FileInfo(name=path, path=path, size=len(data), content_type="text/plain"),
        )

    async def upload_file(
        self,
        data: bytes,
        destination_path: str,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        self.uploads[destination_path] = data
        self.upload_content_types[destination_path] = content_type
        if on_progress is not None:
            await on_progress(TransferProgress(len(data), len(data), speed=100.0))
        return UploadResult(location=destination_path, size=len(data))

    async def _chunks(
        self,
        data: bytes,
        on_progress: ProgressCallback | None,
    ) -> AsyncIterator[bytes]:
        middle = len(data) // 2
        loaded = 0
        for chunk in (data[:middle], data[middle:]):
            if not chunk:
                continue
            loaded += len(chunk)
            if on_progress is not None:
                await on_progress(TransferProgress(loaded, len(data), speed=100.0))
            yield chunk


def memory_account(account_id: str, user_id: str = USER_ID) -> ResolvedAccount:
    return ResolvedAccount(
        account_id=account_id,
        user_id=user_id,
        provider_type=MEMORY_PROVIDER,
        credentials={},
    )


def memory_factory(capability: MemoryCapability) -> DefaultProviderFactory:
    return DefaultProviderFactory({MEMORY_PROVIDER: lambda _credentials: capability})


def build_dispatcher(
    capability: MemoryCapability,
    *,
    max_concurrent: int = 3,
    repository: InMemoryTransferRepository | None = None,
    accounts: list[ResolvedAccount] | None = None,
) -> tuple[TransferDispatcher, InMemoryTransferRepository]:
    repository = repository or InMemoryTransferRepository()
    for account in accounts or [memory_account("src"), memory_account("dst")]:
        repository.add_account(account)
    dispatcher = TransferDispatcher(
        repository=repository,
        account_store=repository,
        provider_factory=memory_factory(capability),
        max_concurrent=max_concurrent,
        progress_persist_interval_seconds=0.0,
    )
    return dispatcher, repository


def transfer_spec(path: str, **overrides: Any) -> TransferSpec:
    values: dict[str, Any] = {
        "user_id": USER_ID,
        "source_account_id": "src",
        "destination_account_id": "dst",
        "source_path": path,
        "file_name": path,
    }
    values.update(overrides)
    return TransferSpec(**values)


async def wait_until(
    predicate: Callable[[], bool] | Callable[[], Awaitable[bool]],
    timeout: float = 2.0,
) -> None:
    """Poll `predicate` until it holds or fail after `timeout` seconds."""

    async def poll() -> None:
        while True:
            result = predicate()
            if asyncio.iscoroutine(result):
                result = await result
            if result:
                return
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=timeout)
