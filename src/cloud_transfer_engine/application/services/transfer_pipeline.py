"""Download-then-upload pipeline driving one transfer job."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from cloud_transfer_engine.application.services.cancellation import CancellationToken
from cloud_transfer_engine.application.services.snapshot_writer import (
    TransferSnapshotWriter,
)
from cloud_transfer_engine.domain.entities import TransferJob
from cloud_transfer_engine.domain.errors import (
    InvalidTransitionError,
    ProviderError,
    TransferCancelledError,
    TransferError,
    TransferNotFoundError,
)
from cloud_transfer_engine.domain.ports import (
    AccountStore,
    ProviderCapability,
    ProviderFactory,
)
from cloud_transfer_engine.domain.providers import (
    DEFAULT_CONTENT_TYPE,
    DownloadResult,
    ProgressCallback,
    ResolvedAccount,
    TransferProgress,
    format_file_size,
    round_half_up,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DOWNLOAD_OFFSET = 0
_UPLOAD_OFFSET = 50


class TransferPipeline:
    """Move one file from its source account to its destination account.

    Download progress fills the first half of the job's progress and upload
    progress the second half. Failures are recorded on the job and never
    raised to the caller; once the cancellation token is set the pipeline
    stops writing to the job.
    """

    def __init__(
        self,
        account_store: AccountStore,
        provider_factory: ProviderFactory,
        snapshot_writer: TransferSnapshotWriter,
    ) -> None:
        self._account_store = account_store
        self._provider_factory = provider_factory
        self._snapshot_writer = snapshot_writer

    async def run(self, job: TransferJob, token: CancellationToken) -> None:
        """Drive `job` from queued to a terminal state."""

        try:
            token.raise_if_cancelled()
            job.start()
            await self._snapshot_writer.persist(job)
            token.raise_if_cancelled()
            await self._execute(job, token)
        except TransferCancelledError:
            logger.info("Transfer '%s' stopped after cancellation: %s", job.id, token.reason)
        except Exception as exc:  # noqa: BLE001
            if token.cancelled:
                logger.info(
                    "Transfer '%s' stopped after cancellation: %s",
                    job.id,
                    token.reason,
                )
                return
            await self._fail(job, exc)

    async def _execute(self, job: TransferJob, token: CancellationToken) -> None:
        source_account = await self._resolve_account(job.source_account_id, job.user_id)
        destination_account = await self._resolve_account(
            job.destination_account_id,
            job.user_id,
        )
        token.raise_if_cancelled()

        source = self._provider_factory.create(
            source_account.provider_type,
            source_account.credentials,
        )
        destination = self._provider_factory.create(
            destination_account.provider_type,
            destination_account.credentials,
        )

        logger.info(
            "Transfer '%s': downloading '%s' from %s account '%s'.",
            job.id,
            job.source_path,
            source_account.provider_type,
            source_account.account_id,
        )
        download = await self._call_provider(
            source.download_file(
                job.source_path,
                on_progress=self._progress_handler(job, token, offset=_DOWNLOAD_OFFSET),
            )
        )
        token.raise_if_cancelled()
        if job.file_size <= 0 and download.file_info.size > 0:
            job.update_progress(0, download.file_info.size)

        data = await self._read_stream(download, token)
        token.raise_if_cancelled()
        if job.file_size <= 0 and data:
            job.update_progress(0, len(data))

        logger.info(
            "Transfer '%s': uploading %s to %s account '%s' at '%s'.",
            job.id,
            format_file_size(len(data)),
            destination_account.provider_type,
            destination_account.account_id,
            job.destination_path,
        )
        await self._upload(job, token, destination, data, download)
        token.raise_if_cancelled()

        job.complete()
        await self._snapshot_writer.persist(job)
        logger.info(
            "Transfer '%s' completed: %s (%s).",
            job.id,
            job.file_name,
            format_file_size(job.file_size),
        )

    async def _upload(
        self,
        job: TransferJob,
        token: CancellationToken,
        destination: ProviderCapability,
        data: bytes,
        download: DownloadResult,
    ) -> None:
        content_type = download.file_info.content_type or DEFAULT_CONTENT_TYPE
        await self._call_provider(
            destination.upload_file(
                data,
                job.destination_path,
                content_type=content_type,
                on_progress=self._progress_handler(job, token, offset=_UPLOAD_OFFSET),
            )
        )

    async def _resolve_account(self, account_id: str, user_id: str) -> ResolvedAccount:
        account = await self._account_store.resolve(account_id, user_id)
        if account is None:
            raise TransferNotFoundError(f"Account '{account_id}' not found.")
        return account

    async def _read_stream(self, download: DownloadResult, token: CancellationToken) -> bytes:
        buffer = bytearray()
        stream = download.stream
        try:
            async for chunk in stream:
                token.raise_if_cancelled()
                buffer.extend(chunk)
        except (TransferError, asyncio.CancelledError):
            raise
        except Exception as exc:
            raise ProviderError(_error_message(exc)) from exc
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return bytes(buffer)

    async def _call_provider(self, operation: Awaitable[T]) -> T:
        try:
            return await operation
        except TransferError:
            raise
        except Exception as exc:
            raise ProviderError(_error_message(exc)) from exc

    def _progress_handler(
        self,
        job: TransferJob,
        token: CancellationToken,
        *,
        offset: int,
    ) -> ProgressCallback:
        async def on_progress(progress: TransferProgress) -> None:
            token.raise_if_cancelled()
            overall = offset + round_half_up(progress.percentage * 0.5)
            total = job.file_size or progress.total
            job.update_progress(
                overall * total // 100,
                total,
                progress.speed,
                percent=overall,
            )
            await self._snapshot_writer.persist_progress(job)

        return on_progress

    async def _fail(self, job: TransferJob, exc: Exception) -> None:
        message = _error_message(exc)
        logger.error("Transfer '%s' failed: %s", job.id, message)
        try:
            job.fail(message)
        except InvalidTransitionError:
            logger.warning(
                "Transfer '%s' already settled as '%s'; failure not recorded.",
                job.id,
                job.status,
            )
            return
        await self._snapshot_writer.persist(job)


def _error_message(error: BaseException) -> str:
    message = str(error)
    return message or error.__class__.__name__


__all__ = ["TransferPipeline"]
