"""Ports for persistence, account resolution, providers and events."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from cloud_transfer_engine.domain.progress import ProgressEvent
from cloud_transfer_engine.domain.providers import (
    AuthenticationResult,
    DownloadResult,
    FileInfo,
    ProgressCallback,
    ResolvedAccount,
    UploadResult,
)
from cloud_transfer_engine.domain.records import (
    TransferDraft,
    TransferRecord,
    TransferRecordUpdate,
    TransferStatistics,
)
from cloud_transfer_engine.domain.transfer_types import TransferStatus


class TransferRepository(Protocol):
    """Durable store of transfer records."""

    async def create_transfer_record(self, draft: TransferDraft) -> str:
        """Insert a queued record and return its id."""

    async def update_transfer_record(
        self,
        transfer_id: str,
        update: TransferRecordUpdate,
        version: int | None = None,
    ) -> bool:
        """Apply a partial update.

        When `version` is given the write is skipped if the stored version is
        newer. Returns whether a row changed.
        """

    async def get_transfer_record(
        self,
        transfer_id: str,
        user_id: str | None = None,
    ) -> TransferRecord | None:
        """Return one record, optionally restricted to its owner."""

    async def list_transfer_records(
        self,
        user_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        status: TransferStatus | None = None,
    ) -> list[TransferRecord]:
        """Return a user's records, newest first."""

    async def list_records_by_status(self, status: TransferStatus) -> list[TransferRecord]:
        """Return every record in `status`, oldest first."""

    async def get_transfer_statistics(self, user_id: str) -> TransferStatistics:
        """Aggregate a user's records by status."""


@runtime_checkable
class AccountStore(Protocol):
    """Resolves cloud accounts and their decrypted credentials."""

    async def resolve(self, account_id: str, user_id: str) -> ResolvedAccount | None:
        """Return the account if it exists and belongs to `user_id`."""


class ProviderCapability(Protocol):
    """Operations the engine needs from one cloud-storage backend."""

    async def authenticate(self) -> AuthenticationResult:
        """Verify credentials and access."""

    async def get_file_info(self, path: str) -> FileInfo:
        """Return metadata of a remote object."""

    async def download_file(
        self,
        path: str,
        on_progress: ProgressCallback | None = None,
    ) -> DownloadResult:
        """Open a chunked read stream of a remote object."""

    async def upload_file(
        self,
        data: bytes,
        destination_path: str,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """Write `data` to `destination_path`."""


class ProviderFactory(Protocol):
    """Builds a capability for a provider type."""

    def create(self, provider_type: str, credentials: dict[str, Any]) -> ProviderCapability:
        """Return a capability or raise `UnsupportedProviderError`."""


class TransferEventPublisher(Protocol):
    """Outbound publisher for transfer progress events."""

    async def publish_progress(self, event: ProgressEvent) -> None:
        """Publish one progress event."""

    async def close(self) -> None:
        """Release publisher resources."""


__all__ = [
    "AccountStore",
    "ProviderCapability",
    "ProviderFactory",
    "TransferEventPublisher",
    "TransferRepository",
]
