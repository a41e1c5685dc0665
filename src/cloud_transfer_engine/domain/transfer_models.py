"""Pydantic models for the transfer HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cloud_transfer_engine.domain.providers import ResolvedAccount
from cloud_transfer_engine.domain.records import (
    QueueStatus,
    TransferRecord,
    TransferSpec,
    TransferStatistics,
    TransferStats,
)
from cloud_transfer_engine.domain.transfer_types import TransferStatus


class TransferModel(BaseModel):
    """Base model for transfer API payloads."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class CloudAccountModel(TransferModel):
    """Cloud account entry of an accounts seed file."""

    account_id: str = Field(alias="id", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    provider_type: str = Field(alias="providerType", min_length=1)
    account_name: str | None = Field(default=None, alias="accountName")
    credentials: dict[str, Any] = Field(default_factory=dict)

    @field_validator("account_id", "user_id", mode="before")
    @classmethod
    def coerce_id(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def to_account(self) -> ResolvedAccount:
        return ResolvedAccount(
            account_id=self.account_id,
            user_id=self.user_id,
            provider_type=self.provider_type,
            credentials=dict(self.credentials),
            account_name=self.account_name,
        )


class CreateTransferRequest(TransferModel):
    """Body of `POST /transfers`."""

    source_account_id: str = Field(alias="sourceAccountId", min_length=1)
    destination_account_id: str = Field(alias="destinationAccountId", min_length=1)
    source_file_path: str = Field(alias="sourceFilePath", min_length=1)
    destination_file_path: str | None = Field(default=None, alias="destinationFilePath")
    file_name: str = Field(alias="fileName", min_length=1)

    @field_validator("source_account_id", "destination_account_id", mode="before")
    @classmethod
    def coerce_account_id(cls, value: object) -> object:
        """Accept numeric account ids as well as strings."""

        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def to_spec(self, user_id: str) -> TransferSpec:
        return TransferSpec(
            user_id=user_id,
            source_account_id=self.source_account_id,
            destination_account_id=self.destination_account_id,
            source_path=self.source_file_path,
            destination_path=self.destination_file_path or None,
            file_name=self.file_name,
        )


class CreateTransferResponse(TransferModel):
    """Acknowledgement of a queued transfer."""

    transfer_id: str = Field(alias="transferId")
    status: TransferStatus
    message: str = "Transfer created and queued successfully"


class TransferStatsResponse(TransferModel):
    """Status snapshot of one transfer."""

    id: str
    file_name: str = Field(alias="fileName")
    status: TransferStatus
    progress: int
    file_size: int = Field(alias="fileSize")
    transferred_bytes: int = Field(alias="transferredBytes")
    transfer_speed: float = Field(alias="transferSpeed")
    elapsed_time: int = Field(alias="elapsedTime")
    estimated_time_remaining: int | None = Field(alias="estimatedTimeRemaining")
    error: str | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")
    started_at: datetime | None = Field(default=None, alias="startedAt")
    completed_at: datetime | None = Field(default=None, alias="completedAt")

    @classmethod
    def from_stats(cls, stats: TransferStats) -> TransferStatsResponse:
        return cls(
            id=stats.id,
            file_name=stats.file_name,
            status=stats.status,
            progress=stats.progress,
            file_size=stats.file_size,
            transferred_bytes=stats.transferred_bytes,
            transfer_speed=stats.transfer_speed,
            elapsed_time=stats.elapsed_time,
            estimated_time_remaining=stats.estimated_time_remaining,
            error=stats.error,
            created_at=stats.created_at,
            started_at=stats.started_at,
            completed_at=stats.completed_at,
        )


class TransferSummaryResponse(TransferModel):
    """History row shown by the transfer list endpoint."""

    id: str
    file_name: str = Field(alias="fileName")
    status: TransferStatus
    progress: int
    file_size: int = Field(alias="fileSize")
    transferred_bytes: int = Field(alias="transferredBytes")
    transfer_speed: float = Field(alias="transferSpeed")
    error: str | None = None
    source_account_id: str = Field(alias="sourceAccountId")
    destination_account_id: str = Field(alias="destinationAccountId")
    source_file_path: str = Field(alias="sourceFilePath")
    destination_file_path: str = Field(alias="destinationFilePath")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    started_at: datetime | None = Field(default=None, alias="startedAt")
    completed_at: datetime | None = Field(default=None, alias="completedAt")

    @classmethod
    def from_record(cls, record: TransferRecord) -> TransferSummaryResponse:
        return cls(
            id=record.id,
            file_name=record.file_name,
            status=record.status,
            progress=record.progress,
            file_size=record.file_size,
            transferred_bytes=record.transferred_bytes,
            transfer_speed=record.transfer_speed,
            error=record.error,
            source_account_id=record.source_account_id,
            destination_account_id=record.destination_account_id,
            source_file_path=record.source_path,
            destination_file_path=record.destination_path,
            created_at=record.created_at,
            started_at=record.started_at,
            completed_at=record.completed_at,
        )


class QueueStatusResponse(TransferModel):
    """Dispatcher occupancy."""

    active: int
    queued: int
    max_concurrent: int = Field(alias="maxConcurrent")
    total: int

    @classmethod
    def from_queue_status(cls, status: QueueStatus) -> QueueStatusResponse:
        return cls(
            active=status.active,
            queued=status.queued,
            max_concurrent=status.max_concurrent,
            total=status.total,
        )


class TransferStatisticsResponse(TransferModel):
    """Per-user aggregate counts."""

    total: int
    completed: int
    failed: int
    running: int
    queued: int
    cancelled: int
    total_bytes: int = Field(alias="totalBytes")

    @classmethod
    def from_statistics(cls, statistics: TransferStatistics) -> TransferStatisticsResponse:
        return cls(
            total=statistics.total,
            completed=statistics.completed,
            failed=statistics.failed,
            running=statistics.running,
            queued=statistics.queued,
            cancelled=statistics.cancelled,
            total_bytes=statistics.total_bytes,
        )


class PaginationResponse(TransferModel):
    """Offset pagination metadata."""

    limit: int
    offset: int
    has_more: bool = Field(alias="hasMore")


class TransferListResponse(TransferModel):
    """Transfer history with statistics and queue occupancy."""

    transfers: list[TransferSummaryResponse]
    pagination: PaginationResponse
    statistics: TransferStatisticsResponse
    queue: QueueStatusResponse


class CancelTransferResponse(TransferModel):
    """Acknowledgement of a cancellation."""

    transfer_id: str = Field(alias="transferId")
    status: TransferStatus = TransferStatus.CANCELLED
    message: str = "Transfer cancelled"


class RetryTransferResponse(TransferModel):
    """Acknowledgement of a manual retry."""

    new_transfer_id: str = Field(alias="newTransferId")
    original_transfer_id: str = Field(alias="originalTransferId")
    message: str = "Transfer retry initiated"


__all__ = [
    "CancelTransferResponse",
    "CloudAccountModel",
    "CreateTransferRequest",
    "CreateTransferResponse",
    "PaginationResponse",
    "QueueStatusResponse",
    "RetryTransferResponse",
    "TransferListResponse",
    "TransferStatisticsResponse",
    "TransferStatsResponse",
    "TransferSummaryResponse",
]
