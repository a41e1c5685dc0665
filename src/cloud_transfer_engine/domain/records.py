"""Persisted transfer records and read-side snapshots."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import UTC, datetime
from typing import Any

from cloud_transfer_engine.domain.transfer_types import TransferStatus

DEFAULT_MAX_RETRIES = 3


@dataclass(slots=True, frozen=True)
class TransferSpec:
    """Caller request to move one file between two of the user's accounts."""

    user_id: str
    source_account_id: str
    destination_account_id: str
    source_path: str
    file_name: str
    destination_path: str | None = None

    @property
    def resolved_destination_path(self) -> str:
        """Return the destination path, defaulting to the file name."""

        return self.destination_path or self.file_name


@dataclass(slots=True, frozen=True)
class QueueStatus:
    """Sizes of the dispatcher's pending queue and active set."""

    active: int
    queued: int
    max_concurrent: int

    @property
    def total(self) -> int:
        return self.active + self.queued


@dataclass(slots=True, frozen=True)
class TransferDraft:
    """Fields required to create a queued transfer record."""

    user_id: str
    source_account_id: str
    destination_account_id: str
    source_path: str
    destination_path: str
    file_name: str
    file_size: int = 0
    priority: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES


@dataclass(slots=True, frozen=True)
class TransferRecordUpdate:
    """Partial update of a transfer record; `None` leaves a column untouched."""

    status: TransferStatus | None = None
    progress: int | None = None
    file_size: int | None = None
    transferred_bytes: int | None = None
    transfer_speed: float | None = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def changes(self) -> dict[str, Any]:
        """Return the populated columns only."""

        return {
            item.name: getattr(self, item.name)
            for item in fields(self)
            if getattr(self, item.name) is not None
        }


@dataclass(slots=True)
class TransferRecord:
    """Durable row describing one transfer, live or historical.

    `priority`, `retry_count` and `max_retries` are stored and returned but
    not interpreted by the engine.
    """

    id: str
    user_id: str
    source_account_id: str
    destination_account_id: str
    source_path: str
    destination_path: str
    file_name: str
    file_size: int = 0
    status: TransferStatus = TransferStatus.QUEUED
    progress: int = 0
    transferred_bytes: int = 0
    transfer_speed: float = 0.0
    error: str | None = None
    priority: int = 0
    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    version: int = 0
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def to_stats(self, now: datetime | None = None) -> TransferStats:
        """Build the status snapshot served for non-resident transfers."""

        return TransferStats(
            id=self.id,
            file_name=self.file_name,
            status=self.status,
            progress=self.progress,
            file_size=self.file_size,
            transferred_bytes=self.transferred_bytes,
            transfer_speed=self.transfer_speed,
            elapsed_time=elapsed_seconds(self.started_at, self.completed_at, now),
            estimated_time_remaining=None,
            error=self.error,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )


@dataclass(slots=True, frozen=True)
class TransferStats:
    """Point-in-time view of a transfer returned to callers."""

    id: str
    file_name: str
    status: TransferStatus
    progress: int
    file_size: int
    transferred_bytes: int
    transfer_speed: float
    elapsed_time: int
    estimated_time_remaining: int | None
    error: str | None
    created_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None


@dataclass(slots=True, frozen=True)
class TransferStatistics:
    """Per-user aggregate over persisted transfers."""

    total: int = 0
    completed: int = 0
    failed: int = 0
    running: int = 0
    queued: int = 0
    cancelled: int = 0
    total_bytes: int = 0


def elapsed_seconds(
    started_at: datetime | None,
    completed_at: datetime | None,
    now: datetime | None = None,
) -> int:
    """Return whole seconds between start and completion (or now)."""

    if started_at is None:
        return 0
    end = completed_at or now or datetime.now(tz=UTC)
    return max(0, round((end - started_at).total_seconds()))


__all__ = [
    "DEFAULT_MAX_RETRIES",
    "QueueStatus",
    "TransferDraft",
    "TransferRecord",
    "TransferRecordUpdate",
    "TransferSpec",
    "TransferStatistics",
    "TransferStats",
    "elapsed_seconds",
]
