"""Domain public API."""

from cloud_transfer_engine.domain.entities import TransferJob
from cloud_transfer_engine.domain.errors import (
    InvalidTransitionError,
    PersistenceError,
    ProviderError,
    TransferCancelledError,
    TransferError,
    TransferNotFoundError,
    TransferValidationError,
    UnsupportedProviderError,
)
from cloud_transfer_engine.domain.ports import (
    AccountStore,
    ProviderCapability,
    ProviderFactory,
    TransferEventPublisher,
    TransferRepository,
)
from cloud_transfer_engine.domain.progress import (
    ProgressChannel,
    ProgressEvent,
    ProgressSubscription,
)
from cloud_transfer_engine.domain.providers import (
    AuthenticationResult,
    DownloadResult,
    FileInfo,
    ProgressCallback,
    ProviderType,
    ResolvedAccount,
    TransferProgress,
    UploadResult,
)
from cloud_transfer_engine.domain.records import (
    QueueStatus,
    TransferDraft,
    TransferRecord,
    TransferRecordUpdate,
    TransferSpec,
    TransferStatistics,
    TransferStats,
)
from cloud_transfer_engine.domain.transfer_types import (
    TERMINAL_STATUSES,
    JobState,
    TransferStatus,
    transition,
)

__all__ = [
    "AccountStore",
    "AuthenticationResult",
    "DownloadResult",
    "FileInfo",
    "InvalidTransitionError",
    "JobState",
    "PersistenceError",
    "ProgressCallback",
    "ProgressChannel",
    "ProgressEvent",
    "ProgressSubscription",
    "ProviderCapability",
    "ProviderError",
    "ProviderFactory",
    "ProviderType",
    "QueueStatus",
    "ResolvedAccount",
    "TERMINAL_STATUSES",
    "TransferCancelledError",
    "TransferDraft",
    "TransferError",
    "TransferEventPublisher",
    "TransferJob",
    "TransferNotFoundError",
    "TransferProgress",
    "TransferRecord",
    "TransferRecordUpdate",
    "TransferRepository",
    "TransferSpec",
    "TransferStatistics",
    "TransferStats",
    "TransferStatus",
    "TransferValidationError",
    "UnsupportedProviderError",
    "UploadResult",
    "transition",
]
