"""Application services public API."""

from cloud_transfer_engine.application.services.cancellation import CancellationToken
from cloud_transfer_engine.application.services.progress_forwarder import (
    ProgressEventForwarder,
)
from cloud_transfer_engine.application.services.snapshot_writer import (
    TransferSnapshotWriter,
)
from cloud_transfer_engine.application.services.transfer_dispatcher import (
    DEFAULT_MAX_CONCURRENT,
    CreatedTransfer,
    RetriedTransfer,
    TransferDispatcher,
    TransferHistory,
)
from cloud_transfer_engine.application.services.transfer_pipeline import TransferPipeline

__all__ = [
    "CancellationToken",
    "CreatedTransfer",
    "DEFAULT_MAX_CONCURRENT",
    "ProgressEventForwarder",
    "RetriedTransfer",
    "TransferDispatcher",
    "TransferHistory",
    "TransferPipeline",
    "TransferSnapshotWriter",
]
