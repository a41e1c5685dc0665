"""Transfer status values and the job state machine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import ClassVar

from cloud_transfer_engine.domain.errors import InvalidTransitionError


class TransferStatus(StrEnum):
    """Externally visible transfer status."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {
        TransferStatus.COMPLETED,
        TransferStatus.FAILED,
        TransferStatus.CANCELLED,
    }
)

_ALLOWED_TRANSITIONS: dict[TransferStatus, frozenset[TransferStatus]] = {
    TransferStatus.QUEUED: frozenset({TransferStatus.RUNNING, TransferStatus.CANCELLED}),
    TransferStatus.RUNNING: frozenset(
        {
            TransferStatus.COMPLETED,
            TransferStatus.FAILED,
            TransferStatus.CANCELLED,
        }
    ),
    TransferStatus.COMPLETED: frozenset(),
    TransferStatus.FAILED: frozenset(),
    TransferStatus.CANCELLED: frozenset(),
}


@dataclass(slots=True, frozen=True)
class Queued:
    """Waiting in the dispatcher's pending queue."""

    status: ClassVar[TransferStatus] = TransferStatus.QUEUED


@dataclass(slots=True, frozen=True)
class Running:
    """Owned by an executing pipeline."""

    started_at: datetime

    status: ClassVar[TransferStatus] = TransferStatus.RUNNING


@dataclass(slots=True, frozen=True)
class Completed:
    """Data was uploaded to the destination."""

    started_at: datetime
    completed_at: datetime

    status: ClassVar[TransferStatus] = TransferStatus.COMPLETED


@dataclass(slots=True, frozen=True)
class Failed:
    """The pipeline stopped on an error."""

    error: str
    started_at: datetime | None
    completed_at: datetime

    status: ClassVar[TransferStatus] = TransferStatus.FAILED


@dataclass(slots=True, frozen=True)
class Cancelled:
    """Cancelled by its owner while queued or running."""

    started_at: datetime | None
    completed_at: datetime

    status: ClassVar[TransferStatus] = TransferStatus.CANCELLED


JobState = Queued | Running | Completed | Failed | Cancelled


def can_transition(current: TransferStatus, target: TransferStatus) -> bool:
    """Return whether `current -> target` is a legal edge."""

    return target in _ALLOWED_TRANSITIONS[current]


def transition(
    state: JobState,
    target: TransferStatus,
    *,
    at: datetime,
    error: str | None = None,
) -> JobState:
    """Return the state reached from `state` when moving to `target`.

    Raises `InvalidTransitionError` for any edge outside
    `queued -> running -> {completed, failed}` and `{queued, running} -> cancelled`.
    """

    if not can_transition(state.status, target):
        raise InvalidTransitionError(
            f"Cannot move transfer from '{state.status}' to '{target}'."
        )

    started_at = getattr(state, "started_at", None)
    if target is TransferStatus.RUNNING:
        return Running(started_at=at)
    if target is TransferStatus.COMPLETED:
        assert started_at is not None
        return Completed(started_at=started_at, completed_at=at)
    if target is TransferStatus.FAILED:
        return Failed(
            error=error or "Transfer failed",
            started_at=started_at,
            completed_at=at,
        )
    return Cancelled(started_at=started_at, completed_at=at)


__all__ = [
    "Cancelled",
    "Completed",
    "Failed",
    "JobState",
    "Queued",
    "Running",
    "TERMINAL_STATUSES",
    "TransferStatus",
    "can_transition",
    "transition",
]
