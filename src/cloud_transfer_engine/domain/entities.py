"""Domain entities."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from cloud_transfer_engine.domain.progress import ProgressChannel, ProgressEvent
from cloud_transfer_engine.domain.providers import round_half_up
from cloud_transfer_engine.domain.records import (
    TransferRecordUpdate,
    TransferStats,
    elapsed_seconds,
)
from cloud_transfer_engine.domain.transfer_types import (
    TERMINAL_STATUSES,
    Failed,
    JobState,
    Queued,
    TransferStatus,
    transition,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class TransferJob:
    """Mutable in-memory state of one transfer while the engine owns it.

    Every mutation bumps `version` and publishes a `ProgressEvent` on the
    attached channel.
    """

    def __init__(
        self,
        id: str,
        user_id: str,
        source_account_id: str,
        destination_account_id: str,
        source_path: str,
        destination_path: str,
        file_name: str,
        file_size: int = 0,
        channel: ProgressChannel | None = None,
        clock: Clock = _utc_now,
        created_at: datetime | None = None,
        version: int = 0,
    ) -> None:
        self.id = id
        self.user_id = user_id
        self.source_account_id = source_account_id
        self.destination_account_id = destination_account_id
        self.source_path = source_path
        self.destination_path = destination_path
        self.file_name = file_name
        self.file_size = max(0, file_size)
        self.progress = 0
        self.transferred_bytes = 0
        self.transfer_speed = 0.0
        self.version = version
        self._clock = clock
        self._channel = channel
        self._state: JobState = Queued()
        self.created_at = created_at or clock()

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def status(self) -> TransferStatus:
        return self._state.status

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def started_at(self) -> datetime | None:
        return getattr(self._state, "started_at", None)

    @property
    def completed_at(self) -> datetime | None:
        return getattr(self._state, "completed_at", None)

    @property
    def error(self) -> str | None:
        if isinstance(self._state, Failed):
            return self._state.error
        return None

    def start(self) -> None:
        """Move to running and record the start time."""

        self._state = transition(self._state, TransferStatus.RUNNING, at=self._clock())
        self._touch()

    def update_progress(
        self,
        transferred: int,
        total: int,
        speed: float = 0.0,
        *,
        percent: int | None = None,
    ) -> bool:
        """Record byte progress for a running job.

        `percent`, when given, is taken as the overall percentage instead of
        deriving it from the byte counts. Returns `False` (and changes nothing)
        when the job is not running. Progress never decreases while running.
        """

        if self.status is not TransferStatus.RUNNING:
            logger.debug(
                "Ignoring progress update for transfer '%s' in status '%s'.",
                self.id,
                self.status,
            )
            return False

        if total > 0:
            self.file_size = total
            transferred = min(max(0, transferred), total)
            derived = round_half_up(transferred / total * 100)
        else:
            transferred = max(0, transferred)
            derived = 0
        if percent is not None:
            derived = percent
        percent = max(0, min(100, derived))

        self.transferred_bytes = max(self.transferred_bytes, transferred)
        if self.file_size > 0:
            self.transferred_bytes = min(self.transferred_bytes, self.file_size)
        self.progress = max(self.progress, percent)
        self.transfer_speed = max(0.0, speed)
        self._touch()
        return True

    def complete(self) -> None:
        """Move to completed, forcing progress to 100%."""

        self._state = transition(self._state, TransferStatus.COMPLETED, at=self._clock())
        self.progress = 100
        self.transferred_bytes = self.file_size
        self._touch()

    def fail(self, error: BaseException | str) -> None:
        """Move to failed and record the error message."""

        message = error if isinstance(error, str) else _error_message(error)
        self._state = transition(
            self._state,
            TransferStatus.FAILED,
            at=self._clock(),
            error=message,
        )
        self._touch()

    def cancel(self) -> None:
        """Move to cancelled from queued or running."""

        self._state = transition(self._state, TransferStatus.CANCELLED, at=self._clock())
        self._touch()

    def get_stats(self) -> TransferStats:
        """Return a snapshot including elapsed and remaining time estimates."""

        remaining: int | None = None
        if self.transfer_speed > 0:
            remaining = max(
                0,
                round_half_up((self.file_size - self.transferred_bytes) / self.transfer_speed),
            )
        return TransferStats(
            id=self.id,
            file_name=self.file_name,
            status=self.status,
            progress=self.progress,
            file_size=self.file_size,
            transferred_bytes=self.transferred_bytes,
            transfer_speed=self.transfer_speed,
            elapsed_time=elapsed_seconds(self.started_at, self.completed_at, self._clock()),
            estimated_time_remaining=remaining,
            error=self.error,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )

    def to_record_update(self) -> TransferRecordUpdate:
        """Return the full mutable snapshot for the persistence sink."""

        return TransferRecordUpdate(
            status=self.status,
            progress=self.progress,
            file_size=self.file_size,
            transferred_bytes=self.transferred_bytes,
            transfer_speed=self.transfer_speed,
            error=self.error,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )

    def _touch(self) -> None:
        self.version += 1
        if self._channel is None:
            return
        self._channel.publish(
            ProgressEvent(
                job_id=self.id,
                status=self.status,
                progress=self.progress,
                transferred=self.transferred_bytes,
                total=self.file_size,
                speed=self.transfer_speed,
            )
        )

    def __repr__(self) -> str:
        return (
            f"TransferJob(id={self.id!r}, status={self.status.value!r}, "
            f"progress={self.progress}, file_name={self.file_name!r})"
        )


def _error_message(error: BaseException) -> str:
    message = str(error)
    return message or error.__class__.__name__


__all__ = ["TransferJob"]
