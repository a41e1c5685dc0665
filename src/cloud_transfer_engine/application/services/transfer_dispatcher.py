"""Bounded-concurrency dispatcher owning the transfer queue."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from cloud_transfer_engine.application.services.cancellation import CancellationToken
from cloud_transfer_engine.application.services.progress_forwarder import (
    ProgressEventForwarder,
)
from cloud_transfer_engine.application.services.snapshot_writer import (
    TransferSnapshotWriter,
)
from cloud_transfer_engine.application.services.transfer_pipeline import (
    TransferPipeline,
)
from cloud_transfer_engine.domain.entities import TransferJob
from cloud_transfer_engine.domain.errors import (
    PersistenceError,
    TransferNotFoundError,
    TransferValidationError,
)
from cloud_transfer_engine.domain.ports import (
    AccountStore,
    ProviderFactory,
    TransferEventPublisher,
    TransferRepository,
)
from cloud_transfer_engine.domain.progress import ProgressChannel, ProgressSubscription
from cloud_transfer_engine.domain.providers import ResolvedAccount
from cloud_transfer_engine.domain.records import (
    QueueStatus,
    TransferDraft,
    TransferRecord,
    TransferRecordUpdate,
    TransferSpec,
    TransferStatistics,
    TransferStats,
)
from cloud_transfer_engine.domain.transfer_types import TERMINAL_STATUSES, TransferStatus

DEFAULT_MAX_CONCURRENT = 3
_RESTART_INTERRUPTED_ERROR = "Transfer interrupted by engine restart"
_SHUTDOWN_INTERRUPTED_ERROR = "Transfer interrupted by engine shutdown"

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CreatedTransfer:
    """Acknowledgement of a newly queued transfer."""

    transfer_id: str
    status: TransferStatus = TransferStatus.QUEUED


@dataclass(slots=True, frozen=True)
class RetriedTransfer:
    """Link between a failed transfer and the transfer retrying it."""

    new_transfer_id: str
    original_transfer_id: str


@dataclass(slots=True, frozen=True)
class TransferHistory:
    """One page of a user's transfers plus aggregate figures."""

    records: list[TransferRecord]
    statistics: TransferStatistics
    queue: QueueStatus
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return len(self.records) == self.limit


class TransferDispatcher:
    """Owns the pending queue and the active set of transfer jobs.

    Jobs run in FIFO order with at most `max_concurrent` pipelines in flight.
    Queue and active-set mutations happen in synchronous sections on the
    event loop, so no lock is needed.
    """

    def __init__(
        self,
        repository: TransferRepository,
        account_store: AccountStore,
        provider_factory: ProviderFactory,
        *,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        progress_persist_interval_seconds: float = 1.0,
        channel: ProgressChannel | None = None,
        event_publisher: TransferEventPublisher | None = None,
        recover_on_startup: bool = True,
        pipeline: TransferPipeline | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1.")
        self._repository = repository
        self._account_store = account_store
        self._provider_factory = provider_factory
        self._max_concurrent = max_concurrent
        self._channel = channel or ProgressChannel()
        self._recover_on_startup = recover_on_startup
        self._clock = clock or _utc_now
        self._snapshot_writer = TransferSnapshotWriter(
            repository,
            progress_persist_interval_seconds=progress_persist_interval_seconds,
        )
        self._pipeline = pipeline or TransferPipeline(
            account_store,
            provider_factory,
            self._snapshot_writer,
        )
        self._forwarder = (
            ProgressEventForwarder(self._channel, event_publisher)
            if event_publisher is not None
            else None
        )

        self._pending: deque[TransferJob] = deque()
        self._active: dict[str, TransferJob] = {}
        self._tokens: dict[str, CancellationToken] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._draining = False
        self._accepting = True

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def channel(self) -> ProgressChannel:
        return self._channel

    async def startup(self) -> None:
        """Start event forwarding and recover persisted queue state."""

        self._accepting = True
        if self._forwarder is not None:
            await self._forwarder.start()
        if self._recover_on_startup:
            await self.recover_transfers()

    async def shutdown(self) -> None:
        """Interrupt running pipelines and stop event forwarding.

        Running jobs are recorded as failed. Jobs that never started stay
        queued in the repository and are picked up again on the next startup.
        """

        self._accepting = False
        interrupted = list(self._active.values())
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for job in interrupted:
            if job.status is not TransferStatus.RUNNING:
                continue
            job.fail(_SHUTDOWN_INTERRUPTED_ERROR)
            await self._snapshot_writer.persist(job)

        self._pending.clear()
        self._active.clear()
        self._tokens.clear()
        self._tasks.clear()
        if self._forwarder is not None:
            await self._forwarder.stop()
        self._channel.close()

    async def create_transfer(self, request: TransferSpec) -> CreatedTransfer:
        """Validate, persist and enqueue a new transfer."""

        if request.source_account_id == request.destination_account_id:
            raise TransferValidationError("Source and destination accounts must be different.")

        source_account = await self._resolve_account(request.source_account_id, request.user_id)
        await self._resolve_account(request.destination_account_id, request.user_id)
        file_size = await self._probe_file_size(source_account, request.source_path)

        draft = TransferDraft(
            user_id=request.user_id,
            source_account_id=request.source_account_id,
            destination_account_id=request.destination_account_id,
            source_path=request.source_path,
            destination_path=request.resolved_destination_path,
            file_name=request.file_name,
            file_size=file_size,
        )
        transfer_id = await self._repository.create_transfer_record(draft)
        job = TransferJob(
            id=transfer_id,
            user_id=draft.user_id,
            source_account_id=draft.source_account_id,
            destination_account_id=draft.destination_account_id,
            source_path=draft.source_path,
            destination_path=draft.destination_path,
            file_name=draft.file_name,
            file_size=draft.file_size,
            channel=self._channel,
            clock=self._clock,
        )
        self._pending.append(job)
        logger.info(
            "Queued transfer '%s' of '%s' for user '%s' (%s pending, %s active).",
            transfer_id,
            job.file_name,
            job.user_id,
            len(self._pending),
            len(self._active),
        )
        self.drain()
        return CreatedTransfer(transfer_id=transfer_id)

    def drain(self) -> None:
        """Start pending jobs while there is free capacity."""

        if self._draining or not self._accepting:
            return
        self._draining = True
        try:
            while self._pending and len(self._active) < self._max_concurrent:
                job = self._pending.popleft()
                if job.is_terminal:
                    continue
                self._active[job.id] = job
                self._start_pipeline(job)
        finally:
            self._draining = False

    async def get_transfer_status(self, transfer_id: str, user_id: str) -> TransferStats:
        """Return live stats for resident jobs, persisted stats otherwise."""

        job = self._active.get(transfer_id) or self._find_pending(transfer_id)
        if job is not None:
            if job.user_id != user_id:
                raise TransferNotFoundError(f"Transfer '{transfer_id}' not found.")
            return job.get_stats()

        record = await self._repository.get_transfer_record(transfer_id, user_id)
        if record is None:
            raise TransferNotFoundError(f"Transfer '{transfer_id}' not found.")
        return record.to_stats(self._clock())

    async def cancel_transfer(self, transfer_id: str, user_id: str) -> TransferStatus:
        """Cancel a queued or running transfer."""

        job = self._active.get(transfer_id)
        if job is not None:
            self._ensure_owner(job, user_id)
            if job.is_terminal:
                raise TransferValidationError(
                    f"Transfer '{transfer_id}' is already {job.status} and cannot be cancelled."
                )
            await self._cancel_active(job)
            return job.status

        job = self._find_pending(transfer_id)
        if job is not None:
            self._ensure_owner(job, user_id)
            self._pending.remove(job)
            job.cancel()
            await self._snapshot_writer.persist(job)
            logger.info("Cancelled queued transfer '%s'.", transfer_id)
            return job.status

        record = await self._repository.get_transfer_record(transfer_id, user_id)
        if record is None:
            raise TransferNotFoundError(f"Transfer '{transfer_id}' not found.")
        if record.status in TERMINAL_STATUSES:
            raise TransferValidationError(
                f"Transfer '{transfer_id}' is already {record.status} and cannot be cancelled."
            )
        await self._repository.update_transfer_record(
            transfer_id,
            TransferRecordUpdate(status=TransferStatus.CANCELLED, completed_at=self._clock()),
        )
        logger.info("Cancelled persisted transfer '%s' not owned by this engine.", transfer_id)
        return TransferStatus.CANCELLED

    def get_queue_status(self) -> QueueStatus:
        return QueueStatus(
            active=len(self._active),
            queued=len(self._pending),
            max_concurrent=self._max_concurrent,
        )

    async def list_transfers(
        self,
        user_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        status: TransferStatus | None = None,
    ) -> TransferHistory:
        """Return a page of the user's transfer history, newest first."""

        records = await self._repository.list_transfer_records(
            user_id,
            limit=limit,
            offset=offset,
            status=status,
        )
        statistics = await self._repository.get_transfer_statistics(user_id)
        return TransferHistory(
            records=records,
            statistics=statistics,
            queue=self.get_queue_status(),
            limit=limit,
            offset=offset,
        )

    async def get_transfer_statistics(self, user_id: str) -> TransferStatistics:
        return await self._repository.get_transfer_statistics(user_id)

    async def retry_transfer(self, transfer_id: str, user_id: str) -> RetriedTransfer:
        """Queue a new transfer repeating a failed one."""

        record = await self._repository.get_transfer_record(transfer_id, user_id)
        if record is None:
            raise TransferNotFoundError(f"Transfer '{transfer_id}' not found.")
        if record.status is not TransferStatus.FAILED:
            raise TransferValidationError("Only failed transfers can be retried.")

        created = await self.create_transfer(
            TransferSpec(
                user_id=record.user_id,
                source_account_id=record.source_account_id,
                destination_account_id=record.destination_account_id,
                source_path=record.source_path,
                destination_path=record.destination_path,
                file_name=record.file_name,
            )
        )
        logger.info("Retrying failed transfer '%s' as '%s'.", transfer_id, created.transfer_id)
        return RetriedTransfer(
            new_transfer_id=created.transfer_id,
            original_transfer_id=transfer_id,
        )

    def subscribe(
        self,
        job_id: str | None = None,
        max_pending_events: int = 0,
    ) -> ProgressSubscription:
        """Subscribe to progress events, optionally for one job."""

        return self._channel.subscribe(job_id, max_pending_events=max_pending_events)

    async def recover_transfers(self) -> int:
        """Re-enqueue persisted queued transfers; returns how many were queued."""

        try:
            interrupted = await self._repository.list_records_by_status(TransferStatus.RUNNING)
            for record in interrupted:
                if record.id in self._active:
                    continue
                await self._repository.update_transfer_record(
                    record.id,
                    TransferRecordUpdate(
                        status=TransferStatus.FAILED,
                        error=_RESTART_INTERRUPTED_ERROR,
                        completed_at=self._clock(),
                    ),
                )
                logger.warning("Transfer '%s' was interrupted by a restart.", record.id)

            queued = await self._repository.list_records_by_status(TransferStatus.QUEUED)
        except PersistenceError:
            logger.exception("Transfer recovery failed.")
            return 0

        known = set(self._active) | {job.id for job in self._pending}
        recovered = 0
        for record in queued:
            if record.id in known:
                continue
            self._pending.append(self._job_from_record(record))
            recovered += 1

        if recovered:
            logger.info("Recovered %s queued transfer(s).", recovered)
        self.drain()
        return recovered

    def _start_pipeline(self, job: TransferJob) -> None:
        token = CancellationToken()
        self._tokens[job.id] = token
        self._tasks[job.id] = asyncio.create_task(
            self._run_pipeline(job, token),
            name=f"transfer-{job.id}",
        )

    async def _run_pipeline(self, job: TransferJob, token: CancellationToken) -> None:
        try:
            await self._pipeline.run(job, token)
        finally:
            self._settle(job)

    def _settle(self, job: TransferJob) -> None:
        if self._active.get(job.id) is not job:
            return
        self._evict(job.id)
        self.drain()

    def _evict(self, job_id: str) -> asyncio.Task[None] | None:
        self._active.pop(job_id, None)
        self._tokens.pop(job_id, None)
        self._snapshot_writer.forget(job_id)
        return self._tasks.pop(job_id, None)

    async def _cancel_active(self, job: TransferJob) -> None:
        token = self._tokens.get(job.id)
        if token is not None:
            token.cancel("Cancelled by user")
        job.cancel()
        task = self._evict(job.id)
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        self.drain()
        await self._snapshot_writer.persist(job)
        logger.info("Cancelled running transfer '%s'.", job.id)

    def _find_pending(self, transfer_id: str) -> TransferJob | None:
        for job in self._pending:
            if job.id == transfer_id:
                return job
        return None

    def _ensure_owner(self, job: TransferJob, user_id: str) -> None:
        if job.user_id != user_id:
            raise TransferNotFoundError(f"Transfer '{job.id}' not found.")

    async def _resolve_account(self, account_id: str, user_id: str) -> ResolvedAccount:
        account = await self._account_store.resolve(account_id, user_id)
        if account is None:
            raise TransferNotFoundError(f"Account '{account_id}' not found.")
        return account

    async def _probe_file_size(self, account: ResolvedAccount, path: str) -> int:
        try:
            capability = self._provider_factory.create(
                account.provider_type,
                account.credentials,
            )
            info = await capability.get_file_info(path)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Could not determine size of '%s' on account '%s'; continuing without it: %s",
                path,
                account.account_id,
                exc,
            )
            return 0
        return max(0, info.size)

    def _job_from_record(self, record: TransferRecord) -> TransferJob:
        return TransferJob(
            id=record.id,
            user_id=record.user_id,
            source_account_id=record.source_account_id,
            destination_account_id=record.destination_account_id,
            source_path=record.source_path,
            destination_path=record.destination_path,
            file_name=record.file_name,
            file_size=record.file_size,
            channel=self._channel,
            clock=self._clock,
            created_at=record.created_at,
            version=record.version,
        )


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


__all__ = [
    "CreatedTransfer",
    "DEFAULT_MAX_CONCURRENT",
    "RetriedTransfer",
    "TransferDispatcher",
    "TransferHistory",
]
