"""Best-effort persistence of live job snapshots."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from cloud_transfer_engine.domain.entities import TransferJob
from cloud_transfer_engine.domain.errors import PersistenceError
from cloud_transfer_engine.domain.ports import TransferRepository

logger = logging.getLogger(__name__)


class TransferSnapshotWriter:
    """Write job snapshots to the repository without failing the transfer.

    Writes carry the job version so a slow, older write never overwrites a
    newer one. Progress writes are throttled per job.
    """

    def __init__(
        self,
        repository: TransferRepository,
        *,
        progress_persist_interval_seconds: float = 1.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repository = repository
        self._progress_interval = max(progress_persist_interval_seconds, 0.0)
        self._monotonic = monotonic
        self._last_write: dict[str, float] = {}

    async def persist(self, job: TransferJob) -> bool:
        """Write the full snapshot of `job`; returns whether a row changed."""

        self._last_write[job.id] = self._monotonic()
        try:
            return await self._repository.update_transfer_record(
                job.id,
                job.to_record_update(),
                version=job.version,
            )
        except PersistenceError as exc:
            logger.warning(
                "Failed to persist transfer '%s' (status=%s, version=%s): %s",
                job.id,
                job.status,
                job.version,
                exc,
            )
            return False

    async def persist_progress(self, job: TransferJob) -> bool:
        """Write a progress snapshot unless one was written recently."""

        last = self._last_write.get(job.id)
        if last is not None and self._monotonic() - last < self._progress_interval:
            return False
        return await self.persist(job)

    def forget(self, job_id: str) -> None:
        self._last_write.pop(job_id, None)


__all__ = ["TransferSnapshotWriter"]
