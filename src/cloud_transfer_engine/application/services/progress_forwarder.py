"""Background task relaying progress events to an outbound publisher."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from cloud_transfer_engine.domain.ports import TransferEventPublisher
from cloud_transfer_engine.domain.progress import ProgressChannel, ProgressSubscription

logger = logging.getLogger(__name__)


class ProgressEventForwarder:
    """Subscribe to every job's progress and hand events to a publisher."""

    def __init__(
        self,
        channel: ProgressChannel,
        publisher: TransferEventPublisher,
    ) -> None:
        self._channel = channel
        self._publisher = publisher
        self._subscription: ProgressSubscription | None = None
        self._task: asyncio.Task[None] | None = None
        self._lifecycle_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start forwarding if not already running."""

        async with self._lifecycle_lock:
            if self.running:
                return
            self._subscription = self._channel.subscribe()
            self._task = asyncio.create_task(
                self._run_loop(self._subscription),
                name="transfer-progress-forwarder",
            )

    async def stop(self) -> None:
        """Flush queued events, stop forwarding and close the publisher."""

        async with self._lifecycle_lock:
            task = self._task
            subscription = self._subscription
            self._task = None
            self._subscription = None

        if subscription is not None:
            subscription.close()
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task
        await self._publisher.close()

    async def _run_loop(self, subscription: ProgressSubscription) -> None:
        async for event in subscription:
            try:
                await self._publisher.publish_progress(event)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Failed to publish progress event for transfer '%s'.",
                    event.job_id,
                )


__all__ = ["ProgressEventForwarder"]
