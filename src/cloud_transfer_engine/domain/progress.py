"""Progress events and the queue-based channel that fans them out."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from cloud_transfer_engine.domain.transfer_types import TERMINAL_STATUSES, TransferStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    """One job mutation as seen by progress subscribers."""

    job_id: str
    status: TransferStatus
    progress: int
    transferred: int
    total: int
    speed: float

    @property
    def terminal(self) -> bool:
        """Return whether this event closes the job's lifecycle."""

        return self.status in TERMINAL_STATUSES


class ProgressSubscription:
    """Receiving end of a `ProgressChannel`.

    Iterating a subscription scoped to one job stops after that job's
    terminal event. Unscoped subscriptions run until `close()` is called.
    """

    def __init__(
        self,
        channel: ProgressChannel,
        job_id: str | None = None,
        max_pending_events: int = 0,
    ) -> None:
        self._channel = channel
        self._job_id = job_id
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue(
            maxsize=max(0, max_pending_events)
        )
        self._closed = False

    @property
    def job_id(self) -> str | None:
        return self._job_id

    @property
    def closed(self) -> bool:
        return self._closed

    def accepts(self, event: ProgressEvent) -> bool:
        return self._job_id is None or event.job_id == self._job_id

    def deliver(self, event: ProgressEvent) -> None:
        """Enqueue without blocking; raises `asyncio.QueueFull` on overflow."""

        self._queue.put_nowait(event)

    async def get(self) -> ProgressEvent | None:
        """Return the next event, or `None` once the subscription is closed."""

        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        """Detach from the channel and wake up a pending reader."""

        if self._closed:
            return
        self._closed = True
        self._channel.unsubscribe(self)
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        try:
            while True:
                event = await self.get()
                if event is None:
                    return
                yield event
                if self._job_id is not None and event.terminal:
                    return
        finally:
            self.close()


class ProgressChannel:
    """Fan progress events out to subscriber queues."""

    def __init__(self) -> None:
        self._subscriptions: list[ProgressSubscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        job_id: str | None = None,
        max_pending_events: int = 0,
    ) -> ProgressSubscription:
        """Register a new subscription, optionally scoped to one job."""

        subscription = ProgressSubscription(
            self,
            job_id=job_id,
            max_pending_events=max_pending_events,
        )
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: ProgressSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, event: ProgressEvent) -> None:
        """Deliver `event` to every matching subscriber.

        A subscriber that cannot take the event is logged and skipped; delivery
        to the others continues.
        """

        for subscription in list(self._subscriptions):
            if not subscription.accepts(event):
                continue
            try:
                subscription.deliver(event)
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Dropped progress event for transfer '%s' (status=%s, progress=%s).",
                    event.job_id,
                    event.status,
                    event.progress,
                    exc_info=True,
                )

    def close(self) -> None:
        """Close every subscription."""

        for subscription in list(self._subscriptions):
            subscription.close()


__all__ = ["ProgressChannel", "ProgressEvent", "ProgressSubscription"]
