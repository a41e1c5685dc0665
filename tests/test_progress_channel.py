from __future__ import annotations

import asyncio
import logging

import pytest

from cloud_transfer_engine.domain.progress import ProgressChannel, ProgressEvent
from cloud_transfer_engine.domain.transfer_types import TransferStatus


def event(
    job_id: str,
    progress: int,
    status: TransferStatus = TransferStatus.RUNNING,
) -> ProgressEvent:
    return ProgressEvent(
        job_id=job_id,
        status=status,
        progress=progress,
        transferred=progress * 10,
        total=1000,
        speed=0.0,
    )


def test_job_subscription_filters_and_ends_after_terminal_event() -> None:
    async def scenario() -> list[int]:
        channel = ProgressChannel()
        subscription = channel.subscribe("job-a")

        channel.publish(event("job-a", 10))
        channel.publish(event("job-b", 99))
        channel.publish(event("job-a", 60))
        channel.publish(event("job-a", 100, TransferStatus.COMPLETED))
        channel.publish(event("job-a", 100, TransferStatus.COMPLETED))

        received = [item.progress async for item in subscription]
        assert channel.subscriber_count == 0
        return received

    assert asyncio.run(scenario()) == [10, 60, 100]


def test_unscoped_subscription_runs_until_closed() -> None:
    async def scenario() -> list[str]:
        channel = ProgressChannel()
        subscription = channel.subscribe()

        channel.publish(event("job-a", 100, TransferStatus.COMPLETED))
        channel.publish(event("job-b", 5))
        subscription.close()

        return [item.job_id async for item in subscription]

    assert asyncio.run(scenario()) == ["job-a", "job-b"]


def test_failing_subscriber_is_skipped_and_others_still_receive(
    caplog: pytest.LogCaptureFixture,
) -> None:
    async def scenario() -> tuple[int, int]:
        channel = ProgressChannel()
        bounded = channel.subscribe(max_pending_events=1)
        healthy = channel.subscribe()

        channel.publish(event("job-a", 1))
        channel.publish(event("job-a", 2))
        channel.publish(event("job-a", 3))

        return bounded._queue.qsize(), healthy._queue.qsize()

    with caplog.at_level(logging.WARNING):
        bounded_size, healthy_size = asyncio.run(scenario())

    assert bounded_size == 1
    assert healthy_size == 3
    assert "Dropped progress event for transfer 'job-a'" in caplog.text


def test_close_channel_wakes_pending_reader() -> None:
    async def scenario() -> object:
        channel = ProgressChannel()
        subscription = channel.subscribe()
        reader = asyncio.create_task(subscription.get())
        await asyncio.sleep(0)

        channel.close()
        return await asyncio.wait_for(reader, timeout=1.0)

    assert asyncio.run(scenario()) is None
