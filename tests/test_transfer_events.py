from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import pytest

from cloud_transfer_engine.application.services import ProgressEventForwarder
from cloud_transfer_engine.domain.progress import ProgressChannel, ProgressEvent
from cloud_transfer_engine.domain.transfer_types import TransferStatus
from cloud_transfer_engine.infrastructure.events import MqttTransferEventPublisher
from transfer_fakes import MemoryCapability, build_dispatcher, transfer_spec, wait_until


class FakeMqttClient:
    def __init__(self) -> None:
        self.published: list[tuple[str, str, int]] = []
        self.stopped = False
        self.disconnected = False

    def publish(self, topic: str, payload: str, qos: int) -> None:
        self.published.append((topic, payload, qos))

    def loop_stop(self) -> None:
        self.stopped = True

    def disconnect(self) -> None:
        self.disconnected = True


class RecordingPublisher:
    def __init__(self, fail_for: set[int] | None = None) -> None:
        self.events: list[ProgressEvent] = []
        self.closed = False
        self._fail_for = fail_for or set()

    async def publish_progress(self, event: ProgressEvent) -> None:
        if event.progress in self._fail_for:
            raise ConnectionError("broker unavailable")
        self.events.append(event)

    async def close(self) -> None:
        self.closed = True


def progress_event(job_id: str, progress: int) -> ProgressEvent:
    return ProgressEvent(
        job_id=job_id,
        status=TransferStatus.RUNNING,
        progress=progress,
        transferred=progress,
        total=100,
        speed=12.5,
    )


def test_mqtt_publisher_rejects_invalid_settings() -> None:
    with pytest.raises(ValueError):
        MqttTransferEventPublisher(engine_id="e1", broker_host=" ", client=FakeMqttClient())
    with pytest.raises(ValueError):
        MqttTransferEventPublisher(
            engine_id="e1",
            broker_host="localhost",
            qos=3,
            client=FakeMqttClient(),
        )


def test_mqtt_publisher_sends_json_payload_to_transfer_topic() -> None:
    client = FakeMqttClient()
    publisher = MqttTransferEventPublisher(
        engine_id="engine-a",
        broker_host="localhost",
        topic_prefix="/transfers-events/",
        qos=1,
        client=client,
    )

    async def scenario() -> None:
        await publisher.publish_progress(progress_event("17", 40))
        await publisher.close()

    asyncio.run(scenario())

    topic, raw_payload, qos = client.published[0]
    payload: dict[str, Any] = json.loads(raw_payload)
    assert topic == "transfers-events/engine-a/transfers/17/progress"
    assert qos == 1
    assert payload["eventType"] == "progress"
    assert payload["transferId"] == "17"
    assert payload["engineId"] == "engine-a"
    assert payload["status"] == "running"
    assert payload["progress"] == 40
    assert payload["transferSpeed"] == 12.5
    assert client.stopped and client.disconnected


def test_forwarder_keeps_running_after_publish_failure(caplog: pytest.LogCaptureFixture) -> None:
    publisher = RecordingPublisher(fail_for={20})

    async def scenario() -> None:
        channel = ProgressChannel()
        forwarder = ProgressEventForwarder(channel, publisher)
        await forwarder.start()
        await forwarder.start()
        assert channel.subscriber_count == 1

        for progress in (10, 20, 30):
            channel.publish(progress_event("job-a", progress))
        await wait_until(lambda: len(publisher.events) == 2)

        await forwarder.stop()
        assert not forwarder.running
        assert channel.subscriber_count == 0

    with caplog.at_level(logging.ERROR):
        asyncio.run(scenario())

    assert [event.progress for event in publisher.events] == [10, 30]
    assert publisher.closed
    assert "Failed to publish progress event for transfer 'job-a'" in caplog.text


def test_dispatcher_forwards_job_progress_to_publisher() -> None:
    publisher = RecordingPublisher()

    async def scenario() -> None:
        capability = MemoryCapability({"a.txt": b"abcd"})
        dispatcher, _ = build_dispatcher(capability)
        dispatcher._forwarder = ProgressEventForwarder(dispatcher.channel, publisher)
        await dispatcher.startup()

        await dispatcher.create_transfer(transfer_spec("a.txt"))
        await wait_until(
            lambda: bool(publisher.events)
            and publisher.events[-1].status is TransferStatus.COMPLETED
        )
        await dispatcher.shutdown()

    asyncio.run(scenario())

    assert publisher.events[0].status is TransferStatus.RUNNING
    assert publisher.events[-1].progress == 100
    assert publisher.closed
