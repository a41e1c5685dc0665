"""MQTT transfer event publisher."""

from __future__ import annotations

import asyncio
import json
import time
from datetime import UTC, datetime
from typing import Any

from cloud_transfer_engine.domain.ports import TransferEventPublisher
from cloud_transfer_engine.domain.progress import ProgressEvent


class MqttTransferEventPublisher(TransferEventPublisher):
    """Publish transfer progress events to per-transfer MQTT topics."""

    def __init__(
        self,
        engine_id: str,
        broker_host: str,
        broker_port: int = 1883,
        topic_prefix: str = "cloud-transfer",
        qos: int = 0,
        username: str | None = None,
        password: str | None = None,
        client: Any | None = None,
    ) -> None:
        if not broker_host.strip():
            raise ValueError("broker_host cannot be empty.")
        if qos not in {0, 1, 2}:
            raise ValueError("qos must be one of 0, 1, 2.")

        self._engine_id = engine_id
        self._topic_prefix = topic_prefix.strip().strip("/")
        self._qos = qos

        if client is None:
            client = self._build_client(engine_id, username, password)
            self._connect_with_retry(
                client=client,
                broker_host=broker_host,
                broker_port=broker_port,
            )
            client.loop_start()
        self._client = client

    def topic_for(self, transfer_id: str) -> str:
        return f"{self._topic_prefix}/{self._engine_id}/transfers/{transfer_id}/progress"

    async def publish_progress(self, event: ProgressEvent) -> None:
        payload: dict[str, object] = {
            "eventType": "progress",
            "timestamp": self._timestamp(),
            "engineId": self._engine_id,
            "transferId": event.job_id,
            "status": event.status.value,
            "progress": event.progress,
            "transferredBytes": event.transferred,
            "fileSize": event.total,
            "transferSpeed": event.speed,
        }
        message = json.dumps(payload, separators=(",", ":"))
        await asyncio.to_thread(
            self._client.publish,
            self.topic_for(event.job_id),
            message,
            self._qos,
        )

    async def close(self) -> None:
        """Stop the network loop and disconnect."""

        await asyncio.to_thread(self._client.loop_stop)
        await asyncio.to_thread(self._client.disconnect)

    def _build_client(self, engine_id: str, username: str | None, password: str | None) -> Any:
        try:
            import paho.mqtt.client as mqtt  # type: ignore[import-untyped]
        except ModuleNotFoundError as exc:
            raise RuntimeError(
                "paho-mqtt is required for MQTT transfer events. "
                "Install project dependencies first."
            ) from exc

        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"cloud-transfer-{engine_id}",
        )
        if username is not None:
            client.username_pw_set(username=username, password=password)
        return client

    def _timestamp(self) -> str:
        return datetime.now(tz=UTC).isoformat()

    def _connect_with_retry(
        self,
        client: Any,
        broker_host: str,
        broker_port: int,
        max_attempts: int = 20,
    ) -> None:
        """Connect to MQTT broker with bounded retry/backoff."""

        delay_seconds = 0.5
        last_error: Exception | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                client.connect(host=broker_host, port=broker_port, keepalive=60)
                return
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                if attempt == max_attempts:
                    break
                time.sleep(delay_seconds)
                delay_seconds = min(3.0, delay_seconds * 1.5)

        raise RuntimeError(
            f"Failed to connect to MQTT broker {broker_host}:{broker_port} "
            f"after {max_attempts} attempts."
        ) from last_error


__all__ = ["MqttTransferEventPublisher"]
