"""Transfer event publisher implementations."""

from cloud_transfer_engine.infrastructure.events.mqtt_transfer_event_publisher import (
    MqttTransferEventPublisher,
)

__all__ = ["MqttTransferEventPublisher"]
