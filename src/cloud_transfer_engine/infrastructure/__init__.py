"""Infrastructure layer public API."""

from cloud_transfer_engine.infrastructure.events import MqttTransferEventPublisher
from cloud_transfer_engine.infrastructure.providers import (
    DefaultProviderFactory,
    DriveProviderCapability,
    S3ProviderCapability,
    build_provider_factory,
)
from cloud_transfer_engine.infrastructure.repositories import (
    InMemoryTransferRepository,
    PostgresTransferRepository,
)

__all__ = [
    "DefaultProviderFactory",
    "DriveProviderCapability",
    "InMemoryTransferRepository",
    "MqttTransferEventPublisher",
    "PostgresTransferRepository",
    "S3ProviderCapability",
    "build_provider_factory",
]
