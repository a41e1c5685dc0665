"""Cloud provider capability implementations."""

from cloud_transfer_engine.infrastructure.providers.drive_provider import (
    DriveProviderCapability,
    export_mime_type,
)
from cloud_transfer_engine.infrastructure.providers.factory import (
    DefaultProviderFactory,
    build_provider_factory,
)
from cloud_transfer_engine.infrastructure.providers.s3_provider import S3ProviderCapability

__all__ = [
    "DefaultProviderFactory",
    "DriveProviderCapability",
    "S3ProviderCapability",
    "build_provider_factory",
    "export_mime_type",
]
