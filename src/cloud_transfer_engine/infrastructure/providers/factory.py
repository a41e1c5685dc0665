"""Provider capability registry keyed by provider type."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from cloud_transfer_engine.domain.errors import UnsupportedProviderError
from cloud_transfer_engine.domain.ports import ProviderCapability, ProviderFactory
from cloud_transfer_engine.domain.providers import ProviderType
from cloud_transfer_engine.infrastructure.providers.drive_provider import (
    DEFAULT_DRIVE_API_BASE_URL,
    DEFAULT_DRIVE_UPLOAD_BASE_URL,
    DriveProviderCapability,
)
from cloud_transfer_engine.infrastructure.providers.s3_provider import S3ProviderCapability

CapabilityBuilder = Callable[[dict[str, Any]], ProviderCapability]


class DefaultProviderFactory(ProviderFactory):
    """Build capabilities from registered per-type builders."""

    def __init__(self, builders: Mapping[str, CapabilityBuilder] | None = None) -> None:
        self._builders: dict[str, CapabilityBuilder] = dict(builders or {})

    @property
    def provider_types(self) -> list[str]:
        return sorted(self._builders)

    def register(self, provider_type: str, builder: CapabilityBuilder) -> None:
        """Register or replace the builder for `provider_type`."""

        self._builders[provider_type] = builder

    def create(self, provider_type: str, credentials: dict[str, Any]) -> ProviderCapability:
        builder = self._builders.get(provider_type)
        if builder is None:
            raise UnsupportedProviderError(f"Unsupported provider type: {provider_type}")
        return builder(credentials)


def build_provider_factory(
    *,
    aws_region: str = "us-east-1",
    s3_chunk_size_bytes: int = 1024 * 1024,
    drive_api_base_url: str | None = None,
    drive_upload_base_url: str | None = None,
    drive_timeout_seconds: float = 60.0,
) -> DefaultProviderFactory:
    """Return a factory with the bundled S3 and Google Drive capabilities."""

    def build_s3(credentials: dict[str, Any]) -> ProviderCapability:
        return S3ProviderCapability(
            credentials,
            default_region=aws_region,
            chunk_size_bytes=s3_chunk_size_bytes,
        )

    def build_drive(credentials: dict[str, Any]) -> ProviderCapability:
        return DriveProviderCapability(
            credentials,
            api_base_url=drive_api_base_url or DEFAULT_DRIVE_API_BASE_URL,
            upload_base_url=drive_upload_base_url or DEFAULT_DRIVE_UPLOAD_BASE_URL,
            timeout_seconds=drive_timeout_seconds,
        )

    return DefaultProviderFactory(
        {
            ProviderType.AWS_S3: build_s3,
            ProviderType.GOOGLE_DRIVE: build_drive,
        }
    )


__all__ = ["CapabilityBuilder", "DefaultProviderFactory", "build_provider_factory"]
