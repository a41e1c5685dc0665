"""Application settings."""

from enum import StrEnum
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RepositoryBackend(StrEnum):
    """Available persistence adapters for transfer records and accounts."""

    IN_MEMORY = "in_memory"
    POSTGRES = "postgres"


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "Cloud Transfer Engine"
    api_prefix: str = ""
    engine_id: str = "engine-local"
    host: str = "0.0.0.0"
    port: int = 8080
    max_concurrent_transfers: int = 3
    progress_persist_interval_seconds: float = 1.0
    recover_transfers_on_startup: bool = True
    repository_backend: RepositoryBackend = RepositoryBackend.IN_MEMORY
    postgres_dsn: str | None = None
    postgres_pool_min_size: int = 1
    postgres_pool_max_size: int = 10
    accounts_file: Path | None = None
    aws_region: str = "us-east-1"
    s3_download_chunk_size_kb: int = 1024
    drive_api_base_url: str = "https://www.googleapis.com/drive/v3"
    drive_upload_base_url: str = "https://www.googleapis.com/upload/drive/v3"
    drive_timeout_seconds: float = 60.0
    transfer_events_mqtt_enabled: bool = False
    transfer_events_mqtt_host: str | None = None
    transfer_events_mqtt_port: int = 1883
    transfer_events_mqtt_username: str | None = None
    transfer_events_mqtt_password: str | None = None
    transfer_events_mqtt_topic_prefix: str = "cloud-transfer"
    transfer_events_mqtt_qos: int = 0

    @field_validator("api_prefix", mode="before")
    @classmethod
    def normalize_api_prefix(cls, value: object) -> object:
        """Accept prefixes with or without a leading slash."""

        if not isinstance(value, str):
            return value
        prefix = value.strip().rstrip("/")
        if prefix and not prefix.startswith("/"):
            prefix = f"/{prefix}"
        return prefix

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Ensure engine and backend-specific settings are valid."""

        if self.max_concurrent_transfers < 1:
            raise ValueError("CLOUD_TRANSFER_MAX_CONCURRENT_TRANSFERS must be >= 1.")
        if self.progress_persist_interval_seconds < 0:
            raise ValueError("CLOUD_TRANSFER_PROGRESS_PERSIST_INTERVAL_SECONDS must be >= 0.")
        if self.repository_backend == RepositoryBackend.POSTGRES and not self.postgres_dsn:
            raise ValueError(
                "CLOUD_TRANSFER_POSTGRES_DSN is required when "
                "CLOUD_TRANSFER_REPOSITORY_BACKEND=postgres."
            )
        if self.postgres_pool_min_size < 1:
            raise ValueError("CLOUD_TRANSFER_POSTGRES_POOL_MIN_SIZE must be >= 1.")
        if self.postgres_pool_max_size < self.postgres_pool_min_size:
            raise ValueError(
                "CLOUD_TRANSFER_POSTGRES_POOL_MAX_SIZE must be >= "
                "CLOUD_TRANSFER_POSTGRES_POOL_MIN_SIZE."
            )
        if self.s3_download_chunk_size_kb < 1:
            raise ValueError("CLOUD_TRANSFER_S3_DOWNLOAD_CHUNK_SIZE_KB must be >= 1.")
        if self.drive_timeout_seconds <= 0:
            raise ValueError("CLOUD_TRANSFER_DRIVE_TIMEOUT_SECONDS must be > 0.")
        if self.transfer_events_mqtt_enabled and not self.transfer_events_mqtt_host:
            raise ValueError(
                "CLOUD_TRANSFER_TRANSFER_EVENTS_MQTT_HOST is required when "
                "CLOUD_TRANSFER_TRANSFER_EVENTS_MQTT_ENABLED=true."
            )
        if self.transfer_events_mqtt_port < 1:
            raise ValueError("CLOUD_TRANSFER_TRANSFER_EVENTS_MQTT_PORT must be >= 1.")
        if self.transfer_events_mqtt_qos not in {0, 1, 2}:
            raise ValueError("CLOUD_TRANSFER_TRANSFER_EVENTS_MQTT_QOS must be one of 0, 1, 2.")
        return self

    model_config = SettingsConfigDict(env_prefix="CLOUD_TRANSFER_", extra="ignore")


__all__ = ["RepositoryBackend", "Settings"]
