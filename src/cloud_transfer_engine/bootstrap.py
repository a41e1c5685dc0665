"""Application bootstrap/wiring."""

import logging
from dataclasses import dataclass
from pathlib import Path

from pydantic import TypeAdapter

from cloud_transfer_engine.application.services import TransferDispatcher
from cloud_transfer_engine.config import RepositoryBackend, Settings
from cloud_transfer_engine.domain.ports import (
    AccountStore,
    TransferEventPublisher,
    TransferRepository,
)
from cloud_transfer_engine.domain.providers import ResolvedAccount
from cloud_transfer_engine.domain.transfer_models import CloudAccountModel
from cloud_transfer_engine.infrastructure.events import MqttTransferEventPublisher
from cloud_transfer_engine.infrastructure.providers import build_provider_factory
from cloud_transfer_engine.infrastructure.repositories import (
    InMemoryTransferRepository,
    PostgresTransferRepository,
)

logger = logging.getLogger(__name__)

_ACCOUNTS_ADAPTER = TypeAdapter(list[CloudAccountModel])


@dataclass(slots=True, frozen=True)
class _Stores:
    repository: TransferRepository
    account_store: AccountStore


def load_accounts(path: Path) -> list[ResolvedAccount]:
    """Read cloud accounts from a JSON array file."""

    entries = _ACCOUNTS_ADAPTER.validate_json(path.read_bytes())
    return [entry.to_account() for entry in entries]


def _build_stores(settings: Settings) -> _Stores:
    if settings.repository_backend == RepositoryBackend.POSTGRES:
        if settings.postgres_dsn is None:
            raise ValueError(
                "CLOUD_TRANSFER_POSTGRES_DSN is required when "
                "CLOUD_TRANSFER_REPOSITORY_BACKEND=postgres."
            )
        if settings.accounts_file is not None:
            logger.warning(
                "CLOUD_TRANSFER_ACCOUNTS_FILE is ignored for the postgres backend; "
                "accounts are read from the cloud_accounts table."
            )
        repository = PostgresTransferRepository(
            dsn=settings.postgres_dsn,
            min_pool_size=settings.postgres_pool_min_size,
            max_pool_size=settings.postgres_pool_max_size,
        )
        return _Stores(repository=repository, account_store=repository)

    accounts = load_accounts(settings.accounts_file) if settings.accounts_file else []
    if accounts:
        logger.info("Loaded %s cloud account(s) from '%s'.", len(accounts), settings.accounts_file)
    memory_repository = InMemoryTransferRepository(accounts)
    return _Stores(repository=memory_repository, account_store=memory_repository)


def _build_event_publisher(settings: Settings) -> TransferEventPublisher | None:
    if not settings.transfer_events_mqtt_enabled:
        return None
    if settings.transfer_events_mqtt_host is None:
        raise ValueError(
            "CLOUD_TRANSFER_TRANSFER_EVENTS_MQTT_HOST is required when "
            "CLOUD_TRANSFER_TRANSFER_EVENTS_MQTT_ENABLED=true."
        )
    return MqttTransferEventPublisher(
        engine_id=settings.engine_id,
        broker_host=settings.transfer_events_mqtt_host,
        broker_port=settings.transfer_events_mqtt_port,
        topic_prefix=settings.transfer_events_mqtt_topic_prefix,
        qos=settings.transfer_events_mqtt_qos,
        username=settings.transfer_events_mqtt_username,
        password=settings.transfer_events_mqtt_password,
    )


def build_dispatcher(settings: Settings) -> TransferDispatcher:
    """Compose the engine graph."""

    stores = _build_stores(settings)
    provider_factory = build_provider_factory(
        aws_region=settings.aws_region,
        s3_chunk_size_bytes=settings.s3_download_chunk_size_kb * 1024,
        drive_api_base_url=settings.drive_api_base_url,
        drive_upload_base_url=settings.drive_upload_base_url,
        drive_timeout_seconds=settings.drive_timeout_seconds,
    )
    return TransferDispatcher(
        repository=stores.repository,
        account_store=stores.account_store,
        provider_factory=provider_factory,
        max_concurrent=settings.max_concurrent_transfers,
        progress_persist_interval_seconds=settings.progress_persist_interval_seconds,
        event_publisher=_build_event_publisher(settings),
        recover_on_startup=settings.recover_transfers_on_startup,
    )


__all__ = ["build_dispatcher", "load_accounts"]
