"""Repository implementations."""

from cloud_transfer_engine.infrastructure.repositories.in_memory_transfer_repository import (
    InMemoryTransferRepository,
)
from cloud_transfer_engine.infrastructure.repositories.postgres_transfer_repository import (
    PostgresTransferRepository,
)

__all__ = ["InMemoryTransferRepository", "PostgresTransferRepository"]
