"""PostgreSQL repository implementation for transfers and accounts."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from cloud_transfer_engine.domain.errors import PersistenceError
from cloud_transfer_engine.domain.ports import AccountStore, TransferRepository
from cloud_transfer_engine.domain.providers import ResolvedAccount
from cloud_transfer_engine.domain.records import (
    TransferDraft,
    TransferRecord,
    TransferRecordUpdate,
    TransferStatistics,
)
from cloud_transfer_engine.domain.transfer_types import TransferStatus

_SELECT_COLUMNS = """
    id,
    user_id,
    source_account_id,
    destination_account_id,
    source_file_path,
    destination_file_path,
    file_name,
    file_size,
    status,
    progress,
    transferred_bytes,
    transfer_speed,
    error_message,
    priority,
    retry_count,
    max_retries,
    version,
    created_at,
    started_at,
    completed_at
"""

_UPDATE_COLUMNS = {
    "status": "status",
    "progress": "progress",
    "file_size": "file_size",
    "transferred_bytes": "transferred_bytes",
    "transfer_speed": "transfer_speed",
    "error": "error_message",
    "started_at": "started_at",
    "completed_at": "completed_at",
}


@contextmanager
def _driver_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        raise PersistenceError(f"Failed to {operation}: {exc}") from exc


class PostgresTransferRepository(TransferRepository, AccountStore):
    """Transfer repository backed by PostgreSQL."""

    def __init__(
        self,
        dsn: str,
        min_pool_size: int = 1,
        max_pool_size: int = 10,
    ) -> None:
        self._dsn = dsn
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def resolve(self, account_id: str, user_id: str) -> ResolvedAccount | None:
        """Return the active account when it belongs to `user_id`."""

        pool = await self._get_pool()
        with _driver_errors("resolve account"):
            row = await pool.fetchrow(
                """
                SELECT id, user_id, provider_type, account_name, credentials
                FROM cloud_accounts
                WHERE id = $1 AND user_id = $2 AND is_active
                """,
                account_id,
                user_id,
            )
        if row is None:
            return None
        return ResolvedAccount(
            account_id=row["id"],
            user_id=row["user_id"],
            provider_type=row["provider_type"],
            credentials=self._decode_dict(row["credentials"]),
            account_name=row["account_name"],
        )

    async def save_account(self, account: ResolvedAccount) -> None:
        """Insert or replace a cloud account."""

        pool = await self._get_pool()
        with _driver_errors("save account"):
            await pool.execute(
                """
                INSERT INTO cloud_accounts (id, user_id, provider_type, account_name, credentials)
                VALUES ($1, $2, $3, $4, $5::jsonb)
                ON CONFLICT (id) DO UPDATE SET
                    user_id = EXCLUDED.user_id,
                    provider_type = EXCLUDED.provider_type,
                    account_name = EXCLUDED.account_name,
                    credentials = EXCLUDED.credentials,
                    is_active = TRUE,
                    updated_at = NOW()
                """,
                account.account_id,
                account.user_id,
                account.provider_type,
                account.account_name,
                json.dumps(account.credentials),
            )

    async def create_transfer_record(self, draft: TransferDraft) -> str:
        """Insert a queued record and return its id."""

        pool = await self._get_pool()
        with _driver_errors("create transfer record"):
            transfer_id = await pool.fetchval(
                """
                INSERT INTO transfers (
                    user_id,
                    source_account_id,
                    destination_account_id,
                    source_file_path,
                    destination_file_path,
                    file_name,
                    file_size,
                    status,
                    priority,
                    max_retries
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                RETURNING id
                """,
                draft.user_id,
                draft.source_account_id,
                draft.destination_account_id,
                draft.source_path,
                draft.destination_path,
                draft.file_name,
                draft.file_size,
                TransferStatus.QUEUED.value,
                draft.priority,
                draft.max_retries,
            )
        return str(transfer_id)

    async def update_transfer_record(
        self,
        transfer_id: str,
        update: TransferRecordUpdate,
        version: int | None = None,
    ) -> bool:
        """Apply a partial update guarded by the record version."""

        row_id = _parse_id(transfer_id)
        if row_id is None:
            return False

        assignments: list[str] = []
        values: list[Any] = [row_id, version]
        for name, value in update.changes().items():
            values.append(value.value if isinstance(value, TransferStatus) else value)
            assignments.append(f"{_UPDATE_COLUMNS[name]} = ${len(values)}")
        assignments.append("version = COALESCE($2::bigint, version + 1)")
        assignments.append("updated_at = NOW()")

        pool = await self._get_pool()
        with _driver_errors("update transfer record"):
            result = await pool.execute(
                f"""
                UPDATE transfers
                SET {", ".join(assignments)}
                WHERE id = $1
                  AND ($2::bigint IS NULL OR version <= $2::bigint)
                """,
                *values,
            )
        return result.endswith(" 1")

    async def get_transfer_record(
        self,
        transfer_id: str,
        user_id: str | None = None,
    ) -> TransferRecord | None:
        """Return one record, optionally restricted to its owner."""

        row_id = _parse_id(transfer_id)
        if row_id is None:
            return None

        pool = await self._get_pool()
        with _driver_errors("read transfer record"):
            row = await pool.fetchrow(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM transfers
                WHERE id = $1 AND ($2::text IS NULL OR user_id = $2::text)
                """,
                row_id,
                user_id,
            )
        if row is None:
            return None
        return self._to_record(row)

    async def list_transfer_records(
        self,
        user_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        status: TransferStatus | None = None,
    ) -> list[TransferRecord]:
        """Return a user's records, newest first."""

        pool = await self._get_pool()
        with _driver_errors("list transfer records"):
            rows = await pool.fetch(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM transfers
                WHERE user_id = $1 AND ($2::text IS NULL OR status = $2::text)
                ORDER BY created_at DESC, id DESC
                LIMIT $3 OFFSET $4
                """,
                user_id,
                status.value if status is not None else None,
                max(limit, 0),
                max(offset, 0),
            )
        return [self._to_record(row) for row in rows]

    async def list_records_by_status(self, status: TransferStatus) -> list[TransferRecord]:
        """Return every record in `status`, oldest first."""

        pool = await self._get_pool()
        with _driver_errors("list transfer records by status"):
            rows = await pool.fetch(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM transfers
                WHERE status = $1
                ORDER BY created_at ASC, id ASC
                """,
                status.value,
            )
        return [self._to_record(row) for row in rows]

    async def get_transfer_statistics(self, user_id: str) -> TransferStatistics:
        """Aggregate a user's records by status."""

        pool = await self._get_pool()
        with _driver_errors("aggregate transfer statistics"):
            row = await pool.fetchrow(
                """
                SELECT
                    COUNT(*) AS total,
                    COUNT(*) FILTER (WHERE status = 'completed') AS completed,
                    COUNT(*) FILTER (WHERE status = 'failed') AS failed,
                    COUNT(*) FILTER (WHERE status = 'running') AS running,
                    COUNT(*) FILTER (WHERE status = 'queued') AS queued,
                    COUNT(*) FILTER (WHERE status = 'cancelled') AS cancelled,
                    COALESCE(SUM(file_size), 0) AS total_bytes
                FROM transfers
                WHERE user_id = $1
                """,
                user_id,
            )
        if row is None:
            return TransferStatistics()
        return TransferStatistics(
            total=int(row["total"]),
            completed=int(row["completed"]),
            failed=int(row["failed"]),
            running=int(row["running"]),
            queued=int(row["queued"]),
            cancelled=int(row["cancelled"]),
            total_bytes=int(row["total_bytes"]),
        )

    async def close(self) -> None:
        """Close the pool if it was initialized."""

        pool = self._pool
        self._pool = None
        if pool is not None:
            await pool.close()

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool

        async with self._pool_lock:
            if self._pool is None:
                with _driver_errors("connect to PostgreSQL"):
                    pool = await asyncpg.create_pool(
                        dsn=self._dsn,
                        min_size=self._min_pool_size,
                        max_size=self._max_pool_size,
                    )
                    await self._ensure_schema(pool)
                self._pool = pool
        assert self._pool is not None
        return self._pool

    async def _ensure_schema(self, pool: asyncpg.Pool) -> None:
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS cloud_accounts (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                provider_type TEXT NOT NULL,
                account_name TEXT,
                credentials JSONB NOT NULL DEFAULT '{}'::jsonb,
                is_active BOOLEAN NOT NULL DEFAULT TRUE,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            CREATE INDEX IF NOT EXISTS idx_cloud_accounts_user_id
                ON cloud_accounts (user_id);
            """
        )
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS transfers (
                id BIGSERIAL PRIMARY KEY,
                user_id TEXT NOT NULL,
                source_account_id TEXT NOT NULL,
                destination_account_id TEXT NOT NULL,
                source_file_path TEXT NOT NULL,
                destination_file_path TEXT NOT NULL,
                file_name TEXT NOT NULL,
                file_size BIGINT NOT NULL DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'queued',
                progress INTEGER NOT NULL DEFAULT 0,
                transferred_bytes BIGINT NOT NULL DEFAULT 0,
                transfer_speed DOUBLE PRECISION NOT NULL DEFAULT 0,
                error_message TEXT,
                priority INTEGER NOT NULL DEFAULT 0,
                retry_count INTEGER NOT NULL DEFAULT 0,
                max_retries INTEGER NOT NULL DEFAULT 3,
                version BIGINT NOT NULL DEFAULT 0,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ
            );
            CREATE INDEX IF NOT EXISTS idx_transfers_user_created
                ON transfers (user_id, created_at DESC);
            CREATE INDEX IF NOT EXISTS idx_transfers_status
                ON transfers (status, created_at);
            """
        )

    def _to_record(self, row: asyncpg.Record) -> TransferRecord:
        return TransferRecord(
            id=str(row["id"]),
            user_id=row["user_id"],
            source_account_id=row["source_account_id"],
            destination_account_id=row["destination_account_id"],
            source_path=row["source_file_path"],
            destination_path=row["destination_file_path"],
            file_name=row["file_name"],
            file_size=int(row["file_size"]),
            status=TransferStatus(row["status"]),
            progress=int(row["progress"]),
            transferred_bytes=int(row["transferred_bytes"]),
            transfer_speed=float(row["transfer_speed"]),
            error=row["error_message"],
            priority=int(row["priority"]),
            retry_count=int(row["retry_count"]),
            max_retries=int(row["max_retries"]),
            version=int(row["version"]),
            created_at=row["created_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )

    def _decode_dict(self, value: object) -> dict[str, Any]:
        decoded = json.loads(value) if isinstance(value, str) else value
        if not isinstance(decoded, dict):
            raise TypeError(f"Expected dict payload for credentials, got {type(decoded)!r}.")
        return decoded


def _parse_id(transfer_id: str) -> int | None:
    if not transfer_id.isdigit():
        return None
    return int(transfer_id)


__all__ = ["PostgresTransferRepository"]
