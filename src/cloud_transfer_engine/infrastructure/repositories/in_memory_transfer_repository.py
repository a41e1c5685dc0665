"""In-memory repository implementation for transfers and accounts."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import replace
from datetime import UTC, datetime

from cloud_transfer_engine.domain.ports import AccountStore, TransferRepository
from cloud_transfer_engine.domain.providers import ResolvedAccount
from cloud_transfer_engine.domain.records import (
    TransferDraft,
    TransferRecord,
    TransferRecordUpdate,
    TransferStatistics,
)
from cloud_transfer_engine.domain.transfer_types import TransferStatus


class InMemoryTransferRepository(TransferRepository, AccountStore):
    """Simple repository for local development and tests."""

    def __init__(self, accounts: Iterable[ResolvedAccount] = ()) -> None:
        self._records: dict[str, TransferRecord] = {}
        self._accounts: dict[str, ResolvedAccount] = {
            account.account_id: account for account in accounts
        }
        self._next_id = 1
        self._lock = asyncio.Lock()

    def add_account(self, account: ResolvedAccount) -> None:
        """Register or replace a cloud account."""

        self._accounts[account.account_id] = account

    async def resolve(self, account_id: str, user_id: str) -> ResolvedAccount | None:
        """Return the account when it belongs to `user_id`."""

        account = self._accounts.get(account_id)
        if account is None or account.user_id != user_id:
            return None
        return account

    async def create_transfer_record(self, draft: TransferDraft) -> str:
        """Insert a queued record with the next integer id."""

        async with self._lock:
            transfer_id = str(self._next_id)
            self._next_id += 1
            self._records[transfer_id] = TransferRecord(
                id=transfer_id,
                user_id=draft.user_id,
                source_account_id=draft.source_account_id,
                destination_account_id=draft.destination_account_id,
                source_path=draft.source_path,
                destination_path=draft.destination_path,
                file_name=draft.file_name,
                file_size=draft.file_size,
                priority=draft.priority,
                max_retries=draft.max_retries,
                created_at=datetime.now(tz=UTC),
            )
            return transfer_id

    async def update_transfer_record(
        self,
        transfer_id: str,
        update: TransferRecordUpdate,
        version: int | None = None,
    ) -> bool:
        """Apply a partial update, skipping writes older than the stored one."""

        async with self._lock:
            record = self._records.get(transfer_id)
            if record is None:
                return False
            if version is not None and version < record.version:
                return False
            for name, value in update.changes().items():
                setattr(record, name, value)
            record.version = version if version is not None else record.version + 1
            return True

    async def get_transfer_record(
        self,
        transfer_id: str,
        user_id: str | None = None,
    ) -> TransferRecord | None:
        """Return a copy of one record."""

        record = self._records.get(transfer_id)
        if record is None:
            return None
        if user_id is not None and record.user_id != user_id:
            return None
        return replace(record)

    async def list_transfer_records(
        self,
        user_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        status: TransferStatus | None = None,
    ) -> list[TransferRecord]:
        """Return the user's records, newest first."""

        async with self._lock:
            records = [
                record
                for record in self._records.values()
                if record.user_id == user_id and (status is None or record.status is status)
            ]
        records.reverse()
        return [replace(record) for record in records[offset : offset + limit]]

    async def list_records_by_status(self, status: TransferStatus) -> list[TransferRecord]:
        """Return records in `status` in insertion order."""

        async with self._lock:
            return [replace(record) for record in self._records.values() if record.status is status]

    async def get_transfer_statistics(self, user_id: str) -> TransferStatistics:
        """Aggregate the user's records."""

        async with self._lock:
            records = [record for record in self._records.values() if record.user_id == user_id]

        def count(status: TransferStatus) -> int:
            return sum(1 for record in records if record.status is status)

        return TransferStatistics(
            total=len(records),
            completed=count(TransferStatus.COMPLETED),
            failed=count(TransferStatus.FAILED),
            running=count(TransferStatus.RUNNING),
            queued=count(TransferStatus.QUEUED),
            cancelled=count(TransferStatus.CANCELLED),
            total_bytes=sum(record.file_size for record in records),
        )


__all__ = ["InMemoryTransferRepository"]
