"""Cooperative cancellation for running transfer pipelines."""

from __future__ import annotations

import asyncio

from cloud_transfer_engine.domain.errors import TransferCancelledError


class CancellationToken:
    """One-shot flag a pipeline checks at each await boundary."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Set the token; later calls keep the first reason."""

        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TransferCancelledError(self._reason or "Transfer cancelled")


__all__ = ["CancellationToken"]
