"""Transfer management routes."""

from __future__ import annotations

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from cloud_transfer_engine.api.dependencies import get_dispatcher, get_user_id
from cloud_transfer_engine.application.services import TransferDispatcher
from cloud_transfer_engine.domain.errors import (
    TransferNotFoundError,
    TransferValidationError,
)
from cloud_transfer_engine.domain.transfer_models import (
    CancelTransferResponse,
    CreateTransferRequest,
    CreateTransferResponse,
    PaginationResponse,
    QueueStatusResponse,
    RetryTransferResponse,
    TransferListResponse,
    TransferStatisticsResponse,
    TransferStatsResponse,
    TransferSummaryResponse,
)
from cloud_transfer_engine.domain.transfer_types import TransferStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transfers", tags=["transfers"])


def _raise_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, TransferNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, TransferValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    logger.exception("Unexpected transfer error.", exc_info=exc)
    raise HTTPException(status_code=500, detail="Unexpected transfer error")


@router.post("", response_model=CreateTransferResponse, status_code=201)
async def create_transfer(
    request: CreateTransferRequest,
    user_id: str = Depends(get_user_id),
    dispatcher: TransferDispatcher = Depends(get_dispatcher),
) -> CreateTransferResponse:
    """Queue a transfer between two of the caller's accounts."""

    try:
        created = await dispatcher.create_transfer(request.to_spec(user_id))
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return CreateTransferResponse(transfer_id=created.transfer_id, status=created.status)


@router.get("", response_model=TransferListResponse, status_code=200)
async def list_transfers(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    status: TransferStatus | None = Query(default=None),
    user_id: str = Depends(get_user_id),
    dispatcher: TransferDispatcher = Depends(get_dispatcher),
) -> TransferListResponse:
    """List the caller's transfers with statistics and queue occupancy."""

    try:
        history = await dispatcher.list_transfers(
            user_id,
            limit=limit,
            offset=offset,
            status=status,
        )
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return TransferListResponse(
        transfers=[TransferSummaryResponse.from_record(record) for record in history.records],
        pagination=PaginationResponse(
            limit=history.limit,
            offset=history.offset,
            has_more=history.has_more,
        ),
        statistics=TransferStatisticsResponse.from_statistics(history.statistics),
        queue=QueueStatusResponse.from_queue_status(history.queue),
    )


@router.get("/queue/status", response_model=QueueStatusResponse, status_code=200)
async def get_queue_status(
    _: str = Depends(get_user_id),
    dispatcher: TransferDispatcher = Depends(get_dispatcher),
) -> QueueStatusResponse:
    """Return dispatcher occupancy."""

    return QueueStatusResponse.from_queue_status(dispatcher.get_queue_status())


@router.get("/{transfer_id}", response_model=TransferStatsResponse, status_code=200)
async def get_transfer(
    transfer_id: str = Path(...),
    user_id: str = Depends(get_user_id),
    dispatcher: TransferDispatcher = Depends(get_dispatcher),
) -> TransferStatsResponse:
    """Return live or persisted status of one transfer."""

    try:
        stats = await dispatcher.get_transfer_status(transfer_id, user_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return TransferStatsResponse.from_stats(stats)


@router.put("/{transfer_id}/cancel", response_model=CancelTransferResponse, status_code=200)
async def cancel_transfer(
    transfer_id: str = Path(...),
    user_id: str = Depends(get_user_id),
    dispatcher: TransferDispatcher = Depends(get_dispatcher),
) -> CancelTransferResponse:
    """Cancel a queued or running transfer."""

    try:
        status = await dispatcher.cancel_transfer(transfer_id, user_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return CancelTransferResponse(transfer_id=transfer_id, status=status)


@router.put("/{transfer_id}/retry", response_model=RetryTransferResponse, status_code=201)
async def retry_transfer(
    transfer_id: str = Path(...),
    user_id: str = Depends(get_user_id),
    dispatcher: TransferDispatcher = Depends(get_dispatcher),
) -> RetryTransferResponse:
    """Queue a new transfer repeating a failed one."""

    try:
        retried = await dispatcher.retry_transfer(transfer_id, user_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return RetryTransferResponse(
        new_transfer_id=retried.new_transfer_id,
        original_transfer_id=retried.original_transfer_id,
    )


__all__ = ["router"]
