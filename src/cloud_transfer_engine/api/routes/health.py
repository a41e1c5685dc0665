"""Health check routes."""

from fastapi import APIRouter, Depends

from cloud_transfer_engine.api.dependencies import get_dispatcher
from cloud_transfer_engine.application.services import TransferDispatcher

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz(
    dispatcher: TransferDispatcher = Depends(get_dispatcher),
) -> dict[str, object]:
    """Liveness probe with dispatcher occupancy."""

    queue = dispatcher.get_queue_status()
    return {"status": "ok", "activeTransfers": queue.active, "queuedTransfers": queue.queued}


__all__ = ["router"]
