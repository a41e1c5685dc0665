"""Route modules public API."""

from cloud_transfer_engine.api.routes.health import router as health_router
from cloud_transfer_engine.api.routes.transfers import router as transfers_router

__all__ = ["health_router", "transfers_router"]
