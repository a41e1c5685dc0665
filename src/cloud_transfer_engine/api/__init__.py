"""HTTP API layer."""

from cloud_transfer_engine.api.router import api_router

__all__ = ["api_router"]
