"""Dependency providers for FastAPI routes."""

from functools import lru_cache

from fastapi import Header, HTTPException

from cloud_transfer_engine.application.services import TransferDispatcher
from cloud_transfer_engine.bootstrap import build_dispatcher
from cloud_transfer_engine.config import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return singleton settings."""

    return Settings()


@lru_cache(maxsize=1)
def get_dispatcher() -> TransferDispatcher:
    """Return singleton engine graph."""

    return build_dispatcher(get_settings())


def get_user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    """Return the caller identity established by the upstream auth layer."""

    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


__all__ = ["get_dispatcher", "get_settings", "get_user_id"]
