"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from cloud_transfer_engine import __version__
from cloud_transfer_engine.api import api_router
from cloud_transfer_engine.api.dependencies import get_dispatcher, get_settings


def create_app() -> FastAPI:
    """Build FastAPI application."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        """Start the dispatcher at startup and drain it at shutdown."""

        dispatcher = get_dispatcher()
        await dispatcher.startup()
        try:
            yield
        finally:
            await dispatcher.shutdown()

    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


def run() -> None:
    """Run local development server."""

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = get_settings()
    uvicorn.run(
        "cloud_transfer_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


__all__ = ["app", "create_app", "run"]
