# API Module - FastAPI Application
#
# JSON API over the correlation pipeline.  The app starts the pipeline
# coordinator on startup and stops its scheduler on shutdown.

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .. import __version__
from ..pipeline.coordinator import PipelineCoordinator
from .routes import router, services

logger = logging.getLogger(__name__)


def create_app(
    coordinator: Optional[PipelineCoordinator] = None,
    autostart: bool = True,
) -> FastAPI:
    """Build the API app around ``coordinator``.

    Args:
        coordinator: Pipeline to serve (a default one when None).
        autostart: Start ingestion on app startup and stop it on shutdown.
    """
    app = FastAPI(
        title="threatwatch API",
        description="Security event correlation and automated response",
        version=__version__,
    )
    app.include_router(router)

    pipeline = coordinator or PipelineCoordinator()
    services.coordinator = pipeline
    app.state.pipeline = pipeline

    if autostart:
        @app.on_event("startup")
        async def startup_event():
            logger.info("Starting pipeline in %s mode", pipeline.settings.mode)
            pipeline.start()

        @app.on_event("shutdown")
        async def shutdown_event():
            pipeline.shutdown()

    return app


def start_api_server(
    coordinator: PipelineCoordinator,
    host: str = "127.0.0.1",
    port: int = 8000,
):
    """
    Start the API server.

    Args:
        coordinator: Pipeline to serve
        host: Host to bind to (default: localhost only)
        port: Port to listen on
    """
    uvicorn.run(create_app(coordinator), host=host, port=port, log_level="info")
