"""Main FastAPI application for the stream control API."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from control_api.config import settings
from control_api.destinations import DestinationStore
from control_api.logging_setup import configure_logging
from control_api.middleware.error_handler import setup_exception_handlers
from control_api.routes import config as config_router
from control_api.routes import devices, stream
from control_api.routes import websocket as ws_router
from control_api.services.stream_session import StreamSession
from control_api.websocket import hub
from stream_core.supervisor import FFmpegSupervisor

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown.

    Args:
        app: FastAPI application instance.
    """
    configure_logging(
        level=settings.log_level,
        log_path=settings.log_path,
        max_bytes=settings.log_file_max_bytes,
        backup_count=settings.log_file_backup_count,
    )
    logger.info(f"Starting {settings.app_name}...")

    supervisor = FFmpegSupervisor()
    app.state.session = StreamSession(supervisor, hub.publish)
    app.state.store = DestinationStore(settings.destinations_path)

    logger.info(f"{settings.app_name} ready on port {settings.port}")
    try:
        yield
    finally:
        logger.info(f"Shutting down {settings.app_name}...")
        await supervisor.shutdown()
        await app.state.session.close()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Control API for streaming one capture source to several destinations",
    version=settings.app_version,
    lifespan=lifespan,
)

# Setup exception handlers
setup_exception_handlers(app)

# Include routers
app.include_router(devices.router, prefix="/api", tags=["Devices"])
app.include_router(config_router.router, prefix="/api", tags=["Destinations"])
app.include_router(stream.router, prefix="/api", tags=["Stream Control"])

# WebSocket route (no prefix needed for /ws)
app.include_router(ws_router.router, tags=["WebSocket"])


@app.get("/health")
async def health_check():
    """Health check endpoint.

    Returns:
        dict: Health status.
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "control_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
