"""Global error handling middleware."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stream_core.exceptions import (
    AlreadyRunning,
    InvalidRequest,
    MissingBinary,
    StartupFailed,
    StreamError,
)

logger = logging.getLogger(__name__)


def status_code_for(exc: StreamError) -> int:
    """Map a streaming error to an HTTP status code.

    Args:
        exc: Streaming error.

    Returns:
        int: HTTP status code.
    """
    if isinstance(exc, InvalidRequest):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, AlreadyRunning):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, MissingBinary):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def setup_exception_handlers(app: FastAPI) -> None:
    """Setup global exception handlers for the app.

    Args:
        app: FastAPI application instance.
    """

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors."""
        logger.warning(f"Validation error: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors(), "message": "Validation error"},
        )

    @app.exception_handler(StreamError)
    async def stream_exception_handler(request: Request, exc: StreamError):
        """Handle streaming errors."""
        code = status_code_for(exc)
        if code >= 500:
            logger.error(f"Stream error: {exc}")
        else:
            logger.warning(f"Stream request rejected: {exc}")

        content = {"detail": str(exc), "error": type(exc).__name__}
        if isinstance(exc, StartupFailed) and exc.diagnostic_tail:
            content["diagnostics"] = exc.diagnostic_tail
        return JSONResponse(status_code=code, content=content)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "message": str(exc) if app.debug else "An error occurred",
            },
        )
