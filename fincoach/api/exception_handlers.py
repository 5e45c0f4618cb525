"""
Global exception handlers for FastAPI.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import structlog

from fincoach.core.exceptions import (
    ConfigurationError,
    FinCoachError,
    NoActiveNotebookError,
    NotebookNotFoundError,
    NotebookTerminalError,
    RetryCancelledError,
    StorageError,
)

log = structlog.get_logger(__name__)


def setup_exception_handlers(app: FastAPI):
    """Register custom exception handlers with the FastAPI application.

    Maps FinCoachError subclasses to HTTP status codes, hides configuration
    details behind a generic 500, and catches everything else.
    """

    @app.exception_handler(FinCoachError)
    async def fincoach_error_handler(
        request: Request,
        exc: FinCoachError,
    ) -> JSONResponse:
        """Handle FinCoachError exceptions with appropriate HTTP status codes.

        404 for a missing notebook, 409 when the notebook state forbids the
        operation, 503 when storage is unavailable.
        """
        log_ctx = log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )

        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        message = exc.message

        if isinstance(exc, NotebookNotFoundError):
            status_code = status.HTTP_404_NOT_FOUND
        elif isinstance(exc, (NotebookTerminalError, NoActiveNotebookError)):
            status_code = status.HTTP_409_CONFLICT
        elif isinstance(exc, (StorageError, RetryCancelledError)):
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        elif isinstance(exc, ConfigurationError):
            message = "Server configuration error"

        if status_code >= 500:
            log_ctx.error("request_error", message=exc.message, status_code=status_code)
        else:
            log_ctx.warning("request_error", message=exc.message, status_code=status_code)

        return JSONResponse(
            status_code=status_code,
            content={
                "error": {
                    "type": type(exc).__name__,
                    "message": message,
                }
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle all unhandled exceptions with HTTP 500 status."""
        log_ctx = log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )

        log_ctx.error(
            "unhandled_exception",
            message=str(exc),
            exc_info=exc,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "type": "InternalServerError",
                    "message": "An unexpected error occurred",
                }
            },
        )
