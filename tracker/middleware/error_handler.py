"""Structured error response middleware."""
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from ..errors import TrackerError
from .correlation import get_correlation_id

log = structlog.get_logger()


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns tracker errors and unexpected exceptions into JSON responses."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except TrackerError as exc:
            correlation_id = get_correlation_id()
            log_method = log.warning if exc.status_code < 500 else log.error
            log_method(
                "tracker.error",
                error_type=exc.__class__.__name__,
                message=exc.message,
                cause=str(exc.cause) if exc.cause else None,
                status_code=exc.status_code,
                path=request.url.path,
            )
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "error": exc.__class__.__name__,
                    "message": exc.message,
                    "status_code": exc.status_code,
                    "correlation_id": correlation_id,
                    "path": str(request.url.path),
                },
            )
        except Exception as exc:
            correlation_id = get_correlation_id()
            log.error(
                "unhandled.exception",
                error=str(exc),
                error_type=exc.__class__.__name__,
                path=request.url.path,
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "status_code": 500,
                    "correlation_id": correlation_id,
                    "path": str(request.url.path),
                },
            )
