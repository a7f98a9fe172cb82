"""Validation middleware for request payload size and JSON structure."""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
import structlog
import orjson

log = structlog.get_logger()


class ValidationMiddleware(BaseHTTPMiddleware):
    """Rejects oversized bodies and malformed JSON before routing."""

    def __init__(self, app, max_event_size: int):
        super().__init__(app)
        self.max_event_size = max_event_size

    def _too_large(self, request: Request, size: int) -> JSONResponse:
        log.warning(
            "payload.too_large",
            size=size,
            max_size=self.max_event_size,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=413,
            content={
                "error": "PayloadTooLarge",
                "message": f"Request payload exceeds maximum size of {self.max_event_size} bytes",
                "max_size": self.max_event_size,
                "received_size": size,
            },
        )

    async def dispatch(self, request: Request, call_next):
        if request.method not in ("POST", "PUT", "PATCH"):
            return await call_next(request)

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_event_size:
            return self._too_large(request, int(content_length))

        # Starlette caches the body, so the endpoint can read it again
        body = await request.body()
        if len(body) > self.max_event_size:
            return self._too_large(request, len(body))

        if body and request.headers.get("content-type", "").startswith("application/json"):
            try:
                orjson.loads(body)
            except orjson.JSONDecodeError as e:
                log.warning("invalid.json", error=str(e), path=request.url.path)
                return JSONResponse(
                    status_code=400,
                    content={
                        "error": "InvalidJSON",
                        "message": "Request body is not valid JSON",
                        "detail": str(e),
                    },
                )

        return await call_next(request)
