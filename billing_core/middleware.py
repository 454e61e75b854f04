"""FastAPI middleware for request/response logging and correlation."""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from billing_core.logging_config import bind_context, clear_context, get_logger

logger = get_logger(__name__)

# Path segment -> log context key for the ID that follows it
_PATH_CONTEXT_KEYS = {
    "invoices": "invoice_id",
    "services": "service_id",
}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with a request_id bound to every log line inside it.

    The request_id is echoed in the X-Request-ID response header.
    """

    def __init__(self, app: ASGIApp, include_request_details: bool = True):
        """Initialize middleware.

        Args:
            app: ASGI application
            include_request_details: If True, log query string, client and user agent
        """
        super().__init__(app)
        self.include_request_details = include_request_details

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        bind_context(request_id=request_id)

        if self.include_request_details:
            logger.info(
                "request_started",
                method=request.method,
                path=request.url.path,
                query_params=str(request.query_params) if request.query_params else None,
                client_host=request.client.host if request.client else "unknown",
                user_agent=request.headers.get("user-agent"),
            )
        else:
            logger.info("request_started", method=request.method, path=request.url.path)

        start_time = time.time()
        try:
            response = await call_next(request)
            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )
            response.headers["X-Request-ID"] = request_id
            return response
        except Exception as exc:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise
        finally:
            clear_context()


class ContextMiddleware(BaseHTTPMiddleware):
    """Binds invoice_id / service_id from the request path to the logging context."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        parts = [part for part in request.url.path.split("/") if part]
        for index, part in enumerate(parts[:-1]):
            key = _PATH_CONTEXT_KEYS.get(part)
            if key is None:
                continue
            value = parts[index + 1]
            if value.isdigit():
                bind_context(**{key: int(value)})

        return await call_next(request)
