"""Request context middleware: correlation ids, access logging, and request metrics."""

import logging
import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .observability import REQUEST_COUNT, REQUEST_DURATION

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Binds a request id to the logging context for the lifetime of a request.

    The id is taken from the X-Request-ID header or generated, stored on
    ``request.state``, bound into structlog contextvars so every log line
    emitted while handling the request carries it, and echoed back on the
    response.
    """

    def __init__(
        self,
        app: ASGIApp,
        header_name: str = "X-Request-ID",
        skip_paths: Optional[list] = None,
    ):
        super().__init__(app)
        self.header_name = header_name
        self.skip_paths = skip_paths or ["/health", "/metrics", "/favicon.ico"]

    @staticmethod
    def _route_template(request: Request) -> str:
        # Label metrics by route template so ids in paths do not explode cardinality
        route = request.scope.get("route")
        return getattr(route, "path", request.url.path)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        duration = time.perf_counter() - start_time
        endpoint = self._route_template(request)
        REQUEST_COUNT.labels(
            method=request.method, endpoint=endpoint, status_code=str(response.status_code)
        ).inc()
        REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(duration)

        response.headers[self.header_name] = request_id

        if request.url.path not in self.skip_paths:
            log_data = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            }
            if response.status_code >= 500:
                logger.error("HTTP request completed with server error", extra=log_data)
            elif response.status_code >= 400:
                logger.warning("HTTP request completed with client error", extra=log_data)
            else:
                logger.info("HTTP request completed", extra=log_data)

        return response


def setup_middleware(app) -> None:
    """Setup all middleware on the FastAPI app."""
    app.add_middleware(RequestContextMiddleware)
