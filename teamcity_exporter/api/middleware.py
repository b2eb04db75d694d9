"""
API Middleware - Request Tracking

Tags every request to the exporter's HTTP listener with an X-Request-ID and
logs request/response pairs. Scrapes of the metrics path are logged at DEBUG
since Prometheus hits it on every scrape interval.
"""

import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from teamcity_exporter.core.logging_config import get_logger, log_with_context

logger = get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Add unique request ID to each request for tracing and debugging.

    Adds X-Request-ID header to both request and response.
    """

    def __init__(self, app, quiet_paths: tuple[str, ...] = ()):
        super().__init__(app)
        self.quiet_paths = quiet_paths

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Add request ID to request and response."""

        # Generate or use existing request ID
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        level = "debug" if request.url.path in self.quiet_paths else "info"
        log_with_context(
            logger,
            level,
            "HTTP request",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown",
        )

        start_time = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id

        log_with_context(
            logger,
            level,
            "HTTP response",
            request_id=request_id,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        return response
