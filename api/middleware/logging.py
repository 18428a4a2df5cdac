"""
Logging Middleware

One log line per request and per response, tied together by a short
correlation ID that is also returned to the client.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("ordino.api.requests")

# Polled constantly by the console; not worth a log line each
QUIET_PATHS = ("/health",)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration; set X-Correlation-ID and X-Response-Time-Ms."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or uuid.uuid4().hex[:8]
        request.state.correlation_id = correlation_id
        route = f"[{correlation_id}] {request.method} {request.url.path}"
        quiet = request.url.path in QUIET_PATHS

        if not quiet:
            client_ip = request.client.host if request.client else "unknown"
            logger.info(f"{route} from {client_ip}")

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"{route} ERROR: {e} ({(time.perf_counter() - start) * 1000:.2f}ms)")
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Response-Time-Ms"] = f"{duration_ms:.2f}"

        if not quiet or response.status_code >= 400:
            level = logging.INFO if response.status_code < 400 else logging.WARNING
            logger.log(level, f"{route} -> {response.status_code} ({duration_ms:.2f}ms)")
        return response


def get_correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")
