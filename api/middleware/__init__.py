"""
API Middleware Package

The JSON error envelope (including service-error translation), request
logging and per-route rate limits.
"""

from api.middleware.error_handler import (
    setup_error_handlers,
    api_error_from_service,
    APIError,
    NotFoundError,
    ValidationError,
    AuthenticationError,
)
from api.middleware.logging import LoggingMiddleware
from api.middleware.rate_limit import (
    setup_rate_limiting,
    limiter,
    LIMIT_AI,
    LIMIT_AUTH,
    LIMIT_PUBLIC,
)

__all__ = [
    "setup_error_handlers",
    "api_error_from_service",
    "APIError",
    "NotFoundError",
    "ValidationError",
    "AuthenticationError",
    "LoggingMiddleware",
    "setup_rate_limiting",
    "limiter",
    "LIMIT_AI",
    "LIMIT_AUTH",
    "LIMIT_PUBLIC",
]
