"""
Error Handler Middleware

Every error response has the shape
{"error": {"code": ..., "message": ..., "details": [...]}}.
"""

import logging
import traceback
from typing import Optional, List

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import settings
from services.errors import (
    ServiceError,
    RecordNotFound,
    InvalidOperation,
    InsufficientBalance,
    IntegrationNotConfigured,
    UpstreamError,
)

logger = logging.getLogger("ordino.api.errors")


class APIError(Exception):
    """Base API error with status code and error code."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[List[dict]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(message)


class NotFoundError(APIError):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, 404, "NOT_FOUND")


class ValidationError(APIError):
    def __init__(self, message: str = "Validation failed"):
        super().__init__(message, 400, "VALIDATION_ERROR")


class AuthenticationError(APIError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, 401, "AUTH_REQUIRED")


class AuthorizationError(APIError):
    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, 403, "PERMISSION_DENIED")


class ConflictError(APIError):
    def __init__(self, message: str = "Conflict", details: Optional[List[dict]] = None):
        super().__init__(message, 409, "CONFLICT", details)


class RateLimitError(APIError):
    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(message, 429, "RATE_LIMIT_EXCEEDED")


class UpstreamServiceError(APIError):
    """
    A third-party API failed.

    Quota errors (429/402) keep their status so clients can tell them apart.
    """

    def __init__(
        self,
        message: str = "Upstream service error",
        upstream_status: Optional[int] = None,
        details: Optional[List[dict]] = None
    ):
        status_code = upstream_status if upstream_status in (429, 402) else 502
        super().__init__(message, status_code, "UPSTREAM_ERROR", details)


def api_error_from_service(exc: ServiceError) -> APIError:
    """Translate a service-layer error into its HTTP form."""
    if isinstance(exc, RecordNotFound):
        return NotFoundError(str(exc))
    if isinstance(exc, InsufficientBalance):
        return ConflictError(
            str(exc),
            details=[{"balance": str(exc.balance), "requested": str(exc.requested)}]
        )
    if isinstance(exc, InvalidOperation):
        return ValidationError(str(exc))
    if isinstance(exc, IntegrationNotConfigured):
        return APIError(str(exc), 503, "NOT_CONFIGURED")
    if isinstance(exc, UpstreamError):
        details = [{"needs_reauth": True}] if exc.needs_reauth else None
        return UpstreamServiceError(str(exc), exc.status_code, details)
    return APIError(str(exc), 400, "SERVICE_ERROR")


def _error_response(exc: APIError) -> JSONResponse:
    error = {"code": exc.error_code, "message": exc.message}
    if exc.details:
        error["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content={"error": error})


def setup_error_handlers(app: FastAPI):
    """Register the global error handlers."""

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        logger.warning(f"API Error: {exc.error_code} - {exc.message}")
        return _error_response(exc)

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        api_error = api_error_from_service(exc)
        logger.warning(f"Service Error: {type(exc).__name__} - {exc}")
        return _error_response(api_error)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": {"code": "HTTP_ERROR", "message": exc.detail}},
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "details": errors
                }
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {str(exc)}")
        logger.error(traceback.format_exc())

        message = str(exc) if settings.api_env == "development" else "An internal error occurred"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": {"code": "INTERNAL_ERROR", "message": message}}
        )
