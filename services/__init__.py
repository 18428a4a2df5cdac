"""
Ordino - Services Package

Business operations for the back office. Each module exposes async
functions taking an AsyncSession and the current company's id.
"""

from services.errors import (
    ServiceError,
    RecordNotFound,
    InvalidOperation,
    InsufficientBalance,
    IntegrationNotConfigured,
    UpstreamError,
)

__all__ = [
    "ServiceError",
    "RecordNotFound",
    "InvalidOperation",
    "InsufficientBalance",
    "IntegrationNotConfigured",
    "UpstreamError",
]
