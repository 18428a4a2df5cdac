"""
Service-layer errors.

Raised by the business services and translated into HTTP responses by
api.middleware.error_handler.
"""

from typing import Optional


class ServiceError(Exception):
    """Base error for business-rule failures."""
    pass


class RecordNotFound(ServiceError):
    """A referenced record does not exist in the current company."""
    pass


class InvalidOperation(ServiceError):
    """The operation is not allowed in the record's current state."""
    pass


class InsufficientBalance(InvalidOperation):
    """A retainer does not hold enough funds for the requested amount."""

    def __init__(self, balance, requested):
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"Insufficient retainer balance: {balance} available, {requested} requested"
        )


class IntegrationNotConfigured(ServiceError):
    """A required third-party credential is missing."""
    pass


class UpstreamError(ServiceError):
    """A third-party API (LLM gateway, Firecrawl, Google) failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        needs_reauth: bool = False
    ):
        self.status_code = status_code
        self.needs_reauth = needs_reauth
        super().__init__(message)

    @property
    def is_quota_error(self) -> bool:
        """Rate limited (429) or out of credits (402)."""
        return self.status_code in (429, 402)
