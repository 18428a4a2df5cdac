"""
JWT Token Utilities

Access and refresh tokens carrying the user id (sub) and the active
company (company_id).
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError

from config.settings import settings


class TokenError(Exception):
    """Token validation error."""
    pass


def _encode(data: dict, token_type: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {**data, "exp": now + lifetime, "iat": now, "type": token_type}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload data (should include 'sub' for user ID)
        expires_delta: Optional custom expiration time
    """
    return _encode(
        data, "access", expires_delta or timedelta(minutes=settings.jwt_expire_minutes)
    )


def create_refresh_token(data: dict) -> str:
    return _encode(data, "refresh", timedelta(days=settings.jwt_refresh_expire_days))


def decode_token(token: str) -> dict:
    """
    Decode and validate a JWT token.

    Raises:
        TokenError: If token is invalid or expired
    """
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise TokenError(f"Invalid token: {str(e)}")


def verify_token(token: str, token_type: str = "access") -> dict:
    """Decode a token and check it is of the expected type."""
    payload = decode_token(token)
    if payload.get("type") != token_type:
        raise TokenError(f"Invalid token type. Expected {token_type}")
    return payload


def issue_tokens(user_id: uuid.UUID, company_id: Optional[uuid.UUID]) -> dict:
    """Access/refresh pair for a user acting within a company."""
    data = {"sub": str(user_id), "company_id": str(company_id) if company_id else None}
    return {
        "access_token": create_access_token(data),
        "refresh_token": create_refresh_token(data),
        "token_type": "bearer",
        "expires_in": settings.jwt_expire_minutes * 60,
    }


def create_state_token(user_id: uuid.UUID, company_id: uuid.UUID) -> str:
    """Short-lived token passed through Google's OAuth redirect as `state`."""
    return _encode(
        {"sub": str(user_id), "company_id": str(company_id)}, "oauth_state", timedelta(minutes=10)
    )
