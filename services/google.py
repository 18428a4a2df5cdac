"""
Google OAuth

Per-user Google connections used by the Gmail and Calendar services.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from urllib.parse import urlencode

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import GoogleConnection
from services.errors import IntegrationNotConfigured, RecordNotFound, UpstreamError

logger = logging.getLogger("ordino.services.google")

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

SCOPES = [
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
]

# Refresh when fewer seconds than this remain on the token
REFRESH_MARGIN_SECONDS = 60


def _require_config() -> None:
    if not settings.google_configured:
        raise IntegrationNotConfigured("Google OAuth is not configured")


def authorization_url(state: str) -> str:
    """URL the user visits to grant Gmail and Calendar access."""
    _require_config()
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{AUTH_URL}?{urlencode(params)}"


def token_is_fresh(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return expires_at - now > timedelta(seconds=REFRESH_MARGIN_SECONDS)


def expiry_from(expires_in: Optional[int], now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(seconds=int(expires_in or 3600))


async def _post_token(data: Dict[str, str]) -> Dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(TOKEN_URL, data=data)
    except httpx.HTTPError as e:
        raise UpstreamError(f"Google token request failed: {e}") from e

    if response.status_code != 200:
        logger.error(f"Google token error: {response.status_code} - {response.text[:300]}")
        raise UpstreamError(
            "Google token request failed",
            status_code=response.status_code,
            needs_reauth=response.status_code in (400, 401)
        )
    return response.json()


async def get_connection(db: AsyncSession, user_id: uuid.UUID) -> Optional[GoogleConnection]:
    result = await db.execute(
        select(GoogleConnection).where(GoogleConnection.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def exchange_code(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    code: str
) -> GoogleConnection:
    """Trade an authorization code for tokens and store the connection."""
    _require_config()
    tokens = await _post_token({
        "code": code,
        "client_id": settings.google_client_id,
        "client_secret": settings.google_client_secret,
        "redirect_uri": settings.google_redirect_uri,
        "grant_type": "authorization_code",
    })

    email = None
    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.get(
                USERINFO_URL,
                headers={"Authorization": f"Bearer {tokens['access_token']}"}
            )
        if response.status_code == 200:
            email = response.json().get("email")
    except httpx.HTTPError as e:
        logger.warning(f"Could not fetch Google account email: {e}")

    connection = await get_connection(db, user_id)
    if connection is None:
        connection = GoogleConnection(company_id=company_id, user_id=user_id)
        db.add(connection)

    connection.access_token = tokens["access_token"]
    # Google only returns a refresh token on first consent
    if tokens.get("refresh_token"):
        connection.refresh_token = tokens["refresh_token"]
    connection.token_expires_at = expiry_from(tokens.get("expires_in"))
    connection.scopes = tokens.get("scope")
    connection.email = email or connection.email
    await db.commit()

    logger.info(f"Google account connected for user {user_id}")
    return connection


async def disconnect(db: AsyncSession, user_id: uuid.UUID) -> None:
    connection = await get_connection(db, user_id)
    if connection is None:
        raise RecordNotFound("Google account not connected")
    await db.delete(connection)
    await db.commit()


async def get_access_token(db: AsyncSession, user_id: uuid.UUID) -> str:
    """A valid access token for the user, refreshing it when close to expiry."""
    connection = await get_connection(db, user_id)
    if connection is None:
        raise IntegrationNotConfigured("Google account not connected")

    if token_is_fresh(connection.token_expires_at):
        return connection.access_token

    if not connection.refresh_token:
        raise UpstreamError("Google token expired; reconnect required", status_code=401, needs_reauth=True)

    _require_config()
    tokens = await _post_token({
        "client_id": settings.google_client_id,
        "client_secret": settings.google_client_secret,
        "refresh_token": connection.refresh_token,
        "grant_type": "refresh_token",
    })
    connection.access_token = tokens["access_token"]
    connection.token_expires_at = expiry_from(tokens.get("expires_in"))
    await db.commit()

    return connection.access_token


def upstream_error(service: str, response: httpx.Response) -> UpstreamError:
    """Map a failed Google API response, flagging expired grants."""
    logger.error(f"{service} API error: {response.status_code} - {response.text[:300]}")
    return UpstreamError(
        f"{service} API error",
        status_code=response.status_code,
        needs_reauth=response.status_code in (401, 403)
    )
