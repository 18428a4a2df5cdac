"""
Google Integration Router (v1)

Connect a user's Google account, send through Gmail and sync the mailbox.
Calendar routes live in calendar.py.
"""

import uuid
from datetime import datetime
from typing import List, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company, User
from api.auth.dependencies import get_current_active_user, get_current_company
from api.auth.jwt import TokenError, create_state_token, verify_token
from api.middleware.error_handler import AuthenticationError
from api.routes.common import ORMModel, Message, JobQueued, JobStatus, company_job
from services import google as google_service
from services import gmail as gmail_service
from workers.queue import enqueue_gmail_sync


router = APIRouter(prefix="/google", tags=["Google"])


class AuthUrl(BaseModel):
    url: str


class ConnectionStatus(BaseModel):
    connected: bool
    email: Optional[str] = None
    scopes: Optional[str] = None


class SendEmailRequest(BaseModel):
    to: str
    subject: str
    html_body: str
    cc: Optional[str] = None
    bcc: Optional[str] = None
    reply_to_message_id: Optional[str] = None
    thread_id: Optional[str] = None


class SendEmailResponse(BaseModel):
    message_id: Optional[str] = None
    thread_id: Optional[str] = None


class MailboxSyncRequest(BaseModel):
    background: bool = False


class MailboxSyncResult(BaseModel):
    synced: int
    total_checked: int


class EmailResponse(ORMModel):
    id: uuid.UUID
    gmail_message_id: Optional[str] = None
    thread_id: Optional[str] = None
    direction: str
    subject: Optional[str] = None
    from_name: Optional[str] = None
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    snippet: Optional[str] = None
    is_read: Optional[bool] = None
    has_attachments: Optional[bool] = None
    invoice_id: Optional[uuid.UUID] = None
    received_at: Optional[datetime] = None


@router.get("/auth-url", response_model=AuthUrl)
async def auth_url(
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company)
):
    """Google consent URL; the state token identifies the user on the way back."""
    state = create_state_token(current_user.id, current_company.id)
    return AuthUrl(url=google_service.authorization_url(state))


@router.get("/callback", response_model=ConnectionStatus)
async def callback(code: str, state: str, db: AsyncSession = Depends(get_db)):
    """
    OAuth redirect target.

    Google calls this without our bearer token, so the user and company
    come from the signed state.
    """
    try:
        payload = verify_token(state, "oauth_state")
    except TokenError as e:
        raise AuthenticationError(str(e))

    connection = await google_service.exchange_code(
        db, uuid.UUID(payload["company_id"]), uuid.UUID(payload["sub"]), code
    )
    return ConnectionStatus(connected=True, email=connection.email, scopes=connection.scopes)


@router.get("/status", response_model=ConnectionStatus)
async def status(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    connection = await google_service.get_connection(db, current_user.id)
    if connection is None:
        return ConnectionStatus(connected=False)
    return ConnectionStatus(connected=True, email=connection.email, scopes=connection.scopes)


@router.delete("", response_model=Message)
async def disconnect(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    await google_service.disconnect(db, current_user.id)
    return Message(message="Google account disconnected")


@router.post("/gmail/send", response_model=SendEmailResponse)
async def send_email(
    data: SendEmailRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Send from the user's connected Gmail account and log the outbound email."""
    sent = await gmail_service.send_email(
        db, current_company.id, current_user.id, **data.model_dump()
    )
    return SendEmailResponse(**sent)


@router.post("/gmail/sync", response_model=Union[MailboxSyncResult, JobQueued])
async def sync_mailbox(
    data: MailboxSyncRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Pull new messages now, or queue the sync when `background` is set."""
    if data.background:
        job_id = await enqueue_gmail_sync(str(current_company.id), str(current_user.id))
        return JobQueued(job_id=job_id)
    result = await gmail_service.sync_inbox(db, current_company.id, current_user.id)
    return MailboxSyncResult(**result)


@router.get("/gmail/jobs/{job_id}", response_model=JobStatus)
async def mailbox_sync_status(job_id: str, current_company: Company = Depends(get_current_company)):
    return await company_job(job_id, current_company.id)


@router.get("/gmail/messages", response_model=List[EmailResponse])
async def list_messages(
    direction: Optional[str] = None,
    limit: int = 50,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await gmail_service.list_emails(
        db, current_company.id, current_user.id, direction=direction, limit=min(limit, 200)
    )
