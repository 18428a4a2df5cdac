"""
Notifications Router (v1)
"""

import uuid
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company, User
from api.auth.dependencies import get_current_active_user, get_current_company
from api.routes.common import ORMModel
from services import notifications as notification_service


router = APIRouter(prefix="/notifications", tags=["Notifications"])


class NotificationResponse(ORMModel):
    id: uuid.UUID
    type: str
    title: str
    body: Optional[str] = None
    link: Optional[str] = None
    project_id: Optional[uuid.UUID] = None
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ReadAllResponse(BaseModel):
    updated: int


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    limit: int = 50,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Unread first, then newest first."""
    return await notification_service.list_notifications(
        db, current_company.id, current_user.id, min(limit, 200)
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await notification_service.mark_read(
        db, current_company.id, current_user.id, notification_id
    )


@router.post("/read-all", response_model=ReadAllResponse)
async def mark_all_read(
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    updated = await notification_service.mark_all_read(db, current_company.id, current_user.id)
    return ReadAllResponse(updated=updated)
