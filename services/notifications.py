"""
Notification Service

In-app notifications addressed to a single user.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Notification
from services.errors import RecordNotFound


def notify(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    type: str,
    title: str,
    body: Optional[str] = None,
    link: Optional[str] = None,
    project_id: Optional[uuid.UUID] = None
) -> Notification:
    """Queue a notification on the session. The caller commits."""
    notification = Notification(
        company_id=company_id,
        user_id=user_id,
        type=type,
        title=title,
        body=body,
        link=link,
        project_id=project_id
    )
    db.add(notification)
    return notification


async def list_notifications(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    limit: int = 50
) -> List[Notification]:
    """The user's notifications, unread first, newest first."""
    result = await db.execute(
        select(Notification)
        .where(Notification.company_id == company_id, Notification.user_id == user_id)
        .order_by(Notification.read_at.is_not(None), Notification.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_read(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    notification_id: uuid.UUID
) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.company_id == company_id,
            Notification.user_id == user_id
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise RecordNotFound("Notification not found")

    if notification.read_at is None:
        notification.read_at = datetime.now(timezone.utc)
        await db.commit()
    return notification


async def mark_all_read(db: AsyncSession, company_id: uuid.UUID, user_id: uuid.UUID) -> int:
    result = await db.execute(
        update(Notification)
        .where(
            Notification.company_id == company_id,
            Notification.user_id == user_id,
            Notification.read_at.is_(None)
        )
        .values(read_at=datetime.now(timezone.utc))
    )
    await db.commit()
    return result.rowcount
