"""
Project Service
"""

import uuid
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database.models import Project
from services.errors import RecordNotFound, InvalidOperation

PROJECT_STATUSES = ("open", "on_hold", "closed")
UPDATABLE_FIELDS = ("name", "client_id", "assigned_pm_id", "status", "notes")


async def list_projects(
    db: AsyncSession,
    company_id: uuid.UUID,
    status: Optional[str] = None
) -> List[Project]:
    query = (
        select(Project)
        .where(Project.company_id == company_id)
        .order_by(Project.created_at.desc())
    )
    if status:
        query = query.where(Project.status == status)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_project(
    db: AsyncSession,
    company_id: uuid.UUID,
    project_id: uuid.UUID
) -> Project:
    result = await db.execute(
        select(Project)
        .options(selectinload(Project.services))
        .where(Project.id == project_id, Project.company_id == company_id)
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise RecordNotFound("Project not found")
    return project


async def update_project(
    db: AsyncSession,
    company_id: uuid.UUID,
    project_id: uuid.UUID,
    data: Dict[str, Any]
) -> Project:
    project = await get_project(db, company_id, project_id)
    if "status" in data and data["status"] not in PROJECT_STATUSES:
        raise InvalidOperation(f"Unknown project status: {data['status']}")

    for key, value in data.items():
        if key in UPDATABLE_FIELDS:
            setattr(project, key, value)
    await db.commit()
    return project
