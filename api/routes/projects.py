"""
Projects Router (v1)
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company
from api.auth.dependencies import get_current_company
from api.routes.common import ORMModel, changes
from services import projects as project_service


router = APIRouter(prefix="/projects", tags=["Projects"])


class ProjectServiceResponse(ORMModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    fixed_price: Optional[Decimal] = None
    total_amount: Decimal
    billing_type: str
    status: str


class ProjectResponse(ORMModel):
    id: uuid.UUID
    project_number: str
    name: str
    client_id: Optional[uuid.UUID] = None
    proposal_id: Optional[uuid.UUID] = None
    assigned_pm_id: Optional[uuid.UUID] = None
    status: str
    retainer_amount: Decimal
    retainer_balance: Decimal
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class ProjectDetail(ProjectResponse):
    services: List[ProjectServiceResponse] = []


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    client_id: Optional[uuid.UUID] = None
    assigned_pm_id: Optional[uuid.UUID] = None
    status: Optional[Literal["open", "on_hold", "closed"]] = None
    notes: Optional[str] = None


@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    status: Optional[str] = None,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await project_service.list_projects(db, current_company.id, status)


@router.get("/{project_id}", response_model=ProjectDetail)
async def get_project(
    project_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """A project with its services."""
    return await project_service.get_project(db, current_company.id, project_id)


@router.patch("/{project_id}", response_model=ProjectDetail)
async def update_project(
    project_id: uuid.UUID,
    data: ProjectUpdate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await project_service.update_project(db, current_company.id, project_id, changes(data))
