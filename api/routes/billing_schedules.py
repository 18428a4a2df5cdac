"""
Billing Schedules Router (v1)

Recurring billing for project services.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company, User
from api.auth.dependencies import get_current_active_user, get_current_company, require_roles
from api.routes.common import ORMModel, changes
from services import billing_schedules as schedule_service


router = APIRouter(
    prefix="/billing-schedules",
    tags=["Billing Schedules"],
    dependencies=[Depends(require_roles(["admin", "manager", "accounting"]))]
)

Frequency = Literal["weekly", "biweekly", "monthly", "quarterly"]
Method = Literal["fixed", "percentage"]


class ScheduleCreate(BaseModel):
    project_id: uuid.UUID
    service_name: str = Field(min_length=1)
    billing_method: Method = "fixed"
    billing_value: Decimal = Field(gt=0)
    frequency: Frequency = "monthly"
    next_bill_date: date
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = Field(default=None, gt=0)
    auto_approve: bool = False
    billed_to_contact_id: Optional[uuid.UUID] = None


class ScheduleUpdate(BaseModel):
    service_name: Optional[str] = Field(default=None, min_length=1)
    billing_method: Optional[Method] = None
    billing_value: Optional[Decimal] = Field(default=None, gt=0)
    frequency: Optional[Frequency] = None
    next_bill_date: Optional[date] = None
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = Field(default=None, gt=0)
    auto_approve: Optional[bool] = None
    is_active: Optional[bool] = None
    billed_to_contact_id: Optional[uuid.UUID] = None


class ScheduleResponse(ORMModel):
    id: uuid.UUID
    project_id: uuid.UUID
    service_name: str
    billing_method: str
    billing_value: Decimal
    frequency: str
    next_bill_date: date
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = None
    occurrences_completed: int = 0
    auto_approve: bool
    is_active: bool
    billed_to_contact_id: Optional[uuid.UUID] = None
    last_billed_at: Optional[datetime] = None


class ProcessResponse(BaseModel):
    processed: int


@router.get("", response_model=List[ScheduleResponse])
async def list_schedules(
    project_id: Optional[uuid.UUID] = None,
    active_only: bool = False,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await schedule_service.list_schedules(db, current_company.id, project_id, active_only)


@router.post("", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    data: ScheduleCreate,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    payload = data.model_dump(exclude={"project_id"})
    return await schedule_service.create_schedule(
        db, current_company.id, data.project_id, payload, user_id=current_user.id
    )


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(
    schedule_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await schedule_service.get_schedule(db, current_company.id, schedule_id)


@router.patch("/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: uuid.UUID,
    data: ScheduleUpdate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await schedule_service.update_schedule(db, current_company.id, schedule_id, changes(data))


@router.post("/{schedule_id}/deactivate", response_model=ScheduleResponse)
async def deactivate_schedule(
    schedule_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await schedule_service.deactivate_schedule(db, current_company.id, schedule_id)


@router.post("/process", response_model=ProcessResponse)
async def process_due(
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Bill this company's due schedules now instead of waiting for the nightly run."""
    processed = await schedule_service.process_due_schedules(db, date.today(), current_company.id)
    return ProcessResponse(processed=processed)
