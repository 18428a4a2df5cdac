"""
Calendar Router (v1)

The current user's Google Calendar, mirrored locally.
"""

import uuid
from datetime import datetime
from typing import Optional, List, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company, User
from api.auth.dependencies import get_current_active_user, get_current_company
from api.routes.common import ORMModel, Message, JobQueued, JobStatus, changes, company_job
from services import calendar as calendar_service
from workers.queue import enqueue_calendar_sync


router = APIRouter(prefix="/calendar", tags=["Calendar"])


class EventCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: datetime
    end_time: datetime
    all_day: bool = False
    event_type: str = "general"
    project_id: Optional[uuid.UUID] = None
    client_id: Optional[uuid.UUID] = None


class EventUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    all_day: Optional[bool] = None
    event_type: Optional[str] = None
    project_id: Optional[uuid.UUID] = None
    client_id: Optional[uuid.UUID] = None


class EventResponse(ORMModel):
    id: uuid.UUID
    google_event_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_time: datetime
    end_time: datetime
    all_day: bool
    event_type: str
    project_id: Optional[uuid.UUID] = None
    client_id: Optional[uuid.UUID] = None
    status: str
    sync_status: str
    last_synced_at: Optional[datetime] = None
    event_metadata: dict = {}


class SyncRequest(BaseModel):
    time_min: Optional[datetime] = None
    time_max: Optional[datetime] = None
    background: bool = False


class SyncResult(BaseModel):
    synced: int
    total: int


@router.post("/sync", response_model=Union[SyncResult, JobQueued])
async def sync(
    data: SyncRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Pull events from Google now, or queue the sync when `background` is set."""
    if data.background:
        job_id = await enqueue_calendar_sync(str(current_company.id), str(current_user.id))
        return JobQueued(job_id=job_id)
    result = await calendar_service.sync_events(
        db, current_company.id, current_user.id, data.time_min, data.time_max
    )
    return SyncResult(**result)


@router.get("/jobs/{job_id}", response_model=JobStatus)
async def sync_status(job_id: str, current_company: Company = Depends(get_current_company)):
    return await company_job(job_id, current_company.id)


@router.get("/events", response_model=List[EventResponse])
async def list_events(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await calendar_service.list_events(db, current_company.id, current_user.id, start, end)


@router.post("/events", response_model=EventResponse, status_code=201)
async def create_event(
    data: EventCreate,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await calendar_service.create_event(
        db, current_company.id, current_user.id, data.model_dump()
    )


@router.patch("/events/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: uuid.UUID,
    data: EventUpdate,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await calendar_service.update_event(
        db, current_company.id, current_user.id, event_id, changes(data)
    )


@router.delete("/events/{event_id}", response_model=Message)
async def delete_event(
    event_id: uuid.UUID,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    await calendar_service.delete_event(db, current_company.id, current_user.id, event_id)
    return Message(message="Event deleted")
