"""
RFP Discovery Router (v1)

Monitored sources, the company's monitoring rule, background scans and
the opportunities they discover.
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
from api.auth.dependencies import get_current_company, require_roles
from api.routes.common import ORMModel, Message, JobQueued, JobStatus, changes, company_job
from api.routes.rfps import RfpResponse
from services import rfps as rfp_service
from services.rfp_monitor import get_active_rule
from workers.queue import enqueue_rfp_scan


router = APIRouter(prefix="/rfp-discovery", tags=["RFP Discovery"])

admin_or_manager = Depends(require_roles(["admin", "manager"]))

DiscoveredStatus = Literal["new", "reviewing", "pursuing", "passed"]


class SourceCreate(BaseModel):
    source_name: str = Field(min_length=1)
    source_url: str = Field(min_length=1)
    source_type: str = "web"
    check_frequency: Literal["daily", "weekly"] = "daily"
    active: bool = True


class SourceUpdate(BaseModel):
    source_name: Optional[str] = Field(default=None, min_length=1)
    source_url: Optional[str] = Field(default=None, min_length=1)
    source_type: Optional[str] = None
    check_frequency: Optional[Literal["daily", "weekly"]] = None
    active: Optional[bool] = None


class SourceResponse(ORMModel):
    id: uuid.UUID
    source_name: str
    source_url: str
    source_type: str
    check_frequency: str
    last_checked_at: Optional[datetime] = None
    active: bool


class RuleUpdate(BaseModel):
    keyword_include: Optional[List[str]] = None
    keyword_exclude: Optional[List[str]] = None
    agencies_include: Optional[List[str]] = None
    min_relevance_score: Optional[int] = Field(default=None, ge=0, le=100)
    notify_email: Optional[bool] = None
    email_recipients: Optional[List[str]] = None


class RuleResponse(ORMModel):
    id: uuid.UUID
    keyword_include: List[str] = []
    keyword_exclude: List[str] = []
    agencies_include: List[str] = []
    min_relevance_score: int
    notify_email: bool
    email_recipients: List[str] = []
    active: bool


class DiscoveredResponse(ORMModel):
    id: uuid.UUID
    source_id: Optional[uuid.UUID] = None
    title: str
    rfp_number: Optional[str] = None
    issuing_agency: Optional[str] = None
    due_date: Optional[datetime] = None
    original_url: Optional[str] = None
    pdf_url: Optional[str] = None
    discovered_at: Optional[datetime] = None
    relevance_score: Optional[int] = None
    relevance_reason: Optional[str] = None
    service_tags: List[str] = []
    estimated_value: Optional[Decimal] = None
    status: str
    assigned_to: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    rfp_id: Optional[uuid.UUID] = None


class DiscoveredUpdate(BaseModel):
    status: Optional[DiscoveredStatus] = None
    assigned_to: Optional[uuid.UUID] = None
    notes: Optional[str] = None


# ============================================================================
# Scans
# ============================================================================

@router.post("/scan", response_model=JobQueued, status_code=202, dependencies=[admin_or_manager])
async def start_scan(current_company: Company = Depends(get_current_company)):
    """Queue a scan of every active source for this company."""
    job_id = await enqueue_rfp_scan(str(current_company.id))
    return JobQueued(job_id=job_id)


@router.get("/jobs/{job_id}", response_model=JobStatus)
async def scan_status(job_id: str, current_company: Company = Depends(get_current_company)):
    return await company_job(job_id, current_company.id)


# ============================================================================
# Discovered opportunities
# ============================================================================

@router.get("/discovered", response_model=List[DiscoveredResponse])
async def list_discovered(
    status: Optional[str] = None,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfp_service.list_discovered(db, current_company.id, status)


@router.patch("/discovered/{discovered_id}", response_model=DiscoveredResponse)
async def update_discovered(
    discovered_id: uuid.UUID,
    data: DiscoveredUpdate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfp_service.update_discovered(db, current_company.id, discovered_id, changes(data))


@router.post("/discovered/{discovered_id}/promote", response_model=RfpResponse)
async def promote(
    discovered_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Move an opportunity into the RFP pipeline."""
    return await rfp_service.promote_to_pipeline(db, current_company.id, discovered_id)


# ============================================================================
# Sources
# ============================================================================

@router.get("/sources", response_model=List[SourceResponse])
async def list_sources(
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfp_service.list_sources(db, current_company.id)


@router.post("/sources", response_model=SourceResponse, status_code=201, dependencies=[admin_or_manager])
async def create_source(
    data: SourceCreate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfp_service.create_source(db, current_company.id, data.model_dump())


@router.patch("/sources/{source_id}", response_model=SourceResponse, dependencies=[admin_or_manager])
async def update_source(
    source_id: uuid.UUID,
    data: SourceUpdate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfp_service.update_source(db, current_company.id, source_id, changes(data))


@router.delete("/sources/{source_id}", response_model=Message, dependencies=[admin_or_manager])
async def delete_source(
    source_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    await rfp_service.delete_source(db, current_company.id, source_id)
    return Message(message="Source deleted")


# ============================================================================
# Monitoring rule
# ============================================================================

@router.get("/rule", response_model=Optional[RuleResponse])
async def get_rule(
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await get_active_rule(db, current_company.id)


@router.put("/rule", response_model=RuleResponse, dependencies=[admin_or_manager])
async def update_rule(
    data: RuleUpdate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfp_service.upsert_monitoring_rule(db, current_company.id, changes(data))
