"""
RFP Pipeline Router (v1)

RFPs the firm is pursuing, including creation from an uploaded document.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Literal

from fastapi import APIRouter, UploadFile, File, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company
from api.auth.dependencies import get_current_company
from api.middleware.error_handler import ValidationError
from api.middleware.rate_limit import limiter, LIMIT_AI
from api.routes.common import ORMModel, Message, changes
from services import rfps as rfp_service


router = APIRouter(prefix="/rfps", tags=["RFPs"])

SUPPORTED_SUFFIXES = ("pdf", "docx")

RfpStatus = Literal["prospect", "drafting", "submitted", "won", "lost"]


class RfpCreate(BaseModel):
    title: str = Field(min_length=1)
    rfp_number: Optional[str] = None
    agency: Optional[str] = None
    due_date: Optional[date] = None
    contract_value: Optional[Decimal] = None
    status: RfpStatus = "prospect"
    scope_summary: Optional[str] = None
    notes: Optional[str] = None


class RfpUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    rfp_number: Optional[str] = None
    agency: Optional[str] = None
    due_date: Optional[date] = None
    contract_value: Optional[Decimal] = None
    status: Optional[RfpStatus] = None
    scope_summary: Optional[str] = None
    notes: Optional[str] = None


class RfpResponse(ORMModel):
    id: uuid.UUID
    title: str
    rfp_number: Optional[str] = None
    agency: Optional[str] = None
    due_date: Optional[date] = None
    contract_value: Optional[Decimal] = None
    status: str
    scope_summary: Optional[str] = None
    notes: Optional[str] = None
    extracted: Optional[dict] = None
    created_at: Optional[datetime] = None


class UploadResponse(BaseModel):
    rfp: RfpResponse
    warnings: List[str] = []


@router.get("", response_model=List[RfpResponse])
async def list_rfps(
    status: Optional[str] = None,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfp_service.list_rfps(db, current_company.id, status)


@router.post("", response_model=RfpResponse, status_code=201)
async def create_rfp(
    data: RfpCreate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfp_service.create_rfp(db, current_company.id, data.model_dump())


@router.post("/upload", response_model=UploadResponse, status_code=201)
@limiter.limit(LIMIT_AI)
async def upload_rfp(
    request: Request,
    file: UploadFile = File(...),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """
    Create an RFP from a PDF or DOCX.

    The text is extracted and the AI fills in title, agency, due date,
    value and scope. The original file is kept with the RFP.
    """
    if not file.filename:
        raise ValidationError("No filename provided")
    suffix = file.filename.lower().rsplit(".", 1)[-1]
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValidationError("Unsupported file format. Please upload PDF or DOCX.")

    content = await file.read()
    result = await rfp_service.extract_from_document(db, current_company.id, file.filename, content)
    return UploadResponse(
        rfp=RfpResponse.model_validate(result["rfp"]),
        warnings=result["warnings"]
    )


@router.get("/{rfp_id}", response_model=RfpResponse)
async def get_rfp(
    rfp_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfp_service.get_rfp(db, current_company.id, rfp_id)


@router.patch("/{rfp_id}", response_model=RfpResponse)
async def update_rfp(
    rfp_id: uuid.UUID,
    data: RfpUpdate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfp_service.update_rfp(db, current_company.id, rfp_id, changes(data))


@router.delete("/{rfp_id}", response_model=Message)
async def delete_rfp(
    rfp_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    await rfp_service.delete_rfp(db, current_company.id, rfp_id)
    return Message(message="RFP deleted")
