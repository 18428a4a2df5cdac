"""
Information Requests Router (v1)

Questionnaire templates, the PIS drafted for each project, and the public
form the client fills in. The /rfi/public routes need no login; the
access token in the path is the credential.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company, User
from api.auth.dependencies import get_current_active_user, get_current_company
from api.middleware.rate_limit import limiter, LIMIT_PUBLIC
from api.routes.common import ORMModel, Message, changes
from services import rfi as rfi_service


router = APIRouter(prefix="/rfi", tags=["Information Requests"])


class FieldConfig(BaseModel):
    id: str = Field(min_length=1)
    label: str = Field(min_length=1)
    type: str
    placeholder: Optional[str] = None
    required: bool = False
    options: Optional[List[str]] = None
    width: Optional[str] = None
    accept: Optional[str] = None
    maxFiles: Optional[int] = None
    repeatableGroup: Optional[bool] = None
    maxRepeatGroup: Optional[int] = None


class SectionConfig(BaseModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: Optional[str] = None
    fields: List[FieldConfig] = []


class TemplateCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    is_default: bool = False
    sections: Optional[List[SectionConfig]] = None


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    is_default: Optional[bool] = None
    sections: Optional[List[SectionConfig]] = None


class TemplateResponse(ORMModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    is_default: bool = False
    sections: List[Dict[str, Any]] = []
    created_at: Optional[datetime] = None


class PisCreate(BaseModel):
    project_id: uuid.UUID
    template_id: Optional[uuid.UUID] = None
    recipient_name: Optional[str] = None
    recipient_email: Optional[EmailStr] = None


class SendRequest(BaseModel):
    deliver: bool = True


class RequestResponse(ORMModel):
    id: uuid.UUID
    project_id: Optional[uuid.UUID] = None
    proposal_id: Optional[uuid.UUID] = None
    template_id: Optional[uuid.UUID] = None
    title: str
    recipient_name: Optional[str] = None
    recipient_email: Optional[str] = None
    status: str
    sections: List[Dict[str, Any]] = []
    responses: Dict[str, Any] = {}
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class SentResponse(BaseModel):
    request: RequestResponse
    link: str


class PublicForm(ORMModel):
    title: str
    recipient_name: Optional[str] = None
    status: str
    sections: List[Dict[str, Any]] = []
    responses: Dict[str, Any] = {}


class PublicSubmission(BaseModel):
    responses: Dict[str, Any]


# ============================================================================
# Templates
# ============================================================================

@router.get("/templates", response_model=List[TemplateResponse])
async def list_templates(
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfi_service.list_templates(db, current_company.id)


@router.post("/templates", response_model=TemplateResponse, status_code=201)
async def create_template(
    data: TemplateCreate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Create a template; without sections it starts from the standard PIS."""
    payload = data.model_dump()
    payload["sections"] = [s.model_dump(exclude_none=True) for s in data.sections] if data.sections else None
    return await rfi_service.create_template(db, current_company.id, payload)


@router.patch("/templates/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: uuid.UUID,
    data: TemplateUpdate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    payload = changes(data)
    if data.sections is not None:
        payload["sections"] = [s.model_dump(exclude_none=True) for s in data.sections]
    return await rfi_service.update_template(db, current_company.id, template_id, payload)


@router.delete("/templates/{template_id}", response_model=Message)
async def delete_template(
    template_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    await rfi_service.delete_template(db, current_company.id, template_id)
    return Message(message="Template deleted")


# ============================================================================
# Requests
# ============================================================================

@router.get("/requests", response_model=List[RequestResponse])
async def list_requests(
    project_id: Optional[uuid.UUID] = None,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfi_service.list_requests(db, current_company.id, project_id)


@router.post("/requests", response_model=RequestResponse, status_code=201)
async def create_pis(
    data: PisCreate,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Draft a pre-filled Project Information Sheet for a project."""
    return await rfi_service.create_pis_request(
        db, current_company.id, data.project_id, current_user.id,
        template_id=data.template_id,
        recipient_name=data.recipient_name,
        recipient_email=data.recipient_email
    )


@router.get("/requests/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await rfi_service.get_request(db, current_company.id, request_id)


@router.post("/requests/{request_id}/send", response_model=SentResponse)
async def send_request(
    request_id: uuid.UUID,
    data: SendRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Email the form link from the user's Gmail, or just mark it sent with `deliver` off."""
    request, link = await rfi_service.send_request(
        db, current_company.id, request_id, current_user.id, deliver=data.deliver
    )
    return SentResponse(request=RequestResponse.model_validate(request), link=link)


# ============================================================================
# Public form
# ============================================================================

@router.get("/public/{token}", response_model=PublicForm)
@limiter.limit(LIMIT_PUBLIC)
async def open_form(request: Request, token: str, db: AsyncSession = Depends(get_db)):
    return await rfi_service.open_public(db, token)


@router.post("/public/{token}", response_model=PublicForm)
@limiter.limit(LIMIT_PUBLIC)
async def submit_form(
    request: Request,
    token: str,
    data: PublicSubmission,
    db: AsyncSession = Depends(get_db)
):
    return await rfi_service.submit_public(db, token, data.responses)
