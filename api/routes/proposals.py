"""
Proposals Router (v1)

Proposal CRUD, sending, internal signature (conversion to a project) and
AI follow-up drafts.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company, User
from api.auth.dependencies import get_current_active_user, get_current_company, require_roles
from api.middleware.rate_limit import limiter, LIMIT_AI
from api.routes.common import ORMModel, Message, changes
from api.routes.projects import ProjectResponse
from services import proposals as proposal_service


router = APIRouter(prefix="/proposals", tags=["Proposals"])


class ItemIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = Decimal("0")
    sort_order: Optional[int] = None


class MilestoneIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    percentage: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    due_date: Optional[date] = None
    sort_order: Optional[int] = None


class ProposalBase(BaseModel):
    client_id: Optional[uuid.UUID] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    property_address: Optional[str] = None
    scope_of_work: Optional[str] = None
    payment_terms: Optional[str] = None
    deposit_required: Optional[Decimal] = None
    deposit_percentage: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = None
    retainer_amount: Optional[Decimal] = None
    valid_until: Optional[date] = None
    lead_source: Optional[str] = None
    project_type: Optional[str] = None
    notes: Optional[str] = None
    terms_conditions: Optional[str] = None
    assigned_pm_id: Optional[uuid.UUID] = None
    sales_person_id: Optional[uuid.UUID] = None


class ProposalCreate(ProposalBase):
    title: str = Field(min_length=1)
    items: List[ItemIn] = []
    milestones: List[MilestoneIn] = []


class ProposalUpdate(ProposalBase):
    title: Optional[str] = Field(default=None, min_length=1)
    status: Optional[str] = None
    items: Optional[List[ItemIn]] = None
    milestones: Optional[List[MilestoneIn]] = None


class ItemResponse(ORMModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    sort_order: int


class MilestoneResponse(ORMModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    percentage: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    due_date: Optional[date] = None
    sort_order: int


class ProposalResponse(ORMModel):
    id: uuid.UUID
    proposal_number: str
    title: str
    status: str
    client_id: Optional[uuid.UUID] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    property_address: Optional[str] = None
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    retainer_amount: Decimal
    valid_until: Optional[date] = None
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    follow_up_count: int = 0
    last_follow_up_at: Optional[datetime] = None
    assigned_pm_id: Optional[uuid.UUID] = None
    converted_project_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None


class ProposalDetail(ProposalResponse):
    scope_of_work: Optional[str] = None
    payment_terms: Optional[str] = None
    deposit_required: Optional[Decimal] = None
    deposit_percentage: Optional[Decimal] = None
    lead_source: Optional[str] = None
    project_type: Optional[str] = None
    notes: Optional[str] = None
    terms_conditions: Optional[str] = None
    internal_signed_by: Optional[uuid.UUID] = None
    internal_signed_at: Optional[datetime] = None
    items: List[ItemResponse] = []
    milestones: List[MilestoneResponse] = []


class SignRequest(BaseModel):
    assigned_pm_id: Optional[uuid.UUID] = None
    signature_data: Optional[str] = None


class SignResponse(BaseModel):
    proposal: ProposalResponse
    project: ProjectResponse


class FollowUpDraft(BaseModel):
    subject: str
    body: str
    html_body: str


def _payload(data: BaseModel) -> dict:
    """Partial update dict with items and milestones as plain dicts."""
    payload = changes(data)
    for key in ("items", "milestones"):
        if key in payload and payload[key] is None:
            del payload[key]
        elif key in payload:
            payload[key] = [
                {k: v for k, v in child.items() if v is not None} for child in payload[key]
            ]
    return payload


@router.get("", response_model=List[ProposalResponse])
async def list_proposals(
    status: Optional[str] = None,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await proposal_service.list_proposals(db, current_company.id, status)


@router.post("", response_model=ProposalDetail, status_code=201)
async def create_proposal(
    data: ProposalCreate,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Create a draft proposal; totals are computed from the items."""
    return await proposal_service.create_proposal(
        db, current_company.id, _payload(data), user_id=current_user.id
    )


@router.get("/{proposal_id}", response_model=ProposalDetail)
async def get_proposal(
    proposal_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await proposal_service.get_proposal(db, current_company.id, proposal_id)


@router.patch("/{proposal_id}", response_model=ProposalDetail)
async def update_proposal(
    proposal_id: uuid.UUID,
    data: ProposalUpdate,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await proposal_service.update_proposal(db, current_company.id, proposal_id, _payload(data))


@router.delete("/{proposal_id}", response_model=Message)
async def delete_proposal(
    proposal_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    await proposal_service.delete_proposal(db, current_company.id, proposal_id)
    return Message(message="Proposal deleted")


@router.post("/{proposal_id}/send", response_model=ProposalDetail)
async def send_proposal(
    proposal_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await proposal_service.send_proposal(db, current_company.id, proposal_id)


@router.post("/{proposal_id}/viewed", response_model=ProposalDetail)
async def mark_viewed(
    proposal_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await proposal_service.mark_viewed(db, current_company.id, proposal_id)


@router.post("/{proposal_id}/follow-ups", response_model=ProposalDetail)
async def record_follow_up(
    proposal_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await proposal_service.record_follow_up(db, current_company.id, proposal_id)


@router.post("/{proposal_id}/follow-up-draft", response_model=FollowUpDraft)
@limiter.limit(LIMIT_AI)
async def draft_follow_up(
    request: Request,
    proposal_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """AI-written follow-up email for a sent proposal."""
    return await proposal_service.draft_follow_up(db, current_company, proposal_id)


@router.post(
    "/{proposal_id}/sign",
    response_model=SignResponse,
    dependencies=[Depends(require_roles(["admin", "manager"]))]
)
async def sign_internal(
    proposal_id: uuid.UUID,
    data: SignRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Countersign the proposal and convert it into a project."""
    proposal, project = await proposal_service.sign_internal(
        db, current_company.id, proposal_id, current_user.id,
        assigned_pm_id=data.assigned_pm_id,
        signature_data=data.signature_data
    )
    return SignResponse(
        proposal=ProposalResponse.model_validate(proposal),
        project=ProjectResponse.model_validate(project)
    )
