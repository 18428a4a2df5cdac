"""
Leads Router (v1)

Public website lead intake. No authentication; rate limited per IP.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from api.middleware.rate_limit import limiter, LIMIT_PUBLIC
from services.proposals import receive_lead


router = APIRouter(prefix="/leads", tags=["Leads"])


class LeadRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    service_needed: Optional[str] = None
    description: Optional[str] = None
    source: str = "website"
    company_slug: Optional[str] = None


class LeadResponse(BaseModel):
    proposal_id: uuid.UUID
    proposal_number: str


@router.post("", response_model=LeadResponse, status_code=201)
@limiter.limit(LIMIT_PUBLIC)
async def create_lead(
    request: Request,
    data: LeadRequest,
    db: AsyncSession = Depends(get_db)
):
    """Turn a website enquiry into a draft proposal."""
    proposal = await receive_lead(db, **data.model_dump())
    return LeadResponse(proposal_id=proposal.id, proposal_number=proposal.proposal_number)
