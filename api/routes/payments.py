"""
Payment Intelligence Router (v1)

Client payment analytics, AI risk predictions and collection drafts.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company
from api.auth.dependencies import get_current_company, require_roles
from api.middleware.error_handler import NotFoundError
from api.middleware.rate_limit import limiter, LIMIT_AI
from api.routes.common import ORMModel
from services import payments as payment_service


router = APIRouter(
    prefix="/payments",
    tags=["Payment Intelligence"],
    dependencies=[Depends(require_roles(["admin", "manager", "accounting"]))]
)


class AnalyticsResponse(ORMModel):
    client_id: uuid.UUID
    avg_days_to_payment: Optional[Decimal] = None
    payment_reliability_score: Optional[int] = None
    last_12mo_invoices: int = 0
    last_12mo_paid_on_time: int = 0
    last_12mo_late: int = 0
    longest_days_late: int = 0
    responds_to_reminders: bool = False
    total_lifetime_value: Decimal = Decimal("0")
    last_payment_date: Optional[date] = None
    updated_at: Optional[datetime] = None


class PredictionResponse(ORMModel):
    id: uuid.UUID
    invoice_id: uuid.UUID
    client_id: Optional[uuid.UUID] = None
    risk_score: int
    predicted_days_late: Optional[int] = None
    predicted_payment_date: Optional[date] = None
    confidence_level: str
    factors: dict = {}
    model_version: str
    created_at: Optional[datetime] = None


class CollectionRequest(BaseModel):
    tone: Optional[Literal["friendly", "firm", "urgent"]] = None
    urgency: Optional[Literal["low", "medium", "high"]] = None
    offer_payment_plan: bool = False


class CollectionMessage(BaseModel):
    subject: str
    body: str


@router.get("/clients/{client_id}/analytics", response_model=AnalyticsResponse)
async def get_client_analytics(
    client_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    analytics = await payment_service.get_analytics(db, current_company.id, client_id)
    if analytics is None:
        raise NotFoundError("No analytics yet for this client")
    return analytics


@router.post("/clients/{client_id}/analyze", response_model=AnalyticsResponse)
async def analyze_client(
    client_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Recompute the client's payment history from its invoices."""
    return await payment_service.analyze_client(db, current_company.id, client_id)


@router.post("/invoices/{invoice_id}/predict", response_model=PredictionResponse)
@limiter.limit(LIMIT_AI)
async def predict_risk(
    request: Request,
    invoice_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await payment_service.predict_risk(db, current_company.id, invoice_id)


@router.get("/invoices/{invoice_id}/predictions", response_model=List[PredictionResponse])
async def list_predictions(
    invoice_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await payment_service.list_predictions(db, current_company.id, invoice_id)


@router.post("/invoices/{invoice_id}/collection-message", response_model=CollectionMessage)
@limiter.limit(LIMIT_AI)
async def collection_message(
    request: Request,
    invoice_id: uuid.UUID,
    data: CollectionRequest,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """
    Draft a collection email.

    Tone and urgency default from how far overdue the invoice is.
    """
    return await payment_service.collection_message(
        db, current_company, invoice_id,
        tone=data.tone,
        urgency=data.urgency,
        offer_payment_plan=data.offer_payment_plan
    )
