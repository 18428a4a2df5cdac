"""
Retainers Router (v1)

Client retainer balances and their ledger. Every balance change is a
ledger transaction written in the same DB transaction.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company, User
from api.auth.dependencies import get_current_active_user, get_current_company, require_roles
from api.routes.common import ORMModel
from api.routes.invoices import InvoiceResponse
from services import retainers as retainer_service


router = APIRouter(
    prefix="/retainers",
    tags=["Retainers"],
    dependencies=[Depends(require_roles(["admin", "manager", "accounting"]))]
)


class RetainerResponse(ORMModel):
    id: uuid.UUID
    client_id: uuid.UUID
    client_name: Optional[str] = None
    original_amount: Decimal
    current_balance: Decimal
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class TransactionResponse(ORMModel):
    id: uuid.UUID
    invoice_id: Optional[uuid.UUID] = None
    type: str
    amount: Decimal
    balance_after: Decimal
    description: Optional[str] = None
    performed_by: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None


class RetainerCreate(BaseModel):
    client_id: uuid.UUID
    amount: Decimal = Field(gt=0)
    notes: Optional[str] = None


class FundsRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    description: Optional[str] = None


class ApplyRequest(BaseModel):
    invoice_id: uuid.UUID
    amount: Decimal = Field(gt=0)


class ApplyResponse(BaseModel):
    retainer: RetainerResponse
    invoice: InvoiceResponse


class RefundRequest(BaseModel):
    """Omit amount to refund the whole balance."""
    amount: Optional[Decimal] = Field(default=None, gt=0)
    description: Optional[str] = None


class AdjustRequest(BaseModel):
    amount: Decimal
    description: str = Field(min_length=1)


@router.get("", response_model=List[RetainerResponse])
async def list_retainers(
    client_id: Optional[uuid.UUID] = None,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    rows = await retainer_service.list_retainers(db, current_company.id, client_id)
    return [
        RetainerResponse.model_validate(retainer).model_copy(update={"client_name": client_name})
        for retainer, client_name in rows
    ]


@router.post("", response_model=RetainerResponse, status_code=201)
async def create_retainer(
    data: RetainerCreate,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await retainer_service.create_retainer(
        db, current_company.id, data.client_id, data.amount, data.notes, user_id=current_user.id
    )


@router.get("/active", response_model=Optional[RetainerResponse])
async def get_active_retainer(
    client_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """The client's latest active retainer, or null."""
    return await retainer_service.get_active_retainer(db, current_company.id, client_id)


@router.get("/{retainer_id}", response_model=RetainerResponse)
async def get_retainer(
    retainer_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await retainer_service.get_retainer(db, current_company.id, retainer_id)


@router.get("/{retainer_id}/transactions", response_model=List[TransactionResponse])
async def list_transactions(
    retainer_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await retainer_service.list_transactions(db, current_company.id, retainer_id)


@router.post("/{retainer_id}/deposit", response_model=RetainerResponse)
async def add_funds(
    retainer_id: uuid.UUID,
    data: FundsRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await retainer_service.add_funds(
        db, current_company.id, retainer_id, data.amount, data.description, user_id=current_user.id
    )


@router.post("/{retainer_id}/apply", response_model=ApplyResponse)
async def apply_to_invoice(
    retainer_id: uuid.UUID,
    data: ApplyRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Draw down the retainer against one of the same client's invoices."""
    retainer, invoice = await retainer_service.apply_to_invoice(
        db, current_company.id, retainer_id, data.invoice_id, data.amount, user_id=current_user.id
    )
    return ApplyResponse(
        retainer=RetainerResponse.model_validate(retainer),
        invoice=InvoiceResponse.model_validate(invoice)
    )


@router.post("/{retainer_id}/refund", response_model=RetainerResponse)
async def refund(
    retainer_id: uuid.UUID,
    data: RefundRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await retainer_service.refund(
        db, current_company.id, retainer_id, data.amount, data.description, user_id=current_user.id
    )


@router.post("/{retainer_id}/adjust", response_model=RetainerResponse)
async def adjust(
    retainer_id: uuid.UUID,
    data: AdjustRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Signed correction to the balance."""
    return await retainer_service.adjust(
        db, current_company.id, retainer_id, data.amount, data.description, user_id=current_user.id
    )


@router.post("/{retainer_id}/cancel", response_model=RetainerResponse)
async def cancel(
    retainer_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await retainer_service.cancel(db, current_company.id, retainer_id)
