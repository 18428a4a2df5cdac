"""
Invoices Router (v1)

Invoice CRUD, sending (optionally by Gmail with the PDF attached),
payments, follow-ups, the activity log and PDF download.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Client, Company, User
from api.auth.dependencies import get_current_active_user, get_current_company, require_roles
from api.routes.common import ORMModel, Message, changes
from services import invoices as invoice_service
from services.invoice_pdf import render_pdf


router = APIRouter(prefix="/invoices", tags=["Invoices"])

billing_roles = Depends(require_roles(["admin", "manager", "accounting"]))


class LineItem(BaseModel):
    description: str
    quantity: Decimal = Decimal("1")
    rate: Decimal


class InvoiceCreate(BaseModel):
    project_id: Optional[uuid.UUID] = None
    client_id: Optional[uuid.UUID] = None
    billed_to_contact_id: Optional[uuid.UUID] = None
    line_items: List[LineItem] = []
    fees: Dict[str, Decimal] = {}
    status: str = "draft"
    review_reason: Optional[str] = None
    payment_terms: Optional[str] = None
    due_date: Optional[date] = None
    special_instructions: Optional[str] = None


class InvoiceUpdate(BaseModel):
    project_id: Optional[uuid.UUID] = None
    client_id: Optional[uuid.UUID] = None
    billed_to_contact_id: Optional[uuid.UUID] = None
    line_items: Optional[List[LineItem]] = None
    fees: Optional[Dict[str, Decimal]] = None
    status: Optional[str] = None
    review_reason: Optional[str] = None
    payment_terms: Optional[str] = None
    due_date: Optional[date] = None
    special_instructions: Optional[str] = None


class InvoiceResponse(ORMModel):
    id: uuid.UUID
    invoice_number: str
    project_id: Optional[uuid.UUID] = None
    client_id: Optional[uuid.UUID] = None
    billing_request_id: Optional[uuid.UUID] = None
    billed_to_contact_id: Optional[uuid.UUID] = None
    retainer_id: Optional[uuid.UUID] = None
    line_items: list = []
    subtotal: Decimal
    fees: dict = {}
    retainer_applied: Decimal
    total_due: Decimal
    status: str
    review_reason: Optional[str] = None
    payment_terms: Optional[str] = None
    due_date: Optional[date] = None
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    payment_amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    gmail_message_id: Optional[str] = None
    special_instructions: Optional[str] = None
    created_at: Optional[datetime] = None


class SendRequest(BaseModel):
    """Email delivery is optional; without email_to the invoice is only marked sent."""
    email_to: Optional[EmailStr] = None
    subject: Optional[str] = None
    html_body: Optional[str] = None


class PaymentRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    method: Optional[str] = None
    paid_at: Optional[datetime] = None


class FollowUpRequest(BaseModel):
    contact_method: str = Field(min_length=1)
    notes: Optional[str] = None


class FollowUpResponse(ORMModel):
    id: uuid.UUID
    contact_method: str
    notes: Optional[str] = None
    performed_by: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None


class ActivityResponse(ORMModel):
    id: uuid.UUID
    action: str
    details: Optional[str] = None
    performed_by: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None


def _lines(items: List[LineItem]) -> List[dict]:
    return [item.model_dump() for item in items]


@router.get("", response_model=List[InvoiceResponse])
async def list_invoices(
    status: Optional[str] = "all",
    client_id: Optional[uuid.UUID] = None,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await invoice_service.list_invoices(db, current_company.id, status, client_id)


@router.get("/counts", response_model=Dict[str, int])
async def invoice_counts(
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Invoice count per status, plus "all"."""
    return await invoice_service.count_by_status(db, current_company.id)


@router.post("", response_model=InvoiceResponse, status_code=201, dependencies=[billing_roles])
async def create_invoice(
    data: InvoiceCreate,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    payload = data.model_dump()
    payload["line_items"] = _lines(data.line_items)
    return await invoice_service.create_invoice(db, current_company.id, payload, user_id=current_user.id)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await invoice_service.get_invoice(db, current_company.id, invoice_id)


@router.patch("/{invoice_id}", response_model=InvoiceResponse, dependencies=[billing_roles])
async def update_invoice(
    invoice_id: uuid.UUID,
    data: InvoiceUpdate,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    payload = changes(data)
    if data.line_items is not None:
        payload["line_items"] = _lines(data.line_items)
    return await invoice_service.update_invoice(
        db, current_company.id, invoice_id, payload, user_id=current_user.id
    )


@router.delete("/{invoice_id}", response_model=Message, dependencies=[billing_roles])
async def delete_invoice(
    invoice_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    await invoice_service.delete_invoice(db, current_company.id, invoice_id)
    return Message(message="Invoice deleted")


@router.post("/{invoice_id}/send", response_model=InvoiceResponse, dependencies=[billing_roles])
async def send_invoice(
    invoice_id: uuid.UUID,
    data: SendRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    """Mark the invoice sent, emailing it first when a recipient is given."""
    if data.email_to:
        from services.gmail import send_email

        invoice = await invoice_service.get_invoice(db, current_company.id, invoice_id)
        client = await db.get(Client, invoice.client_id) if invoice.client_id else None
        pdf = render_pdf(invoice, current_company, client)
        await send_email(
            db, current_company.id, current_user.id,
            to=data.email_to,
            subject=data.subject or f"Invoice {invoice.invoice_number} from {current_company.name}",
            html_body=data.html_body or (
                f"<p>Please find attached invoice {invoice.invoice_number}.</p>"
                f"<p>Thank you,<br>{current_company.name}</p>"
            ),
            attachments=[{
                "filename": f"{invoice.invoice_number}.pdf",
                "content": pdf,
                "mime_type": "application/pdf",
            }],
            invoice_id=invoice.id
        )

    return await invoice_service.send_invoice(db, current_company.id, invoice_id, user_id=current_user.id)


@router.post("/{invoice_id}/payment", response_model=InvoiceResponse, dependencies=[billing_roles])
async def record_payment(
    invoice_id: uuid.UUID,
    data: PaymentRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await invoice_service.record_payment(
        db, current_company.id, invoice_id, data.amount,
        method=data.method, paid_at=data.paid_at, user_id=current_user.id
    )


@router.get("/{invoice_id}/follow-ups", response_model=List[FollowUpResponse])
async def list_follow_ups(
    invoice_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await invoice_service.list_follow_ups(db, current_company.id, invoice_id)


@router.post("/{invoice_id}/follow-ups", response_model=FollowUpResponse, status_code=201)
async def add_follow_up(
    invoice_id: uuid.UUID,
    data: FollowUpRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await invoice_service.add_follow_up(
        db, current_company.id, invoice_id, data.contact_method, data.notes, user_id=current_user.id
    )


@router.get("/{invoice_id}/activity", response_model=List[ActivityResponse])
async def list_activity(
    invoice_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await invoice_service.list_activity(db, current_company.id, invoice_id)


@router.get("/{invoice_id}/pdf")
async def download_pdf(
    invoice_id: uuid.UUID,
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    invoice = await invoice_service.get_invoice(db, current_company.id, invoice_id)
    client = await db.get(Client, invoice.client_id) if invoice.client_id else None
    return Response(
        content=render_pdf(invoice, current_company, client),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{invoice.invoice_number}.pdf"'}
    )
