"""
Invoice Service

Invoice lifecycle: draft -> ready_to_send / needs_review -> sent -> overdue -> paid.
Every state change is written to the invoice activity log.
"""

import logging
import uuid
from datetime import datetime, date, timedelta, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import Invoice, InvoiceActivity, InvoiceFollowUp
from services.errors import RecordNotFound, InvalidOperation
from services.formatters import money, format_currency, parse_payment_terms
from services.numbering import next_number

logger = logging.getLogger("ordino.services.invoices")

INVOICE_STATUSES = ("draft", "ready_to_send", "needs_review", "sent", "overdue", "paid")
SENDABLE_STATUSES = ("draft", "ready_to_send", "needs_review", "sent", "overdue")
# sent, overdue and paid are reached only through send, the overdue sweep and record_payment
EDITABLE_STATUSES = ("draft", "ready_to_send", "needs_review")


# ============================================================================
# Totals
# ============================================================================

def normalize_line_items(line_items: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Recompute each line's amount as quantity x rate.

    Lines are stored as JSON, so money is kept as strings.
    """
    normalized = []
    for item in line_items or []:
        quantity = Decimal(str(item.get("quantity", 1) or 0))
        rate = money(item.get("rate", 0))
        normalized.append({
            "description": item.get("description", ""),
            "quantity": str(quantity),
            "rate": str(rate),
            "amount": str(money(quantity * rate)),
        })
    return normalized


def compute_subtotal(line_items: List[Dict[str, Any]]) -> Decimal:
    return money(sum((money(item["amount"]) for item in line_items), Decimal("0")))


def compute_total_due(
    subtotal: Decimal,
    fees: Optional[Dict[str, Any]],
    retainer_applied: Decimal
) -> Decimal:
    """Subtotal plus fees less retainer credit, never below zero."""
    fee_total = sum((money(v) for v in (fees or {}).values()), Decimal("0"))
    total = money(subtotal) + fee_total - money(retainer_applied)
    return max(Decimal("0.00"), money(total))


def due_date_for(terms: Optional[str], sent_on: date) -> date:
    return sent_on + timedelta(days=parse_payment_terms(terms))


def _normalize_fees(fees: Optional[Dict[str, Any]]) -> Dict[str, str]:
    return {name: str(money(amount)) for name, amount in (fees or {}).items()}


def log_activity(
    db: AsyncSession,
    invoice: Invoice,
    action: str,
    details: Optional[str] = None,
    user_id: Optional[uuid.UUID] = None
) -> InvoiceActivity:
    activity = InvoiceActivity(
        company_id=invoice.company_id,
        invoice_id=invoice.id,
        action=action,
        details=details,
        performed_by=user_id
    )
    db.add(activity)
    return activity


# ============================================================================
# Queries
# ============================================================================

async def get_invoice(
    db: AsyncSession,
    company_id: uuid.UUID,
    invoice_id: uuid.UUID
) -> Invoice:
    result = await db.execute(
        select(Invoice).where(Invoice.id == invoice_id, Invoice.company_id == company_id)
    )
    invoice = result.scalar_one_or_none()
    if invoice is None:
        raise RecordNotFound("Invoice not found")
    return invoice


async def list_invoices(
    db: AsyncSession,
    company_id: uuid.UUID,
    status: Optional[str] = None,
    client_id: Optional[uuid.UUID] = None
) -> List[Invoice]:
    query = (
        select(Invoice)
        .where(Invoice.company_id == company_id)
        .order_by(Invoice.created_at.desc())
    )
    if status and status != "all":
        query = query.where(Invoice.status == status)
    if client_id:
        query = query.where(Invoice.client_id == client_id)

    result = await db.execute(query)
    return list(result.scalars().all())


async def count_by_status(db: AsyncSession, company_id: uuid.UUID) -> Dict[str, int]:
    """Invoice counts per status, plus an "all" total."""
    result = await db.execute(
        select(Invoice.status, func.count(Invoice.id))
        .where(Invoice.company_id == company_id)
        .group_by(Invoice.status)
    )
    counts = {status: 0 for status in INVOICE_STATUSES}
    for status, count in result.all():
        counts[status] = count
    counts["all"] = sum(counts.values())
    return counts


async def list_activity(
    db: AsyncSession,
    company_id: uuid.UUID,
    invoice_id: uuid.UUID
) -> List[InvoiceActivity]:
    await get_invoice(db, company_id, invoice_id)
    result = await db.execute(
        select(InvoiceActivity)
        .where(InvoiceActivity.invoice_id == invoice_id)
        .order_by(InvoiceActivity.created_at.desc())
    )
    return list(result.scalars().all())


async def list_follow_ups(
    db: AsyncSession,
    company_id: uuid.UUID,
    invoice_id: uuid.UUID
) -> List[InvoiceFollowUp]:
    result = await db.execute(
        select(InvoiceFollowUp)
        .where(
            InvoiceFollowUp.invoice_id == invoice_id,
            InvoiceFollowUp.company_id == company_id
        )
        .order_by(InvoiceFollowUp.created_at.desc())
    )
    return list(result.scalars().all())


# ============================================================================
# Mutations
# ============================================================================

async def create_invoice(
    db: AsyncSession,
    company_id: uuid.UUID,
    data: Dict[str, Any],
    user_id: Optional[uuid.UUID] = None,
    commit: bool = True
) -> Invoice:
    """
    Create an invoice with the next INV number.

    Pass commit=False to keep the invoice inside a larger transaction.
    """
    status = data.get("status", "draft")
    if status not in EDITABLE_STATUSES:
        raise InvalidOperation(f"New invoices cannot start as {status}")

    line_items = normalize_line_items(data.get("line_items"))
    fees = _normalize_fees(data.get("fees"))
    subtotal = compute_subtotal(line_items)
    retainer_applied = money(data.get("retainer_applied"))

    invoice = Invoice(
        id=uuid.uuid4(),
        company_id=company_id,
        invoice_number=await next_number(db, company_id, "invoice"),
        project_id=data.get("project_id"),
        client_id=data.get("client_id"),
        billing_request_id=data.get("billing_request_id"),
        billed_to_contact_id=data.get("billed_to_contact_id"),
        line_items=line_items,
        subtotal=subtotal,
        fees=fees,
        retainer_applied=retainer_applied,
        total_due=compute_total_due(subtotal, fees, retainer_applied),
        status=status,
        review_reason=data.get("review_reason"),
        payment_terms=data.get("payment_terms") or settings.default_payment_terms,
        due_date=data.get("due_date"),
        special_instructions=data.get("special_instructions"),
        created_by=user_id
    )
    db.add(invoice)
    log_activity(db, invoice, "created", f"Invoice {invoice.invoice_number} created", user_id)

    if commit:
        await db.commit()
    logger.info(f"Created invoice {invoice.invoice_number} ({invoice.total_due})")
    return invoice


UPDATABLE_FIELDS = (
    "project_id", "client_id", "billed_to_contact_id", "status", "review_reason",
    "payment_terms", "due_date", "special_instructions",
)


async def update_invoice(
    db: AsyncSession,
    company_id: uuid.UUID,
    invoice_id: uuid.UUID,
    data: Dict[str, Any],
    user_id: Optional[uuid.UUID] = None
) -> Invoice:
    invoice = await get_invoice(db, company_id, invoice_id)

    if invoice.status == "paid":
        raise InvalidOperation("Cannot edit a paid invoice")
    if "status" in data and data["status"] not in EDITABLE_STATUSES:
        raise InvalidOperation(f"Cannot set status to {data['status']} directly")
    if (
        "client_id" in data
        and data["client_id"] != invoice.client_id
        and money(invoice.retainer_applied) > 0
    ):
        raise InvalidOperation("Invoice has retainer funds applied; it cannot move to another client")

    for field in UPDATABLE_FIELDS:
        if field in data:
            setattr(invoice, field, data[field])

    if "line_items" in data:
        invoice.line_items = normalize_line_items(data["line_items"])
        invoice.subtotal = compute_subtotal(invoice.line_items)
    if "fees" in data:
        invoice.fees = _normalize_fees(data["fees"])
    if {"line_items", "fees"} & data.keys():
        billed = compute_total_due(invoice.subtotal, invoice.fees, Decimal("0"))
        if billed < money(invoice.retainer_applied):
            raise InvalidOperation(
                f"Invoice total cannot drop below the {format_currency(invoice.retainer_applied)} "
                "of retainer credit already applied"
            )
        invoice.total_due = compute_total_due(
            invoice.subtotal, invoice.fees, invoice.retainer_applied
        )

    log_activity(db, invoice, "updated", None, user_id)
    await db.commit()
    return invoice


async def delete_invoice(
    db: AsyncSession,
    company_id: uuid.UUID,
    invoice_id: uuid.UUID
) -> None:
    invoice = await get_invoice(db, company_id, invoice_id)
    if money(invoice.retainer_applied) > 0:
        raise InvalidOperation(
            "Invoice has retainer funds applied; refund or adjust the retainer first"
        )
    await db.delete(invoice)
    await db.commit()


async def send_invoice(
    db: AsyncSession,
    company_id: uuid.UUID,
    invoice_id: uuid.UUID,
    user_id: Optional[uuid.UUID] = None,
    today: Optional[date] = None
) -> Invoice:
    """Mark an invoice sent and fix its due date from the payment terms."""
    invoice = await get_invoice(db, company_id, invoice_id)
    if invoice.status not in SENDABLE_STATUSES:
        raise InvalidOperation(f"Cannot send a {invoice.status} invoice")

    now = datetime.now(timezone.utc)
    invoice.status = "sent"
    invoice.sent_at = now
    if invoice.due_date is None:
        invoice.due_date = due_date_for(invoice.payment_terms, today or now.date())

    log_activity(db, invoice, "sent", f"Due {invoice.due_date.isoformat()}", user_id)
    await db.commit()
    return invoice


async def record_payment(
    db: AsyncSession,
    company_id: uuid.UUID,
    invoice_id: uuid.UUID,
    amount: Decimal,
    method: Optional[str] = None,
    paid_at: Optional[datetime] = None,
    user_id: Optional[uuid.UUID] = None
) -> Invoice:
    invoice = await get_invoice(db, company_id, invoice_id)
    if invoice.status == "paid":
        raise InvalidOperation("Invoice is already paid")
    if money(amount) <= 0:
        raise InvalidOperation("Payment amount must be greater than zero")

    invoice.status = "paid"
    invoice.payment_amount = money(amount)
    invoice.payment_method = method
    invoice.paid_at = paid_at or datetime.now(timezone.utc)

    details = f"Payment of {format_currency(amount)}"
    if method:
        details += f" via {method}"
    log_activity(db, invoice, "paid", details, user_id)

    await db.commit()
    return invoice


async def add_follow_up(
    db: AsyncSession,
    company_id: uuid.UUID,
    invoice_id: uuid.UUID,
    contact_method: str,
    notes: Optional[str] = None,
    user_id: Optional[uuid.UUID] = None
) -> InvoiceFollowUp:
    invoice = await get_invoice(db, company_id, invoice_id)
    follow_up = InvoiceFollowUp(
        company_id=company_id,
        invoice_id=invoice.id,
        contact_method=contact_method,
        notes=notes,
        performed_by=user_id
    )
    db.add(follow_up)
    log_activity(db, invoice, "follow_up", f"Follow-up via {contact_method}", user_id)
    await db.commit()
    return follow_up


async def mark_overdue(
    db: AsyncSession,
    today: Optional[date] = None,
    company_id: Optional[uuid.UUID] = None
) -> int:
    """Flip sent invoices past their due date to overdue. Returns the count."""
    today = today or date.today()
    stmt = (
        update(Invoice)
        .where(Invoice.status == "sent", Invoice.due_date < today)
        .values(status="overdue")
    )
    if company_id:
        stmt = stmt.where(Invoice.company_id == company_id)

    result = await db.execute(stmt)
    await db.commit()
    logger.info(f"Marked {result.rowcount} invoice(s) overdue")
    return result.rowcount


def days_overdue(invoice: Invoice, today: Optional[date] = None) -> int:
    if invoice.due_date is None:
        return 0
    return max(0, ((today or date.today()) - invoice.due_date).days)
