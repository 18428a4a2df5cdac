"""
Payment Intelligence Service

Client payment analytics, AI payment-risk predictions and AI-written
collection messages.
"""

import asyncio
import logging
import uuid
from datetime import datetime, date, timedelta, timezone
from dateutil.relativedelta import relativedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any, Iterable, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    Client, ClientPaymentAnalytics, Company, Invoice, InvoiceFollowUp,
    PaymentPrediction, Project
)
from services.errors import RecordNotFound
from services.formatters import money, format_currency
from services.invoices import get_invoice, days_overdue

logger = logging.getLogger("ordino.services.payments")

REMINDER_METHOD = "reminder_email"


# ============================================================================
# Analytics
# ============================================================================

def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _half_up(value: Decimal, places: str):
    """Round halves up: 62.5 gives 63."""
    rounded = value.quantize(Decimal(places), rounding=ROUND_HALF_UP)
    return int(rounded) if places == "1" else rounded


def compute_client_analytics(
    invoices: Iterable[Invoice],
    reminder_count: int,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Roll a client's invoices up into payment analytics.

    Days to payment run from sent_at (or created_at) to paid_at. Only
    invoices created in the last 12 months count toward on-time/late.
    An invoice with no due date counts as on time.
    """
    now = now or datetime.now(timezone.utc)
    twelve_months_ago = now - relativedelta(months=12)

    total_days = 0
    paid_count = 0
    on_time = 0
    late = 0
    longest_late = 0
    recent = 0
    lifetime = Decimal("0")
    last_payment: Optional[datetime] = None

    for invoice in invoices:
        lifetime += money(invoice.total_due)
        is_recent = invoice.created_at is not None and _as_utc(invoice.created_at) >= twelve_months_ago
        if is_recent:
            recent += 1

        if invoice.paid_at is None:
            continue

        paid_at = _as_utc(invoice.paid_at)
        started = _as_utc(invoice.sent_at or invoice.created_at or paid_at)
        total_days += max(0, (paid_at - started).days)
        paid_count += 1
        if last_payment is None or paid_at > last_payment:
            last_payment = paid_at

        if invoice.due_date:
            days_late = (paid_at.date() - invoice.due_date).days
            if days_late <= 0:
                on_time += is_recent
            else:
                late += is_recent
                longest_late = max(longest_late, days_late)
        else:
            on_time += is_recent

    with_outcome = on_time + late
    reliability = _half_up(Decimal(on_time * 100) / with_outcome, "1") if with_outcome else None
    avg_days = _half_up(Decimal(total_days) / paid_count, "0.01") if paid_count else None

    return {
        "avg_days_to_payment": float(avg_days) if avg_days is not None else None,
        "payment_reliability_score": reliability,
        "last_12mo_invoices": recent,
        "last_12mo_paid_on_time": on_time,
        "last_12mo_late": late,
        "longest_days_late": longest_late,
        "responds_to_reminders": reminder_count > 0 and reliability is not None and reliability >= 60,
        "total_lifetime_value": money(lifetime),
        "last_payment_date": last_payment.date() if last_payment else None,
    }


async def get_analytics(
    db: AsyncSession,
    company_id: uuid.UUID,
    client_id: uuid.UUID
) -> Optional[ClientPaymentAnalytics]:
    result = await db.execute(
        select(ClientPaymentAnalytics).where(
            ClientPaymentAnalytics.company_id == company_id,
            ClientPaymentAnalytics.client_id == client_id
        )
    )
    return result.scalar_one_or_none()


async def analyze_client(
    db: AsyncSession,
    company_id: uuid.UUID,
    client_id: uuid.UUID
) -> ClientPaymentAnalytics:
    """Recompute and store a client's payment analytics."""
    result = await db.execute(
        select(Client.id).where(Client.id == client_id, Client.company_id == company_id)
    )
    if result.scalar_one_or_none() is None:
        raise RecordNotFound("Client not found")

    result = await db.execute(
        select(Invoice).where(Invoice.company_id == company_id, Invoice.client_id == client_id)
    )
    invoices = list(result.scalars().all())

    reminder_count = 0
    if invoices:
        result = await db.execute(
            select(func.count(InvoiceFollowUp.id)).where(
                InvoiceFollowUp.company_id == company_id,
                InvoiceFollowUp.invoice_id.in_([i.id for i in invoices]),
                InvoiceFollowUp.contact_method == REMINDER_METHOD
            )
        )
        reminder_count = result.scalar_one()

    values = compute_client_analytics(invoices, reminder_count)

    analytics = await get_analytics(db, company_id, client_id)
    if analytics is None:
        analytics = ClientPaymentAnalytics(company_id=company_id, client_id=client_id)
        db.add(analytics)
    for key, value in values.items():
        setattr(analytics, key, value)

    await db.commit()
    logger.info(
        f"Client {client_id} analytics: reliability={values['payment_reliability_score']}, "
        f"invoices={len(invoices)}"
    )
    return analytics


# ============================================================================
# Risk prediction
# ============================================================================

def heuristic_risk(overdue_days: int) -> Dict[str, Any]:
    """Fallback prediction when the model's reply cannot be parsed."""
    if overdue_days > 60:
        score = 70
    elif overdue_days > 30:
        score = 50
    else:
        score = 30
    return {
        "risk_score": score,
        "predicted_days_late": overdue_days + 15,
        "confidence_level": "low",
        "factors": {"fallback": "AI response could not be parsed, using heuristic scoring"},
    }


def parse_risk_reply(reply: str, overdue_days: int) -> Dict[str, Any]:
    from agents.base import validate_json_output

    try:
        return validate_json_output(_json_object(reply), [])
    except ValueError:
        logger.warning(f"Could not parse risk prediction: {reply[:200]}")
        return heuristic_risk(overdue_days)


def _json_object(reply: str) -> str:
    """Cut the outermost {...} out of a reply that may carry prose."""
    start, end = reply.find("{"), reply.rfind("}")
    if start == -1 or end < start:
        return reply
    return reply[start:end + 1]


def build_prediction(
    parsed: Dict[str, Any],
    today: Optional[date] = None
) -> Dict[str, Any]:
    """Clamp and complete a parsed prediction."""
    today = today or date.today()
    try:
        score = int(parsed.get("risk_score") or 50)
    except (TypeError, ValueError):
        score = 50
    try:
        days_late = int(parsed.get("predicted_days_late") or 0)
    except (TypeError, ValueError):
        days_late = 0

    confidence = parsed.get("confidence_level") or "medium"
    if confidence not in ("high", "medium", "low"):
        confidence = "medium"

    factors = parsed.get("factors")
    return {
        "risk_score": max(0, min(100, score)),
        "predicted_days_late": days_late or None,
        "predicted_payment_date": today + timedelta(days=days_late),
        "confidence_level": confidence,
        "factors": factors if isinstance(factors, dict) else {},
    }


def _history_context(analytics: Optional[ClientPaymentAnalytics]) -> str:
    if analytics is None:
        return "No historical payment data available for this client."
    return "\n".join([
        f"- Average Days to Payment: {analytics.avg_days_to_payment or 'No data'}",
        f"- Payment Reliability Score: {analytics.payment_reliability_score or 'No data'}/100",
        f"- Last 12 Months: {analytics.last_12mo_paid_on_time or 0} on-time, "
        f"{analytics.last_12mo_late or 0} late",
        f"- Longest Days Late: {analytics.longest_days_late or 0}",
        f"- Lifetime Value: {format_currency(analytics.total_lifetime_value)}",
        f"- Responds to Reminders: {'Yes' if analytics.responds_to_reminders else 'No/Unknown'}",
    ])


async def _invoice_context(
    db: AsyncSession,
    invoice: Invoice
) -> Tuple[Optional[str], Optional[str]]:
    client_name = project_name = None
    if invoice.client_id:
        result = await db.execute(select(Client.name).where(Client.id == invoice.client_id))
        client_name = result.scalar_one_or_none()
    if invoice.project_id:
        result = await db.execute(select(Project.name).where(Project.id == invoice.project_id))
        project_name = result.scalar_one_or_none()
    return client_name, project_name


async def predict_risk(
    db: AsyncSession,
    company_id: uuid.UUID,
    invoice_id: uuid.UUID
) -> PaymentPrediction:
    """Ask the model for a payment-risk prediction and store it."""
    from agents.payment_agents import predict_payment_risk

    invoice = await get_invoice(db, company_id, invoice_id)
    client_name, _ = await _invoice_context(db, invoice)
    analytics = (
        await get_analytics(db, company_id, invoice.client_id) if invoice.client_id else None
    )

    result = await db.execute(
        select(InvoiceFollowUp)
        .where(InvoiceFollowUp.invoice_id == invoice.id)
        .order_by(InvoiceFollowUp.created_at.desc())
        .limit(10)
    )
    follow_ups = "\n".join(
        f"- {f.contact_method}: {f.notes or 'No notes'} ({f.created_at.isoformat()})"
        for f in result.scalars().all()
    ) or "No follow-ups recorded."

    overdue_days = days_overdue(invoice)
    invoice_context = "\n".join([
        f"- Invoice Number: {invoice.invoice_number}",
        f"- Amount: {format_currency(invoice.total_due)}",
        f"- Days Overdue: {overdue_days}",
        f"- Status: {invoice.status}",
        f"- Client: {client_name or 'Unknown'}",
    ])

    reply = await asyncio.to_thread(
        predict_payment_risk, invoice_context, _history_context(analytics), follow_ups
    )
    values = build_prediction(parse_risk_reply(reply, overdue_days))

    prediction = PaymentPrediction(
        company_id=company_id,
        invoice_id=invoice.id,
        client_id=invoice.client_id,
        model_version="v1",
        **values
    )
    db.add(prediction)
    await db.commit()

    logger.info(f"Risk for {invoice.invoice_number}: {values['risk_score']} ({values['confidence_level']})")
    return prediction


async def list_predictions(
    db: AsyncSession,
    company_id: uuid.UUID,
    invoice_id: uuid.UUID
) -> List[PaymentPrediction]:
    result = await db.execute(
        select(PaymentPrediction)
        .where(
            PaymentPrediction.company_id == company_id,
            PaymentPrediction.invoice_id == invoice_id
        )
        .order_by(PaymentPrediction.created_at.desc())
    )
    return list(result.scalars().all())


# ============================================================================
# Collection messages
# ============================================================================

def default_tone(overdue_days: int) -> str:
    if overdue_days > 60:
        return "urgent"
    if overdue_days > 30:
        return "firm"
    return "friendly"


def default_urgency(overdue_days: int) -> str:
    if overdue_days > 60:
        return "high"
    if overdue_days > 30:
        return "medium"
    return "low"


def fallback_collection_message(
    invoice_number: str,
    total_due: Decimal,
    overdue_days: int,
    client_name: Optional[str],
    company_name: Optional[str]
) -> Dict[str, str]:
    return {
        "subject": f"Payment Reminder: Invoice {invoice_number}",
        "body": (
            f"Dear {client_name or 'Client'},\n\n"
            f"This is a reminder that invoice {invoice_number} for {format_currency(total_due)} "
            f"is {overdue_days} days past due. Please remit payment at your earliest convenience.\n\n"
            f"Thank you,\n{company_name or 'Our Team'}"
        ),
    }


async def collection_message(
    db: AsyncSession,
    company: Company,
    invoice_id: uuid.UUID,
    tone: Optional[str] = None,
    urgency: Optional[str] = None,
    offer_payment_plan: bool = False
) -> Dict[str, str]:
    """Draft a collection email for an unpaid invoice."""
    from agents.base import validate_json_output
    from agents.payment_agents import write_collection_message

    invoice = await get_invoice(db, company.id, invoice_id)
    client_name, project_name = await _invoice_context(db, invoice)
    analytics = (
        await get_analytics(db, company.id, invoice.client_id) if invoice.client_id else None
    )

    result = await db.execute(
        select(func.count(InvoiceFollowUp.id)).where(
            InvoiceFollowUp.invoice_id == invoice.id,
            InvoiceFollowUp.contact_method == REMINDER_METHOD
        )
    )
    reminder_count = result.scalar_one()

    overdue_days = days_overdue(invoice)
    tone = tone or default_tone(overdue_days)
    urgency = urgency or default_urgency(overdue_days)

    invoice_context = "\n".join([
        f"- Invoice Number: {invoice.invoice_number}",
        f"- Amount Due: {format_currency(invoice.total_due)}",
        f"- Days Overdue: {overdue_days}",
        f"- Project: {project_name or 'N/A'}",
        f"- Client: {client_name or 'Client'}",
    ])
    client_context = "\n".join([
        "- Payment History: " + (
            f"{analytics.avg_days_to_payment or 'N/A'} avg days to pay" if analytics else "No history"
        ),
        f"- Lifetime Value: {format_currency(analytics.total_lifetime_value if analytics else 0)}",
        f"- Previous Reminders Sent: {reminder_count}",
        f"- Responds to Reminders: {'Yes' if analytics and analytics.responds_to_reminders else 'Unknown'}",
    ])

    reply = await asyncio.to_thread(
        write_collection_message,
        invoice_context, client_context, company.name, tone, urgency, offer_payment_plan
    )
    try:
        message = validate_json_output(_json_object(reply), ["subject", "body"])
    except ValueError:
        logger.warning(f"Could not parse collection message for {invoice.invoice_number}")
        message = fallback_collection_message(
            invoice.invoice_number, invoice.total_due, overdue_days, client_name, company.name
        )

    return {
        "subject": message["subject"],
        "body": message["body"],
        "tone": tone,
        "urgency": urgency,
    }
