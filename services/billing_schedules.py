"""
Billing Schedule Service

Recurring billing for project services. The nightly run turns every due
schedule into a billing request, and into a ready-to-send invoice when the
schedule is auto-approved.
"""

import logging
import uuid
from datetime import datetime, timezone, date
from dateutil.relativedelta import relativedelta
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import BillingSchedule, BillingRequest, Project
from services.errors import RecordNotFound, InvalidOperation
from services.formatters import money
from services.invoices import create_invoice

logger = logging.getLogger("ordino.services.billing_schedules")

FREQUENCIES = {
    "weekly": relativedelta(days=7),
    "biweekly": relativedelta(days=14),
    "monthly": relativedelta(months=1),
    "quarterly": relativedelta(months=3),
}
MONTHLY_FREQUENCIES = ("monthly", "quarterly")
BILLING_METHODS = ("fixed", "percentage")

SCHEDULE_FIELDS = (
    "service_name", "billing_method", "billing_value", "frequency", "next_bill_date",
    "end_date", "max_occurrences", "auto_approve", "billed_to_contact_id",
)


def next_bill_date(current: date, frequency: str, anchor_day: Optional[int] = None) -> date:
    """
    Advance a bill date.

    Monthly and quarterly steps land on the anchor day, clamped to the end
    of shorter months, so a schedule anchored on the 31st runs
    Jan 31, Feb 28, Mar 31. Without an anchor the current day is used.
    """
    if frequency not in FREQUENCIES:
        raise InvalidOperation(f"Unknown billing frequency: {frequency}")
    if frequency in MONTHLY_FREQUENCIES and anchor_day:
        return current + FREQUENCIES[frequency] + relativedelta(day=anchor_day)
    return current + FREQUENCIES[frequency]


def format_percentage(value) -> str:
    """10.00 gives "10", 12.50 gives "12.5"."""
    return format(money(value).normalize(), "f")


def is_exhausted(schedule: BillingSchedule, today: date) -> bool:
    """True when the schedule has hit its occurrence cap or passed its end date."""
    if schedule.max_occurrences and (schedule.occurrences_completed or 0) >= schedule.max_occurrences:
        return True
    if schedule.end_date and schedule.end_date < today:
        return True
    return False


def service_item(schedule: BillingSchedule) -> Dict[str, Any]:
    value = money(schedule.billing_value)
    if schedule.billing_method == "percentage":
        description = f"{format_percentage(schedule.billing_value)}% recurring"
    else:
        description = f"${value:.2f} recurring"

    return {
        "name": schedule.service_name,
        "description": description,
        "quantity": 1,
        "rate": str(value),
        "amount": str(value),
        "billing_method": schedule.billing_method,
        "billing_value": str(value),
    }


def _validate(data: Dict[str, Any]) -> None:
    if "frequency" in data and data["frequency"] not in FREQUENCIES:
        raise InvalidOperation(f"Unknown billing frequency: {data['frequency']}")
    if "billing_method" in data and data["billing_method"] not in BILLING_METHODS:
        raise InvalidOperation(f"Unknown billing method: {data['billing_method']}")
    if "billing_value" in data and money(data["billing_value"]) <= 0:
        raise InvalidOperation("Billing value must be greater than zero")


# ============================================================================
# CRUD
# ============================================================================

async def list_schedules(
    db: AsyncSession,
    company_id: uuid.UUID,
    project_id: Optional[uuid.UUID] = None,
    active_only: bool = False
) -> List[BillingSchedule]:
    query = (
        select(BillingSchedule)
        .where(BillingSchedule.company_id == company_id)
        .order_by(BillingSchedule.next_bill_date)
    )
    if project_id:
        query = query.where(BillingSchedule.project_id == project_id)
    if active_only:
        query = query.where(BillingSchedule.is_active.is_(True))

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_schedule(
    db: AsyncSession,
    company_id: uuid.UUID,
    schedule_id: uuid.UUID
) -> BillingSchedule:
    result = await db.execute(
        select(BillingSchedule).where(
            BillingSchedule.id == schedule_id,
            BillingSchedule.company_id == company_id
        )
    )
    schedule = result.scalar_one_or_none()
    if schedule is None:
        raise RecordNotFound("Billing schedule not found")
    return schedule


async def create_schedule(
    db: AsyncSession,
    company_id: uuid.UUID,
    project_id: uuid.UUID,
    data: Dict[str, Any],
    user_id: Optional[uuid.UUID] = None
) -> BillingSchedule:
    _validate(data)
    result = await db.execute(
        select(Project.id).where(Project.id == project_id, Project.company_id == company_id)
    )
    if result.scalar_one_or_none() is None:
        raise RecordNotFound("Project not found")

    schedule = BillingSchedule(
        company_id=company_id,
        project_id=project_id,
        created_by=user_id,
        anchor_day=data["next_bill_date"].day if data.get("next_bill_date") else None,
        **{k: data[k] for k in SCHEDULE_FIELDS if k in data}
    )
    db.add(schedule)
    await db.commit()
    return schedule


async def update_schedule(
    db: AsyncSession,
    company_id: uuid.UUID,
    schedule_id: uuid.UUID,
    data: Dict[str, Any]
) -> BillingSchedule:
    _validate(data)
    schedule = await get_schedule(db, company_id, schedule_id)
    for key in SCHEDULE_FIELDS + ("is_active",):
        if key in data:
            setattr(schedule, key, data[key])
    if data.get("next_bill_date"):
        schedule.anchor_day = data["next_bill_date"].day
    await db.commit()
    return schedule


async def deactivate_schedule(
    db: AsyncSession,
    company_id: uuid.UUID,
    schedule_id: uuid.UUID
) -> BillingSchedule:
    schedule = await get_schedule(db, company_id, schedule_id)
    schedule.is_active = False
    await db.commit()
    return schedule


# ============================================================================
# Nightly run
# ============================================================================

async def _bill_schedule(db: AsyncSession, schedule: BillingSchedule, project: Project) -> BillingRequest:
    item = service_item(schedule)
    amount = money(schedule.billing_value)

    request = BillingRequest(
        id=uuid.uuid4(),
        company_id=schedule.company_id,
        project_id=schedule.project_id,
        services=[item],
        total_amount=amount,
        status="pending",
        billed_to_contact_id=schedule.billed_to_contact_id,
        created_by=schedule.created_by
    )
    db.add(request)

    if schedule.auto_approve:
        invoice = await create_invoice(
            db,
            schedule.company_id,
            {
                "project_id": schedule.project_id,
                "client_id": project.client_id if project else None,
                "billing_request_id": request.id,
                "billed_to_contact_id": schedule.billed_to_contact_id,
                "line_items": [{"description": item["name"], "quantity": 1, "rate": amount}],
                "status": "ready_to_send",
                "payment_terms": "Net 30",
            },
            user_id=schedule.created_by,
            commit=False
        )
        request.invoice_id = invoice.id
        request.status = "invoiced"

    schedule.next_bill_date = next_bill_date(
        schedule.next_bill_date, schedule.frequency, schedule.anchor_day
    )
    schedule.occurrences_completed = (schedule.occurrences_completed or 0) + 1
    schedule.last_billed_at = datetime.now(timezone.utc)
    return request


async def process_due_schedules(
    db: AsyncSession,
    today: Optional[date] = None,
    company_id: Optional[uuid.UUID] = None
) -> int:
    """
    Bill every active schedule due on or before today.

    Each schedule commits on its own, so one failure does not block the
    rest of the run. Returns the number of schedules billed.
    """
    today = today or date.today()
    query = (
        select(BillingSchedule.id)
        .where(
            BillingSchedule.is_active.is_(True),
            BillingSchedule.next_bill_date <= today
        )
    )
    if company_id:
        query = query.where(BillingSchedule.company_id == company_id)

    result = await db.execute(query)
    schedule_ids = list(result.scalars().all())

    processed = 0
    for schedule_id in schedule_ids:
        result = await db.execute(
            select(BillingSchedule, Project)
            .outerjoin(Project, Project.id == BillingSchedule.project_id)
            .where(BillingSchedule.id == schedule_id)
            .with_for_update(of=BillingSchedule)
        )
        schedule, project = result.one()

        if is_exhausted(schedule, today):
            schedule.is_active = False
            await db.commit()
            logger.info(f"Deactivated finished billing schedule {schedule_id}")
            continue

        try:
            await _bill_schedule(db, schedule, project)
            await db.commit()
            processed += 1
        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to bill schedule {schedule_id}: {e}")

    logger.info(f"Processed {processed} billing schedule(s) for {today.isoformat()}")
    return processed
