"""
Proposal Service

Proposals move draft -> sent -> viewed -> signed_internal -> approved (or lost).
Signing a proposal internally converts it into a project with one service
per proposal line.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config.settings import settings
from database.models import (
    Company, CompanyMember, Proposal, ProposalItem, ProposalMilestone,
    Project, ProjectService, User
)
from services.errors import RecordNotFound, InvalidOperation
from services.formatters import money, format_currency
from services.notifications import notify
from services.numbering import next_number

logger = logging.getLogger("ordino.services.proposals")

PROPOSAL_STATUSES = ("draft", "sent", "viewed", "signed_internal", "approved", "lost")
SENDABLE_STATUSES = ("draft", "sent", "viewed")

PROPOSAL_FIELDS = (
    "title", "client_id", "client_name", "client_email", "property_address",
    "scope_of_work", "payment_terms", "deposit_required", "deposit_percentage",
    "tax_rate", "retainer_amount", "valid_until", "lead_source", "project_type",
    "notes", "terms_conditions", "assigned_pm_id", "sales_person_id",
)


# ============================================================================
# Totals
# ============================================================================

def compute_totals(
    items: List[Dict[str, Any]],
    tax_rate: Optional[Decimal] = None
) -> Tuple[Decimal, Decimal, Decimal]:
    """Return (subtotal, tax_amount, total_amount) for proposal lines."""
    subtotal = money(sum(
        (Decimal(str(item.get("quantity", 1) or 0)) * money(item.get("unit_price"))
         for item in items),
        Decimal("0")
    ))
    tax_amount = money(subtotal * Decimal(str(tax_rate or 0)) / 100)
    return subtotal, tax_amount, subtotal + tax_amount


def milestone_amount(milestone: Dict[str, Any], total: Decimal) -> Optional[Decimal]:
    """Explicit milestone amount, else the percentage share of the total."""
    if milestone.get("amount") is not None:
        return money(milestone["amount"])
    if milestone.get("percentage") is not None:
        return money(total * Decimal(str(milestone["percentage"])) / 100)
    return None


def _build_children(
    proposal: Proposal,
    items: List[Dict[str, Any]],
    milestones: List[Dict[str, Any]]
) -> None:
    proposal.items = [
        ProposalItem(
            name=item["name"],
            description=item.get("description"),
            quantity=Decimal(str(item.get("quantity", 1) or 0)),
            unit_price=money(item.get("unit_price")),
            total_price=money(Decimal(str(item.get("quantity", 1) or 0)) * money(item.get("unit_price"))),
            sort_order=item.get("sort_order", index)
        )
        for index, item in enumerate(items)
    ]
    proposal.milestones = [
        ProposalMilestone(
            name=milestone["name"],
            description=milestone.get("description"),
            percentage=milestone.get("percentage"),
            amount=milestone_amount(milestone, proposal.total_amount),
            due_date=milestone.get("due_date"),
            sort_order=milestone.get("sort_order", index)
        )
        for index, milestone in enumerate(milestones)
    ]


# ============================================================================
# CRUD
# ============================================================================

async def list_proposals(
    db: AsyncSession,
    company_id: uuid.UUID,
    status: Optional[str] = None
) -> List[Proposal]:
    query = (
        select(Proposal)
        .where(Proposal.company_id == company_id)
        .order_by(Proposal.created_at.desc())
    )
    if status:
        query = query.where(Proposal.status == status)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_proposal(
    db: AsyncSession,
    company_id: uuid.UUID,
    proposal_id: uuid.UUID,
    for_update: bool = False
) -> Proposal:
    query = (
        select(Proposal)
        .options(selectinload(Proposal.items), selectinload(Proposal.milestones))
        .where(Proposal.id == proposal_id, Proposal.company_id == company_id)
    )
    if for_update:
        query = query.with_for_update()

    result = await db.execute(query)
    proposal = result.scalar_one_or_none()
    if proposal is None:
        raise RecordNotFound("Proposal not found")
    return proposal


async def create_proposal(
    db: AsyncSession,
    company_id: uuid.UUID,
    data: Dict[str, Any],
    user_id: Optional[uuid.UUID] = None
) -> Proposal:
    items = data.get("items") or []
    milestones = data.get("milestones") or []
    subtotal, tax_amount, total = compute_totals(items, data.get("tax_rate"))

    proposal = Proposal(
        id=uuid.uuid4(),
        company_id=company_id,
        proposal_number=await next_number(db, company_id, "proposal"),
        status="draft",
        subtotal=subtotal,
        tax_amount=tax_amount,
        total_amount=total,
        created_by=user_id,
        **{k: data[k] for k in PROPOSAL_FIELDS if k in data}
    )
    _build_children(proposal, items, milestones)
    db.add(proposal)
    await db.commit()

    logger.info(f"Created proposal {proposal.proposal_number} ({format_currency(total)})")
    return await get_proposal(db, company_id, proposal.id)


async def update_proposal(
    db: AsyncSession,
    company_id: uuid.UUID,
    proposal_id: uuid.UUID,
    data: Dict[str, Any]
) -> Proposal:
    """Partial update. Items and milestones, when given, replace the existing ones."""
    proposal = await get_proposal(db, company_id, proposal_id)
    if proposal.converted_project_id and ("items" in data or "tax_rate" in data):
        raise InvalidOperation("Cannot reprice a proposal that has been converted")

    for key in PROPOSAL_FIELDS:
        if key in data:
            setattr(proposal, key, data[key])
    if "status" in data:
        if data["status"] not in PROPOSAL_STATUSES:
            raise InvalidOperation(f"Unknown proposal status: {data['status']}")
        proposal.status = data["status"]

    items = data.get("items")
    if items is None:
        items = [
            {"quantity": i.quantity, "unit_price": i.unit_price} for i in proposal.items
        ]
    proposal.subtotal, proposal.tax_amount, proposal.total_amount = compute_totals(
        items, proposal.tax_rate
    )

    if "items" in data or "milestones" in data:
        new_items = data["items"] if "items" in data else [
            {
                "name": i.name, "description": i.description, "quantity": i.quantity,
                "unit_price": i.unit_price, "sort_order": i.sort_order,
            }
            for i in proposal.items
        ]
        new_milestones = data["milestones"] if "milestones" in data else [
            {
                "name": m.name, "description": m.description, "percentage": m.percentage,
                "amount": m.amount if m.percentage is None else None,
                "due_date": m.due_date, "sort_order": m.sort_order,
            }
            for m in proposal.milestones
        ]
        _build_children(proposal, new_items, new_milestones)
    else:
        # Percentage milestones follow the repriced total
        for milestone in proposal.milestones:
            if milestone.percentage is not None:
                milestone.amount = milestone_amount(
                    {"percentage": milestone.percentage}, proposal.total_amount
                )

    await db.commit()
    return await get_proposal(db, company_id, proposal.id)


async def delete_proposal(db: AsyncSession, company_id: uuid.UUID, proposal_id: uuid.UUID) -> None:
    proposal = await get_proposal(db, company_id, proposal_id)
    if proposal.converted_project_id:
        raise InvalidOperation("Cannot delete a proposal that has been converted to a project")
    await db.delete(proposal)
    await db.commit()


# ============================================================================
# Lifecycle
# ============================================================================

async def send_proposal(db: AsyncSession, company_id: uuid.UUID, proposal_id: uuid.UUID) -> Proposal:
    proposal = await get_proposal(db, company_id, proposal_id)
    if proposal.status not in SENDABLE_STATUSES:
        raise InvalidOperation(f"Cannot send a {proposal.status} proposal")

    proposal.status = "sent"
    proposal.sent_at = datetime.now(timezone.utc)
    await db.commit()
    return proposal


async def mark_viewed(db: AsyncSession, company_id: uuid.UUID, proposal_id: uuid.UUID) -> Proposal:
    proposal = await get_proposal(db, company_id, proposal_id)
    if proposal.viewed_at is None:
        proposal.viewed_at = datetime.now(timezone.utc)
    if proposal.status == "sent":
        proposal.status = "viewed"
    await db.commit()
    return proposal


async def record_follow_up(db: AsyncSession, company_id: uuid.UUID, proposal_id: uuid.UUID) -> Proposal:
    proposal = await get_proposal(db, company_id, proposal_id)
    proposal.follow_up_count = (proposal.follow_up_count or 0) + 1
    proposal.last_follow_up_at = datetime.now(timezone.utc)
    await db.commit()
    return proposal


async def sign_internal(
    db: AsyncSession,
    company_id: uuid.UUID,
    proposal_id: uuid.UUID,
    signer_id: uuid.UUID,
    assigned_pm_id: Optional[uuid.UUID] = None,
    signature_data: Optional[str] = None
) -> Tuple[Proposal, Project]:
    """
    Countersign a proposal and convert it into a project.

    The project, its services, the proposal update and the PM notification
    are committed together.
    """
    proposal = await get_proposal(db, company_id, proposal_id, for_update=True)
    if proposal.converted_project_id:
        raise InvalidOperation("Proposal has already been converted to a project")
    if proposal.status in ("lost", "approved"):
        raise InvalidOperation(f"Cannot sign a {proposal.status} proposal")

    pm_id = assigned_pm_id or proposal.assigned_pm_id
    now = datetime.now(timezone.utc)

    project = Project(
        id=uuid.uuid4(),
        company_id=company_id,
        project_number=await next_number(db, company_id, "project"),
        name=proposal.title,
        client_id=proposal.client_id,
        proposal_id=proposal.id,
        assigned_pm_id=pm_id,
        status="open",
        retainer_amount=money(proposal.retainer_amount),
        retainer_balance=money(proposal.retainer_amount),
        notes=f"Created from proposal {proposal.proposal_number}",
        created_by=signer_id
    )
    db.add(project)

    for item in proposal.items:
        db.add(ProjectService(
            company_id=company_id,
            project_id=project.id,
            name=item.name,
            description=item.description,
            fixed_price=item.total_price,
            total_amount=item.total_price,
            billing_type="fixed",
            status="not_started"
        ))

    proposal.status = "signed_internal"
    proposal.internal_signed_by = signer_id
    proposal.internal_signed_at = now
    proposal.internal_signature_data = signature_data
    proposal.assigned_pm_id = pm_id
    proposal.converted_project_id = project.id
    proposal.converted_at = now

    if pm_id and pm_id != signer_id:
        notify(
            db, company_id, pm_id,
            type="project_assigned",
            title=f"New project assigned: {project.name}",
            body=(
                f"Proposal {proposal.proposal_number} was signed and converted to project "
                f"{project.project_number}. Send the Project Information Sheet (PIS) to the client."
            ),
            link=f"/projects/{project.id}",
            project_id=project.id
        )

    await db.commit()
    logger.info(f"Proposal {proposal.proposal_number} converted to {project.project_number}")
    return proposal, project


# ============================================================================
# AI follow-up drafts
# ============================================================================

def follow_up_tone(follow_up_count: int, viewed: bool, total: Decimal) -> str:
    if follow_up_count == 0:
        guidance = "First follow-up: friendly check-in, make sure they received it"
    elif viewed:
        guidance = "They viewed it: acknowledge they had a chance to review, ask if they have questions"
    elif follow_up_count >= 2:
        guidance = "Multiple follow-ups: be more direct, mention timeline/availability"
    else:
        guidance = "Standard follow-up: professional nudge"

    if money(total) > settings.high_value_proposal_threshold:
        guidance += "\nThis is a high-value proposal. Emphasize timeline and availability."
    return guidance


def follow_up_context(
    proposal: Proposal,
    company: Company,
    sender_name: Optional[str],
    now: Optional[datetime] = None
) -> str:
    now = now or datetime.now(timezone.utc)
    days_since_sent = (now - proposal.sent_at).days if proposal.sent_at else 0
    days_since_viewed = (now - proposal.viewed_at).days if proposal.viewed_at else None
    total = proposal.total_amount or proposal.subtotal or Decimal("0")

    lines = [
        f'Proposal: "{proposal.title}"',
        f"Client: {proposal.client_name or 'there'}",
        f"Property: {proposal.property_address}" if proposal.property_address else None,
        f"Total amount: {format_currency(total)}",
        f"Days since sent: {days_since_sent}",
        (
            f"Client viewed it {days_since_viewed} day(s) ago"
            if days_since_viewed is not None
            else "Client has NOT opened the proposal yet"
        ),
        f"Previous follow-ups: {proposal.follow_up_count or 0}",
        f"Sender name: {sender_name or 'the team'}",
        f"Company: {company.name}",
        f"Company phone: {company.phone}" if company.phone else None,
        f"Company email: {company.email}" if company.email else None,
    ]
    return "\n".join(line for line in lines if line)


def text_to_html(body: str) -> str:
    return "".join(f"<p>{line}</p>" if line.strip() else "<br>" for line in body.split("\n"))


async def draft_follow_up(
    db: AsyncSession,
    company: Company,
    proposal_id: uuid.UUID
) -> Dict[str, str]:
    """Draft a follow-up email for a sent proposal. Returns subject, body and html_body."""
    from agents.proposal_followup_agent import draft_followup_email

    proposal = await get_proposal(db, company.id, proposal_id)

    sender_name = None
    if proposal.assigned_pm_id:
        result = await db.execute(select(User.full_name).where(User.id == proposal.assigned_pm_id))
        sender_name = result.scalar_one_or_none()

    context = follow_up_context(proposal, company, sender_name)
    guidance = follow_up_tone(
        proposal.follow_up_count or 0,
        proposal.viewed_at is not None,
        proposal.total_amount or Decimal("0")
    )

    try:
        draft = await asyncio.to_thread(draft_followup_email, company.name, context, guidance)
    except ValueError as e:
        raise InvalidOperation(f"AI returned an unusable draft: {e}") from e

    draft["html_body"] = text_to_html(draft["body"])
    return draft


# ============================================================================
# Public lead intake
# ============================================================================

def lead_title(contact_name: str, address: Optional[str]) -> str:
    return f"Lead: {contact_name}" + (f" - {address}" if address else "")


def lead_notes(
    phone: Optional[str],
    service_needed: Optional[str],
    description: Optional[str],
    source: str,
    received_at: datetime
) -> str:
    lines = [
        f"Phone: {phone}" if phone else "",
        f"Service: {service_needed}" if service_needed else "",
        description or "",
        f"Source: {source}",
        f"Received: {received_at.isoformat()}",
    ]
    return "\n".join(line for line in lines if line)


async def receive_lead(
    db: AsyncSession,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    address: Optional[str] = None,
    service_needed: Optional[str] = None,
    description: Optional[str] = None,
    source: str = "website",
    company_slug: Optional[str] = None
) -> Proposal:
    """
    Capture a website lead as a draft proposal.

    Raises:
        InvalidOperation: If neither a name nor an email is given
        RecordNotFound: If the company slug is unknown or no company exists
    """
    if not (first_name or last_name or email):
        raise InvalidOperation("At least a name or email is required")

    if company_slug:
        result = await db.execute(select(Company).where(Company.slug == company_slug))
        company = result.scalar_one_or_none()
        if company is None:
            raise RecordNotFound("Company not found")
    else:
        result = await db.execute(select(Company).order_by(Company.created_at).limit(1))
        company = result.scalar_one_or_none()
        if company is None:
            raise RecordNotFound("No company configured")

    result = await db.execute(
        select(CompanyMember.user_id)
        .where(
            CompanyMember.company_id == company.id,
            CompanyMember.role == "admin",
            CompanyMember.is_active.is_(True)
        )
        .order_by(CompanyMember.created_at)
        .limit(1)
    )
    admin_id = result.scalar_one_or_none()

    contact_name = " ".join(part for part in (first_name, last_name) if part) or "Unknown"
    proposal = Proposal(
        id=uuid.uuid4(),
        company_id=company.id,
        proposal_number=await next_number(db, company.id, "proposal"),
        title=lead_title(contact_name, address),
        client_name=contact_name,
        client_email=email,
        property_address=address,
        lead_source=source,
        notes=lead_notes(phone, service_needed, description, source, datetime.now(timezone.utc)),
        assigned_pm_id=admin_id,
        sales_person_id=admin_id,
        status="draft"
    )
    db.add(proposal)
    await db.commit()

    logger.info(f"Lead received: {contact_name} -> Proposal {proposal.proposal_number}")
    return proposal
