"""
Dashboard Service

Company-wide headline numbers for the home screen.
"""

import uuid
from decimal import Decimal
from typing import Dict, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import ClientRetainer, DiscoveredRfp, Invoice, Project, Proposal
from services.invoices import count_by_status

OPEN_PROPOSAL_STATUSES = ("draft", "sent", "viewed")
OUTSTANDING_STATUSES = ("sent", "overdue")


async def summary(db: AsyncSession, company_id: uuid.UUID) -> Dict[str, Any]:
    invoice_counts = await count_by_status(db, company_id)

    outstanding = await db.scalar(
        select(func.coalesce(func.sum(Invoice.total_due), 0))
        .where(Invoice.company_id == company_id, Invoice.status.in_(OUTSTANDING_STATUSES))
    )
    retainer_balance = await db.scalar(
        select(func.coalesce(func.sum(ClientRetainer.current_balance), 0))
        .where(ClientRetainer.company_id == company_id, ClientRetainer.status == "active")
    )
    open_proposals = (await db.execute(
        select(func.count(Proposal.id), func.coalesce(func.sum(Proposal.total_amount), 0))
        .where(Proposal.company_id == company_id, Proposal.status.in_(OPEN_PROPOSAL_STATUSES))
    )).one()
    open_projects = await db.scalar(
        select(func.count(Project.id))
        .where(Project.company_id == company_id, Project.status == "open")
    )
    new_rfps = await db.scalar(
        select(func.count(DiscoveredRfp.id))
        .where(DiscoveredRfp.company_id == company_id, DiscoveredRfp.status == "new")
    )

    return {
        "invoices": invoice_counts,
        "outstanding_total": Decimal(outstanding or 0),
        "retainer_balance_total": Decimal(retainer_balance or 0),
        "open_proposals": open_proposals[0],
        "open_proposal_value": Decimal(open_proposals[1] or 0),
        "open_projects": open_projects or 0,
        "new_discovered_rfps": new_rfps or 0,
    }
