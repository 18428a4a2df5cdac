"""
Per-company document numbering (PRO-00001, INV-00001, PRJ-00001).
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Company
from services.errors import RecordNotFound

PREFIXES = {
    "proposal": "PRO",
    "invoice": "INV",
    "project": "PRJ",
}


def format_number(kind: str, sequence: int) -> str:
    return f"{PREFIXES[kind]}-{sequence:05d}"


async def next_number(db: AsyncSession, company_id: uuid.UUID, kind: str) -> str:
    """
    Allocate the next document number for a company.

    The company row is locked until the caller's transaction ends, so two
    concurrent requests never receive the same number.
    """
    result = await db.execute(
        select(Company).where(Company.id == company_id).with_for_update()
    )
    company = result.scalar_one_or_none()
    if company is None:
        raise RecordNotFound("Company not found")

    column = f"{kind}_seq"
    sequence = (getattr(company, column) or 0) + 1
    setattr(company, column, sequence)
    await db.flush()
    return format_number(kind, sequence)
