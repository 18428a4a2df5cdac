"""
Dashboard Router (v1)
"""

from decimal import Decimal
from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company
from api.auth.dependencies import get_current_company
from services import dashboard as dashboard_service


router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


class DashboardSummary(BaseModel):
    invoices: Dict[str, int]
    outstanding_total: Decimal
    retainer_balance_total: Decimal
    open_proposals: int
    open_proposal_value: Decimal
    open_projects: int
    new_discovered_rfps: int


@router.get("", response_model=DashboardSummary)
async def get_dashboard(
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await dashboard_service.summary(db, current_company.id)
