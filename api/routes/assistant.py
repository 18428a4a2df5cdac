"""
Beacon Router (v1)

Questions about the company's own data, answered by the AI assistant.
"""

import uuid
from datetime import datetime
from typing import Optional, List, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import Company, User
from api.auth.dependencies import get_current_active_user, get_current_company
from api.middleware.rate_limit import limiter, LIMIT_AI
from api.routes.common import ORMModel
from services import assistant as assistant_service


router = APIRouter(prefix="/assistant", tags=["Beacon"])


class Turn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class AskRequest(BaseModel):
    question: str = Field(min_length=1, max_length=4000)
    history: List[Turn] = []


class AskResponse(BaseModel):
    answer: str
    intents: List[str]
    context_summary: List[str]


class HistoryMessage(ORMModel):
    id: uuid.UUID
    role: str
    content: str
    context_type: Optional[str] = None
    created_at: Optional[datetime] = None


@router.post("/ask", response_model=AskResponse)
@limiter.limit(LIMIT_AI)
async def ask(
    request: Request,
    data: AskRequest,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await assistant_service.ask(
        db, current_user, current_company, data.question,
        history=[turn.model_dump() for turn in data.history]
    )


@router.get("/history", response_model=List[HistoryMessage])
async def history(
    limit: int = 50,
    current_user: User = Depends(get_current_active_user),
    current_company: Company = Depends(get_current_company),
    db: AsyncSession = Depends(get_db)
):
    return await assistant_service.list_history(
        db, current_company.id, current_user.id, min(limit, 200)
    )
