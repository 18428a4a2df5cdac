"""
Beacon Assistant

Answers questions about live company data. The question is classified
into intents, matching records are gathered as context, and the model
answers from that context.
"""

import asyncio
import json
import logging
import re
import uuid
from datetime import datetime, date, timedelta, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import (
    AssistantMessage, CalendarEvent, Client, Company, Email, Invoice,
    Project, Proposal, Rfp, User
)
from services.errors import IntegrationNotConfigured, InvalidOperation

logger = logging.getLogger("ordino.services.assistant")

FALLBACK_ANSWER = "I wasn't able to process that. Could you rephrase?"
HISTORY_TURNS = 10

INTENT_PATTERNS = [
    ("projects", re.compile(r"project|job|#?\d{4,}")),
    ("proposals", re.compile(r"proposal|quote|bid")),
    ("invoices", re.compile(r"invoice|payment|paid|owed|outstanding|balance|collect")),
    ("emails", re.compile(r"email|sent|received")),
    ("clients", re.compile(r"client|customer|who")),
    ("calendar", re.compile(r"calendar|meeting|schedule|appointment")),
    ("action_items", re.compile(r"action item|task|todo|follow.?up|overdue")),
    ("rfps", re.compile(r"rfp|request for proposal|opportunity")),
]

PROJECT_NUMBER = re.compile(r"#?(\d{4,})")


def classify_intent(question: str) -> List[str]:
    """Intents mentioned in a question, in a fixed order. Defaults to general."""
    q = question.lower()
    intents = [name for name, pattern in INTENT_PATTERNS if pattern.search(q)]
    return intents or ["general"]


def extract_project_numbers(question: str) -> List[str]:
    return PROJECT_NUMBER.findall(question)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    return value


def _rows(records, fields: List[str]) -> List[Dict[str, Any]]:
    return [{f: _jsonable(getattr(r, f)) for f in fields} for r in records]


def build_system_prompt(user_name: Optional[str], context: Dict[str, Any], today: date) -> str:
    return f"""You are Beacon, the AI assistant for a construction consulting and engineering firm. You have access to live company data from Ordino.

The current user is {user_name or "a team member"}.
Today is {today.isoformat()}.

RULES:
- Be concise and direct.
- When referencing records, include the number/ID so the user can find it.
- Use these link formats for clickable references:
  - Projects: [Project #XXXX](/projects/PROJECT_UUID)
  - Proposals: [Proposal #XX](/proposals?id=PROPOSAL_UUID)
  - Invoices: [Invoice #XX](/invoices?id=INVOICE_UUID)
  - Clients: [Client Name](/clients/CLIENT_UUID)
- If you don't have enough data, say so.
- Prioritize by urgency (overdue first).
- Format currency as $X,XXX.XX.

Data from Ordino:
{json.dumps(context, indent=2, default=str)}"""


def build_messages(
    system_prompt: str,
    history: List[Dict[str, str]],
    question: str
) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    for turn in history[-HISTORY_TURNS:]:
        if turn.get("role") in ("user", "assistant") and turn.get("content"):
            messages.append({"role": turn["role"], "content": turn["content"]})
    messages.append({"role": "user", "content": question})
    return messages


def context_summary(context: Dict[str, Any]) -> List[str]:
    return [
        f"{key}: {len(value) if isinstance(value, list) else 1} records"
        for key, value in context.items()
    ]


async def gather_context(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    intents: List[str],
    project_numbers: List[str],
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Collect the records each intent needs, capped per category."""
    now = now or datetime.now(timezone.utc)
    general = "general" in intents
    context: Dict[str, Any] = {}

    if "projects" in intents or general:
        query = select(Project).where(Project.company_id == company_id)
        if project_numbers:
            query = query.where(or_(*[
                Project.project_number.ilike(f"%{n}%") for n in project_numbers
            ]))
            key = "projects"
        else:
            key = "recent_projects"
        result = await db.execute(query.order_by(Project.updated_at.desc()).limit(10))
        context[key] = _rows(
            result.scalars().all(),
            ["id", "project_number", "name", "status", "client_id", "assigned_pm_id", "updated_at"]
        )

    if "proposals" in intents or general:
        result = await db.execute(
            select(Proposal)
            .where(Proposal.company_id == company_id)
            .order_by(Proposal.created_at.desc())
            .limit(15)
        )
        context["proposals"] = _rows(
            result.scalars().all(),
            ["id", "proposal_number", "title", "status", "total_amount", "client_name",
             "created_at", "valid_until", "sent_at"]
        )

    if "invoices" in intents or general:
        result = await db.execute(
            select(Invoice)
            .where(Invoice.company_id == company_id)
            .order_by(Invoice.created_at.desc())
            .limit(15)
        )
        context["invoices"] = _rows(
            result.scalars().all(),
            ["id", "invoice_number", "status", "total_due", "payment_amount", "due_date",
             "client_id", "project_id"]
        )

    if "action_items" in intents:
        result = await db.execute(
            select(Invoice)
            .where(Invoice.company_id == company_id, Invoice.status == "overdue")
            .order_by(Invoice.due_date.asc())
            .limit(20)
        )
        context["overdue_invoices"] = _rows(
            result.scalars().all(),
            ["id", "invoice_number", "total_due", "due_date", "client_id"]
        )

    if "calendar" in intents:
        result = await db.execute(
            select(CalendarEvent)
            .where(
                CalendarEvent.company_id == company_id,
                CalendarEvent.user_id == user_id,
                CalendarEvent.start_time >= now,
                CalendarEvent.start_time <= now + timedelta(days=7)
            )
            .order_by(CalendarEvent.start_time.asc())
            .limit(20)
        )
        context["upcoming_events"] = _rows(
            result.scalars().all(),
            ["id", "title", "start_time", "end_time", "location", "event_type"]
        )

    if "clients" in intents:
        result = await db.execute(
            select(Client)
            .where(Client.company_id == company_id)
            .order_by(Client.updated_at.desc())
            .limit(20)
        )
        context["clients"] = _rows(
            result.scalars().all(),
            ["id", "name", "client_type", "email", "phone"]
        )

    if "rfps" in intents:
        result = await db.execute(
            select(Rfp)
            .where(Rfp.company_id == company_id)
            .order_by(Rfp.created_at.desc())
            .limit(10)
        )
        context["rfps"] = _rows(
            result.scalars().all(),
            ["id", "title", "agency", "status", "due_date", "contract_value"]
        )

    if "emails" in intents:
        result = await db.execute(
            select(Email)
            .where(Email.company_id == company_id, Email.user_id == user_id)
            .order_by(Email.received_at.desc())
            .limit(10)
        )
        context["recent_emails"] = _rows(
            result.scalars().all(),
            ["id", "direction", "subject", "from_name", "from_address", "to_address", "snippet", "is_read", "received_at"]
        )

    return context


async def ask(
    db: AsyncSession,
    user: User,
    company: Company,
    question: str,
    history: Optional[List[Dict[str, str]]] = None
) -> Dict[str, Any]:
    """Answer a question and store both turns of the exchange."""
    from agents.base import call_llm

    question = (question or "").strip()
    if not question:
        raise InvalidOperation("question required")
    if not settings.active_api_key:
        raise IntegrationNotConfigured("AI not configured")

    intents = classify_intent(question)
    context = await gather_context(
        db, company.id, user.id, intents, extract_project_numbers(question)
    )
    messages = build_messages(
        build_system_prompt(user.full_name, context, date.today()),
        history or [],
        question
    )

    answer = await asyncio.to_thread(call_llm, messages, 0.3)
    answer = answer.strip() or FALLBACK_ANSWER

    for role, content in (("user", question), ("assistant", answer)):
        db.add(AssistantMessage(
            company_id=company.id,
            user_id=user.id,
            role=role,
            content=content,
            context_type=intents[0]
        ))
    await db.commit()

    logger.info(f"Beacon answered ({', '.join(intents)}) for user {user.id}")
    return {
        "answer": answer,
        "intents": intents,
        "context_summary": context_summary(context),
    }


async def list_history(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    limit: int = 50
) -> List[AssistantMessage]:
    """The user's most recent messages, oldest first."""
    result = await db.execute(
        select(AssistantMessage)
        .where(AssistantMessage.company_id == company_id, AssistantMessage.user_id == user_id)
        .order_by(AssistantMessage.created_at.desc())
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))
