"""
RFP Service

Pipeline RFPs, discovered opportunities, monitored sources and monitoring
rules.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import DiscoveredRfp, Rfp, RfpMonitoringRule, RfpSource
from services.document_processor import extract_document_text
from services.errors import RecordNotFound, InvalidOperation

logger = logging.getLogger("ordino.services.rfps")

RFP_STATUSES = ("prospect", "drafting", "submitted", "won", "lost")
DISCOVERED_STATUSES = ("new", "reviewing", "pursuing", "passed")

RFP_FIELDS = (
    "title", "rfp_number", "agency", "due_date", "contract_value", "status",
    "scope_summary", "notes",
)
SOURCE_FIELDS = ("source_name", "source_url", "source_type", "check_frequency", "active")
RULE_FIELDS = (
    "keyword_include", "keyword_exclude", "agencies_include", "min_relevance_score",
    "notify_email", "email_recipients",
)
DISCOVERED_FIELDS = ("status", "assigned_to", "notes")


async def _get(db: AsyncSession, model, company_id: uuid.UUID, record_id: uuid.UUID, label: str):
    result = await db.execute(
        select(model).where(model.id == record_id, model.company_id == company_id)
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise RecordNotFound(f"{label} not found")
    return record


# ============================================================================
# Pipeline RFPs
# ============================================================================

async def list_rfps(db: AsyncSession, company_id: uuid.UUID, status: Optional[str] = None) -> List[Rfp]:
    query = select(Rfp).where(Rfp.company_id == company_id).order_by(Rfp.due_date.asc().nulls_last())
    if status:
        query = query.where(Rfp.status == status)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_rfp(db: AsyncSession, company_id: uuid.UUID, rfp_id: uuid.UUID) -> Rfp:
    return await _get(db, Rfp, company_id, rfp_id, "RFP")


async def create_rfp(db: AsyncSession, company_id: uuid.UUID, data: Dict[str, Any]) -> Rfp:
    if data.get("status", "prospect") not in RFP_STATUSES:
        raise InvalidOperation(f"Unknown RFP status: {data['status']}")
    rfp = Rfp(company_id=company_id, **{k: data[k] for k in RFP_FIELDS if k in data})
    db.add(rfp)
    await db.commit()
    return rfp


async def update_rfp(db: AsyncSession, company_id: uuid.UUID, rfp_id: uuid.UUID, data: Dict[str, Any]) -> Rfp:
    rfp = await get_rfp(db, company_id, rfp_id)
    if "status" in data and data["status"] not in RFP_STATUSES:
        raise InvalidOperation(f"Unknown RFP status: {data['status']}")
    for key in RFP_FIELDS:
        if key in data:
            setattr(rfp, key, data[key])
    await db.commit()
    return rfp


async def delete_rfp(db: AsyncSession, company_id: uuid.UUID, rfp_id: uuid.UUID) -> None:
    rfp = await get_rfp(db, company_id, rfp_id)
    await db.delete(rfp)
    await db.commit()


async def extract_from_document(
    db: AsyncSession,
    company_id: uuid.UUID,
    filename: str,
    content: bytes
) -> Dict[str, Any]:
    """
    Create a pipeline RFP from an uploaded PDF or DOCX.

    The document is stored under the company's folder; the full AI
    extraction is kept on the RFP.
    """
    from agents.rfp_extraction_agent import extract_document_fields

    try:
        document = extract_document_text(content, filename)
    except ValueError as e:
        raise InvalidOperation(str(e)) from e
    if not document["text"]:
        raise InvalidOperation("No text could be extracted from the document")

    folder = settings.rfp_documents_dir / str(company_id)
    folder.mkdir(parents=True, exist_ok=True)
    stored = folder / f"{uuid.uuid4().hex}_{Path(filename).name}"
    stored.write_bytes(content)

    extracted = await asyncio.to_thread(extract_document_fields, document["text"])
    logger.info(f"Extracted RFP fields from {filename}: {extracted.title!r}")

    rfp = Rfp(
        company_id=company_id,
        title=extracted.title or Path(filename).stem,
        rfp_number=extracted.rfp_number,
        agency=extracted.agency,
        due_date=extracted.due_date,
        contract_value=extracted.contract_value,
        scope_summary=extracted.scope_summary,
        notes=extracted.notes,
        status="prospect",
        extracted=extracted.model_dump(mode="json"),
        document_path=str(stored)
    )
    db.add(rfp)
    await db.commit()

    return {"rfp": rfp, "warnings": document["warnings"]}


# ============================================================================
# Discovered RFPs
# ============================================================================

async def list_discovered(
    db: AsyncSession,
    company_id: uuid.UUID,
    status: Optional[str] = None
) -> List[DiscoveredRfp]:
    query = (
        select(DiscoveredRfp)
        .where(DiscoveredRfp.company_id == company_id)
        .order_by(DiscoveredRfp.discovered_at.desc())
    )
    if status and status != "all":
        query = query.where(DiscoveredRfp.status == status)
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_discovered(
    db: AsyncSession,
    company_id: uuid.UUID,
    discovered_id: uuid.UUID,
    data: Dict[str, Any]
) -> DiscoveredRfp:
    discovered = await _get(db, DiscoveredRfp, company_id, discovered_id, "Discovered RFP")
    if "status" in data and data["status"] not in DISCOVERED_STATUSES:
        raise InvalidOperation(f"Unknown status: {data['status']}")
    for key in DISCOVERED_FIELDS:
        if key in data:
            setattr(discovered, key, data[key])
    await db.commit()
    return discovered


async def promote_to_pipeline(
    db: AsyncSession,
    company_id: uuid.UUID,
    discovered_id: uuid.UUID
) -> Rfp:
    """Start pursuing a discovered opportunity as a pipeline RFP."""
    discovered = await _get(db, DiscoveredRfp, company_id, discovered_id, "Discovered RFP")
    if discovered.rfp_id:
        return await get_rfp(db, company_id, discovered.rfp_id)

    rfp = Rfp(
        id=uuid.uuid4(),
        company_id=company_id,
        title=discovered.title,
        rfp_number=discovered.rfp_number,
        agency=discovered.issuing_agency,
        due_date=discovered.due_date.date() if isinstance(discovered.due_date, datetime) else None,
        contract_value=discovered.estimated_value,
        status="prospect",
        notes=discovered.original_url
    )
    db.add(rfp)
    discovered.rfp_id = rfp.id
    discovered.status = "pursuing"
    await db.commit()

    logger.info(f"Promoted discovered RFP {discovered.id} to pipeline RFP {rfp.id}")
    return rfp


# ============================================================================
# Sources & monitoring rules
# ============================================================================

async def list_sources(db: AsyncSession, company_id: uuid.UUID) -> List[RfpSource]:
    result = await db.execute(
        select(RfpSource).where(RfpSource.company_id == company_id).order_by(RfpSource.source_name)
    )
    return list(result.scalars().all())


async def create_source(db: AsyncSession, company_id: uuid.UUID, data: Dict[str, Any]) -> RfpSource:
    source = RfpSource(company_id=company_id, **{k: data[k] for k in SOURCE_FIELDS if k in data})
    db.add(source)
    await db.commit()
    return source


async def update_source(
    db: AsyncSession,
    company_id: uuid.UUID,
    source_id: uuid.UUID,
    data: Dict[str, Any]
) -> RfpSource:
    source = await _get(db, RfpSource, company_id, source_id, "Source")
    for key in SOURCE_FIELDS:
        if key in data:
            setattr(source, key, data[key])
    await db.commit()
    return source


async def delete_source(db: AsyncSession, company_id: uuid.UUID, source_id: uuid.UUID) -> None:
    source = await _get(db, RfpSource, company_id, source_id, "Source")
    await db.delete(source)
    await db.commit()


async def upsert_monitoring_rule(
    db: AsyncSession,
    company_id: uuid.UUID,
    data: Dict[str, Any]
) -> RfpMonitoringRule:
    """Update the company's active rule, creating it on first use."""
    from services.rfp_monitor import get_active_rule

    rule = await get_active_rule(db, company_id)
    if rule is None:
        rule = RfpMonitoringRule(
            company_id=company_id,
            active=True,
            min_relevance_score=settings.default_min_relevance_score
        )
        db.add(rule)

    for key in RULE_FIELDS:
        if key in data:
            setattr(rule, key, data[key])
    await db.commit()
    return rule
