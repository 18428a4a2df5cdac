"""
Background Jobs

arq job functions: on-demand RFP scans plus calendar and mailbox syncs, and the nightly
billing, overdue and discovery sweeps.
"""

import json
import logging
import uuid
from datetime import date
from typing import Optional

from database.connection import get_db_context
from workers.queue import update_job_status

logger = logging.getLogger("ordino.workers.jobs")


async def run_rfp_scan_job(ctx: dict, job_id: str, company_id: str):
    """Scan one company's sources, recording progress under job:{job_id}."""
    from services.rfp_monitor import scan_company

    redis = ctx["redis"]
    await update_job_status(redis, job_id, "running", "Scanning sources")
    try:
        async with get_db_context() as db:
            summary = await scan_company(db, uuid.UUID(company_id))
    except Exception as e:
        logger.error(f"RFP scan job {job_id} failed: {str(e)}")
        await update_job_status(redis, job_id, "failed", error=str(e))
        return {"status": "failed", "error": str(e)}

    await update_job_status(redis, job_id, "completed", "Done", result=json.dumps(summary))
    return {"status": "completed", **summary}


async def run_calendar_sync_job(ctx: dict, job_id: Optional[str], company_id: str, user_id: str):
    from services.calendar import sync_events

    redis = ctx["redis"]
    if job_id:
        await update_job_status(redis, job_id, "running", "Syncing calendar")
    try:
        async with get_db_context() as db:
            result = await sync_events(db, uuid.UUID(company_id), uuid.UUID(user_id))
    except Exception as e:
        logger.error(f"Calendar sync for user {user_id} failed: {str(e)}")
        if job_id:
            await update_job_status(redis, job_id, "failed", error=str(e))
        return {"status": "failed", "error": str(e)}

    if job_id:
        await update_job_status(redis, job_id, "completed", "Done", result=json.dumps(result))
    return {"status": "completed", **result}


async def run_gmail_sync_job(ctx: dict, job_id: Optional[str], company_id: str, user_id: str):
    from services.gmail import sync_inbox

    redis = ctx["redis"]
    if job_id:
        await update_job_status(redis, job_id, "running", "Syncing mailbox")
    try:
        async with get_db_context() as db:
            result = await sync_inbox(db, uuid.UUID(company_id), uuid.UUID(user_id))
    except Exception as e:
        logger.error(f"Gmail sync for user {user_id} failed: {str(e)}")
        if job_id:
            await update_job_status(redis, job_id, "failed", error=str(e))
        return {"status": "failed", "error": str(e)}

    if job_id:
        await update_job_status(redis, job_id, "completed", "Done", result=json.dumps(result))
    return {"status": "completed", **result}


async def run_billing_schedules_job(ctx: dict):
    from services.billing_schedules import process_due_schedules

    async with get_db_context() as db:
        processed = await process_due_schedules(db, date.today())
    logger.info(f"Billing schedules processed: {processed}")
    return {"processed": processed}


async def run_overdue_sweep_job(ctx: dict):
    from services.invoices import mark_overdue

    async with get_db_context() as db:
        updated = await mark_overdue(db, date.today())
    logger.info(f"Invoices marked overdue: {updated}")
    return {"updated": updated}


async def run_scheduled_rfp_scans(ctx: dict):
    """Scan every company that has at least one active source."""
    from services.rfp_monitor import companies_with_active_sources, scan_company

    async with get_db_context() as db:
        company_ids = await companies_with_active_sources(db)

    results = {}
    for company_id in company_ids:
        try:
            async with get_db_context() as db:
                summary = await scan_company(db, company_id)
            results[str(company_id)] = summary.get("new_count", 0)
        except Exception as e:
            logger.error(f"Scheduled RFP scan for company {company_id} failed: {str(e)}")
            results[str(company_id)] = f"error: {e}"
    return results
