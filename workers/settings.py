"""
ARQ Worker Settings

Job registry and nightly cron schedule for the Redis queue worker.
"""

import logging

from arq.cron import cron

from workers.connection import get_redis_settings
from workers.jobs import (
    run_rfp_scan_job,
    run_calendar_sync_job,
    run_gmail_sync_job,
    run_billing_schedules_job,
    run_overdue_sweep_job,
    run_scheduled_rfp_scans,
)

logger = logging.getLogger("ordino.worker")


class WorkerSettings:
    """
    ARQ Worker configuration.

    Usage:
        arq workers.settings.WorkerSettings
    """

    redis_settings = get_redis_settings()

    functions = [
        run_rfp_scan_job,
        run_calendar_sync_job,
        run_gmail_sync_job,
        run_billing_schedules_job,
        run_overdue_sweep_job,
    ]

    cron_jobs = [
        cron(run_billing_schedules_job, hour=6, minute=0),
        cron(run_overdue_sweep_job, hour=6, minute=30),
        cron(run_scheduled_rfp_scans, hour=7, minute=0),
    ]

    max_jobs = 5
    job_timeout = 900  # a full discovery scan makes one LLM call per listing
    keep_result = 3600
    max_tries = 1

    @staticmethod
    async def on_startup(ctx):
        logger.info("ARQ Worker starting...")

    @staticmethod
    async def on_shutdown(ctx):
        from database.connection import close_db
        await close_db()
        logger.info("ARQ Worker shutting down...")
