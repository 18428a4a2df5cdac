"""
Workers Package

Background job processing with ARQ (async Redis queue).
"""

from workers.queue import (
    get_redis_pool,
    close_redis_pool,
    enqueue_rfp_scan,
    enqueue_calendar_sync,
    enqueue_gmail_sync,
    get_job_status
)

__all__ = [
    "get_redis_pool",
    "close_redis_pool",
    "enqueue_rfp_scan",
    "enqueue_calendar_sync",
    "enqueue_gmail_sync",
    "get_job_status"
]
