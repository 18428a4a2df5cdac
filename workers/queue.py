"""
Job Queue Service

Enqueue background jobs and track their status in a Redis hash.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from arq import create_pool
from arq.connections import ArqRedis

from workers.connection import get_redis_settings

JOB_TTL_SECONDS = 86400

_redis_pool: Optional[ArqRedis] = None


async def get_redis_pool() -> ArqRedis:
    """Get or create the Redis connection pool."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = await create_pool(get_redis_settings())
    return _redis_pool


async def close_redis_pool():
    global _redis_pool
    if _redis_pool:
        await _redis_pool.close()
        _redis_pool = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def update_job_status(
    redis: ArqRedis,
    job_id: str,
    status: str,
    step: str = "",
    error: Optional[str] = None,
    result: Optional[str] = None
) -> None:
    mapping = {"status": status, "step": step, "error": error or "", "updated_at": _now()}
    if result is not None:
        mapping["result"] = result
    await redis.hset(f"job:{job_id}", mapping=mapping)
    await redis.expire(f"job:{job_id}", JOB_TTL_SECONDS)


async def enqueue_rfp_scan(company_id: str) -> str:
    """
    Queue an RFP discovery scan for one company.

    Returns:
        Job ID for tracking
    """
    job_id = str(uuid.uuid4())
    redis = await get_redis_pool()

    await redis.hset(
        f"job:{job_id}",
        mapping={
            "job_id": job_id,
            "kind": "rfp_scan",
            "company_id": company_id,
            "status": "queued",
            "step": "Waiting to start...",
            "error": "",
            "created_at": _now(),
            "updated_at": _now()
        }
    )
    await redis.expire(f"job:{job_id}", JOB_TTL_SECONDS)
    await redis.enqueue_job("run_rfp_scan_job", job_id, company_id, _job_id=job_id)
    return job_id


async def _enqueue_user_sync(kind: str, function: str, company_id: str, user_id: str) -> str:
    job_id = str(uuid.uuid4())
    redis = await get_redis_pool()
    await redis.hset(
        f"job:{job_id}",
        mapping={
            "job_id": job_id,
            "kind": kind,
            "company_id": company_id,
            "status": "queued",
            "step": "",
            "error": "",
            "created_at": _now(),
            "updated_at": _now()
        }
    )
    await redis.expire(f"job:{job_id}", JOB_TTL_SECONDS)
    await redis.enqueue_job(function, job_id, company_id, user_id, _job_id=job_id)
    return job_id


async def enqueue_calendar_sync(company_id: str, user_id: str) -> str:
    return await _enqueue_user_sync("calendar_sync", "run_calendar_sync_job", company_id, user_id)


async def enqueue_gmail_sync(company_id: str, user_id: str) -> str:
    return await _enqueue_user_sync("gmail_sync", "run_gmail_sync_job", company_id, user_id)


async def get_job_status(job_id: str) -> Optional[Dict[str, Any]]:
    """Job status dict, or None if the job is unknown or expired."""
    redis = await get_redis_pool()
    status = await redis.hgetall(f"job:{job_id}")
    if not status:
        return None

    return {
        (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
        for k, v in status.items()
    }
