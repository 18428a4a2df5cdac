"""
Shared response-model pieces for the v1 routes.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from api.middleware.error_handler import NotFoundError
from workers.queue import get_job_status


class ORMModel(BaseModel):
    """Response model populated from SQLAlchemy objects."""
    model_config = ConfigDict(from_attributes=True)


class Message(BaseModel):
    message: str


class JobQueued(BaseModel):
    job_id: str
    status: str = "queued"


class JobStatus(BaseModel):
    job_id: str
    kind: Optional[str] = None
    status: str
    step: Optional[str] = None
    error: Optional[str] = None
    result: Optional[str] = None
    updated_at: Optional[str] = None


def changes(model: BaseModel) -> dict:
    """Fields the client actually sent, for partial updates."""
    return model.model_dump(exclude_unset=True)


async def company_job(job_id: str, company_id) -> JobStatus:
    """A background job's status, visible only to the company that queued it."""
    job = await get_job_status(job_id)
    if job is None or job.get("company_id") != str(company_id):
        raise NotFoundError("Job not found")
    return JobStatus(
        job_id=job_id,
        kind=job.get("kind"),
        status=job.get("status") or "unknown",
        step=job.get("step") or None,
        error=job.get("error") or None,
        result=job.get("result") or None,
        updated_at=job.get("updated_at")
    )
