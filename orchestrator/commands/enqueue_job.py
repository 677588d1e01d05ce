from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Job, JobLog
from orchestrator.domain.states import JobStatus, JobEvent, JobType, LogLevel
from orchestrator.api.v1.metrics import JOB_ENQUEUED_TOTAL
from orchestrator.settings import settings

async def enqueue_job(
    session: AsyncSession,
    job_type: JobType | str,
    payload: Optional[dict[str, Any]] = None,
    max_attempts: Optional[int] = None,
    requested_by: Optional[str] = None
) -> Job:
    """
    Inserts a QUEUED job and its `enqueued` log entry.
    Payload shape is the caller's business; only the type is checked.
    """
    job_type = JobType(job_type)
    payload = payload or {}
    attempts_cap = max_attempts if max_attempts is not None else settings.DEFAULT_MAX_ATTEMPTS
    if attempts_cap < 1:
        raise ValueError("max_attempts must be at least 1")

    job = Job(
        type=job_type,
        payload=payload,
        status=JobStatus.QUEUED,
        attempts=0,
        max_attempts=attempts_cap,
    )
    session.add(job)
    await session.flush()

    session.add(JobLog(
        job_id=job.id,
        level=LogLevel.INFO,
        msg=JobEvent.ENQUEUED,
        data={
            "requestedBy": requested_by or payload.get("requestedBy"),
            "toggles": payload.get("toggles", {}),
        }
    ))

    JOB_ENQUEUED_TOTAL.labels(type=job.type).inc()

    await session.flush()
    return job
