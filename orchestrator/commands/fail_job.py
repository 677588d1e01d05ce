from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import update, case, null, literal
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Job, JobLog
from orchestrator.domain.states import JobEvent, JobStatus, LogLevel
from orchestrator.domain.errors import JobNotFoundError, LeaseLostError
from orchestrator.api.v1.metrics import JOB_COMPLETE_TOTAL
from orchestrator.utils.clock import utcnow

async def fail_job(
    session: AsyncSession,
    job_id: UUID,
    lease_token: UUID,
    error: str,
    now: Optional[datetime] = None
) -> Job:
    """
    Records a failed attempt for the lease holder.

    attempts < max_attempts: back to QUEUED, error cleared.
    otherwise: FAILED with the error message and finished_at.

    The decision is made by the store in the same UPDATE, so it always
    uses the row's own attempts. The matching `requeued` or `failed` log
    entry is written in the same transaction. Raises LeaseLostError when
    the caller no longer holds the lease.
    """
    now = now or utcnow()

    retry = Job.attempts < Job.max_attempts

    stmt = (
        update(Job)
        .where(
            Job.id == job_id,
            Job.status == JobStatus.RUNNING,
            Job.lease_token == lease_token,
        )
        .values(
            status=case((retry, literal(JobStatus.QUEUED.value)), else_=literal(JobStatus.FAILED.value)),
            error=case((retry, null()), else_=literal(error)),
            finished_at=case((retry, null()), else_=literal(now, Job.finished_at.type)),
            lease_until=None,
            lease_token=None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)

    job = await session.get(Job, job_id, populate_existing=True)
    if not job:
        raise JobNotFoundError(job_id)

    if result.rowcount == 0:
        raise LeaseLostError(f"Job {job_id} is {job.status}; failure discarded")

    if job.status == JobStatus.QUEUED:
        outcome = "requeued"
        entry = JobLog(
            job_id=job.id,
            level=LogLevel.INFO,
            msg=JobEvent.REQUEUED,
            ts=now,
            data={"attempt": job.attempts, "max_attempts": job.max_attempts}
        )
    else:
        outcome = "failed"
        entry = JobLog(
            job_id=job.id,
            level=LogLevel.ERROR,
            msg=JobEvent.FAILED,
            ts=now,
            data={"error": error, "attempt": job.attempts}
        )
    session.add(entry)
    JOB_COMPLETE_TOTAL.labels(type=job.type, result=outcome).inc()

    await session.flush()
    return job
