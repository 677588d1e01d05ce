from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Job, JobLog, JobResult
from orchestrator.domain.states import JobEvent, JobStatus, LogLevel
from orchestrator.domain.errors import JobNotFoundError, LeaseLostError
from orchestrator.api.v1.metrics import JOB_DURATION, JOB_COMPLETE_TOTAL
from orchestrator.utils.clock import utcnow

async def complete_job(
    session: AsyncSession,
    job_id: UUID,
    lease_token: UUID,
    summary: Optional[str],
    data: dict[str, Any],
    now: Optional[datetime] = None
) -> Job:
    """
    Writes the job's result, then marks it SUCCEEDED, releases the lease
    and logs `succeeded`.

    All writes belong to the caller's transaction. If the caller no longer
    holds the lease (cancelled, reclaimed, already terminal) LeaseLostError
    is raised and the caller's rollback discards the result row too, so a
    job never succeeds without a result and a stale holder never resurrects
    a finished job.
    """
    now = now or utcnow()

    # Result first. Inserting before the status flip also means the
    # transaction starts with a write.
    session.add(JobResult(job_id=job_id, summary=summary, data=data, created_at=now))
    await session.flush()

    stmt = (
        update(Job)
        .where(
            Job.id == job_id,
            Job.status == JobStatus.RUNNING,
            Job.lease_token == lease_token,
        )
        .values(
            status=JobStatus.SUCCEEDED,
            finished_at=now,
            lease_until=None,
            lease_token=None,
            error=None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)

    job = await session.get(Job, job_id, populate_existing=True)
    if not job:
        raise JobNotFoundError(job_id)

    if result.rowcount == 0:
        raise LeaseLostError(f"Job {job_id} is {job.status}; completion discarded")

    session.add(JobLog(
        job_id=job.id,
        level=LogLevel.INFO,
        msg=JobEvent.SUCCEEDED,
        ts=now,
        data={"summary": summary, "attempt": job.attempts}
    ))

    if job.started_at:
        started_at = job.started_at
        if started_at.tzinfo is None:
            # sqlite hands back naive UTC
            started_at = started_at.replace(tzinfo=now.tzinfo)
        duration = (now - started_at).total_seconds()
        if duration > 0:
            JOB_DURATION.observe(duration)

    JOB_COMPLETE_TOTAL.labels(type=job.type, result="succeeded").inc()

    await session.flush()
    return job
