from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Job, JobLog
from orchestrator.domain.states import JobStatus, JobEvent, LogLevel, CANCELLABLE_STATUSES
from orchestrator.domain.errors import JobNotFoundError
from orchestrator.api.v1.metrics import JOB_COMPLETE_TOTAL
from orchestrator.utils.clock import utcnow

DEFAULT_CANCEL_REASON = "cancelled"

async def cancel_job(
    session: AsyncSession,
    job_id: UUID,
    reason: Optional[str] = None,
    now: Optional[datetime] = None
) -> tuple[Job, bool]:
    """
    Privileged cancellation. Bypasses the lease holder: a queued or running
    job becomes CANCELLED whoever holds it, and the lease is dropped so the
    holder's later writes no longer match.

    Terminal jobs are left untouched. Returns (job, changed).
    """
    now = now or utcnow()
    reason = reason or DEFAULT_CANCEL_REASON

    stmt = (
        update(Job)
        .where(
            Job.id == job_id,
            Job.status.in_(CANCELLABLE_STATUSES),
        )
        .values(
            status=JobStatus.CANCELLED,
            error=reason,
            finished_at=now,
            lease_until=None,
            lease_token=None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    changed = result.rowcount > 0

    job = await session.get(Job, job_id, populate_existing=True)
    if not job:
        raise JobNotFoundError(job_id)

    if changed:
        session.add(JobLog(
            job_id=job.id,
            level=LogLevel.INFO,
            msg=JobEvent.CANCELLED,
            ts=now,
            data={"reason": reason}
        ))
        JOB_COMPLETE_TOTAL.labels(type=job.type, result="cancelled").inc()

    await session.flush()
    return job, changed
