from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Job, JobLog
from orchestrator.domain.states import JobStatus, JobEvent, LogLevel
from orchestrator.api.v1.metrics import EXPIRED_EXHAUSTED_TOTAL
from orchestrator.utils.clock import utcnow

LEASE_EXPIRED_ERROR = "lease expired"

async def fail_expired_exhausted(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Expired leases with attempts left are simply reclaimed by claim_next.
    Those on their last attempt cannot be, so they are failed here.
    Returns number of jobs failed.
    """
    now = now or utcnow()

    stmt = (
        update(Job)
        .where(
            Job.status == JobStatus.RUNNING,
            Job.lease_until < now,
            Job.attempts >= Job.max_attempts,
        )
        .values(
            status=JobStatus.FAILED,
            error=LEASE_EXPIRED_ERROR,
            finished_at=now,
            lease_until=None,
            lease_token=None,
            updated_at=now,
        )
        .returning(Job.id, Job.worker_id, Job.attempts)
        .execution_options(synchronize_session=False)
    )

    result = await session.execute(stmt)
    expired = result.all()

    for job_id, worker_id, attempts in expired:
        session.add(JobLog(
            job_id=job_id,
            level=LogLevel.ERROR,
            msg=JobEvent.LEASE_EXPIRED,
            ts=now,
            data={"worker_id": worker_id, "attempts": attempts}
        ))

    if expired:
        EXPIRED_EXHAUSTED_TOTAL.inc(len(expired))

    await session.flush()
    return len(expired)
