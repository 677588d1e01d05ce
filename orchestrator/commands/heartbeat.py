from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Job
from orchestrator.domain.states import JobStatus
from orchestrator.domain.errors import LeaseLostError
from orchestrator.settings import settings
from orchestrator.utils.clock import utcnow

async def extend_lease(
    session: AsyncSession,
    job_id: UUID,
    lease_token: UUID,
    extend_seconds: Optional[int] = None,
    now: Optional[datetime] = None
) -> datetime:
    """
    Renews the lease for a job.
    Only the current holder (matching token, job still running) can renew.
    Raises LeaseLostError otherwise. Returns the new lease_until.
    """
    now = now or utcnow()
    duration = extend_seconds if extend_seconds is not None else settings.LEASE_DURATION_SECONDS
    new_lease_until = now + timedelta(seconds=duration)

    stmt = (
        update(Job)
        .where(
            Job.id == job_id,
            Job.status == JobStatus.RUNNING,
            Job.lease_token == lease_token,
        )
        .values(lease_until=new_lease_until, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)

    if result.rowcount == 0:
        raise LeaseLostError(f"Lease for job {job_id} is no longer held")

    await session.flush()
    return new_lease_until
