from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4
import logging

from sqlalchemy import select, update, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from orchestrator.db.models import Job
from orchestrator.domain.states import JobStatus
from orchestrator.api.v1.metrics import JOB_LEASE_TOTAL
from orchestrator.settings import settings
from orchestrator.utils.clock import utcnow

logger = logging.getLogger(__name__)

def _eligible(model, now: datetime):
    """
    A row may be leased when it is queued, or when it is running under an
    expired lease with attempts left (the previous holder crashed or stalled).
    """
    return or_(
        model.status == JobStatus.QUEUED,
        and_(
            model.status == JobStatus.RUNNING,
            model.lease_until < now,
            model.attempts < model.max_attempts,
        ),
    )

async def claim_next(
    session: AsyncSession,
    worker_id: str,
    lease_duration: Optional[int] = None,
    now: Optional[datetime] = None
) -> Optional[Job]:
    """
    Atomically leases the oldest eligible job for the given worker.

    One UPDATE statement: the subquery picks the oldest eligible row
    (FOR UPDATE SKIP LOCKED on Postgres, so concurrent claimers pick
    different rows), and the outer WHERE re-checks eligibility so a row
    that changed in between is not claimed twice.

    Returns the leased row, or None when nothing is eligible.
    """
    duration = lease_duration if lease_duration is not None else settings.LEASE_DURATION_SECONDS
    now = now or utcnow()
    lease_until = now + timedelta(seconds=duration)
    lease_token = uuid4()

    # Alias so the subquery is not correlated to the UPDATE target
    candidate = aliased(Job)
    candidate_id = (
        select(candidate.id)
        .where(_eligible(candidate, now))
        .order_by(candidate.created_at.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
        .scalar_subquery()
    )

    stmt = (
        update(Job)
        .where(Job.id == candidate_id, _eligible(Job, now))
        .values(
            status=JobStatus.RUNNING,
            attempts=Job.attempts + 1,
            started_at=func.coalesce(Job.started_at, now),
            lease_until=lease_until,
            lease_token=lease_token,
            worker_id=worker_id,
            updated_at=now,
        )
        .returning(Job.id)
        .execution_options(synchronize_session=False)
    )

    result = await session.execute(stmt)
    job_id = result.scalar_one_or_none()

    if job_id is None:
        return None

    job = await session.get(Job, job_id, populate_existing=True)

    kind = "first" if job.attempts == 1 else "repeat"
    JOB_LEASE_TOTAL.labels(type=job.type, kind=kind).inc()
    logger.debug(
        "Leased job %s (%s) to %s attempt %s/%s until %s",
        job.id, job.type, worker_id, job.attempts, job.max_attempts, lease_until,
    )

    await session.flush()
    return job
