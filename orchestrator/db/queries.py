"""Read side of the job store, polled by dashboards and the CLI."""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Job, JobLog, JobResult
from orchestrator.domain.states import JobStatus, JobType

async def list_jobs(
    session: AsyncSession,
    status: Optional[JobStatus] = None,
    job_type: Optional[JobType] = None,
    limit: int = 50,
) -> list[Job]:
    stmt = select(Job).order_by(Job.created_at.desc()).limit(limit)
    if status:
        stmt = stmt.where(Job.status == status)
    if job_type:
        stmt = stmt.where(Job.type == job_type)
    return list((await session.scalars(stmt)).all())

async def list_logs(
    session: AsyncSession,
    job_id: UUID,
    after_id: Optional[int] = None,
    limit: int = 200,
    newest_first: bool = False,
) -> list[JobLog]:
    """
    Log entries of one job. Ordered by id, which is the store's emission
    order; `after_id` supports incremental polling.
    """
    order = JobLog.id.desc() if newest_first else JobLog.id.asc()
    stmt = select(JobLog).where(JobLog.job_id == job_id).order_by(order).limit(limit)
    if after_id is not None:
        stmt = stmt.where(JobLog.id > after_id)
    return list((await session.scalars(stmt)).all())

async def latest_result(session: AsyncSession, job_id: UUID) -> Optional[JobResult]:
    """Only the most recent result is authoritative."""
    stmt = (
        select(JobResult)
        .where(JobResult.job_id == job_id)
        .order_by(JobResult.created_at.desc())
        .limit(1)
    )
    return await session.scalar(stmt)
