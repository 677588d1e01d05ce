from typing import Any, Optional
from uuid import UUID

from sqlalchemy import insert, literal, select
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.db.models import Job, JobLog
from orchestrator.domain.states import JobStatus, LogLevel
from orchestrator.utils.clock import utcnow

async def append_log(
    session: AsyncSession,
    job_id: UUID,
    level: LogLevel | str,
    msg: str,
    data: Optional[dict[str, Any]] = None,
    lease_token: Optional[UUID] = None
) -> bool:
    """
    Appends one entry to a job's log. Log rows are never updated.

    With `lease_token` the row is only written while that lease is held
    (job RUNNING under the same token); a stale holder's entry is dropped.
    Returns whether the row was written.
    """
    if lease_token is None:
        session.add(JobLog(job_id=job_id, level=LogLevel(level), msg=msg, data=data))
        await session.flush()
        return True

    # INSERT ... SELECT from the job row, so the lease check and the write are one statement
    held = (
        select(
            literal(job_id, JobLog.job_id.type),
            literal(utcnow(), JobLog.ts.type),
            literal(LogLevel(level).value, JobLog.level.type),
            literal(msg, JobLog.msg.type),
            literal(data, JobLog.data.type),
        )
        .where(
            Job.id == job_id,
            Job.status == JobStatus.RUNNING,
            Job.lease_token == lease_token,
        )
    )
    stmt = insert(JobLog).from_select(
        ["job_id", "ts", "level", "msg", "data"], held, include_defaults=False
    )
    result = await session.execute(stmt)
    return result.rowcount > 0
