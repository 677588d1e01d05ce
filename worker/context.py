import asyncio
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orchestrator.commands.append_log import append_log
from orchestrator.db.models import Job
from orchestrator.domain.errors import JobCancelledError, LeaseLostError
from orchestrator.domain.models import Lease
from orchestrator.domain.states import JobStatus, LogLevel

logger = logging.getLogger(__name__)

class JobContext:
    """
    What a task body gets besides its payload: the job's log sink and a
    cancellation checkpoint. Bound to one lease.

    `lease_lost` is the heartbeat's event; once set, checkpoint() fails
    without asking the store.
    """

    def __init__(
        self,
        job_type: str,
        payload: dict[str, Any],
        lease: Lease,
        session_factory: async_sessionmaker[AsyncSession],
        lease_lost: Optional[asyncio.Event] = None,
    ):
        self.job_type = job_type
        self.payload = payload
        self.lease = lease
        self.lease_lost = lease_lost if lease_lost is not None else asyncio.Event()
        self._session_factory = session_factory

    @property
    def job_id(self):
        return self.lease.job_id

    @property
    def attempt(self) -> int:
        return self.lease.attempt

    async def log(self, level: LogLevel, msg: str, data: Optional[dict[str, Any]] = None) -> None:
        """
        Appends to the job log while the lease is held. Best-effort: a failed
        or fenced-off write is reported to the process log and otherwise
        ignored, it never aborts the job.
        """
        logger.log(
            logging.ERROR if level == LogLevel.ERROR else logging.INFO,
            "[job %s] [%s] %s %s", self.job_id, level, msg, data or "",
        )
        try:
            async with self._session_factory() as session, session.begin():
                written = await append_log(session, self.job_id, level, msg, data, lease_token=self.lease.token)
        except Exception as e:
            logger.warning("Could not write log %r for job %s: %s", msg, self.job_id, e)
            return
        if not written:
            logger.debug("Dropped log %r for job %s: lease no longer held", msg, self.job_id)

    async def info(self, msg: str, **data: Any) -> None:
        await self.log(LogLevel.INFO, msg, data or None)

    async def error(self, msg: str, **data: Any) -> None:
        await self.log(LogLevel.ERROR, msg, data or None)

    async def checkpoint(self) -> None:
        """
        Re-reads the row. Raises JobCancelledError if an operator cancelled
        the job, LeaseLostError if the lease went to someone else or the job
        left RUNNING another way.
        """
        if self.lease_lost.is_set():
            raise LeaseLostError(f"Heartbeat lost the lease on job {self.job_id}")

        async with self._session_factory() as session:
            row = (await session.execute(
                select(Job.status, Job.lease_token).where(Job.id == self.job_id)
            )).one_or_none()

        if row is None:
            raise LeaseLostError(f"Job {self.job_id} disappeared")

        status, token = row
        if status == JobStatus.CANCELLED:
            raise JobCancelledError(self.job_id)
        if status != JobStatus.RUNNING or token != self.lease.token:
            raise LeaseLostError(f"Lease on job {self.job_id} is no longer held (status={status})")
