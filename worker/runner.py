import asyncio
import logging
import signal
import socket
import os
from typing import Optional
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orchestrator.api.v1.metrics import CLAIM_ERRORS, JOB_COMPLETE_TOTAL, JOBS_INFLIGHT
from orchestrator.commands.complete_job import complete_job
from orchestrator.commands.expire_exhausted import fail_expired_exhausted
from orchestrator.commands.fail_job import fail_job
from orchestrator.commands.lease_job import claim_next
from orchestrator.db.models import Job
from orchestrator.db.session import AsyncSessionLocal
from orchestrator.domain.errors import JobCancelledError, LeaseLostError, StoreUnavailableError
from orchestrator.domain.models import Lease, TaskResult
from orchestrator.domain.retry import next_poll_delay
from orchestrator.domain.states import JobEvent, JobStatus
from orchestrator.settings import settings
from worker.context import JobContext
from worker.heartbeat import HeartbeatExtender
from worker.registry import HandlerRegistry

logger = logging.getLogger(__name__)

def default_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{uuid4().hex[:6]}"

class WorkerRunner:
    """
    The worker loop: claim, run the task body under a heartbeat, then make
    exactly one terminal or retry write. Only the store is shared with other
    workers.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        worker_id: Optional[str] = None,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        lease_duration: Optional[int] = None,
        heartbeat_interval: Optional[float] = None,
        poll_interval: Optional[float] = None,
        poll_interval_max: Optional[float] = None,
        max_store_errors: Optional[int] = None,
    ):
        self.registry = registry
        self.worker_id = worker_id or default_worker_id()
        self.session_factory = session_factory
        self.lease_duration = lease_duration or settings.LEASE_DURATION_SECONDS
        self.heartbeat_interval = heartbeat_interval or settings.HEARTBEAT_INTERVAL_SECONDS
        self.poll_interval = poll_interval or settings.POLL_INTERVAL_SECONDS
        self.poll_interval_max = poll_interval_max or settings.POLL_INTERVAL_MAX_SECONDS
        self.max_store_errors = max_store_errors or settings.MAX_CONSECUTIVE_STORE_ERRORS

        if self.heartbeat_interval >= self.lease_duration:
            raise ValueError("heartbeat interval must be shorter than the lease duration")

        self.running = False
        self._shutdown_event = asyncio.Event()
        self._idle_rounds = 0
        self._store_errors = 0

    async def run(self, max_jobs: Optional[int] = None):
        self.running = True
        self._shutdown_event.clear()
        self._install_signal_handlers()
        logger.info(f"Worker {self.worker_id} started (types: {', '.join(self.registry.job_types) or 'none'})")

        processed = 0
        try:
            while self.running:
                job = await self._poll()

                if job is None:
                    delay = next_poll_delay(self._idle_rounds, self.poll_interval, self.poll_interval_max)
                    if self._idle_rounds == 0:
                        logger.info("No jobs, sleeping %.1fs", delay)
                    self._idle_rounds += 1
                    await self._wait(delay)
                    continue

                self._idle_rounds = 0
                await self.process_job(job)
                processed += 1
                if max_jobs is not None and processed >= max_jobs:
                    break
        finally:
            logger.info("Worker %s stopped after %s job(s)", self.worker_id, processed)

    def stop(self):
        logger.info("Shutdown signal received")
        self.running = False
        self._shutdown_event.set()

    async def run_once(self) -> Optional[JobStatus]:
        """
        One poll cycle without sleeping. Returns the status the job was left
        in, or None if nothing was claimed or the write was discarded.
        """
        job = await self._poll()
        if job is None:
            return None
        return await self.process_job(job)

    async def _poll(self) -> Optional[Job]:
        """
        Sweeps exhausted expired leases, then claims. A store failure counts
        as "no job"; too many in a row raise StoreUnavailableError.
        """
        try:
            async with self.session_factory() as session, session.begin():
                await fail_expired_exhausted(session)
            async with self.session_factory() as session, session.begin():
                job = await claim_next(session, self.worker_id, lease_duration=self.lease_duration)
        except Exception as e:
            self._store_errors += 1
            CLAIM_ERRORS.inc()
            logger.error(
                "Claim failed (%s/%s): %s", self._store_errors, self.max_store_errors, e, exc_info=True
            )
            if self._store_errors >= self.max_store_errors:
                raise StoreUnavailableError(f"{self._store_errors} consecutive store errors") from e
            return None

        self._store_errors = 0
        return job

    async def _wait(self, timeout: float):
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    def _install_signal_handlers(self):
        try:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self.stop)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows, or not running in the main thread
            pass

    async def process_job(self, job: Job) -> Optional[JobStatus]:
        lease = Lease(
            job_id=job.id,
            token=job.lease_token,
            worker_id=self.worker_id,
            attempt=job.attempts,
            lease_until=job.lease_until,
        )
        heartbeat = HeartbeatExtender(self.session_factory, lease, self.heartbeat_interval, self.lease_duration)
        ctx = JobContext(job.type, job.payload, lease, self.session_factory, lease_lost=heartbeat.lost)

        logger.info(f"Processing job {job.id} ({job.type}) attempt {job.attempts}/{job.max_attempts}")
        await ctx.info(JobEvent.LEASED, worker_id=self.worker_id, attempt=job.attempts)

        result: Optional[TaskResult] = None
        error: Optional[Exception] = None

        JOBS_INFLIGHT.inc()
        try:
            async with heartbeat:
                try:
                    await ctx.checkpoint()
                    result = await self.registry.dispatch(job.type, job.payload, ctx)
                except (JobCancelledError, LeaseLostError) as e:
                    return self._discard(job, e)
                except Exception as e:
                    error = e
        finally:
            JOBS_INFLIGHT.dec()

        # Heartbeat is stopped from here on
        if error is not None:
            return await self._fail(job, lease, ctx, error)
        return await self._succeed(job, lease, ctx, result)

    async def _succeed(self, job: Job, lease: Lease, ctx: JobContext, result: TaskResult) -> Optional[JobStatus]:
        try:
            async with self.session_factory() as session, session.begin():
                await complete_job(session, job.id, lease.token, result.summary, result.data)
        except LeaseLostError as e:
            return self._discard(job, e)
        except Exception as e:
            # No result, no success
            logger.error("Could not record result for job %s: %s", job.id, e)
            return await self._fail(job, lease, ctx, e)

        logger.info(f"Job {job.id} succeeded")
        return JobStatus.SUCCEEDED

    async def _fail(self, job: Job, lease: Lease, ctx: JobContext, error: Exception) -> Optional[JobStatus]:
        message = f"{type(error).__name__}: {error}"
        logger.error(f"Job {job.id} failed on attempt {lease.attempt}: {message}")
        await ctx.error(JobEvent.TASK_FAILED, error=message, attempt=lease.attempt)

        try:
            async with self.session_factory() as session, session.begin():
                updated = await fail_job(session, job.id, lease.token, message)
        except LeaseLostError as e:
            return self._discard(job, e)
        except Exception:
            # The lease runs out and the job gets reclaimed
            logger.exception("Could not record failure for job %s", job.id)
            return None

        logger.info("Job %s is now %s (attempt %s/%s)", job.id, updated.status, updated.attempts, updated.max_attempts)
        return JobStatus(updated.status)

    def _discard(self, job: Job, reason: Exception) -> None:
        # Process log only: the job log now belongs to the new holder, if any
        logger.warning(f"Discarding outcome of job {job.id}: {reason}")
        JOB_COMPLETE_TOTAL.labels(type=job.type, result="discarded").inc()
        return None
