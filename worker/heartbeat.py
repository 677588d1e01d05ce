import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orchestrator.api.v1.metrics import HEARTBEAT_FAILURES
from orchestrator.commands.heartbeat import extend_lease
from orchestrator.domain.errors import LeaseLostError
from orchestrator.domain.models import Lease

logger = logging.getLogger(__name__)

class HeartbeatExtender:
    """
    Keeps one lease alive while its task body runs.

    Use as `async with HeartbeatExtender(...)`: the background task is
    cancelled and awaited on every exit path, so it can never outlive the
    job it belongs to.

    A failed extension is logged and retried on the next tick. Finding the
    lease gone (cancelled or reclaimed) stops the ticking and sets `lost`.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lease: Lease,
        interval: float,
        lease_duration: int,
    ):
        if interval >= lease_duration:
            raise ValueError("heartbeat interval must be shorter than the lease duration")
        self.session_factory = session_factory
        self.lease = lease
        self.interval = interval
        self.lease_duration = lease_duration
        self.lost = asyncio.Event()
        self.beats = 0
        self.failures = 0
        self.last_lease_until: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        self._task = asyncio.create_task(self._loop())
        logger.debug("Heartbeat started for job %s", self.lease.job_id)

    async def stop(self):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.debug("Heartbeat stopped for job %s", self.lease.job_id)

    async def __aenter__(self) -> "HeartbeatExtender":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def beat(self) -> None:
        """One extension attempt. Raises LeaseLostError if the lease is gone."""
        async with self.session_factory() as session, session.begin():
            self.last_lease_until = await extend_lease(
                session,
                self.lease.job_id,
                self.lease.token,
                extend_seconds=self.lease_duration,
            )
        self.beats += 1

    async def _loop(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.beat()
                logger.debug("Extended lease on %s until %s", self.lease.job_id, self.last_lease_until)
            except LeaseLostError as e:
                HEARTBEAT_FAILURES.labels(reason="lost").inc()
                logger.warning("Stopping heartbeat: %s", e)
                self.lost.set()
                return
            except Exception as e:
                # Only a lease that actually expires lets another worker in
                self.failures += 1
                HEARTBEAT_FAILURES.labels(reason="error").inc()
                logger.warning("Heartbeat failed for job %s: %s", self.lease.job_id, e)
