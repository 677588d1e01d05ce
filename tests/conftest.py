"""
Shared fixtures: a fresh sqlite job store per test and an in-process API client.
"""

import os

# The module-level engine is built from settings at import time
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite+aiosqlite:///:memory:")

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from orchestrator.commands.enqueue_job import enqueue_job
from orchestrator.commands.lease_job import claim_next
from orchestrator.db import models  # noqa: F401
from orchestrator.db.models import Job, JobLog, JobResult
from orchestrator.db.session import Base, get_db_session
from orchestrator.domain.states import JobType
from orchestrator.main import app
from orchestrator.settings import settings


class Store:
    """Test-side access to the job store, one short session per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def enqueue(
        self,
        job_type: JobType = JobType.SCRAPE_STATISTICS,
        payload: Optional[dict[str, Any]] = None,
        max_attempts: int = 3,
    ) -> UUID:
        async with self.session_factory() as session, session.begin():
            job = await enqueue_job(session, job_type, payload or {"toggles": {"deep": False}}, max_attempts)
            return job.id

    async def claim(
        self,
        worker_id: str = "worker-1",
        now: Optional[datetime] = None,
        lease_duration: int = 60,
    ) -> Optional[Job]:
        async with self.session_factory() as session, session.begin():
            return await claim_next(session, worker_id, lease_duration=lease_duration, now=now)

    async def get(self, job_id: UUID) -> Job:
        async with self.session_factory() as session:
            return await session.get(Job, job_id)

    async def results(self, job_id: UUID) -> list[JobResult]:
        async with self.session_factory() as session:
            return list((await session.scalars(select(JobResult).where(JobResult.job_id == job_id))).all())

    async def log_messages(self, job_id: UUID) -> list[str]:
        async with self.session_factory() as session:
            stmt = select(JobLog.msg).where(JobLog.job_id == job_id).order_by(JobLog.id)
            return list((await session.scalars(stmt)).all())


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def store(session_factory) -> Store:
    return Store(session_factory)


@pytest.fixture(autouse=True)
def open_endpoints(monkeypatch):
    """Tests opt into auth explicitly."""
    monkeypatch.setattr(settings, "API_KEY", None)
    monkeypatch.setattr(settings, "CRON_TOKEN", None)


@pytest.fixture
async def api(session_factory):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
