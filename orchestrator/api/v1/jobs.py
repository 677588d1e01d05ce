from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field, model_validator

from orchestrator.api.deps import DbSession, Privileged
from orchestrator.commands.cancel_job import cancel_job
from orchestrator.commands.enqueue_job import enqueue_job
from orchestrator.db.models import Job
from orchestrator.db.queries import list_jobs, list_logs, latest_result
from orchestrator.domain.errors import JobNotFoundError
from orchestrator.domain.states import JobStatus, JobType
from orchestrator.settings import settings

router = APIRouter()

class ScrapeStatisticsPayload(BaseModel):
    # `deep` selects the deep scrape; any other key is a free boolean toggle
    toggles: dict[str, bool] = Field(default_factory=dict)
    requestedBy: Optional[str] = None
    seasonId: Optional[str] = None

class JobCreate(BaseModel):
    type: JobType
    payload: dict[str, Any] = Field(default_factory=dict)
    max_attempts: int = Field(default_factory=lambda: settings.DEFAULT_MAX_ATTEMPTS, ge=1, le=20)

    @model_validator(mode="after")
    def check_payload(self) -> "JobCreate":
        if self.type == JobType.SCRAPE_STATISTICS:
            self.payload = ScrapeStatisticsPayload.model_validate(self.payload).model_dump(exclude_none=True)
        return self

class JobCreated(BaseModel):
    job_id: UUID

class JobResponse(BaseModel):
    id: UUID
    type: str
    payload: dict[str, Any]
    status: JobStatus
    attempts: int
    max_attempts: int
    lease_until: Optional[datetime] = None
    worker_id: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)

class JobLogResponse(BaseModel):
    id: int
    job_id: UUID
    ts: datetime
    level: str
    msg: str
    data: Optional[dict[str, Any]] = None
    model_config = ConfigDict(from_attributes=True)

class JobResultResponse(BaseModel):
    id: UUID
    job_id: UUID
    summary: Optional[str] = None
    data: dict[str, Any]
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)

class JobDetail(BaseModel):
    job: JobResponse
    logs: list[JobLogResponse]
    result: Optional[JobResultResponse] = None

class CancelRequest(BaseModel):
    reason: Optional[str] = None

async def _get_job_or_404(session, job_id: UUID) -> Job:
    job = await session.get(Job, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job

@router.post("", response_model=JobCreated, status_code=status.HTTP_201_CREATED, dependencies=[Privileged])
async def create_job(body: JobCreate, session: DbSession):
    job = await enqueue_job(
        session,
        job_type=body.type,
        payload=body.payload,
        max_attempts=body.max_attempts,
    )
    await session.commit()
    return JobCreated(job_id=job.id)

@router.get("", response_model=list[JobResponse])
async def get_jobs(
    session: DbSession,
    status_filter: Optional[JobStatus] = Query(default=None, alias="status"),
    job_type: Optional[JobType] = Query(default=None, alias="type"),
    limit: int = Query(default=50, ge=1, le=500),
):
    return await list_jobs(session, status=status_filter, job_type=job_type, limit=limit)

@router.get("/{job_id}", response_model=JobDetail)
async def get_job(job_id: UUID, session: DbSession):
    job = await _get_job_or_404(session, job_id)
    logs = await list_logs(session, job_id, limit=settings.JOB_LOG_LIMIT, newest_first=True)
    result = await latest_result(session, job_id)
    return JobDetail(
        job=JobResponse.model_validate(job),
        logs=[JobLogResponse.model_validate(entry) for entry in logs],
        result=JobResultResponse.model_validate(result) if result else None,
    )

@router.get("/{job_id}/logs", response_model=list[JobLogResponse])
async def get_job_logs(
    job_id: UUID,
    session: DbSession,
    after_id: Optional[int] = None,
    limit: int = Query(default=200, ge=1, le=1000),
):
    await _get_job_or_404(session, job_id)
    return await list_logs(session, job_id, after_id=after_id, limit=limit)

@router.get("/{job_id}/result", response_model=JobResultResponse)
async def get_job_result(job_id: UUID, session: DbSession):
    result = await latest_result(session, job_id)
    if not result:
        raise HTTPException(status_code=404, detail="No result for job")
    return result

@router.post("/{job_id}/cancel", response_model=JobResponse, dependencies=[Privileged])
async def cancel(job_id: UUID, session: DbSession, body: Optional[CancelRequest] = None):
    reason = body.reason if body else None
    try:
        job, _ = await cancel_job(session, job_id, reason=reason)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    await session.commit()
    return job
