import copy
from typing import Any

from fastapi import APIRouter, HTTPException

from orchestrator.api.deps import DbSession, Privileged, CronCaller
from orchestrator.commands.enqueue_job import enqueue_job
from orchestrator.commands.expire_exhausted import fail_expired_exhausted
from orchestrator.domain.states import JobType

router = APIRouter()
cron_router = APIRouter()

# Payloads enqueued by the scheduled triggers
CRON_PRESETS: dict[JobType, dict[str, Any]] = {
    JobType.SCRAPE_STATISTICS: {"toggles": {"deep": False}, "requestedBy": "cron"},
    JobType.UPDATE_STYLE_STOCK: {"requestedBy": "cron"},
}

def cron_payload(job_type: JobType) -> dict[str, Any]:
    """Fresh copy of a preset; raises KeyError for types without a cron trigger."""
    return copy.deepcopy(CRON_PRESETS[job_type])

@router.post("/expire", dependencies=[Privileged])
async def trigger_expire(session: DbSession):
    count = await fail_expired_exhausted(session)
    await session.commit()
    return {"failed_count": count}

@cron_router.post("/{job_type}", dependencies=[CronCaller])
async def cron_enqueue(job_type: str, session: DbSession):
    try:
        payload = cron_payload(JobType(job_type))
    except (ValueError, KeyError):
        raise HTTPException(status_code=404, detail=f"No cron trigger for {job_type}")

    job = await enqueue_job(session, job_type=job_type, payload=payload, requested_by="cron")
    await session.commit()
    return {"job_id": job.id}
