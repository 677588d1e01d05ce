from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response

router = APIRouter()

# Metrics Definitions
JOB_ENQUEUED_TOTAL = Counter('jobs_enqueued_total', 'Total jobs enqueued', ['type'])
JOB_LEASE_TOTAL = Counter('job_leases_total', 'Total leases granted', ['type', 'kind']) # kind=first|repeat (retry or reclaim)
JOB_COMPLETE_TOTAL = Counter('job_transitions_total', 'Terminal or retry transitions', ['type', 'result']) # succeeded|requeued|failed|cancelled|discarded
JOB_DURATION = Histogram('job_duration_seconds', 'Time from first lease to success', buckets=[1.0, 5.0, 10.0, 60.0, 120.0, 300.0, 900.0])

HEARTBEAT_FAILURES = Counter('job_heartbeat_failures_total', 'Lease extensions that failed or found the lease gone', ['reason']) # error|lost
CLAIM_ERRORS = Counter('job_claim_errors_total', 'Claim attempts that failed against the store')
EXPIRED_EXHAUSTED_TOTAL = Counter('job_expired_exhausted_total', 'Jobs failed because their lease expired on the last attempt')

JOBS_INFLIGHT = Gauge(
    "worker_jobs_inflight",
    "Jobs currently being executed by this process"
)

@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
