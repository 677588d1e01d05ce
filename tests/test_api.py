from uuid import uuid4

import httpx

from orchestrator.api.v1.admin import CRON_PRESETS, cron_payload
from orchestrator.domain.states import JobType
from orchestrator.main import app
from orchestrator.settings import settings
from worker.client import JobsClient
from worker.registry import HandlerRegistry
from worker.runner import WorkerRunner


async def enqueue(api, job_type="scrape_statistics", payload=None, **extra):
    resp = await api.post("/api/v1/jobs", json={"type": job_type, "payload": payload or {}, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()["job_id"]


async def test_health(api):
    resp = await api.get("/health")
    assert resp.json() == {"status": "ok"}


async def test_enqueue_and_read_back(api):
    job_id = await enqueue(api, payload={"toggles": {"deep": True}, "requestedBy": "alice"})

    resp = await api.get(f"/api/v1/jobs/{job_id}")
    assert resp.status_code == 200
    detail = resp.json()
    assert detail["job"]["status"] == "queued"
    assert detail["job"]["attempts"] == 0
    assert detail["job"]["max_attempts"] == 3
    assert detail["job"]["payload"] == {"toggles": {"deep": True}, "requestedBy": "alice"}
    assert [entry["msg"] for entry in detail["logs"]] == ["enqueued"]
    assert detail["logs"][0]["data"] == {"requestedBy": "alice", "toggles": {"deep": True}}
    assert detail["result"] is None


async def test_enqueue_validates_input(api):
    resp = await api.post("/api/v1/jobs", json={"type": "scrape_everything"})
    assert resp.status_code == 422

    resp = await api.post("/api/v1/jobs", json={"type": "scrape_statistics", "payload": {"toggles": {"deep": [1]}}})
    assert resp.status_code == 422

    resp = await api.post("/api/v1/jobs", json={"type": "scrape_styles", "max_attempts": 0})
    assert resp.status_code == 422


async def test_unknown_job_is_404(api):
    missing = uuid4()
    assert (await api.get(f"/api/v1/jobs/{missing}")).status_code == 404
    assert (await api.get(f"/api/v1/jobs/{missing}/logs")).status_code == 404
    assert (await api.post(f"/api/v1/jobs/{missing}/cancel")).status_code == 404


async def test_list_jobs_filters(api):
    styles_id = await enqueue(api, "scrape_styles")
    stats_id = await enqueue(api, "scrape_statistics")
    await api.post(f"/api/v1/jobs/{stats_id}/cancel")

    resp = await api.get("/api/v1/jobs", params={"status": "queued"})
    assert [job["id"] for job in resp.json()] == [styles_id]

    resp = await api.get("/api/v1/jobs", params={"type": "scrape_statistics"})
    assert [job["id"] for job in resp.json()] == [stats_id]

    resp = await api.get("/api/v1/jobs")
    assert [job["id"] for job in resp.json()] == [stats_id, styles_id]


async def test_cancel_is_idempotent(api):
    job_id = await enqueue(api)

    resp = await api.post(f"/api/v1/jobs/{job_id}/cancel", json={"reason": "wrong season"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["error"] == "wrong season"

    again = await api.post(f"/api/v1/jobs/{job_id}/cancel", json={"reason": "changed my mind"})
    assert again.status_code == 200
    assert again.json()["error"] == "wrong season"

    logs = (await api.get(f"/api/v1/jobs/{job_id}/logs")).json()
    assert [entry["msg"] for entry in logs] == ["enqueued", "cancelled"]


async def test_logs_after_id(api):
    job_id = await enqueue(api)
    await api.post(f"/api/v1/jobs/{job_id}/cancel")

    logs = (await api.get(f"/api/v1/jobs/{job_id}/logs")).json()
    newer = (await api.get(f"/api/v1/jobs/{job_id}/logs", params={"after_id": logs[0]["id"]})).json()
    assert [entry["msg"] for entry in newer] == ["cancelled"]


async def test_result_visible_after_worker_run(api, session_factory):
    job_id = await enqueue(api, payload={"toggles": {"deep": False}})
    assert (await api.get(f"/api/v1/jobs/{job_id}/result")).status_code == 404

    registry = HandlerRegistry()
    registry.load("worker.tasks")
    runner = WorkerRunner(
        registry, worker_id="w1", session_factory=session_factory, lease_duration=60, heartbeat_interval=30
    )
    await runner.run_once()

    result = (await api.get(f"/api/v1/jobs/{job_id}/result")).json()
    assert result["summary"] == "Dry-run completed"
    assert result["data"] == {"ok": True, "toggles": {"deep": False}}

    detail = (await api.get(f"/api/v1/jobs/{job_id}")).json()
    assert detail["job"]["status"] == "succeeded"
    assert detail["job"]["worker_id"] == "w1"
    # Newest first
    assert detail["logs"][0]["msg"] == "succeeded"


async def test_api_key_guards_writes(api, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "s3cret")
    body = {"type": "scrape_styles"}

    assert (await api.post("/api/v1/jobs", json=body)).status_code == 401
    assert (await api.post("/api/v1/jobs", json=body, headers={"X-API-Key": "nope"})).status_code == 403
    resp = await api.post("/api/v1/jobs", json=body, headers={"X-API-Key": "s3cret"})
    assert resp.status_code == 201

    job_id = resp.json()["job_id"]
    assert (await api.post(f"/api/v1/jobs/{job_id}/cancel")).status_code == 401
    assert (await api.post("/api/v1/admin/expire")).status_code == 401
    # Reads stay open
    assert (await api.get(f"/api/v1/jobs/{job_id}")).status_code == 200


async def test_cron_requires_token(api, monkeypatch):
    assert (await api.post("/api/v1/cron/scrape_statistics")).status_code == 401

    monkeypatch.setattr(settings, "CRON_TOKEN", "tick")
    assert (await api.post("/api/v1/cron/scrape_statistics", headers={"X-Cron-Token": "tock"})).status_code == 401

    resp = await api.post("/api/v1/cron/scrape_statistics", headers={"X-Cron-Token": "tick"})
    assert resp.status_code == 200
    detail = (await api.get(f"/api/v1/jobs/{resp.json()['job_id']}")).json()
    assert detail["job"]["payload"] == {"toggles": {"deep": False}, "requestedBy": "cron"}
    assert detail["logs"][0]["data"]["requestedBy"] == "cron"

    resp = await api.post("/api/v1/cron/export_overview", headers={"X-Cron-Token": "tick"})
    assert resp.status_code == 404


def test_cron_payload_is_a_private_copy():
    payload = cron_payload(JobType.SCRAPE_STATISTICS)
    payload["toggles"]["deep"] = True
    payload["seasonId"] = "ss25"

    assert CRON_PRESETS[JobType.SCRAPE_STATISTICS] == {"toggles": {"deep": False}, "requestedBy": "cron"}
    assert cron_payload(JobType.SCRAPE_STATISTICS)["toggles"] == {"deep": False}


async def test_admin_expire(api):
    resp = await api.post("/api/v1/admin/expire")
    assert resp.status_code == 200
    assert resp.json() == {"failed_count": 0}


async def test_metrics_endpoint(api):
    await enqueue(api)
    resp = await api.get("/metrics")
    assert resp.status_code == 200
    assert "jobs_enqueued_total" in resp.text


async def test_jobs_client(api):
    transport = httpx.ASGITransport(app=app)
    async with JobsClient("http://test", transport=transport) as client:
        job_id = await client.enqueue("scrape_customers", {"requestedBy": "cli"}, max_attempts=5)

        job = await client.get(job_id)
        assert job["job"]["max_attempts"] == 5

        cancelled = await client.cancel(job_id, reason="not needed")
        assert cancelled["status"] == "cancelled"

        logs = await client.logs(job_id)
        assert [entry["msg"] for entry in logs] == ["enqueued", "cancelled"]
        assert await client.logs(job_id, after_id=logs[-1]["id"]) == []
