import logging
from typing import Any, Dict, Optional
from uuid import UUID

import httpx

logger = logging.getLogger(__name__)

class JobsClient:
    """Thin client for the orchestrator's job endpoints (enqueue, read, cancel)."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {"X-API-Key": api_key} if api_key else {}
        self.client = httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=10.0, transport=transport)

    async def enqueue(
        self,
        job_type: str,
        payload: Optional[Dict[str, Any]] = None,
        max_attempts: Optional[int] = None,
    ) -> UUID:
        body: Dict[str, Any] = {"type": job_type, "payload": payload or {}}
        if max_attempts is not None:
            body["max_attempts"] = max_attempts
        resp = await self.client.post("/api/v1/jobs", json=body)
        resp.raise_for_status()
        return UUID(resp.json()["job_id"])

    async def get(self, job_id: UUID | str) -> Dict[str, Any]:
        """Job, its latest logs and its latest result."""
        resp = await self.client.get(f"/api/v1/jobs/{job_id}")
        resp.raise_for_status()
        return resp.json()

    async def logs(self, job_id: UUID | str, after_id: Optional[int] = None) -> list[Dict[str, Any]]:
        params = {"after_id": after_id} if after_id is not None else None
        resp = await self.client.get(f"/api/v1/jobs/{job_id}/logs", params=params)
        resp.raise_for_status()
        return resp.json()

    async def cancel(self, job_id: UUID | str, reason: Optional[str] = None) -> Dict[str, Any]:
        resp = await self.client.post(f"/api/v1/jobs/{job_id}/cancel", json={"reason": reason})
        resp.raise_for_status()
        job = resp.json()
        if job["status"] != "cancelled":
            logger.info("Job %s was already %s; cancel had no effect", job_id, job["status"])
        return job

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self) -> "JobsClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
