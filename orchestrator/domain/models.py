from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Any
from uuid import UUID

@dataclass
class TaskResult:
    """What a task body hands back on success. Persisted as a JobResult row."""
    summary: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)

@dataclass(frozen=True)
class Lease:
    job_id: UUID
    token: UUID
    worker_id: str
    attempt: int
    lease_until: datetime
