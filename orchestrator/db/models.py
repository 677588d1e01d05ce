from datetime import datetime
from typing import Optional, Any
from uuid import UUID, uuid4

from sqlalchemy import String, Integer, BigInteger, Text, DateTime, ForeignKey, Index, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from orchestrator.db.session import Base
from orchestrator.domain.states import JobStatus, LogLevel
from orchestrator.utils.clock import utcnow

# JSONB on Postgres, plain JSON elsewhere (sqlite in tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")

class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONDocument, default=dict, nullable=False)

    # State machine
    status: Mapped[JobStatus] = mapped_column(String, default=JobStatus.QUEUED, nullable=False, index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Lease. The token fences every holder write; worker_id is the last holder.
    lease_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    lease_token: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    worker_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        # Claim query: eligible rows by status, oldest first
        Index("ix_jobs_claim", "status", "created_at"),
    )

class JobLog(Base):
    __tablename__ = "job_logs"

    # BIGSERIAL on Postgres; sqlite only autoincrements INTEGER primary keys
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    job_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    level: Mapped[LogLevel] = mapped_column(String, default=LogLevel.INFO, nullable=False)
    msg: Mapped[str] = mapped_column(String, nullable=False)
    data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument, nullable=True)

    __table_args__ = (
        Index("ix_job_logs_job_id_id", "job_id", "id"),
    )

class JobResult(Base):
    __tablename__ = "job_results"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    job_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSONDocument, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
