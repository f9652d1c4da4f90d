"""
Job ORM model — maps to the "jobs" table.

Key design decisions:
- enqueued_at is the ordering key (ties broken by id) and is never rewritten,
  so a job that is reset after a failure keeps its place in its owner's queue
- claim_token is minted on every claim; the writes that resolve a claim
  (complete, reset, kill) are conditional on it, so a stale executor cannot
  overwrite the outcome of a newer claim
- terminal rows (done/dead) match none of those conditional writes, which is
  what keeps completed_at/result/error write-once
- JSON for fields/result: the requested field set decides the result's shape
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base
from models.enums import JobStatus

# JSONB on Postgres, plain JSON everywhere else (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    return str(uuid.uuid4())


class Job(Base):
    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_owner_status_enqueued", "owner", "status", "enqueued_at"),
    )

    # ── Identity ────────────────────────────────────────────────
    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_job_id)
    owner: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # ── Payload (immutable once queued) ─────────────────────────
    text: Mapped[str] = mapped_column(Text, nullable=False)
    fields: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    # ── State machine ───────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.QUEUED.value, nullable=False, index=True
    )
    enqueued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    claim_token: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # ── Retry tracking ──────────────────────────────────────────
    attempt: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    # ── Outcome (write-once) ────────────────────────────────────
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    extraction_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    processing_time_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    critical_failure: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Job {self.id} [{self.owner}] {self.status} attempt={self.attempt}>"
