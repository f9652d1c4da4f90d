"""
Job Store — every read and write the queue makes against the jobs table.

The store holds nothing but a session factory. Each method opens its own
session and closes it before returning, so one JobStore instance can be
shared by every thread of a dispatch batch.

Concurrency model: optimistic only. No row is ever locked for longer than a
single statement. The writes that change a job's state are conditional
UPDATEs and their rowcount tells the caller whether it won:

    claim     UPDATE ... WHERE id=:id AND owner=:owner AND status='queued'
    resolve   UPDATE ... WHERE id=:id AND status='claimed' AND claim_token=:token

A terminal row (done/dead) matches neither statement, which is how the
write-once rule for outcomes is enforced.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, sessionmaker

from models.enums import TERMINAL_STATUSES, JobStatus
from models.job import Job, new_job_id, utcnow
from store.errors import JobNotFound, NotClaimable, OwnershipMismatch

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we write is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class ClaimedJob:
    """Snapshot of a job taken at claim time (or of a claim seen by a sweep)."""
    id: str
    owner: str
    text: str
    fields: list
    attempt: int
    max_attempts: int
    claim_token: str
    claimed_at: datetime

    @classmethod
    def from_row(cls, job: Job) -> "ClaimedJob":
        return cls(
            id=job.id,
            owner=job.owner,
            text=job.text,
            fields=list(job.fields or []),
            attempt=job.attempt,
            max_attempts=job.max_attempts,
            claim_token=job.claim_token,
            claimed_at=as_utc(job.claimed_at),
        )


@dataclass(frozen=True)
class Transition:
    """A planned claimed → queued (reset) or claimed → dead (kill) write."""
    job_id: str
    claim_token: str
    target: JobStatus
    attempt: int
    error: str
    critical: bool = False


class JobStore:

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ── Submission & lookup ─────────────────────────────────────

    def add(
        self,
        owner: str,
        text: str,
        fields: Iterable[str],
        file_name: Optional[str] = None,
        max_attempts: int = 3,
        enqueued_at: Optional[datetime] = None,
        job_id: Optional[str] = None,
    ) -> str:
        """Insert a queued job. The HTTP submission path does the same through the async session."""
        job = Job(
            id=job_id or new_job_id(),
            owner=owner,
            text=text,
            fields=list(fields),
            file_name=file_name,
            status=JobStatus.QUEUED.value,
            max_attempts=max_attempts,
            enqueued_at=enqueued_at or self._clock(),
        )
        with self._session_factory() as session:
            session.add(job)
            session.commit()
            return job.id

    def get(self, job_id: str) -> Optional[Job]:
        with self._session_factory() as session:
            return session.get(Job, job_id)

    # ── Claim protocol ──────────────────────────────────────────

    def claim(self, job_id: str, expected_owner: str) -> ClaimedJob:
        """
        Atomically move one queued job to claimed.

        Under any number of concurrent callers for the same job, exactly one
        UPDATE matches the row; every other caller sees rowcount 0 and gets
        NotClaimable.

        Raises:
            JobNotFound, OwnershipMismatch, NotClaimable
        """
        now = self._clock()
        token = uuid.uuid4().hex

        with self._session_factory() as session:
            result = session.execute(
                update(Job)
                .where(
                    Job.id == job_id,
                    Job.owner == expected_owner,
                    Job.status == JobStatus.QUEUED.value,
                )
                .values(
                    status=JobStatus.CLAIMED.value,
                    claimed_at=now,
                    claim_token=token,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                self._raise_claim_error(session, job_id, expected_owner)

            job = session.get(Job, job_id)
            snapshot = ClaimedJob(
                id=job.id,
                owner=job.owner,
                text=job.text,
                fields=list(job.fields or []),
                attempt=job.attempt,
                max_attempts=job.max_attempts,
                claim_token=token,
                claimed_at=now,
            )
            session.commit()
            return snapshot

    @staticmethod
    def _raise_claim_error(session: Session, job_id: str, expected_owner: str) -> None:
        job = session.get(Job, job_id)
        if job is None:
            raise JobNotFound(job_id)
        if job.owner != expected_owner:
            raise OwnershipMismatch(job_id, expected_owner)
        raise NotClaimable(job_id, job.status)

    # ── Claim resolution ────────────────────────────────────────

    def complete(
        self,
        job: ClaimedJob,
        data: dict,
        method: str,
        processing_time_ms: Optional[float] = None,
    ) -> bool:
        """claimed → done. Returns False if the claim was lost (reset by a sweep, or already terminal)."""
        with self._session_factory() as session:
            result = session.execute(
                update(Job)
                .where(
                    Job.id == job.id,
                    Job.status == JobStatus.CLAIMED.value,
                    Job.claim_token == job.claim_token,
                )
                .values(
                    status=JobStatus.DONE.value,
                    result=data,
                    error=None,
                    extraction_method=method,
                    processing_time_ms=processing_time_ms,
                    completed_at=self._clock(),
                    claim_token=None,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount == 1

    def apply_transitions(self, transitions: list[Transition]) -> list[Transition]:
        """
        Apply reset/kill transitions in ONE transaction.

        Each row is still conditional on its claim token, so a transition
        whose claim has meanwhile been resolved by someone else is skipped.
        Returns the transitions that actually took effect.
        """
        if not transitions:
            return []

        now = self._clock()
        applied = []
        with self._session_factory() as session:
            try:
                for t in transitions:
                    result = session.execute(self._transition_stmt(t, now))
                    if result.rowcount == 1:
                        applied.append(t)
                session.commit()
            except Exception:
                session.rollback()
                raise
        return applied

    @staticmethod
    def _transition_stmt(t: Transition, now: datetime):
        values = {
            "status": t.target.value,
            "attempt": t.attempt,
            "error": t.error,
            "claim_token": None,
        }
        if t.target == JobStatus.QUEUED:
            # enqueued_at stays as is, so the job keeps its place in line.
            values["claimed_at"] = None
        elif t.target == JobStatus.DEAD:
            values["completed_at"] = now
        else:
            raise ValueError(f"Transition target must be queued or dead, got {t.target}")
        if t.critical:
            values["critical_failure"] = True

        return (
            update(Job)
            .where(
                Job.id == t.job_id,
                Job.status == JobStatus.CLAIMED.value,
                Job.claim_token == t.claim_token,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    # ── Range queries ───────────────────────────────────────────

    def find_queued(self, owner: str, limit: int) -> list[str]:
        """Oldest queued job ids for an owner, FIFO by (enqueued_at, id)."""
        with self._session_factory() as session:
            rows = session.execute(
                select(Job.id)
                .where(Job.owner == owner, Job.status == JobStatus.QUEUED.value)
                .order_by(Job.enqueued_at, Job.id)
                .limit(limit)
            ).scalars()
            return list(rows)

    def count_queued(self, owner: str) -> int:
        with self._session_factory() as session:
            return session.execute(
                select(func.count(Job.id)).where(
                    Job.owner == owner, Job.status == JobStatus.QUEUED.value
                )
            ).scalar() or 0

    def find_stale_claims(self, owner: str, cutoff: datetime) -> list[ClaimedJob]:
        """Claimed jobs whose claim is strictly older than cutoff."""
        with self._session_factory() as session:
            jobs = session.execute(
                select(Job)
                .where(
                    Job.owner == owner,
                    Job.status == JobStatus.CLAIMED.value,
                    Job.claimed_at < cutoff,
                )
                .order_by(Job.claimed_at)
            ).scalars()
            return [ClaimedJob.from_row(job) for job in jobs]

    def owners_with_stale_claims(self, cutoff: datetime) -> list[str]:
        with self._session_factory() as session:
            rows = session.execute(
                select(Job.owner)
                .where(
                    Job.status == JobStatus.CLAIMED.value,
                    Job.claimed_at < cutoff,
                )
                .distinct()
            ).scalars()
            return list(rows)

    def owners_needing_dispatch(self, cutoff: datetime) -> list[str]:
        """Owners with queued work and no live (younger than cutoff) claim, i.e. stalled chains."""
        queued = func.count(Job.id).filter(Job.status == JobStatus.QUEUED.value)
        live_claims = func.count(Job.id).filter(
            Job.status == JobStatus.CLAIMED.value,
            Job.claimed_at >= cutoff,
        )
        with self._session_factory() as session:
            rows = session.execute(
                select(Job.owner)
                .where(Job.status.in_([JobStatus.QUEUED.value, JobStatus.CLAIMED.value]))
                .group_by(Job.owner)
                .having(queued > 0, live_claims == 0)
            ).scalars()
            return list(rows)

    def status_rows(self, owner: str) -> list[tuple[str, Optional[datetime]]]:
        with self._session_factory() as session:
            rows = session.execute(
                select(Job.status, Job.claimed_at).where(Job.owner == owner)
            ).all()
            return [(status, as_utc(claimed_at)) for status, claimed_at in rows]

    # ── Retention ───────────────────────────────────────────────

    def delete_expired(
        self,
        cutoff: datetime,
        batch_size: int,
        owner: Optional[str] = None,
    ) -> int:
        """
        Delete terminal jobs completed before cutoff, batch_size rows per transaction.

        Active jobs are never touched, whatever their age.
        """
        deleted = 0
        while True:
            with self._session_factory() as session:
                query = select(Job.id).where(
                    Job.status.in_(TERMINAL_STATUSES),
                    Job.completed_at < cutoff,
                )
                if owner is not None:
                    query = query.where(Job.owner == owner)
                ids = list(session.execute(query.limit(batch_size)).scalars())
                if not ids:
                    break

                result = session.execute(
                    delete(Job)
                    .where(Job.id.in_(ids), Job.status.in_(TERMINAL_STATUSES))
                    .execution_options(synchronize_session=False)
                )
                session.commit()
                deleted += result.rowcount

            if len(ids) < batch_size:
                break

        if deleted:
            logger.info(f"Retention sweep deleted {deleted} jobs completed before {cutoff.isoformat()}")
        return deleted
