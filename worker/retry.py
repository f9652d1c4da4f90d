"""
Retry handler — decides what happens to a claimed job that failed.

Two outcomes:
1. attempt + 1 < max_attempts  → back to QUEUED (claim cleared, place in line kept)
2. attempt + 1 >= max_attempts → DEAD, with a human-readable error

Lifecycle on failure (max_attempts=2):
    queued → claimed → (fail) attempt=1 → queued
           → claimed → (fail) attempt=2 → dead

The same rule serves three callers:
- JobExecutor, when extraction raises ExtractError
- JobExecutor, when anything else blows up (critical=True)
- Reclaimer, when a claim outlived the liveness window

Every write is conditional on the claim token the failure belongs to, so if
the claim has already been resolved elsewhere the write is a no-op.
"""

import logging
from typing import Optional

from models.enums import JobStatus
from store.job_store import ClaimedJob, JobStore, Transition

logger = logging.getLogger(__name__)


class RetryHandler:

    def __init__(self, store: JobStore):
        self._store = store

    @staticmethod
    def plan(job: ClaimedJob, error_msg: str, critical: bool = False) -> Transition:
        """Pure decision: which transition a failure of this claim leads to."""
        next_attempt = job.attempt + 1

        if next_attempt < job.max_attempts:
            return Transition(
                job_id=job.id,
                claim_token=job.claim_token,
                target=JobStatus.QUEUED,
                attempt=next_attempt,
                error=error_msg,
                critical=critical,
            )

        return Transition(
            job_id=job.id,
            claim_token=job.claim_token,
            target=JobStatus.DEAD,
            attempt=next_attempt,
            error=f"Retries exhausted ({next_attempt}/{job.max_attempts}): {error_msg}",
            critical=critical,
        )

    def handle_failure(
        self, job: ClaimedJob, error_msg: str, critical: bool = False
    ) -> Optional[JobStatus]:
        """
        Resolve a failed claim.

        Returns:
            the status the job moved to, or None if the claim was already
            resolved by someone else (e.g. a sweep reset it first).
        """
        transition = self.plan(job, error_msg, critical)
        applied = self._store.apply_transitions([transition])

        if not applied:
            logger.warning(f"Job {job.id} claim already resolved elsewhere; failure not recorded")
            return None

        if transition.target == JobStatus.QUEUED:
            logger.info(
                f"Job {job.id} will be retried ({transition.attempt}/{job.max_attempts})"
            )
        else:
            logger.warning(f"Job {job.id} is dead: {transition.error}")
        return transition.target
