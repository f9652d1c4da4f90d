"""
Stuck-job reclaimer.

A job stays CLAIMED only while some invocation is working on it. If that
invocation was killed by its host (time budget, crash, deploy), nobody will
ever resolve the claim, so the reclaimer does it instead:

    claimed, claimed_at older than the liveness window
        ├─ retry budget left → QUEUED (attempt + 1)
        └─ budget exhausted  → DEAD

Safe to run any number of times, concurrently with itself and with the
dispatch chain: every write is conditional on the claim token it observed,
so a claim that was completed or re-reset in the meantime is left alone.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from config.settings import settings
from models.enums import JobStatus
from store.job_store import JobStore, Transition
from worker.retry import RetryHandler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReclaimResult:
    reset: int = 0
    killed: int = 0
    failed: int = 0   # rows whose write raised even on its own


class Reclaimer:

    def __init__(
        self,
        store: JobStore,
        liveness_window: Optional[float] = None,
        batch_limit: Optional[int] = None,
    ):
        self._store = store
        self._window = timedelta(
            seconds=liveness_window if liveness_window is not None else settings.LIVENESS_WINDOW_SECONDS
        )
        self._batch_limit = batch_limit or settings.STORE_BATCH_LIMIT

    def cutoff(self):
        return self._store.now() - self._window

    def reclaim(self, owner: str) -> ReclaimResult:
        stale = self._store.find_stale_claims(owner, self.cutoff())
        if not stale:
            return ReclaimResult()

        transitions = [
            RetryHandler.plan(job, f"Claim expired after {self._window.total_seconds():.0f}s without completion")
            for job in stale
        ]

        applied: list[Transition] = []
        failed = 0
        for start in range(0, len(transitions), self._batch_limit):
            chunk = transitions[start:start + self._batch_limit]
            chunk_applied, chunk_failed = self._apply_chunk(chunk)
            applied.extend(chunk_applied)
            failed += chunk_failed

        result = ReclaimResult(
            reset=sum(1 for t in applied if t.target == JobStatus.QUEUED),
            killed=sum(1 for t in applied if t.target == JobStatus.DEAD),
            failed=failed,
        )
        logger.info(
            f"Reclaimed stale claims for {owner}: "
            f"reset={result.reset} killed={result.killed} failed={result.failed}"
        )
        return result

    def _apply_chunk(self, chunk: list[Transition]) -> tuple[list[Transition], int]:
        try:
            return self._store.apply_transitions(chunk), 0
        except Exception as e:
            logger.warning(f"Reclaim batch of {len(chunk)} failed ({e}); retrying one by one")

        applied, failed = [], 0
        for transition in chunk:
            try:
                applied.extend(self._store.apply_transitions([transition]))
            except Exception:
                logger.exception(f"Could not reclaim job {transition.job_id}")
                failed += 1
        return applied, failed
