"""
Sweeper — the housekeeping pass that keeps every owner's queue healthy.

The dispatch chain only ever looks at the owner it was triggered for. If an
invocation dies without publishing its continuation, or the trigger never
arrives, that owner's queue would sit still forever. The sweeper walks all
owners instead:

    1. owners with stale claims       → reclaim, then request a drain
    2. owners with queued work and no
       live claim (stalled chains)    → request a drain
    3. terminal jobs past retention   → delete, in bounded batches

It runs on a timer inside the worker process (start/stop below) and also on
demand when the cron endpoint publishes a `sweep` continuation. Every step is
idempotent, so overlapping sweeps only cost a few extra queries.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from config.settings import settings
from models.enums import ContinuationKind
from store.job_store import JobStore
from worker.continuation import ContinuationQueue, ContinuationRequest
from worker.reclaimer import Reclaimer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    owners_reclaimed: int = 0
    jobs_reset: int = 0
    jobs_killed: int = 0
    drains_requested: int = 0
    deleted: int = 0


class Sweeper:

    def __init__(
        self,
        store: JobStore,
        reclaimer: Reclaimer,
        continuations: ContinuationQueue,
        retention_hours: Optional[float] = None,
        batch_limit: Optional[int] = None,
        interval_seconds: Optional[float] = None,
    ):
        self._store = store
        self._reclaimer = reclaimer
        self._continuations = continuations
        self._retention = timedelta(
            hours=retention_hours if retention_hours is not None else settings.RETENTION_HOURS
        )
        self._batch_limit = batch_limit or settings.STORE_BATCH_LIMIT
        self._interval = interval_seconds or settings.SWEEP_INTERVAL_SECONDS
        self._stop_event = threading.Event()

    # ── Background loop ─────────────────────────────────────────

    def start(self) -> None:
        self._stop_event.clear()
        thread = threading.Thread(target=self._run_loop, name="sweeper", daemon=True)
        thread.start()
        logger.info(f"Sweeper started, interval {self._interval}s")

    def stop(self) -> None:
        self._stop_event.set()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.sweep_once()
            except Exception as e:
                logger.error(f"Sweep failed: {e}", exc_info=True)
            self._stop_event.wait(self._interval)

    # ── One pass ────────────────────────────────────────────────

    def sweep_once(self) -> SweepResult:
        owners_reclaimed = reset = killed = drains = 0
        requested: set[str] = set()

        # Step 1: stale claims, across all owners
        for owner in self._store.owners_with_stale_claims(self._reclaimer.cutoff()):
            try:
                result = self._reclaimer.reclaim(owner)
            except Exception:
                logger.exception(f"Sweep could not reclaim for {owner}")
                continue
            owners_reclaimed += 1
            reset += result.reset
            killed += result.killed
            if result.reset and self._request_drain(owner, "stale claims reset"):
                drains += 1
                requested.add(owner)

        # Step 2: stalled chains
        for owner in self._store.owners_needing_dispatch(self._reclaimer.cutoff()):
            if owner in requested:
                continue
            if self._request_drain(owner, "queued work with no live claim"):
                drains += 1

        # Step 3: retention
        cutoff = self._store.now() - self._retention
        deleted = self._store.delete_expired(cutoff, self._batch_limit)

        result = SweepResult(
            owners_reclaimed=owners_reclaimed,
            jobs_reset=reset,
            jobs_killed=killed,
            drains_requested=drains,
            deleted=deleted,
        )
        if owners_reclaimed or drains or deleted:
            logger.info(f"Sweep finished: {result}")
        return result

    def _request_drain(self, owner: str, reason: str) -> bool:
        request = ContinuationRequest(kind=ContinuationKind.DRAIN, owner=owner, reason=reason)
        try:
            return self._continuations.publish(request)
        except Exception as e:
            logger.error(f"Could not request drain for {owner}: {e}")
            return False
