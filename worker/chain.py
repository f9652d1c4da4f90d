"""
Dispatch chain — drains one owner's queue within one time-boxed invocation.

One invocation:

    run(owner, job_id?)
      1. reclaim the owner's stale claims
      2. process job_id first, if the trigger named one
      3. drain_once:
           ┌──────────────────────────────────────────────────────┐
           │ find up to `limit` queued jobs, oldest first          │
           │ queue empty?            → stop                        │
           │ no time for a batch?    → publish continuation, stop  │
           │ process them on `limit` threads (each claims its own) │
           │ loop                                                  │
           └──────────────────────────────────────────────────────┘

Nothing in memory survives the invocation. A continuation only carries the
owner, so the next invocation rebuilds everything it needs from the store,
and running it twice (or after someone else drained the queue) is harmless.

Concurrency ceiling: a batch never has more than `limit` jobs and each
thread claims right before it processes, so the chain never holds a claim
it is not actively working on.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Optional

from config.settings import settings
from models.enums import ContinuationKind
from store.job_store import JobStore
from worker.continuation import ContinuationQueue, ContinuationRequest
from worker.executor import ExecutionOutcome, JobExecutor
from worker.reclaimer import Reclaimer, ReclaimResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrainResult:
    dispatched: int = 0      # jobs this invocation claimed and resolved
    remaining: int = 0       # queued jobs left when it stopped
    continued: bool = False  # whether a continuation was published
    outcomes: tuple[ExecutionOutcome, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RunResult:
    owner: str
    reclaimed: ReclaimResult = field(default_factory=ReclaimResult)
    targeted: Optional[ExecutionOutcome] = None
    drain: DrainResult = field(default_factory=DrainResult)
    error: Optional[str] = None


class DispatchChain:

    def __init__(
        self,
        store: JobStore,
        executor: JobExecutor,
        reclaimer: Reclaimer,
        continuations: ContinuationQueue,
        concurrency: Optional[int] = None,
        budget_seconds: Optional[float] = None,
        batch_estimate_seconds: Optional[float] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._executor = executor
        self._reclaimer = reclaimer
        self._continuations = continuations
        self._concurrency = concurrency or settings.DISPATCH_CONCURRENCY
        self._budget = budget_seconds or settings.INVOCATION_BUDGET_SECONDS
        self._batch_estimate = (
            batch_estimate_seconds
            if batch_estimate_seconds is not None
            else settings.batch_estimate_seconds
        )
        self._monotonic = monotonic

    def run(self, owner: str, job_id: Optional[str] = None) -> RunResult:
        """
        Entry point for one invocation. Never raises: the result describes
        what happened to the dispatch, not whether each job succeeded.
        """
        deadline = self._monotonic() + self._budget

        try:
            reclaimed = self._reclaimer.reclaim(owner)
        except Exception:
            logger.exception(f"Reclaim failed for {owner}; draining anyway")
            reclaimed = ReclaimResult()

        try:
            targeted = self._executor.execute(job_id, owner) if job_id else None
            drain = self.drain_once(owner, deadline=deadline)
        except Exception as e:
            logger.exception(f"Dispatch invocation for {owner} failed")
            # The queue must not stall behind one bad invocation.
            self._continue(owner, "recovering from failed invocation")
            return RunResult(owner=owner, reclaimed=reclaimed, error=str(e))

        return RunResult(owner=owner, reclaimed=reclaimed, targeted=targeted, drain=drain)

    def drain_once(
        self,
        owner: str,
        concurrency_limit: Optional[int] = None,
        deadline: Optional[float] = None,
    ) -> DrainResult:
        limit = concurrency_limit or self._concurrency
        if deadline is None:
            deadline = self._monotonic() + self._budget

        dispatched = 0
        outcomes: list[ExecutionOutcome] = []

        while True:
            job_ids = self._store.find_queued(owner, limit)
            if not job_ids:
                if dispatched:
                    logger.info(f"Queue for {owner} drained after {dispatched} jobs")
                return DrainResult(dispatched=dispatched, outcomes=tuple(outcomes))

            # A batch only starts if it can finish before the deadline.
            if deadline - self._monotonic() < self._batch_estimate:
                remaining = self._store.count_queued(owner)
                continued = self._continue(owner, f"{remaining} queued jobs left at end of budget")
                return DrainResult(
                    dispatched=dispatched,
                    remaining=remaining,
                    continued=continued,
                    outcomes=tuple(outcomes),
                )

            batch = self._run_batch(owner, job_ids)
            outcomes.extend(batch)
            dispatched += sum(1 for o in batch if o.status not in ("skipped", "error"))

    def _run_batch(self, owner: str, job_ids: list[str]) -> list[ExecutionOutcome]:
        outcomes = []
        with ThreadPoolExecutor(
            max_workers=len(job_ids), thread_name_prefix="dispatch"
        ) as pool:
            futures = {
                pool.submit(self._executor.execute, job_id, owner): job_id
                for job_id in job_ids
            }
            for future in as_completed(futures):
                job_id = futures[future]
                try:
                    outcomes.append(future.result())
                except Exception as e:
                    # Store unreachable mid-job; the reclaimer resolves it later.
                    logger.error(f"Job {job_id} could not be processed: {e}", exc_info=True)
                    outcomes.append(ExecutionOutcome(job_id, "error", str(e)))
        return outcomes

    def _continue(self, owner: str, reason: str) -> bool:
        request = ContinuationRequest(kind=ContinuationKind.DRAIN, owner=owner, reason=reason)
        try:
            return self._continuations.publish(request)
        except Exception as e:
            # The sweeper re-triggers stalled queues, so this is not fatal.
            logger.error(f"Could not publish continuation for {owner}: {e}")
            return False
