"""
Job executor — claims and processes a single job.

Each dispatch thread calls executor.execute(job_id, owner), which handles
the full lifecycle:

    1. Claim the job (atomic queued → claimed), or skip it if someone else has it
    2. Run the extraction strategy (primary with fallback)
    3. On success: conditional claimed → done write with the result
    4. On ExtractError: RetryHandler decides queued vs dead
    5. On anything else: same, flagged as a critical failure

Whatever happens, a job this call claimed is left queued, done or dead when
it returns. The only exception is a store that cannot be written at all,
and then the reclaimer picks the job up once the liveness window passes.

Thread safety:
- JobStore opens a fresh session per call
- Extractors are stateless apart from their HTTP client (thread-safe)
So several threads can call execute() at once without locks.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from extraction.errors import ExtractError
from extraction.service import ExtractionService
from store.errors import ClaimError
from store.job_store import JobStore
from worker.retry import RetryHandler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionOutcome:
    job_id: str
    status: str              # done | queued | dead | skipped | lost
    detail: Optional[str] = None


class JobExecutor:

    def __init__(self, store: JobStore, extraction: ExtractionService):
        self._store = store
        self._extraction = extraction
        self._retry_handler = RetryHandler(store)

    def execute(self, job_id: str, owner: str) -> ExecutionOutcome:
        # ── Step 1: Claim ───────────────────────────────────────
        try:
            job = self._store.claim(job_id, owner)
        except ClaimError as e:
            logger.info(f"Skipping job {job_id}: {e}")
            return ExecutionOutcome(job_id, "skipped", e.code)

        try:
            # ── Step 2: Extract ─────────────────────────────────
            start_time = time.monotonic()
            result = self._extraction.extract(job.text, job.fields)
            elapsed_ms = round((time.monotonic() - start_time) * 1000, 2)

            # ── Step 3: Mark DONE ───────────────────────────────
            if not self._store.complete(job, result.data, result.method, elapsed_ms):
                logger.warning(f"Job {job_id} finished after its claim was lost; result dropped")
                return ExecutionOutcome(job_id, "lost")

            logger.info(f"Job {job_id} done via {result.method} in {elapsed_ms:.0f}ms")
            return ExecutionOutcome(job_id, "done", result.method)

        except ExtractError as e:
            # ── Step 4: Retryable failure ───────────────────────
            logger.info(f"Job {job_id} extraction failed ({e.kind}): {e}")
            status = self._retry_handler.handle_failure(job, str(e))

        except Exception as e:
            # ── Step 5: Critical failure ────────────────────────
            logger.exception(f"Job {job_id} hit an unexpected error")
            status = self._retry_handler.handle_failure(
                job, f"Critical failure: {e}", critical=True
            )

        if status is None:
            return ExecutionOutcome(job_id, "lost")
        return ExecutionOutcome(job_id, status.value)
