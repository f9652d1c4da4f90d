"""
Worker pool — the invocation host for dispatch chains.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    WorkerPool                            │
    │                                                         │
    │  Listener Thread                                        │
    │  ┌──────────────────────────────┐                       │
    │  │ BLPOP extractq:continuations │  ← blocks until a     │
    │  └──────────┬───────────────────┘    request arrives    │
    │             │ submit()                                   │
    │             ▼                                            │
    │  ┌──────────────────────────────────────────┐           │
    │  │ ThreadPoolExecutor (WORKER_POOL_SIZE)     │           │
    │  │  drain → DispatchChain.run(owner, job)    │           │
    │  │  sweep → Sweeper.sweep_once()             │           │
    │  └──────────────────────────────────────────┘           │
    └─────────────────────────────────────────────────────────┘

Each message is one invocation: it gets a fresh time budget, keeps nothing
in memory afterwards, and whatever it leaves unfinished it hands on through
another continuation. Several pool threads may run chains for the same owner
at once; the claim protocol keeps them from processing the same job.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from config.settings import settings
from models.enums import ContinuationKind
from worker.chain import DispatchChain
from worker.continuation import ContinuationQueue, ContinuationRequest
from worker.sweeper import Sweeper

logger = logging.getLogger(__name__)


class WorkerPool:

    def __init__(
        self,
        continuations: ContinuationQueue,
        chain: DispatchChain,
        sweeper: Sweeper,
        pool_size: Optional[int] = None,
        poll_timeout: Optional[int] = None,
    ):
        self._continuations = continuations
        self._chain = chain
        self._sweeper = sweeper
        self._pool_size = pool_size or settings.WORKER_POOL_SIZE
        self._poll_timeout = poll_timeout or settings.WORKER_POLL_TIMEOUT
        self._executor = ThreadPoolExecutor(
            max_workers=self._pool_size,
            thread_name_prefix="invocation",
        )
        self._running = False
        self._listener: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the listener thread that feeds requests to the thread pool."""
        self._running = True
        self._listener = threading.Thread(target=self._listen_loop, name="listener", daemon=True)
        self._listener.start()
        logger.info(f"Worker pool started with {self._pool_size} threads")

    def stop(self) -> None:
        """Stop listening, then wait for running invocations to return."""
        self._running = False
        # A request popped during the last poll is still submitted before shutdown.
        if self._listener is not None:
            self._listener.join()
            self._listener = None
        self._executor.shutdown(wait=True)
        logger.info("Worker pool stopped")

    def _listen_loop(self) -> None:
        # The BLPOP timeout bounds how long stop() takes to be noticed.
        while self._running:
            try:
                request = self._continuations.pop(timeout=self._poll_timeout)
                if request is None:
                    continue

                logger.debug(f"Dispatching {request.kind.value} request for {request.owner}")
                future: Future = self._executor.submit(self.handle, request)
                future.add_done_callback(self._on_invocation_done)

            except Exception as e:
                logger.error(f"Listener error: {e}", exc_info=True)

    def handle(self, request: ContinuationRequest):
        """Run one invocation for a request. Returns the chain or sweep result."""
        if request.kind == ContinuationKind.SWEEP:
            return self._sweeper.sweep_once()

        if not request.owner:
            logger.warning(f"Ignoring drain request without an owner: {request}")
            return None

        result = self._chain.run(request.owner, request.job_id)
        logger.info(
            f"Invocation for {request.owner} finished: "
            f"dispatched={result.drain.dispatched} remaining={result.drain.remaining} "
            f"continued={result.drain.continued}"
        )
        return result

    def _on_invocation_done(self, future: Future) -> None:
        try:
            exc = future.exception()
            if exc:
                logger.error(f"Unhandled invocation exception: {exc}")
        except Exception as e:
            logger.error(f"Callback error: {e}")
