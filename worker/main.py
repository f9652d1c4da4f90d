"""
Worker process entry point.

This is a SEPARATE process from the FastAPI API server. It hosts the
invocations and runs two components:

    1. WorkerPool — pops continuation requests from Redis and runs one
       time-boxed invocation (DispatchChain.run or Sweeper.sweep_once) per
       request on its thread pool
    2. Sweeper — a timer thread that reclaims stale claims, resumes stalled
       chains and applies retention across all owners

The main thread just waits for Ctrl+C (SIGINT) or SIGTERM to shut down
gracefully. Any number of worker processes can run side by side: all
coordination goes through the store's conditional writes.

To run:
    python -m worker.main
"""

import logging
import signal
import threading

from redis import Redis

from config.settings import settings
from extraction.service import build_extraction_service
from models.base import Base, make_sync_engine, make_sync_session_factory
from store.job_store import JobStore
from worker.chain import DispatchChain
from worker.continuation import ContinuationQueue
from worker.executor import JobExecutor
from worker.pool import WorkerPool
from worker.reclaimer import Reclaimer
from worker.sweeper import Sweeper

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    engine = make_sync_engine(settings.sync_database_url, timeout=settings.STORE_TIMEOUT_SECONDS)

    # Safe to call from every process; existing tables are left alone.
    logger.info("Ensuring database tables exist...")
    Base.metadata.create_all(engine)

    redis_client = Redis.from_url(settings.redis_url)
    continuations = ContinuationQueue(redis_client)

    store = JobStore(make_sync_session_factory(engine))
    reclaimer = Reclaimer(store)
    chain = DispatchChain(
        store=store,
        executor=JobExecutor(store, build_extraction_service()),
        reclaimer=reclaimer,
        continuations=continuations,
    )
    sweeper = Sweeper(store, reclaimer, continuations)

    pool = WorkerPool(continuations, chain, sweeper)
    pool.start()
    sweeper.start()

    # ── Graceful shutdown on Ctrl+C or SIGTERM ──────────────────
    shutdown_event = threading.Event()

    def shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping...")
        sweeper.stop()
        pool.stop()
        shutdown_event.set()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info("Worker process running. Press Ctrl+C to stop.")
    shutdown_event.wait()

    engine.dispose()
    logger.info("Worker process exited")


if __name__ == "__main__":
    main()
