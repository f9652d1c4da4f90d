"""
Status aggregator — read-only rollup of one owner's queue.

    rows (status, claimed_at) ──> summarize() ──> QueueStatus
                                      │
                                      ├─ counts per state, progress %
                                      ├─ stuck: claims older than the liveness window
                                      └─ needs_dispatch: queued work, nobody live on it

needs_dispatch is the trigger condition callers use to resume a stalled
chain. A claim older than the liveness window is abandoned (its invocation is
gone), so it does not count as someone working the queue. The reclaimer is
what eventually resets it; this module never writes.

summarize() is a pure function so the sync worker path (StatusAggregator)
and the async API path share the same arithmetic.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from config.settings import settings
from models.enums import JobStatus
from store.job_store import JobStore, as_utc


@dataclass(frozen=True)
class QueueStatus:
    total: int = 0
    queued: int = 0
    claimed: int = 0
    done: int = 0
    dead: int = 0
    progress: int = 100
    is_complete: bool = True
    stuck: int = 0
    is_stuck: bool = False
    needs_dispatch: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def summarize(
    rows: Iterable[tuple[str, Optional[datetime]]],
    now: datetime,
    liveness_window: timedelta,
) -> QueueStatus:
    counts = {status: 0 for status in JobStatus}
    stuck = 0
    cutoff = now - liveness_window

    for status, claimed_at in rows:
        status = JobStatus(status)
        counts[status] += 1
        if status == JobStatus.CLAIMED:
            claimed_at = as_utc(claimed_at)
            if claimed_at is None or claimed_at < cutoff:
                stuck += 1

    total = sum(counts.values())
    finished = counts[JobStatus.DONE] + counts[JobStatus.DEAD]
    # An owner with nothing queued is trivially complete.
    progress = round(finished / total * 100) if total else 100
    live_claimed = counts[JobStatus.CLAIMED] - stuck

    return QueueStatus(
        total=total,
        queued=counts[JobStatus.QUEUED],
        claimed=counts[JobStatus.CLAIMED],
        done=counts[JobStatus.DONE],
        dead=counts[JobStatus.DEAD],
        progress=progress,
        is_complete=finished == total,
        stuck=stuck,
        is_stuck=stuck > 0,
        needs_dispatch=counts[JobStatus.QUEUED] > 0 and live_claimed == 0,
    )


class StatusAggregator:

    def __init__(self, store: JobStore, liveness_window: Optional[float] = None):
        self._store = store
        self._window = timedelta(
            seconds=liveness_window if liveness_window is not None else settings.LIVENESS_WINDOW_SECONDS
        )

    def status(self, owner: str) -> QueueStatus:
        return summarize(self._store.status_rows(owner), self._store.now(), self._window)
