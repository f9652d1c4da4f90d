"""
Continuation requests — how the dispatch chain keeps going across invocations.

An invocation never loops past its time budget and never leaves work
running after it returns. When an owner still has queued jobs, it publishes
a ContinuationRequest to a Redis list instead, and a fresh invocation picks
that message up:

    API /dispatch ─┐
    API /status ───┤  RPUSH   ┌───────────────────────┐  BLPOP   WorkerPool
    DispatchChain ─┼────────> │ extractq:continuations │ ───────> → DispatchChain.run()
    Sweeper ───────┘          └───────────────────────┘

Receiving a request is idempotent: running the chain for an owner with an
empty queue is a no-op, and claims are atomic, so duplicates are harmless.
To keep bursts of triggers from piling up, publishing sets a short-lived
marker per (kind, owner, job_id) with SET NX EX; while the marker exists a
second publish is dropped. The consumer clears the marker when it pops the
message, so a trigger that arrives mid-invocation is accepted again.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Optional

from redis import Redis
from redis.asyncio import Redis as AsyncRedis

from config.settings import settings
from models.enums import ContinuationKind

logger = logging.getLogger(__name__)

REDIS_CONTINUATION_QUEUE = "extractq:continuations"
REDIS_DEDUPE_PREFIX = "extractq:continuation:pending"


@dataclass(frozen=True)
class ContinuationRequest:
    kind: ContinuationKind = ContinuationKind.DRAIN
    owner: Optional[str] = None
    job_id: Optional[str] = None
    reason: str = ""
    requested_at: float = field(default_factory=time.time)

    @property
    def dedupe_key(self) -> str:
        return f"{REDIS_DEDUPE_PREFIX}:{self.kind.value}:{self.owner or '*'}:{self.job_id or '*'}"

    def to_json(self) -> str:
        data = asdict(self)
        data["kind"] = self.kind.value
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "ContinuationRequest":
        data = json.loads(raw)
        return cls(
            kind=ContinuationKind(data.get("kind", ContinuationKind.DRAIN.value)),
            owner=data.get("owner"),
            job_id=data.get("job_id"),
            reason=data.get("reason", ""),
            requested_at=data.get("requested_at", time.time()),
        )


class ContinuationQueue:
    """Sync side, used by worker invocations."""

    def __init__(self, redis_client: Redis, dedupe_seconds: Optional[int] = None):
        self._redis = redis_client
        self._dedupe_seconds = dedupe_seconds or settings.CONTINUATION_DEDUPE_SECONDS

    def publish(self, request: ContinuationRequest) -> bool:
        """Queue a request. Returns False if an identical one is already pending."""
        if not self._redis.set(request.dedupe_key, "1", nx=True, ex=self._dedupe_seconds):
            logger.debug(f"Continuation already pending: {request.dedupe_key}")
            return False
        self._redis.rpush(REDIS_CONTINUATION_QUEUE, request.to_json())
        logger.info(
            f"Continuation queued: {request.kind.value} owner={request.owner} "
            f"job={request.job_id} ({request.reason})"
        )
        return True

    def pop(self, timeout: int = 1) -> Optional[ContinuationRequest]:
        """Block up to timeout seconds for the next request."""
        item = self._redis.blpop(REDIS_CONTINUATION_QUEUE, timeout=timeout)
        if item is None:
            return None

        _, raw = item
        try:
            request = ContinuationRequest.from_json(raw)
        except (ValueError, TypeError) as e:
            logger.error(f"Dropping malformed continuation message {raw!r}: {e}")
            return None

        self._redis.delete(request.dedupe_key)
        return request

    def depth(self) -> int:
        return self._redis.llen(REDIS_CONTINUATION_QUEUE)


async def publish_async(
    redis: AsyncRedis,
    request: ContinuationRequest,
    dedupe_seconds: Optional[int] = None,
) -> bool:
    """Async twin of ContinuationQueue.publish for the API process."""
    ttl = dedupe_seconds or settings.CONTINUATION_DEDUPE_SECONDS
    if not await redis.set(request.dedupe_key, "1", nx=True, ex=ttl):
        return False
    await redis.rpush(REDIS_CONTINUATION_QUEUE, request.to_json())
    logger.info(
        f"Continuation queued: {request.kind.value} owner={request.owner} "
        f"job={request.job_id} ({request.reason})"
    )
    return True
