"""
Tests for continuation requests over Redis.
"""

import pytest
from fakeredis.aioredis import FakeRedis

from models.enums import ContinuationKind
from worker.continuation import (
    REDIS_CONTINUATION_QUEUE,
    ContinuationQueue,
    ContinuationRequest,
    publish_async,
)


def test_publish_then_pop(continuations):
    request = ContinuationRequest(owner="u1", job_id="j1", reason="client trigger")

    assert continuations.publish(request) is True
    popped = continuations.pop(timeout=1)

    assert popped.kind == ContinuationKind.DRAIN
    assert (popped.owner, popped.job_id, popped.reason) == ("u1", "j1", "client trigger")


def test_duplicate_publish_is_dropped_while_pending(continuations):
    assert continuations.publish(ContinuationRequest(owner="u1")) is True
    assert continuations.publish(ContinuationRequest(owner="u1")) is False
    assert continuations.publish(ContinuationRequest(owner="u2")) is True

    assert continuations.depth() == 2


def test_pop_clears_the_pending_marker(continuations):
    continuations.publish(ContinuationRequest(owner="u1"))
    continuations.pop(timeout=1)

    assert continuations.publish(ContinuationRequest(owner="u1")) is True


def test_pop_on_empty_queue_returns_none(continuations):
    assert continuations.pop(timeout=1) is None


def test_malformed_message_is_dropped(sync_redis):
    queue = ContinuationQueue(sync_redis)
    sync_redis.rpush(REDIS_CONTINUATION_QUEUE, b"not json")

    assert queue.pop(timeout=1) is None
    assert queue.depth() == 0


def test_sweep_request_round_trips_through_json():
    request = ContinuationRequest(kind=ContinuationKind.SWEEP, reason="cron")

    parsed = ContinuationRequest.from_json(request.to_json())

    assert parsed.kind == ContinuationKind.SWEEP
    assert parsed.owner is None


@pytest.mark.asyncio
async def test_async_publish_shares_dedupe_with_sync_side():
    redis = FakeRedis()

    assert await publish_async(redis, ContinuationRequest(owner="u1")) is True
    assert await publish_async(redis, ContinuationRequest(owner="u1")) is False
    assert await redis.llen(REDIS_CONTINUATION_QUEUE) == 1

    await redis.flushall()
