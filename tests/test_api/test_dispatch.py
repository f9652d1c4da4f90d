"""
API tests for the trigger and status endpoints.
"""

from datetime import timedelta

import pytest

from models.enums import JobStatus
from models.job import Job, utcnow
from worker.continuation import REDIS_CONTINUATION_QUEUE, ContinuationRequest


@pytest.mark.asyncio
async def test_dispatch_is_acknowledged(client, fake_redis):
    response = await client.post("/dispatch/", json={"owner": "u1", "job_id": "j1"})

    assert response.status_code == 202
    assert response.json() == {"accepted": True, "owner": "u1", "job_id": "j1", "enqueued": True}

    raw = await fake_redis.lpop(REDIS_CONTINUATION_QUEUE)
    request = ContinuationRequest.from_json(raw)
    assert (request.owner, request.job_id) == ("u1", "j1")


@pytest.mark.asyncio
async def test_repeated_dispatch_is_deduplicated(client, fake_redis):
    first = await client.post("/dispatch/", json={"owner": "u1"})
    second = await client.post("/dispatch/", json={"owner": "u1"})

    assert first.json()["enqueued"] is True
    assert second.status_code == 202
    assert second.json()["enqueued"] is False
    assert await fake_redis.llen(REDIS_CONTINUATION_QUEUE) == 1


@pytest.mark.asyncio
async def test_dispatch_requires_owner(client):
    response = await client.post("/dispatch/", json={})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_status_of_unknown_owner(client):
    response = await client.get("/status/nobody")

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 0
    assert data["progress"] == 100
    assert data["is_complete"] is True


async def _seed_stuck_queue(session):
    now = utcnow()
    jobs = [
        Job(owner="u1", text="cv", fields=["name"], status=JobStatus.DONE.value,
            completed_at=now, result={"name": "Ana Souza"})
        for _ in range(3)
    ]
    jobs.append(Job(owner="u1", text="cv", fields=["name"], status=JobStatus.CLAIMED.value,
                    claimed_at=now - timedelta(minutes=10), claim_token="abc"))
    jobs.append(Job(owner="u1", text="cv", fields=["name"], status=JobStatus.QUEUED.value))
    session.add_all(jobs)
    await session.commit()


@pytest.mark.asyncio
async def test_status_reports_stuck_queue(client, async_session, fake_redis):
    await _seed_stuck_queue(async_session)

    data = (await client.get("/status/u1")).json()

    assert (data["done"], data["claimed"], data["queued"]) == (3, 1, 1)
    assert data["progress"] == 60
    assert data["is_stuck"] is True
    assert data["needs_dispatch"] is True
    assert data["dispatch_requested"] is False
    assert await fake_redis.llen(REDIS_CONTINUATION_QUEUE) == 0


@pytest.mark.asyncio
async def test_status_with_resume_requests_dispatch(client, async_session, fake_redis):
    await _seed_stuck_queue(async_session)

    data = (await client.get("/status/u1", params={"resume": "true"})).json()

    assert data["dispatch_requested"] is True
    raw = await fake_redis.lpop(REDIS_CONTINUATION_QUEUE)
    assert ContinuationRequest.from_json(raw).owner == "u1"
