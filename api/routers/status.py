"""
Status endpoint.

GET /status/{owner}?resume=true

Returns the owner's queue rollup (see status/aggregator.py). With
resume=true, a queue that needs dispatch (queued work, no live claim) also
gets a drain continuation, so a client polling for progress restarts a
stalled chain without a separate trigger call.
"""

from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_redis
from api.schemas.dispatch import QueueStatusResponse
from config.settings import settings
from models.enums import ContinuationKind
from models.job import Job, utcnow
from status.aggregator import summarize
from worker.continuation import ContinuationRequest, publish_async

router = APIRouter(prefix="/status", tags=["status"])


@router.get("/{owner}", response_model=QueueStatusResponse)
async def get_queue_status(
    owner: str,
    resume: bool = Query(False, description="Trigger a drain if the queue is stalled"),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
) -> QueueStatusResponse:
    rows = (
        await db.execute(select(Job.status, Job.claimed_at).where(Job.owner == owner))
    ).all()
    summary = summarize(
        rows, utcnow(), timedelta(seconds=settings.LIVENESS_WINDOW_SECONDS)
    )

    dispatch_requested = False
    if resume and summary.needs_dispatch:
        dispatch_requested = await publish_async(
            redis,
            ContinuationRequest(
                kind=ContinuationKind.DRAIN,
                owner=owner,
                reason=f"status poll found {summary.queued} queued and no live claim",
            ),
        )

    return QueueStatusResponse(
        owner=owner, dispatch_requested=dispatch_requested, **summary.to_dict()
    )
