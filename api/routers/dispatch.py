"""
Trigger endpoint.

POST /dispatch/  {owner, job_id?}  → 202

Publishes a drain continuation and returns immediately. A worker picks it
up and runs one dispatch invocation for the owner (processing job_id first
when given). The response acknowledges the trigger only; clients watch
GET /status/{owner} for progress.
"""

from fastapi import APIRouter, Depends
from redis.asyncio import Redis

from api.dependencies import get_redis
from api.schemas.dispatch import DispatchAccepted, DispatchRequest
from models.enums import ContinuationKind
from worker.continuation import ContinuationRequest, publish_async

router = APIRouter(prefix="/dispatch", tags=["dispatch"])


@router.post("/", response_model=DispatchAccepted, status_code=202)
async def trigger_dispatch(
    body: DispatchRequest,
    redis: Redis = Depends(get_redis),
) -> DispatchAccepted:
    enqueued = await publish_async(
        redis,
        ContinuationRequest(
            kind=ContinuationKind.DRAIN,
            owner=body.owner,
            job_id=body.job_id,
            reason="client trigger",
        ),
    )
    return DispatchAccepted(owner=body.owner, job_id=body.job_id, enqueued=enqueued)
