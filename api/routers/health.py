"""
Health and cron endpoints.

GET  /health        → Postgres and Redis connectivity check
POST /health/sweep  → cron hook: ask a worker to run one sweep now

The sweep itself runs on a timer inside every worker process. The hook
exists for deployments whose workers scale to zero between bursts, where an
external scheduler has to wake the queue up. When CRON_SECRET is set the
caller must present it in the X-Cron-Secret header.
"""

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from redis.asyncio import Redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_redis
from api.schemas.dispatch import SweepAccepted
from config.settings import settings
from models.enums import ContinuationKind
from worker.continuation import ContinuationRequest, publish_async

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check(
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
) -> dict:
    """Check that Postgres and Redis are reachable."""
    await db.execute(text("SELECT 1"))
    await redis.ping()
    return {"status": "healthy", "postgres": "ok", "redis": "ok"}


@router.post("/sweep", response_model=SweepAccepted, status_code=202)
async def request_sweep(
    x_cron_secret: Optional[str] = Header(default=None),
    redis: Redis = Depends(get_redis),
) -> SweepAccepted:
    if settings.CRON_SECRET and not hmac.compare_digest(
        x_cron_secret or "", settings.CRON_SECRET
    ):
        raise HTTPException(status_code=401, detail="Invalid cron secret")

    enqueued = await publish_async(
        redis, ContinuationRequest(kind=ContinuationKind.SWEEP, reason="cron")
    )
    return SweepAccepted(enqueued=enqueued)
