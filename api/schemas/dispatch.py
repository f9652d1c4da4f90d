"""
Pydantic schemas for the trigger and status endpoints.

DispatchRequest / DispatchAccepted: POST /dispatch/ only acknowledges the
trigger. Processing happens in a worker invocation after the response is
sent, so `accepted` says nothing about whether any job succeeded.

QueueStatusResponse: GET /status/{owner}, the per-owner rollup.
"""

from typing import Optional

from pydantic import BaseModel, Field


class DispatchRequest(BaseModel):
    owner: str = Field(..., min_length=1, max_length=255)
    job_id: Optional[str] = Field(default=None, description="Process this job first")


class DispatchAccepted(BaseModel):
    accepted: bool = True
    owner: str
    job_id: Optional[str] = None
    enqueued: bool   # False when an identical trigger is already pending


class SweepAccepted(BaseModel):
    accepted: bool = True
    enqueued: bool


class QueueStatusResponse(BaseModel):
    owner: str
    total: int
    queued: int
    claimed: int
    done: int
    dead: int
    progress: int        # percentage of terminal jobs, 100 when the queue is empty
    is_complete: bool
    stuck: int           # claims older than the liveness window
    is_stuck: bool
    needs_dispatch: bool
    dispatch_requested: bool = False
