"""
Pydantic schemas for the /jobs endpoints.

These are NOT database models — they define the HTTP API contract:
- JobCreate: what a client sends to queue a document for extraction
- JobResponse: one job, including its outcome once terminal
- JobListResponse: paginated list of one owner's jobs

FastAPI validates incoming data against these automatically. An unknown
field name in `fields` is rejected with a 422 before our code runs.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from config.settings import settings
from extraction.fields import normalize_fields
from models.enums import ExtractField


class JobCreate(BaseModel):
    """Request body for POST /jobs/."""

    owner: str = Field(..., min_length=1, max_length=255, examples=["user-123"])
    text: str = Field(..., description="Extracted document text to run the extractor on")
    fields: list[ExtractField] = Field(
        default_factory=lambda: [ExtractField.NAME],
        description='Fields to extract; "name" is always included',
    )
    file_name: Optional[str] = Field(default=None, max_length=255, examples=["cv.pdf"])
    max_attempts: int = Field(default_factory=lambda: settings.MAX_ATTEMPTS, ge=1, le=10)

    @field_validator("fields")
    @classmethod
    def _name_first(cls, value: list[ExtractField]) -> list[ExtractField]:
        return normalize_fields(value)


class JobResponse(BaseModel):
    """One job — returned by GET /jobs/{id} and POST /jobs/."""

    id: str
    owner: str
    file_name: Optional[str] = None
    fields: list[str]
    status: str
    attempt: int
    max_attempts: int
    enqueued_at: datetime
    claimed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[dict] = None
    error: Optional[str] = None
    extraction_method: Optional[str] = None
    processing_time_ms: Optional[float] = None
    critical_failure: bool = False

    model_config = {"from_attributes": True}


class JobListResponse(BaseModel):
    """Paginated list of jobs — returned by GET /jobs/."""

    jobs: list[JobResponse]
    total: int
    page: int
    page_size: int
