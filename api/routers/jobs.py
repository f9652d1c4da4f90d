"""
Job submission and lookup endpoints.

POST /jobs/          → Queue a document for extraction
GET  /jobs/          → List one owner's jobs with filtering + pagination
GET  /jobs/{job_id}  → Get a single job, scoped to its owner

The API layer is intentionally thin: validate input, talk to the database,
return the response. Submitting does not start processing; the caller
follows up with POST /dispatch/ (or the sweeper notices the queued work).
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from api.schemas.job import JobCreate, JobListResponse, JobResponse
from models.enums import JobStatus
from models.job import Job

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/", response_model=JobResponse, status_code=201)
async def create_job(
    job_in: JobCreate,
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    """The job is saved with status=queued at the back of its owner's queue."""
    job = Job(
        owner=job_in.owner,
        text=job_in.text,
        fields=[field.value for field in job_in.fields],
        file_name=job_in.file_name,
        max_attempts=job_in.max_attempts,
        status=JobStatus.QUEUED.value,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return JobResponse.model_validate(job)


@router.get("/", response_model=JobListResponse)
async def list_jobs(
    owner: str = Query(..., min_length=1, description="Whose jobs to list"),
    status: Optional[JobStatus] = Query(None, description="Filter by job status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Jobs per page"),
    db: AsyncSession = Depends(get_db),
) -> JobListResponse:
    """Jobs in queue order (oldest enqueued first)."""
    conditions = [Job.owner == owner]
    if status:
        conditions.append(Job.status == status.value)

    total = (await db.execute(select(func.count(Job.id)).where(*conditions))).scalar() or 0

    offset = (page - 1) * page_size
    query = (
        select(Job)
        .where(*conditions)
        .order_by(Job.enqueued_at, Job.id)
        .offset(offset)
        .limit(page_size)
    )
    jobs = (await db.execute(query)).scalars().all()

    return JobListResponse(
        jobs=[JobResponse.model_validate(j) for j in jobs],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    owner: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    """Another owner's job is reported as missing, not forbidden."""
    job = await db.get(Job, job_id)
    if job is None or job.owner != owner:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return JobResponse.model_validate(job)
