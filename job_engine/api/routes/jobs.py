"""
Job management routes.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from job_engine.constants import (
    API_V1_PREFIX,
    DEFAULT_LIST_LIMIT,
    MAX_BATCH_SIZE,
    MAX_JOB_TYPE_LENGTH,
    MAX_LIST_LIMIT,
    JobStatus,
)
from job_engine.db import get_async_session
from job_engine.db.models import Job
from job_engine.queue import JobQueue
from job_engine.types.api import (
    ClaimJobRequest,
    ClaimJobResponse,
    CompleteJobRequest,
    CreateJobRequest,
    FailJobRequest,
    FailJobResponse,
    JobListResponse,
    JobResponse,
    JobStatsResponse,
    SweepJobsRequest,
    SweepJobsResponse,
    WorkerRequest,
)

router = APIRouter(prefix=f"{API_V1_PREFIX}/jobs", tags=["Jobs"])

JobId = Annotated[int, Path(ge=1, description="Job ID")]


def get_job_queue(session: AsyncSession = Depends(get_async_session)) -> JobQueue:
    """Dependency providing a JobQueue bound to the request session."""
    return JobQueue(session)


def _job_to_response(job: Job) -> JobResponse:
    """Convert a Job model to a JobResponse."""
    return JobResponse(
        id=job.id,
        type=job.type,
        status=job.status,
        params=job.params,
        result=job.result,
        error=job.error,
        priority=job.priority,
        retries=job.retries,
        max_retries=job.max_retries,
        created_at=job.created_at,
        claimed_at=job.claimed_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        worker_id=job.worker_id,
    )


@router.post(
    "",
    response_model=JobResponse | list[JobResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create jobs",
    description="Create a single job, or a batch when the body is an array.",
)
async def create_jobs(
    request: CreateJobRequest | Annotated[list[CreateJobRequest], Field(min_length=1, max_length=MAX_BATCH_SIZE)],
    queue: JobQueue = Depends(get_job_queue),
) -> JobResponse | list[JobResponse]:
    """
    Create one or more pending jobs.

    Args:
        request: A job definition or a non-empty list of them.
        queue: Job queue.

    Returns:
        The created job, or the created jobs in request order.
    """
    if isinstance(request, list):
        jobs = await queue.create_jobs(request)
        return [_job_to_response(job) for job in jobs]

    job = await queue.create_job(request)
    return _job_to_response(job)


@router.get(
    "",
    response_model=JobListResponse,
    summary="List jobs",
    description="List jobs newest first with optional status and type filters.",
)
async def list_jobs(
    status: JobStatus | None = Query(default=None),
    type: str | None = Query(default=None, min_length=1, max_length=MAX_JOB_TYPE_LENGTH),
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    offset: int = Query(default=0, ge=0),
    queue: JobQueue = Depends(get_job_queue),
) -> JobListResponse:
    """
    List jobs.

    Args:
        status: Optional status filter.
        type: Optional type filter.
        limit: Page size.
        offset: Rows to skip.
        queue: Job queue.

    Returns:
        JobListResponse with the page and the total matching count.
    """
    jobs, total = await queue.list_jobs(
        status=status,
        job_type=type,
        limit=limit,
        offset=offset,
    )

    return JobListResponse(
        jobs=[_job_to_response(job) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post(
    "/claim",
    response_model=ClaimJobResponse,
    summary="Claim the next job",
    description="Atomically claim the highest-priority, oldest pending job.",
)
async def claim_job(
    request: ClaimJobRequest,
    queue: JobQueue = Depends(get_job_queue),
) -> ClaimJobResponse:
    """
    Claim a job for a worker.

    Returns:
        ClaimJobResponse whose job is null when nothing is available.
    """
    job = await queue.claim(worker_id=request.worker_id, job_type=request.type)
    return ClaimJobResponse(job=_job_to_response(job) if job else None)


@router.post(
    "/sweep",
    response_model=SweepJobsResponse,
    summary="Sweep stale jobs",
    description="Return jobs claimed longer than the timeout back to pending.",
)
async def sweep_jobs(
    request: SweepJobsRequest | None = None,
    queue: JobQueue = Depends(get_job_queue),
) -> SweepJobsResponse:
    """
    Recover abandoned claims.

    Returns:
        The number of jobs swept and their summaries.
    """
    request = request or SweepJobsRequest()
    swept = await queue.sweep(request.timeout_minutes)
    return SweepJobsResponse(swept=len(swept), jobs=swept)


@router.get(
    "/stats",
    response_model=JobStatsResponse,
    summary="Get job statistics",
    description="Per-type counts by status, average duration and failure rate.",
)
async def get_job_stats(
    queue: JobQueue = Depends(get_job_queue),
) -> JobStatsResponse:
    """Get job statistics."""
    return await queue.stats()


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
)
async def get_job(
    job_id: JobId,
    queue: JobQueue = Depends(get_job_queue),
) -> JobResponse:
    """Get job details by ID."""
    job = await queue.get_job(job_id)
    return _job_to_response(job)


@router.post(
    "/{job_id}/start",
    response_model=JobResponse,
    summary="Start a claimed job",
)
async def start_job(
    job_id: JobId,
    request: WorkerRequest | None = None,
    queue: JobQueue = Depends(get_job_queue),
) -> JobResponse:
    """Mark a claimed job as running."""
    worker_id = request.worker_id if request else None
    job = await queue.start(job_id, worker_id=worker_id)
    return _job_to_response(job)


@router.post(
    "/{job_id}/complete",
    response_model=JobResponse,
    summary="Complete a running job",
)
async def complete_job(
    job_id: JobId,
    request: CompleteJobRequest | None = None,
    queue: JobQueue = Depends(get_job_queue),
) -> JobResponse:
    """Mark a running job as completed with an optional result."""
    request = request or CompleteJobRequest()
    job = await queue.complete(job_id, result=request.result, worker_id=request.worker_id)
    return _job_to_response(job)


@router.post(
    "/{job_id}/fail",
    response_model=FailJobResponse,
    summary="Fail a job",
    description="Record a failure; the job is re-queued until max_retries is reached.",
)
async def fail_job(
    job_id: JobId,
    request: FailJobRequest,
    queue: JobQueue = Depends(get_job_queue),
) -> FailJobResponse:
    """
    Fail a claimed or running job.

    Returns:
        The updated job and whether it was re-queued.
    """
    job, retried = await queue.fail(job_id, error=request.error, worker_id=request.worker_id)
    return FailJobResponse(**_job_to_response(job).model_dump(), retried=retried)


@router.post(
    "/{job_id}/cancel",
    response_model=JobResponse,
    summary="Cancel a job",
    description="Cancel a pending or claimed job. Running jobs cannot be cancelled.",
)
async def cancel_job(
    job_id: JobId,
    queue: JobQueue = Depends(get_job_queue),
) -> JobResponse:
    """Cancel a job that has not started."""
    job = await queue.cancel(job_id)
    return _job_to_response(job)
