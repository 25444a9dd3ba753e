"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from job_engine.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_PRIORITY,
    DEFAULT_SWEEP_TIMEOUT_MINUTES,
    MAX_JOB_TYPE_LENGTH,
    MAX_MAX_RETRIES,
    MAX_PRIORITY,
    MAX_SWEEP_TIMEOUT_MINUTES,
    MAX_WORKER_ID_LENGTH,
    MIN_MAX_RETRIES,
    MIN_PRIORITY,
    JobStatus,
)


class CreateJobRequest(BaseModel):
    """Request body for creating a new job."""

    model_config = ConfigDict(extra="forbid")

    type: str = Field(
        ...,
        min_length=1,
        max_length=MAX_JOB_TYPE_LENGTH,
        description="Work-kind discriminator",
    )
    params: Any | None = Field(default=None, description="Opaque input payload")
    priority: int = Field(
        default=DEFAULT_PRIORITY,
        ge=MIN_PRIORITY,
        le=MAX_PRIORITY,
        description="Higher claims first",
    )
    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        ge=MIN_MAX_RETRIES,
        le=MAX_MAX_RETRIES,
        description="Failures allowed before the job is permanently failed",
    )


class JobResponse(BaseModel):
    """Full job details response."""

    id: int
    type: str
    status: JobStatus
    params: Any | None
    result: Any | None
    error: str | None
    priority: int
    retries: int
    max_retries: int
    created_at: datetime
    claimed_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    worker_id: str | None


class JobListResponse(BaseModel):
    """Paginated list of jobs."""

    jobs: list[JobResponse]
    total: int
    limit: int
    offset: int


class ClaimJobRequest(BaseModel):
    """Request body for claiming the next pending job."""

    worker_id: str = Field(..., min_length=1, max_length=MAX_WORKER_ID_LENGTH)
    type: str | None = Field(default=None, min_length=1, max_length=MAX_JOB_TYPE_LENGTH)


class ClaimJobResponse(BaseModel):
    """Claim result. job is null when nothing is available."""

    job: JobResponse | None


class WorkerRequest(BaseModel):
    """Optional ownership check for start."""

    worker_id: str | None = Field(default=None, min_length=1, max_length=MAX_WORKER_ID_LENGTH)


class CompleteJobRequest(BaseModel):
    """Request body for completing a job."""

    result: Any | None = None
    worker_id: str | None = Field(default=None, min_length=1, max_length=MAX_WORKER_ID_LENGTH)


class FailJobRequest(BaseModel):
    """Request body for failing a job."""

    error: str = Field(..., min_length=1)
    worker_id: str | None = Field(default=None, min_length=1, max_length=MAX_WORKER_ID_LENGTH)


class FailJobResponse(JobResponse):
    """Failed job details, with whether it was re-queued."""

    retried: bool


class SweepJobsRequest(BaseModel):
    """Request body for sweeping stale jobs."""

    timeout_minutes: int = Field(
        default=DEFAULT_SWEEP_TIMEOUT_MINUTES,
        ge=0,
        le=MAX_SWEEP_TIMEOUT_MINUTES,
    )


class SweptJob(BaseModel):
    """Summary of a job returned to the pending pool."""

    id: int
    type: str


class SweepJobsResponse(BaseModel):
    """Sweep result."""

    swept: int
    jobs: list[SweptJob]


class JobTypeStats(BaseModel):
    """Rollup for one job type."""

    by_status: dict[str, int]
    avg_duration_ms: int | None = None
    failure_rate: float | None = None


class JobStatsResponse(BaseModel):
    """Per-type job statistics."""

    total_jobs: int
    by_type: dict[str, JobTypeStats]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None
