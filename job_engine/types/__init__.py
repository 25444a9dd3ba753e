"""
Type definitions for the job engine.
Contains input/output type definitions for all functions, grouped by module.
"""

from job_engine.types.api import (
    ClaimJobRequest,
    ClaimJobResponse,
    CompleteJobRequest,
    CreateJobRequest,
    ErrorResponse,
    FailJobRequest,
    FailJobResponse,
    HealthResponse,
    JobListResponse,
    JobResponse,
    JobStatsResponse,
    JobTypeStats,
    SweepJobsRequest,
    SweepJobsResponse,
    SweptJob,
    WorkerRequest,
)
from job_engine.types.job import (
    JobContext,
    JobResult,
)

__all__ = [
    # API types
    "CreateJobRequest",
    "JobResponse",
    "JobListResponse",
    "ClaimJobRequest",
    "ClaimJobResponse",
    "WorkerRequest",
    "CompleteJobRequest",
    "FailJobRequest",
    "FailJobResponse",
    "SweepJobsRequest",
    "SweepJobsResponse",
    "SweptJob",
    "JobTypeStats",
    "JobStatsResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "JobContext",
    "JobResult",
]
