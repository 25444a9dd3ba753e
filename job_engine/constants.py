"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - PENDING -> CLAIMED (claim)
    - CLAIMED -> RUNNING (start)
    - RUNNING -> COMPLETED (complete)
    - RUNNING/CLAIMED -> PENDING (fail with retries left, or stale sweep)
    - RUNNING/CLAIMED -> FAILED (fail with retries exhausted)
    - PENDING/CLAIMED -> CANCELLED (cancel)
    """

    PENDING = "pending"
    CLAIMED = "claimed"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)
ACTIVE_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.CLAIMED, JobStatus.RUNNING})

# Default values
DEFAULT_PRIORITY = 0
DEFAULT_MAX_RETRIES = 3
DEFAULT_SWEEP_TIMEOUT_MINUTES = 60
DEFAULT_LIST_LIMIT = 50

# Validation bounds
MAX_JOB_TYPE_LENGTH = 100
MAX_WORKER_ID_LENGTH = 255
MIN_PRIORITY = 0
MAX_PRIORITY = 100
MIN_MAX_RETRIES = 1
MAX_MAX_RETRIES = 10
MAX_BATCH_SIZE = 100
MAX_LIST_LIMIT = 200
MAX_SWEEP_TIMEOUT_MINUTES = 1440
MAX_ERROR_MESSAGE_LENGTH = 500

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_JOBS_CREATED = "jobs_created_total"
METRIC_JOBS_CLAIMED = "jobs_claimed_total"
METRIC_JOBS_RESOLVED = "jobs_resolved_total"
METRIC_JOB_RETRIES = "job_retries_total"
METRIC_JOBS_SWEPT = "jobs_swept_total"
METRIC_JOB_DURATION = "job_duration_seconds"

# Trace span names
SPAN_CLAIM_JOB = "claim_job"
SPAN_FAIL_JOB = "fail_job"
SPAN_SWEEP_JOBS = "sweep_jobs"
SPAN_EXECUTE_JOB = "execute_job"
