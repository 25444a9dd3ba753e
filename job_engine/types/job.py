"""
Job-related type definitions for worker handlers.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel


class JobResult(BaseModel):
    """
    Result of job execution.
    Returned by job handlers after processing.
    """

    success: bool
    output: Any | None = None
    error: str | None = None


@dataclass
class JobContext:
    """
    Context passed to job handlers during execution.
    Contains job metadata and the opaque params for the handler.
    """

    job_id: int
    job_type: str
    params: Any
    retries: int
    max_retries: int
    worker_id: str
    verbose: bool = False

    @property
    def attempt(self) -> int:
        """1-based number of this execution attempt."""
        return self.retries + 1

    @property
    def is_last_attempt(self) -> bool:
        """Check if a failure now would fail the job permanently."""
        return self.retries + 1 >= self.max_retries
