"""
Engine error taxonomy.

Every engine operation reports failure through one of these exceptions.
None are retried by the engine itself.
"""


class JobEngineError(Exception):
    """Base class for job engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class JobValidationError(JobEngineError):
    """Malformed input. Raised before the store is touched."""


class JobNotFoundError(JobEngineError):
    """The referenced job id does not exist."""

    def __init__(self, job_id: int):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class InvalidJobStateError(JobEngineError):
    """The operation's status precondition was not met."""

    def __init__(
        self,
        job_id: int,
        operation: str,
        current_status: str,
        expected: list[str],
        reason: str | None = None,
    ):
        message = (
            f"Cannot {operation} job {job_id}: status is '{current_status}', "
            f"expected one of {expected}"
        )
        if reason:
            message = f"Cannot {operation} job {job_id}: {reason}"
        super().__init__(message)
        self.job_id = job_id
        self.operation = operation
        self.current_status = current_status
        self.expected = expected


class StoreError(JobEngineError):
    """The underlying store is unavailable. Safe to retry the whole call."""
