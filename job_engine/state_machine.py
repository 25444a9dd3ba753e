"""
Job state machine.

Pure definition of the valid job states and the transitions each operation
may perform. The repository encodes the same guards in its conditional
UPDATE statements; this module is the reference those guards are built from.
"""

from enum import StrEnum

from job_engine.constants import TERMINAL_STATUSES, JobStatus


class JobOperation(StrEnum):
    """Operations that mutate a job's status."""

    CLAIM = "claim"
    START = "start"
    COMPLETE = "complete"
    FAIL = "fail"
    CANCEL = "cancel"
    SWEEP = "sweep"


# Statuses each operation accepts as its starting point.
ALLOWED_SOURCES: dict[JobOperation, frozenset[JobStatus]] = {
    JobOperation.CLAIM: frozenset({JobStatus.PENDING}),
    JobOperation.START: frozenset({JobStatus.CLAIMED}),
    JobOperation.COMPLETE: frozenset({JobStatus.RUNNING}),
    JobOperation.FAIL: frozenset({JobStatus.CLAIMED, JobStatus.RUNNING}),
    JobOperation.CANCEL: frozenset({JobStatus.PENDING, JobStatus.CLAIMED}),
    JobOperation.SWEEP: frozenset({JobStatus.CLAIMED, JobStatus.RUNNING}),
}


def is_terminal(status: JobStatus) -> bool:
    """Check whether no further transition is permitted from a status."""
    return status in TERMINAL_STATUSES


def can_apply(operation: JobOperation, status: JobStatus) -> bool:
    """Check whether an operation's status precondition holds."""
    return status in ALLOWED_SOURCES[operation]


def fail_outcome(retries: int, max_retries: int) -> tuple[int, JobStatus]:
    """
    Decide the result of a Fail operation.

    Args:
        retries: The retry count before this failure.
        max_retries: The job's retry ceiling.

    Returns:
        Tuple of (new retry count, next status).
    """
    new_retries = retries + 1
    if new_retries < max_retries:
        return new_retries, JobStatus.PENDING
    return new_retries, JobStatus.FAILED


def next_status(
    operation: JobOperation,
    status: JobStatus,
    retries: int = 0,
    max_retries: int = 0,
) -> JobStatus:
    """
    Compute the status an operation moves a job into.

    Args:
        operation: The operation being applied.
        status: The job's current status.
        retries: Current retry count (used by FAIL only).
        max_retries: Retry ceiling (used by FAIL only).

    Returns:
        The resulting status.

    Raises:
        ValueError: If the operation is not permitted from the status.
    """
    if not can_apply(operation, status):
        raise ValueError(f"Cannot {operation} a job in status '{status}'")

    if operation is JobOperation.CLAIM:
        return JobStatus.CLAIMED
    if operation is JobOperation.START:
        return JobStatus.RUNNING
    if operation is JobOperation.COMPLETE:
        return JobStatus.COMPLETED
    if operation is JobOperation.FAIL:
        return fail_outcome(retries, max_retries)[1]
    if operation is JobOperation.CANCEL:
        return JobStatus.CANCELLED
    return JobStatus.PENDING


def expected_statuses(operation: JobOperation) -> list[str]:
    """List the accepted source statuses for error messages, in lifecycle order."""
    order = list(JobStatus)
    return [s.value for s in sorted(ALLOWED_SOURCES[operation], key=order.index)]
