"""
Unit tests for the job state machine.
"""

import pytest

from job_engine.constants import JobStatus
from job_engine.state_machine import (
    JobOperation,
    can_apply,
    expected_statuses,
    fail_outcome,
    is_terminal,
    next_status,
)


class TestJobStateMachine:
    """Tests for the transition table."""

    @pytest.mark.parametrize(
        "operation,source,target",
        [
            (JobOperation.CLAIM, JobStatus.PENDING, JobStatus.CLAIMED),
            (JobOperation.START, JobStatus.CLAIMED, JobStatus.RUNNING),
            (JobOperation.COMPLETE, JobStatus.RUNNING, JobStatus.COMPLETED),
            (JobOperation.CANCEL, JobStatus.PENDING, JobStatus.CANCELLED),
            (JobOperation.CANCEL, JobStatus.CLAIMED, JobStatus.CANCELLED),
            (JobOperation.SWEEP, JobStatus.CLAIMED, JobStatus.PENDING),
            (JobOperation.SWEEP, JobStatus.RUNNING, JobStatus.PENDING),
        ],
    )
    def test_valid_transitions(self, operation, source, target):
        """Test every permitted transition lands in the right status."""
        assert next_status(operation, source) == target

    @pytest.mark.parametrize("status", [JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED])
    def test_terminal_statuses_accept_nothing(self, status: JobStatus):
        """Test that no operation applies to a terminal job."""
        assert is_terminal(status)
        for operation in JobOperation:
            assert not can_apply(operation, status)
            with pytest.raises(ValueError):
                next_status(operation, status)

    def test_running_cannot_be_cancelled(self):
        """Test that cancel is refused once execution has started."""
        assert not can_apply(JobOperation.CANCEL, JobStatus.RUNNING)

    def test_complete_requires_running(self):
        """Test that a claimed but unstarted job cannot complete."""
        assert not can_apply(JobOperation.COMPLETE, JobStatus.CLAIMED)
        assert not can_apply(JobOperation.COMPLETE, JobStatus.PENDING)

    def test_fail_outcome_retries_until_ceiling(self):
        """Test the retry decision around max_retries."""
        assert fail_outcome(0, 3) == (1, JobStatus.PENDING)
        assert fail_outcome(1, 3) == (2, JobStatus.PENDING)
        assert fail_outcome(2, 3) == (3, JobStatus.FAILED)

    def test_fail_outcome_single_attempt(self):
        """Test that max_retries=1 fails on the first failure."""
        assert fail_outcome(0, 1) == (1, JobStatus.FAILED)

    def test_fail_from_claimed_and_running(self):
        """Test that fail applies to both active statuses."""
        assert next_status(JobOperation.FAIL, JobStatus.CLAIMED, 0, 3) == JobStatus.PENDING
        assert next_status(JobOperation.FAIL, JobStatus.RUNNING, 2, 3) == JobStatus.FAILED

    def test_expected_statuses_in_lifecycle_order(self):
        """Test error message hints are stable."""
        assert expected_statuses(JobOperation.FAIL) == ["claimed", "running"]
        assert expected_statuses(JobOperation.CANCEL) == ["pending", "claimed"]
        assert expected_statuses(JobOperation.START) == ["claimed"]
