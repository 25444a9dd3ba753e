"""
Unit tests for job handlers.
"""

import pytest

from job_engine.types.job import JobContext, JobResult
from job_engine.worker.handlers import (
    execute_job,
    get_handler,
    handle_echo,
    handle_failing_job,
    list_handlers,
    register_handler,
    truncate_error,
)


def make_context(job_type: str = "echo", params=None, retries: int = 0) -> JobContext:
    return JobContext(
        job_id=1,
        job_type=job_type,
        params=params if params is not None else {"message": "test"},
        retries=retries,
        max_retries=3,
        worker_id="test-worker",
    )


class TestJobHandlers:
    """Tests for job handlers."""

    def test_list_handlers(self):
        """Test listing registered handlers."""
        handlers = list_handlers()

        assert "ping" in handlers
        assert "echo" in handlers
        assert "sleep" in handlers
        assert "failing_job" in handlers

    def test_get_handler_exists(self):
        """Test getting an existing handler."""
        assert get_handler("echo") == handle_echo

    def test_get_handler_not_exists(self):
        """Test getting a non-existent handler."""
        assert get_handler("nonexistent") is None

    async def test_ping_handler(self):
        """Test the ping handler reports the worker."""
        result = await execute_job(make_context("ping"))

        assert result.success is True
        assert result.output == {"pong": True, "worker_id": "test-worker"}

    async def test_echo_handler(self):
        """Test the echo handler."""
        result = await handle_echo(make_context())

        assert result.success is True
        assert result.output == {"echo": {"message": "test"}}

    async def test_sleep_handler(self):
        """Test the sleep handler with a zero duration."""
        result = await execute_job(make_context("sleep", {"duration_seconds": 0}))

        assert result.success is True
        assert result.output == {"slept_for": 0}

    async def test_sleep_handler_rejects_bad_duration(self):
        """Test the sleep handler validates its params."""
        result = await execute_job(make_context("sleep", {"duration_seconds": "soon"}))

        assert result.success is False

    async def test_failing_handler(self):
        """Test the failing handler reports the attempt."""
        result = await handle_failing_job(make_context("failing_job", retries=1))

        assert result.success is False
        assert result.error == "Intentional failure on attempt 2"

    async def test_unknown_type_lists_known_types(self):
        """Test unknown job types fail with the registered types."""
        result = await execute_job(make_context("nonexistent"))

        assert result.success is False
        assert "Unknown job type: nonexistent" in result.error
        assert "echo" in result.error

    async def test_handler_exception_is_truncated(self):
        """Test exceptions become failed results clipped to 500 chars."""

        @register_handler("test_explodes")
        async def explode(context: JobContext) -> JobResult:
            raise RuntimeError("x" * 2000)

        result = await execute_job(make_context("test_explodes"))

        assert result.success is False
        assert len(result.error) == 500

    def test_truncate_error(self):
        assert truncate_error("short") == "short"
        assert len(truncate_error("e" * 501)) == 500


class TestJobContext:
    """Tests for JobContext helpers."""

    @pytest.mark.parametrize("retries,attempt,last", [(0, 1, False), (1, 2, False), (2, 3, True)])
    def test_attempt_numbering(self, retries: int, attempt: int, last: bool):
        context = make_context(retries=retries)

        assert context.attempt == attempt
        assert context.is_last_attempt is last
