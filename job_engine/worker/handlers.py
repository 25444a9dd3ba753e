"""
Job handlers registry and implementations.

Handlers are looked up by job type. A job may be executed more than once
(a swept claim or a retried failure runs the handler again), so handlers
should be safe to repeat.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from job_engine.constants import MAX_ERROR_MESSAGE_LENGTH
from job_engine.types.job import JobContext, JobResult

logger = logging.getLogger(__name__)

# Type alias for job handler functions
JobHandler = Callable[[JobContext], Awaitable[JobResult]]

# Handler registry
_handlers: dict[str, JobHandler] = {}


def register_handler(job_type: str) -> Callable[[JobHandler], JobHandler]:
    """
    Decorator to register a job handler.

    Args:
        job_type: The job type this handler processes.

    Returns:
        Decorator function.

    Example:
        @register_handler("send_email")
        async def handle_send_email(context: JobContext) -> JobResult:
            ...
    """
    def decorator(handler: JobHandler) -> JobHandler:
        _handlers[job_type] = handler
        logger.debug(f"Registered handler for job type: {job_type}")
        return handler
    return decorator


def get_handler(job_type: str) -> JobHandler | None:
    """
    Get the handler for a job type.

    Args:
        job_type: The job type.

    Returns:
        The handler function or None if not found.
    """
    return _handlers.get(job_type)


def list_handlers() -> list[str]:
    """List all registered job types."""
    return sorted(_handlers)


def is_known_type(job_type: str) -> bool:
    return job_type in _handlers


def truncate_error(message: str) -> str:
    """Clip an error message to what is stored on the job."""
    return message[:MAX_ERROR_MESSAGE_LENGTH]


def _params(context: JobContext) -> dict:
    return context.params if isinstance(context.params, dict) else {}


# ============================================================================
# Built-in job handlers
# ============================================================================


@register_handler("ping")
async def handle_ping(context: JobContext) -> JobResult:
    """
    Smoke-test handler.

    Succeeds immediately and reports which worker ran it.
    """
    return JobResult(
        success=True,
        output={"pong": True, "worker_id": context.worker_id},
    )


@register_handler("echo")
async def handle_echo(context: JobContext) -> JobResult:
    """
    Echo handler for testing.

    Simply returns the job params as output.
    """
    logger.info(
        "Echo job executing",
        extra={"job_id": context.job_id, "attempt": context.attempt},
    )

    return JobResult(
        success=True,
        output={"echo": context.params},
    )


@register_handler("sleep")
async def handle_sleep(context: JobContext) -> JobResult:
    """
    Sleep handler for testing delays.

    Params may contain:
    - duration_seconds: How long to sleep (default 1)
    """
    duration = _params(context).get("duration_seconds", 1)
    if not isinstance(duration, (int, float)) or duration < 0:
        return JobResult(success=False, error="duration_seconds must be a non-negative number")

    logger.info(
        "Sleep job starting",
        extra={"job_id": context.job_id, "duration": duration},
    )

    await asyncio.sleep(duration)

    return JobResult(
        success=True,
        output={"slept_for": duration},
    )


@register_handler("failing_job")
async def handle_failing_job(context: JobContext) -> JobResult:
    """
    Handler that always fails - for testing retry logic.
    """
    logger.info(
        "Failing job executing (will fail)",
        extra={"job_id": context.job_id, "attempt": context.attempt},
    )

    return JobResult(
        success=False,
        error=f"Intentional failure on attempt {context.attempt}",
    )


async def execute_job(context: JobContext) -> JobResult:
    """
    Execute a job using the handler registered for its type.

    Unknown types and handler exceptions come back as failed results so
    the caller can record them on the job.

    Args:
        context: The job context.

    Returns:
        JobResult from the handler.
    """
    handler = get_handler(context.job_type)

    if handler is None:
        message = f"Unknown job type: {context.job_type}. Known types: {', '.join(list_handlers())}"
        logger.error(message, extra={"job_id": context.job_id})
        return JobResult(success=False, error=message)

    try:
        return await handler(context)
    except Exception as e:
        logger.exception(
            "Handler raised exception",
            extra={"job_id": context.job_id, "error": str(e)},
        )
        return JobResult(
            success=False,
            error=truncate_error(str(e) or type(e).__name__),
        )
