"""
Worker process for executing jobs.

The worker claims jobs from the queue, marks them running, executes the
handler registered for the job type, and records the outcome with
Complete or Fail. Retries are decided by the queue, not the worker.
"""

import argparse
import asyncio
import logging
import os
import signal
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

from sqlalchemy.ext.asyncio import AsyncSession

from job_engine.config import get_settings
from job_engine.constants import SPAN_EXECUTE_JOB
from job_engine.db import close_db, get_session_context, init_db
from job_engine.db.models import Job
from job_engine.errors import InvalidJobStateError, JobEngineError, JobNotFoundError
from job_engine.observability.logging import bind_context, job_log_context, setup_logging
from job_engine.observability.metrics import setup_metrics
from job_engine.observability.tracing import get_tracer, setup_tracing
from job_engine.queue import JobQueue
from job_engine.types.job import JobContext, JobResult
from job_engine.worker.handlers import execute_job, is_known_type, list_handlers, truncate_error

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class Worker:
    """
    Job worker that claims and executes jobs one at a time.

    Without polling the worker exits after max_jobs jobs or as soon as the
    queue is empty. With polling it keeps going, sleeping poll_interval
    seconds whenever nothing is available, until stop() is called.
    """

    def __init__(
        self,
        worker_id: str | None = None,
        job_type: str | None = None,
        max_jobs: int = 1,
        poll: bool = False,
        poll_interval: float | None = None,
        verbose: bool = False,
        session_factory: SessionFactory | None = None,
    ):
        """
        Initialize the worker.

        Args:
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            job_type: Only claim jobs of this type.
            max_jobs: Jobs to process before exiting when not polling.
            poll: Keep polling instead of exiting.
            poll_interval: Seconds between polls when the queue is empty.
            verbose: Passed to handlers; also logs empty polls.
            session_factory: Session context factory. Defaults to the
                process-wide session context.
        """
        settings = get_settings()

        self.worker_id = worker_id or settings.worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self.job_type = job_type if job_type is not None else settings.worker_job_type
        self.max_jobs = max_jobs
        self.poll = poll
        self.poll_interval = poll_interval if poll_interval is not None else settings.worker_poll_interval_seconds
        self.verbose = verbose

        self._session_factory = session_factory or get_session_context
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return not self._stopping.is_set()

    def stop(self) -> None:
        """Stop the worker after the current job."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._stopping.set()

    async def run(self) -> int:
        """
        Run the worker loop.

        Returns:
            Number of jobs processed.
        """
        logger.info(
            "Worker starting",
            extra={
                "worker_id": self.worker_id,
                "job_type": self.job_type or "any",
                "max_jobs": self.max_jobs,
                "poll": self.poll,
                "known_types": list_handlers(),
            },
        )
        if self.job_type and not is_known_type(self.job_type):
            logger.warning(
                f"No handler registered for type {self.job_type}",
                extra={"known_types": list_handlers()},
            )

        processed = 0
        while self.running and (self.poll or processed < self.max_jobs):
            try:
                did_process = await self.process_one()
            except JobEngineError as e:
                logger.error(
                    f"Error in worker loop: {e.message}",
                    extra={"worker_id": self.worker_id},
                )
                if not self.poll:
                    raise
                did_process = False

            if did_process:
                processed += 1
                continue

            if not self.poll:
                break

            if self.verbose:
                logger.info(f"No jobs available, waiting {self.poll_interval}s")
            await self._wait(self.poll_interval)

        logger.info(
            "Worker stopped",
            extra={"worker_id": self.worker_id, "processed": processed},
        )
        return processed

    async def _wait(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except TimeoutError:
            pass

    async def process_one(self) -> bool:
        """
        Claim and execute a single job.

        Returns:
            True if a job was claimed (whatever its outcome), False if the
            queue had nothing to offer.
        """
        async with self._session_factory() as session:
            queue = JobQueue(session)

            job = await queue.claim(worker_id=self.worker_id, job_type=self.job_type)
            if job is None:
                logger.debug("No pending jobs available", extra={"worker_id": self.worker_id})
                return False

            with job_log_context(job.id, job.type):
                logger.info("Claimed job", extra={"worker_id": self.worker_id})

                # A job cancelled between claim and start is skipped
                try:
                    job = await queue.start(job.id, worker_id=self.worker_id)
                except (InvalidJobStateError, JobNotFoundError) as e:
                    logger.warning(f"Failed to start job: {e.message}")
                    return True

        # No session is held while the handler runs
        with job_log_context(job.id, job.type):
            result = await self._execute(job)

            async with self._session_factory() as session:
                await self._record(JobQueue(session), job, result)

        return True

    async def _execute(self, job: Job) -> JobResult:
        context = JobContext(
            job_id=job.id,
            job_type=job.type,
            params=job.params,
            retries=job.retries,
            max_retries=job.max_retries,
            worker_id=self.worker_id,
            verbose=self.verbose,
        )

        logger.info("Executing job", extra={"attempt": context.attempt})

        with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
            span.set_attribute("job_id", job.id)
            span.set_attribute("job_type", job.type)
            span.set_attribute("attempt", context.attempt)

            result = await execute_job(context)
            span.set_attribute("success", result.success)

        return result

    async def _record(self, queue: JobQueue, job: Job, result: JobResult) -> None:
        """Write the handler outcome back to the queue."""
        try:
            if result.success:
                await queue.complete(job.id, result=result.output, worker_id=self.worker_id)
                logger.info("Job completed successfully")
                return

            error = truncate_error(result.error or "Handler returned success: false")
            failed, retried = await queue.fail(job.id, error=error, worker_id=self.worker_id)
            logger.warning(
                "Job failed",
                extra={"error": error, "retried": retried, "retries": failed.retries},
            )
        except (InvalidJobStateError, JobNotFoundError) as e:
            # The claim was swept or the job removed while the handler ran
            logger.warning(f"Could not record job outcome: {e.message}")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Claim and execute jobs from the queue.")
    parser.add_argument("--type", dest="job_type", default=None, help="Only claim jobs of this type")
    parser.add_argument("--max-jobs", type=int, default=1, help="Jobs to process before exiting (default: 1)")
    parser.add_argument("--poll", action="store_true", help="Keep polling for jobs")
    parser.add_argument("--poll-interval", type=float, default=None, help="Seconds between polls")
    parser.add_argument("--worker-id", default=None, help="Worker identity (default: hostname-pid)")
    parser.add_argument("--verbose", action="store_true", help="Verbose output")
    return parser.parse_args(argv)


async def run_async(args: argparse.Namespace) -> int:
    """Run the worker asynchronously."""
    setup_logging()
    setup_metrics()
    setup_tracing()
    await init_db()

    worker = Worker(
        worker_id=args.worker_id,
        job_type=args.job_type,
        max_jobs=args.max_jobs,
        poll=args.poll,
        poll_interval=args.poll_interval,
        verbose=args.verbose,
    )
    bind_context(worker_id=worker.worker_id)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, worker.stop)

    try:
        return await worker.run()
    finally:
        await close_db()


def run(argv: list[str] | None = None) -> None:
    """Run the worker."""
    asyncio.run(run_async(parse_args(argv)))


if __name__ == "__main__":
    run()
