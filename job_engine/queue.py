"""
Job queue engine.

JobQueue is the transport-agnostic entry point for every job operation.
It validates input before touching the store, runs each write as its own
transaction, tells "job does not exist" apart from "job is in the wrong
status", and records metrics and spans. The engine holds no state of its
own between calls; everything lives in the jobs table.
"""

import logging
from collections.abc import AsyncGenerator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from job_engine.constants import (
    MAX_BATCH_SIZE,
    MAX_JOB_TYPE_LENGTH,
    MAX_LIST_LIMIT,
    MAX_SWEEP_TIMEOUT_MINUTES,
    MAX_WORKER_ID_LENGTH,
    SPAN_CLAIM_JOB,
    SPAN_FAIL_JOB,
    SPAN_SWEEP_JOBS,
    JobStatus,
)
from job_engine.db.models import Job
from job_engine.db.repository import JobRepository
from job_engine.errors import (
    InvalidJobStateError,
    JobNotFoundError,
    JobValidationError,
    StoreError,
)
from job_engine.observability.metrics import get_metrics
from job_engine.observability.tracing import get_tracer
from job_engine.state_machine import JobOperation, expected_statuses
from job_engine.types.api import (
    CreateJobRequest,
    JobStatsResponse,
    JobTypeStats,
    SweptJob,
)

logger = logging.getLogger(__name__)


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise JobValidationError(message)


def _validate_job_id(job_id: int) -> None:
    _require(
        isinstance(job_id, int) and not isinstance(job_id, bool) and job_id > 0,
        "job id must be a positive integer",
    )


def _validate_worker_id(worker_id: str | None, required: bool = False) -> None:
    if worker_id is None:
        _require(not required, "worker_id is required")
        return
    _require(
        isinstance(worker_id, str) and 0 < len(worker_id) <= MAX_WORKER_ID_LENGTH,
        f"worker_id must be 1-{MAX_WORKER_ID_LENGTH} characters",
    )


def _validate_job_type(job_type: str | None) -> None:
    if job_type is None:
        return
    _require(
        isinstance(job_type, str) and 0 < len(job_type) <= MAX_JOB_TYPE_LENGTH,
        f"type must be 1-{MAX_JOB_TYPE_LENGTH} characters",
    )


class JobQueue:
    """
    Durable job queue operations over a database session.

    Create, list, claim, start, complete, fail, cancel, sweep and stats.
    Write operations commit before returning.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the queue with a database session.

        Args:
            session: The async database session.
        """
        self._session = session
        self._repo = JobRepository(session)
        self._metrics = get_metrics()

    @asynccontextmanager
    async def _store_call(self, operation: str) -> AsyncGenerator[None]:
        """Wrap store failures in StoreError and roll back the session."""
        try:
            yield
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.error(
                f"Store error during {operation}",
                extra={"operation": operation, "error": str(e)},
            )
            raise StoreError(f"Store unavailable during {operation}") from e

    async def _reject(
        self,
        job_id: int,
        operation: JobOperation,
        worker_id: str | None = None,
    ) -> Exception:
        """
        Explain why a guarded write matched no row.

        The zero-row write changed nothing; its transaction is closed here so
        the session releases any write lock before the error propagates.

        Returns:
            JobNotFoundError if the job does not exist, else InvalidJobStateError.
        """
        current = await self._repo.get_status(job_id)
        await self._session.commit()
        if current is None:
            return JobNotFoundError(job_id)

        status, owner = current
        reason = None
        if worker_id is not None and status in {JobStatus.CLAIMED, JobStatus.RUNNING} and owner != worker_id:
            reason = f"job is owned by another worker ({owner})"

        return InvalidJobStateError(
            job_id=job_id,
            operation=operation.value,
            current_status=status.value,
            expected=expected_statuses(operation),
            reason=reason,
        )

    async def create_jobs(
        self,
        items: Sequence[CreateJobRequest | Mapping[str, Any]],
    ) -> list[Job]:
        """
        Create one or more pending jobs in a single insert.

        Args:
            items: Job definitions, as CreateJobRequest or plain mappings.

        Returns:
            The created jobs, in input order.

        Raises:
            JobValidationError: If the batch is empty, too large, or malformed.
        """
        _require(len(items) > 0, "at least one job is required")
        _require(len(items) <= MAX_BATCH_SIZE, f"at most {MAX_BATCH_SIZE} jobs per batch")

        try:
            requests = [
                item if isinstance(item, CreateJobRequest) else CreateJobRequest.model_validate(item)
                for item in items
            ]
        except ValidationError as e:
            raise JobValidationError(str(e)) from e

        async with self._store_call("create"):
            jobs = await self._repo.create_jobs([r.model_dump() for r in requests])
            await self._session.commit()

        for job in jobs:
            self._metrics.record_jobs_created(job.type)
        return jobs

    async def create_job(self, item: CreateJobRequest | Mapping[str, Any]) -> Job:
        """Create a single pending job."""
        jobs = await self.create_jobs([item])
        return jobs[0]

    async def get_job(self, job_id: int) -> Job:
        """
        Get a job by ID.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        _validate_job_id(job_id)
        async with self._store_call("get"):
            job = await self._repo.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def list_jobs(
        self,
        status: JobStatus | None = None,
        job_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[Job], int]:
        """
        List jobs newest first.

        Returns:
            Tuple of (jobs, total matching count).

        Raises:
            JobValidationError: On out-of-range pagination.
        """
        _require(1 <= limit <= MAX_LIST_LIMIT, f"limit must be between 1 and {MAX_LIST_LIMIT}")
        _require(offset >= 0, "offset must be non-negative")
        _validate_job_type(job_type)

        async with self._store_call("list"):
            return await self._repo.list_jobs(
                status=status,
                job_type=job_type,
                limit=limit,
                offset=offset,
            )

    async def claim(self, worker_id: str, job_type: str | None = None) -> Job | None:
        """
        Claim the next pending job for a worker.

        Args:
            worker_id: The claiming worker's identity.
            job_type: Optional type filter.

        Returns:
            The claimed job, or None if none is available.
        """
        _validate_worker_id(worker_id, required=True)
        _validate_job_type(job_type)

        with get_tracer().start_as_current_span(SPAN_CLAIM_JOB) as span:
            span.set_attribute("worker_id", worker_id)
            if job_type is not None:
                span.set_attribute("job_type", job_type)

            async with self._store_call("claim"):
                job = await self._repo.claim_job(worker_id=worker_id, job_type=job_type)
                await self._session.commit()

            span.set_attribute("claimed", job is not None)

        if job is not None:
            self._metrics.record_job_claimed(job.type)
        return job

    async def start(self, job_id: int, worker_id: str | None = None) -> Job:
        """
        Mark a claimed job as running.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidJobStateError: If the job is not claimed (or not by worker_id).
        """
        _validate_job_id(job_id)
        _validate_worker_id(worker_id)

        async with self._store_call("start"):
            job = await self._repo.start_job(job_id, worker_id=worker_id)
            if job is None:
                raise await self._reject(job_id, JobOperation.START, worker_id)
            await self._session.commit()
        return job

    async def complete(
        self,
        job_id: int,
        result: Any = None,
        worker_id: str | None = None,
    ) -> Job:
        """
        Mark a running job as completed with its result.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidJobStateError: If the job is not running (or not by worker_id).
        """
        _validate_job_id(job_id)
        _validate_worker_id(worker_id)

        async with self._store_call("complete"):
            job = await self._repo.complete_job(job_id, result=result, worker_id=worker_id)
            if job is None:
                raise await self._reject(job_id, JobOperation.COMPLETE, worker_id)
            await self._session.commit()

        duration = None
        if job.started_at is not None and job.completed_at is not None:
            duration = (job.completed_at - job.started_at).total_seconds()
        self._metrics.record_job_resolved(job.type, JobStatus.COMPLETED.value, duration)
        return job

    async def fail(
        self,
        job_id: int,
        error: str,
        worker_id: str | None = None,
    ) -> tuple[Job, bool]:
        """
        Record a failure on a claimed or running job.

        Returns:
            Tuple of (job, retried). retried is True when the job went back
            to pending, False when it was failed permanently.

        Raises:
            JobValidationError: If the error message is empty.
            JobNotFoundError: If the job does not exist.
            InvalidJobStateError: If the job is not claimed/running (or not by worker_id).
        """
        _validate_job_id(job_id)
        _validate_worker_id(worker_id)
        _require(isinstance(error, str) and len(error) > 0, "error message is required")

        with get_tracer().start_as_current_span(SPAN_FAIL_JOB) as span:
            span.set_attribute("job_id", job_id)

            async with self._store_call("fail"):
                job = await self._repo.fail_job(job_id, error=error, worker_id=worker_id)
                if job is None:
                    raise await self._reject(job_id, JobOperation.FAIL, worker_id)
                await self._session.commit()

            retried = job.status == JobStatus.PENDING
            span.set_attribute("retried", retried)
            span.set_attribute("retries", job.retries)

        if retried:
            self._metrics.record_job_retried(job.type)
        else:
            self._metrics.record_job_resolved(job.type, JobStatus.FAILED.value)
        return job, retried

    async def cancel(self, job_id: int) -> Job:
        """
        Cancel a pending or claimed job.

        Running jobs cannot be cancelled; they must complete or fail.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidJobStateError: If the job is not pending/claimed.
        """
        _validate_job_id(job_id)

        async with self._store_call("cancel"):
            job = await self._repo.cancel_job(job_id)
            if job is None:
                raise await self._reject(job_id, JobOperation.CANCEL)
            await self._session.commit()

        self._metrics.record_job_resolved(job.type, JobStatus.CANCELLED.value)
        return job

    async def sweep(self, timeout_minutes: int) -> list[SweptJob]:
        """
        Reset jobs claimed more than timeout_minutes ago back to pending.

        Does not count against the jobs' retries.

        Returns:
            Summaries of the swept jobs.
        """
        _require(
            isinstance(timeout_minutes, int) and 0 <= timeout_minutes <= MAX_SWEEP_TIMEOUT_MINUTES,
            f"timeout_minutes must be between 0 and {MAX_SWEEP_TIMEOUT_MINUTES}",
        )

        with get_tracer().start_as_current_span(SPAN_SWEEP_JOBS) as span:
            span.set_attribute("timeout_minutes", timeout_minutes)

            async with self._store_call("sweep"):
                swept = await self._repo.sweep_stale_jobs(timeout_minutes)
                await self._session.commit()

            span.set_attribute("swept", len(swept))

        if swept:
            self._metrics.record_jobs_swept(len(swept))
        return [SweptJob(id=job_id, type=job_type) for job_id, job_type in swept]

    async def stats(self) -> JobStatsResponse:
        """
        Per-type rollups: counts by status, average duration of completed
        jobs, and failure rate over completed and failed jobs.
        """
        async with self._store_call("stats"):
            aggregates = await self._repo.get_job_stats()
            total = await self._repo.count_jobs()

        by_type = {}
        for job_type, agg in aggregates.items():
            by_type[job_type] = JobTypeStats(
                by_status=agg.by_status,
                avg_duration_ms=round(agg.avg_duration_ms) if agg.avg_duration_ms is not None else None,
                failure_rate=agg.failed / agg.finished if agg.finished > 0 else None,
            )

        return JobStatsResponse(total_jobs=total, by_type=by_type)
