"""
Job repository for database operations.
Implements the core data access patterns for the job lifecycle.

Every state transition is one conditional statement. A write that matches
zero rows means the precondition did not hold; callers decide whether that
is a missing job or a wrong status.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import (
    DateTime,
    case,
    extract,
    func,
    literal,
    null,
    select,
    update,
)
from sqlalchemy.ext.asyncio import AsyncSession

from job_engine.config import get_settings
from job_engine.constants import ACTIVE_STATUSES, JobStatus
from job_engine.db.models import Job, utcnow
from job_engine.state_machine import ALLOWED_SOURCES, JobOperation

logger = logging.getLogger(__name__)

# ORM UPDATE ... RETURNING: skip in-session synchronization and take the
# returned row as the fresh state of any identity-mapped instance.
_RETURNING_OPTIONS = {"synchronize_session": False, "populate_existing": True}


@dataclass(frozen=True)
class JobTypeAggregate:
    """Raw per-type aggregates read by get_job_stats."""

    by_status: dict[str, int]
    avg_duration_ms: float | None
    finished: int
    failed: int


class JobRepository:
    """
    Repository for job database operations.

    Implements atomic operations for:
    - Job creation (single and batch)
    - Claim with FOR UPDATE SKIP LOCKED, or optimistic retry on stores without it
    - Guarded status transitions
    - Stale claim recovery
    - Read-only aggregation
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
        """
        self._session = session
        self._settings = get_settings()

    @property
    def dialect_name(self) -> str:
        """Name of the SQL dialect the session is bound to."""
        return self._session.get_bind().dialect.name

    @property
    def supports_skip_locked(self) -> bool:
        """Whether the store offers a locking read that skips locked rows."""
        return self.dialect_name == "postgresql"

    async def create_jobs(self, specs: Sequence[Mapping[str, Any]]) -> list[Job]:
        """
        Insert jobs in the pending state.

        Args:
            specs: Job attributes: type, params, priority, max_retries.

        Returns:
            The created jobs, in input order.
        """
        now = utcnow()
        jobs = [
            Job(
                type=spec["type"],
                params=spec.get("params"),
                priority=spec["priority"],
                max_retries=spec["max_retries"],
                status=JobStatus.PENDING,
                retries=0,
                created_at=now,
            )
            for spec in specs
        ]
        self._session.add_all(jobs)
        await self._session.flush()

        logger.info(
            f"Created {len(jobs)} jobs",
            extra={"job_ids": [job.id for job in jobs]},
        )
        return jobs

    async def get_job(self, job_id: int) -> Job | None:
        """
        Get a job by ID.

        Args:
            job_id: The job ID.

        Returns:
            The Job or None if not found.
        """
        stmt = (
            select(Job)
            .where(Job.id == job_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_status(self, job_id: int) -> tuple[JobStatus, str | None] | None:
        """
        Read a job's current status and owner.

        Args:
            job_id: The job ID.

        Returns:
            Tuple of (status, worker_id), or None if the job does not exist.
        """
        stmt = select(Job.status, Job.worker_id).where(Job.id == job_id)
        row = (await self._session.execute(stmt)).one_or_none()
        if row is None:
            return None
        return JobStatus(row.status), row.worker_id

    async def list_jobs(
        self,
        status: JobStatus | None = None,
        job_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[Job], int]:
        """
        List jobs with optional filtering, newest first.

        Args:
            status: Optional status filter.
            job_type: Optional type filter.
            limit: Maximum number of jobs to return.
            offset: Offset for pagination.

        Returns:
            Tuple of (jobs, total_count).
        """
        filters = []
        if status is not None:
            filters.append(Job.status == status)
        if job_type is not None:
            filters.append(Job.type == job_type)

        count_stmt = select(func.count()).select_from(Job).where(*filters)
        total = (await self._session.execute(count_stmt)).scalar() or 0

        stmt = (
            select(Job)
            .where(*filters)
            .order_by(Job.created_at.desc(), Job.id.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all(), total

    def _claim_candidates(self, job_type: str | None):
        """Select pending job ids in claim order: priority, then oldest."""
        stmt = select(Job.id).where(Job.status == JobStatus.PENDING)
        if job_type is not None:
            stmt = stmt.where(Job.type == job_type)
        return stmt.order_by(
            Job.priority.desc(),
            Job.created_at.asc(),
            Job.id.asc(),
        ).limit(1)

    async def claim_job(self, worker_id: str, job_type: str | None = None) -> Job | None:
        """
        Atomically claim the next pending job for a worker.

        This is the critical path for job distribution. On PostgreSQL the
        victim is selected with FOR UPDATE SKIP LOCKED inside the UPDATE, so
        concurrent claims never wait on each other and never share a row.

        Args:
            worker_id: The claiming worker's identity.
            job_type: Optional type filter.

        Returns:
            The claimed job, or None if no pending job is available.
        """
        values = {
            "status": JobStatus.CLAIMED,
            "claimed_at": utcnow(),
            "worker_id": worker_id,
        }

        if self.supports_skip_locked:
            candidate = (
                self._claim_candidates(job_type)
                .with_for_update(skip_locked=True)
                .scalar_subquery()
            )
            stmt = (
                update(Job)
                .where(Job.id == candidate)
                .values(**values)
                .returning(Job)
                .execution_options(**_RETURNING_OPTIONS)
            )
            job = (await self._session.execute(stmt)).scalar_one_or_none()
        else:
            job = await self._claim_optimistic(values, job_type)

        if job is not None:
            logger.info(
                "Claimed job",
                extra={"job_id": job.id, "job_type": job.type, "worker_id": worker_id},
            )
        return job

    async def _claim_optimistic(
        self,
        values: dict[str, Any],
        job_type: str | None,
    ) -> Job | None:
        """
        Claim via compare-and-swap for stores without SKIP LOCKED.

        Picks a candidate with a plain SELECT and updates it only if it is
        still pending. Losing the race re-selects, up to claim_max_attempts.
        """
        for attempt in range(1, self._settings.claim_max_attempts + 1):
            candidate_id = (
                await self._session.execute(self._claim_candidates(job_type))
            ).scalar_one_or_none()
            if candidate_id is None:
                return None

            stmt = (
                update(Job)
                .where(Job.id == candidate_id, Job.status == JobStatus.PENDING)
                .values(**values)
                .returning(Job)
                .execution_options(**_RETURNING_OPTIONS)
            )
            job = (await self._session.execute(stmt)).scalar_one_or_none()
            if job is not None:
                return job

            logger.debug(
                "Lost claim race, reselecting",
                extra={"job_id": candidate_id, "attempt": attempt},
            )

        logger.warning(
            "Claim attempts exhausted",
            extra={"worker_id": values["worker_id"], "job_type": job_type},
        )
        return None

    async def _transition(
        self,
        job_id: int,
        operation: JobOperation,
        values: dict[str, Any],
        worker_id: str | None = None,
    ) -> Job | None:
        """
        Apply a single-row guarded status transition.

        Args:
            job_id: The job ID.
            operation: Operation whose source statuses guard the update.
            values: Columns to set.
            worker_id: If given, the job must currently be owned by this worker.

        Returns:
            Updated Job or None if the guard did not match.
        """
        conditions = [
            Job.id == job_id,
            Job.status.in_(list(ALLOWED_SOURCES[operation])),
        ]
        if worker_id is not None:
            conditions.append(Job.worker_id == worker_id)

        stmt = (
            update(Job)
            .where(*conditions)
            .values(**values)
            .returning(Job)
            .execution_options(**_RETURNING_OPTIONS)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def start_job(self, job_id: int, worker_id: str | None = None) -> Job | None:
        """
        Transition job from CLAIMED to RUNNING.

        Args:
            job_id: The job ID.
            worker_id: Optional owner check.

        Returns:
            Updated Job or None if transition failed.
        """
        job = await self._transition(
            job_id,
            JobOperation.START,
            {"status": JobStatus.RUNNING, "started_at": utcnow()},
            worker_id=worker_id,
        )
        if job:
            logger.info("Started job execution", extra={"job_id": job_id})
        return job

    async def complete_job(
        self,
        job_id: int,
        result: Any = None,
        worker_id: str | None = None,
    ) -> Job | None:
        """
        Mark job as successfully completed.

        Args:
            job_id: The job ID.
            result: Optional opaque result payload.
            worker_id: Optional owner check.

        Returns:
            Updated Job or None if transition failed.
        """
        job = await self._transition(
            job_id,
            JobOperation.COMPLETE,
            {
                "status": JobStatus.COMPLETED,
                "result": result,
                "completed_at": utcnow(),
            },
            worker_id=worker_id,
        )
        if job:
            logger.info("Job completed successfully", extra={"job_id": job_id})
        return job

    async def fail_job(
        self,
        job_id: int,
        error: str,
        worker_id: str | None = None,
    ) -> Job | None:
        """
        Record a failure. Either re-queue the job or fail it permanently.

        The retry decision and the write are one statement. Every CASE branch
        reads the pre-update row, so `retries + 1` is the same value in each
        expression and two racing calls cannot both act on a stale count.

        Args:
            job_id: The job ID.
            error: Error message, stored even when the job is retried.
            worker_id: Optional owner check.

        Returns:
            Updated Job or None if transition failed. A returned status of
            PENDING means the job was re-queued.
        """
        will_retry = (Job.retries + 1) < Job.max_retries
        now = literal(utcnow(), DateTime(timezone=True))

        job = await self._transition(
            job_id,
            JobOperation.FAIL,
            {
                "retries": Job.retries + 1,
                "status": case(
                    (will_retry, JobStatus.PENDING.value),
                    else_=JobStatus.FAILED.value,
                ),
                "error": error,
                "completed_at": case((will_retry, null()), else_=now),
                "claimed_at": case((will_retry, null()), else_=Job.claimed_at),
                "started_at": case((will_retry, null()), else_=Job.started_at),
                "worker_id": case((will_retry, null()), else_=Job.worker_id),
            },
            worker_id=worker_id,
        )

        if job is None:
            return None

        if job.status == JobStatus.PENDING:
            logger.info(
                "Job queued for retry",
                extra={"job_id": job_id, "retries": job.retries},
            )
        else:
            logger.warning(
                f"Job failed permanently after {job.retries} attempts",
                extra={"job_id": job_id, "error": error},
            )
        return job

    async def cancel_job(self, job_id: int) -> Job | None:
        """
        Cancel a job that has not started running.

        Args:
            job_id: The job ID.

        Returns:
            Updated Job or None if transition failed.
        """
        job = await self._transition(
            job_id,
            JobOperation.CANCEL,
            {"status": JobStatus.CANCELLED, "completed_at": utcnow()},
        )
        if job:
            logger.info("Job cancelled", extra={"job_id": job_id})
        return job

    async def sweep_stale_jobs(self, timeout_minutes: int) -> list[tuple[int, str]]:
        """
        Return stale claimed/running jobs to the pending pool.

        A job is stale when it was claimed more than timeout_minutes ago.
        The retry count is not touched. Terminal jobs never match.

        Args:
            timeout_minutes: Claim age after which a job is considered abandoned.

        Returns:
            List of (id, type) for the jobs that were reset.
        """
        cutoff: datetime = utcnow() - timedelta(minutes=timeout_minutes)

        stmt = (
            update(Job)
            .where(
                Job.status.in_(list(ACTIVE_STATUSES)),
                Job.claimed_at < cutoff,
            )
            .values(
                status=JobStatus.PENDING,
                claimed_at=None,
                started_at=None,
                worker_id=None,
            )
            .returning(Job.id, Job.type)
            .execution_options(synchronize_session=False)
        )

        result = await self._session.execute(stmt)
        swept = [(row.id, row.type) for row in result.all()]

        if swept:
            logger.warning(
                f"Swept {len(swept)} stale jobs back to pending",
                extra={"job_ids": [job_id for job_id, _ in swept]},
            )
        return swept

    def _duration_ms(self):
        """SQL expression for completed_at - started_at in milliseconds."""
        if self.dialect_name == "postgresql":
            return extract("epoch", Job.completed_at - Job.started_at) * 1000
        return (func.julianday(Job.completed_at) - func.julianday(Job.started_at)) * 86400000.0

    async def count_jobs(self) -> int:
        """Count all jobs."""
        stmt = select(func.count()).select_from(Job)
        return (await self._session.execute(stmt)).scalar() or 0

    async def get_job_stats(self) -> dict[str, JobTypeAggregate]:
        """
        Aggregate jobs per type.

        Returns:
            Dictionary of type -> JobTypeAggregate.
        """
        counts_stmt = select(Job.type, Job.status, func.count()).group_by(Job.type, Job.status)
        by_type: dict[str, dict[str, int]] = {}
        for job_type, status, count in (await self._session.execute(counts_stmt)).all():
            by_type.setdefault(job_type, {})[JobStatus(status).value] = count

        duration_stmt = (
            select(Job.type, func.avg(self._duration_ms()))
            .where(
                Job.status == JobStatus.COMPLETED,
                Job.started_at.is_not(None),
                Job.completed_at.is_not(None),
            )
            .group_by(Job.type)
        )
        durations = {
            job_type: float(avg_ms)
            for job_type, avg_ms in (await self._session.execute(duration_stmt)).all()
            if avg_ms is not None
        }

        outcome_stmt = (
            select(
                Job.type,
                func.count(),
                func.sum(case((Job.status == JobStatus.FAILED, 1), else_=0)),
            )
            .where(Job.status.in_([JobStatus.COMPLETED, JobStatus.FAILED]))
            .group_by(Job.type)
        )
        outcomes = {
            job_type: (finished, int(failed or 0))
            for job_type, finished, failed in (await self._session.execute(outcome_stmt)).all()
        }

        return {
            job_type: JobTypeAggregate(
                by_status=statuses,
                avg_duration_ms=durations.get(job_type),
                finished=outcomes.get(job_type, (0, 0))[0],
                failed=outcomes.get(job_type, (0, 0))[1],
            )
            for job_type, statuses in by_type.items()
        }
