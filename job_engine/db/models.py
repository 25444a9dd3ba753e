"""
SQLAlchemy database models.
Defines the Job table.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from job_engine.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_PRIORITY,
    MAX_JOB_TYPE_LENGTH,
    MAX_WORKER_ID_LENGTH,
    TERMINAL_STATUSES,
    JobStatus,
)

# JSONB on PostgreSQL, plain JSON text elsewhere.
Payload = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Current time in UTC. All job timestamps are taken from here."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    Job model representing a unit of work in the queue.

    This is the authoritative source of truth for job state.
    All job lifecycle transitions are single conditional UPDATEs on this table.

    Key constraints:
    - claimed_at, started_at and worker_id are set only while claimed/running
    - completed_at is set iff the status is terminal
    - retries only grows, and only through the fail operation
    """

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    type: Mapped[str] = mapped_column(
        String(MAX_JOB_TYPE_LENGTH),
        nullable=False,
    )

    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            name="job_status",
            native_enum=False,
            length=20,
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=JobStatus.PENDING,
    )

    # Opaque payloads, never inspected by the engine
    params: Mapped[Any | None] = mapped_column(Payload, nullable=True)
    result: Mapped[Any | None] = mapped_column(Payload, nullable=True)

    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_PRIORITY,
        server_default=str(DEFAULT_PRIORITY),
    )

    # Retry tracking
    retries: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    max_retries: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_MAX_RETRIES,
        server_default=str(DEFAULT_MAX_RETRIES),
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    worker_id: Mapped[str | None] = mapped_column(
        String(MAX_WORKER_ID_LENGTH),
        nullable=True,
    )

    __table_args__ = (
        # Claim selection: status filter, then priority ordering
        Index("ix_jobs_status_priority", "status", "priority"),
        # Filtered listing and typed claims
        Index("ix_jobs_type_status", "type", "status"),
        # Listing newest first
        Index("ix_jobs_created_at", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        """Check if the job has reached a terminal status."""
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, type={self.type}, "
            f"status={self.status}, retries={self.retries}/{self.max_retries})"
        )
