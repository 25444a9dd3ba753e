"""Initial schema with jobs table

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JOB_STATUSES = ("pending", "claimed", "running", "completed", "failed", "cancelled")

# JSONB on PostgreSQL, JSON text elsewhere
payload_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    # Create jobs table; status is VARCHAR + CHECK rather than a native enum
    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                *JOB_STATUSES,
                name="job_status",
                native_enum=False,
                length=20,
                create_constraint=True,
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("params", payload_type, nullable=True),
        sa.Column("result", payload_type, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
        sa.Column("retries", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer, nullable=False, server_default="3"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("worker_id", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    # Create indexes
    op.create_index("ix_jobs_status_priority", "jobs", ["status", "priority"])
    op.create_index("ix_jobs_type_status", "jobs", ["type", "status"])
    op.create_index("ix_jobs_created_at", "jobs", ["created_at"])

    # Partial index for claim polling and sweeping (PostgreSQL only)
    if op.get_bind().dialect.name == "postgresql":
        op.execute("""
            CREATE INDEX ix_jobs_claim_poll
            ON jobs (priority DESC, created_at, id)
            WHERE status = 'pending'
        """)
        op.execute("""
            CREATE INDEX ix_jobs_stale_claims
            ON jobs (claimed_at)
            WHERE status = 'claimed'
        """)


def downgrade() -> None:
    # Drop indexes
    op.execute("DROP INDEX IF EXISTS ix_jobs_stale_claims")
    op.execute("DROP INDEX IF EXISTS ix_jobs_claim_poll")
    op.drop_index("ix_jobs_created_at", table_name="jobs")
    op.drop_index("ix_jobs_type_status", table_name="jobs")
    op.drop_index("ix_jobs_status_priority", table_name="jobs")

    # Drop table
    op.drop_table("jobs")
