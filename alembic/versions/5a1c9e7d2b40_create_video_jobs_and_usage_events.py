"""Create video_jobs and usage_events tables.

Revision ID: 5a1c9e7d2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "5a1c9e7d2b40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "video_jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("job_type", sa.String(), nullable=False),
    sa.Column("status", sa.String(), server_default=sa.text("'pending'"), nullable=False),
    sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("video_title", sa.Text(), nullable=True),
    sa.Column("progress", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("result", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("error_code", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("reclaim_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("retried_as_job_id", sa.String(), nullable=True),
    sa.PrimaryKeyConstraint("job_id"),
    sa.CheckConstraint("status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')", name="ck_video_jobs_status"),
    sa.CheckConstraint("job_type IN ('youtube', 'upload', 'transcript')", name="ck_video_jobs_job_type"),
    sa.CheckConstraint("progress BETWEEN 0 AND 100", name="ck_video_jobs_progress"),
  )
  op.create_index("ix_video_jobs_user_id", "video_jobs", ["user_id"], unique=False)
  op.create_index("ix_video_jobs_status_created_at", "video_jobs", ["status", "created_at"], unique=False)
  op.create_index("ix_video_jobs_user_status", "video_jobs", ["user_id", "status"], unique=False)
  op.create_index("ix_video_jobs_active_started_at", "video_jobs", ["started_at"], unique=False, postgresql_where=sa.text("status = 'processing'"))

  op.create_table(
    "usage_events",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("job_id", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("ix_usage_events_user_type", "usage_events", ["user_id", "event_type"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_usage_events_user_type", table_name="usage_events")
  op.drop_table("usage_events")
  op.drop_index("ix_video_jobs_active_started_at", table_name="video_jobs")
  op.drop_index("ix_video_jobs_user_status", table_name="video_jobs")
  op.drop_index("ix_video_jobs_status_created_at", table_name="video_jobs")
  op.drop_index("ix_video_jobs_user_id", table_name="video_jobs")
  op.drop_table("video_jobs")
