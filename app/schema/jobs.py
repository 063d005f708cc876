from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class VideoJob(Base):
  __tablename__ = "video_jobs"
  __table_args__ = (
    Index("ix_video_jobs_status_created_at", "status", "created_at"),
    Index("ix_video_jobs_user_status", "user_id", "status"),
    Index("ix_video_jobs_active_started_at", "started_at", postgresql_where=text("status = 'processing'")),
    CheckConstraint("status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')", name="ck_video_jobs_status"),
    CheckConstraint("job_type IN ('youtube', 'upload', 'transcript')", name="ck_video_jobs_job_type"),
    CheckConstraint("progress BETWEEN 0 AND 100", name="ck_video_jobs_progress"),
  )

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  job_type: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'pending'"))
  payload: Mapped[dict] = mapped_column(JSONB, nullable=False)
  video_title: Mapped[str | None] = mapped_column(Text, nullable=True)
  progress: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
  result: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  error_code: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  reclaim_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
  retried_as_job_id: Mapped[str | None] = mapped_column(String, nullable=True)
  attempt: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))


class UsageEvent(Base):
  __tablename__ = "usage_events"
  __table_args__ = (Index("ix_usage_events_user_type", "user_id", "event_type"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  job_id: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
