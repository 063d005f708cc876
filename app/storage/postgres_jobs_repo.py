"""Postgres-backed repository for video jobs using SQLAlchemy."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import Select, Text, cast, delete, func, literal, select, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import defer

from app.core.database import get_session_factory
from app.jobs.models import JobRecord, JobStatus, PendingJob, PurgedJob
from app.schema.jobs import VideoJob
from app.storage.jobs_repo import JobsRepository
from app.utils.db_retry import guarded_store_call


def pending_queue_query(limit: int) -> Select:
  """Oldest pending jobs, selecting only what the dispatcher orders and claims by."""
  return select(VideoJob.job_id, VideoJob.user_id, VideoJob.created_at).where(VideoJob.status == "pending").order_by(VideoJob.created_at.asc(), VideoJob.job_id.asc()).limit(limit)


def user_listing_query(user_id: str, limit: int) -> Select:
  """A user's jobs with the stored upload bytes stripped inside Postgres."""
  listed_payload = VideoJob.payload.op("-", return_type=JSONB)(cast(literal("content"), Text)).label("listed_payload")
  return select(VideoJob, listed_payload).options(defer(VideoJob.payload)).where(VideoJob.user_id == user_id).order_by(VideoJob.created_at.desc()).limit(limit)


class PostgresJobsRepository(JobsRepository):
  """Persist video jobs to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> None:
    async def _insert() -> None:
      async with self._session_factory() as session:
        session.add(
          VideoJob(
            job_id=record.job_id,
            user_id=record.user_id,
            job_type=record.job_type,
            status=record.status,
            payload=record.payload,
            video_title=record.video_title,
            progress=record.progress,
            result=record.result,
            error_message=record.error_message,
            error_code=record.error_code,
            created_at=record.created_at,
            started_at=record.started_at,
            completed_at=record.completed_at,
            reclaim_count=record.reclaim_count,
            retried_as_job_id=record.retried_as_job_id,
            attempt=record.attempt,
          )
        )
        await session.commit()

    await guarded_store_call("create_job", _insert)

  async def get_job(self, job_id: str) -> JobRecord | None:
    async def _get() -> JobRecord | None:
      async with self._session_factory() as session:
        row = await session.get(VideoJob, job_id)
        return self._model_to_record(row) if row is not None else None

    return await guarded_store_call("get_job", _get)

  async def list_for_user(self, user_id: str, *, limit: int) -> list[JobRecord]:
    async def _list() -> list[JobRecord]:
      async with self._session_factory() as session:
        rows = (await session.execute(user_listing_query(user_id, limit))).all()
        return [self._model_to_record(row, payload=listed_payload) for row, listed_payload in rows]

    return await guarded_store_call("list_for_user", _list)

  async def count_for_user(self, user_id: str, statuses: Sequence[JobStatus]) -> int:
    async def _count() -> int:
      async with self._session_factory() as session:
        stmt = select(func.count()).select_from(VideoJob).where(VideoJob.user_id == user_id, VideoJob.status.in_(list(statuses)))
        return int((await session.execute(stmt)).scalar_one())

    return await guarded_store_call("count_for_user", _count)

  async def count_by_status(self, status: JobStatus) -> int:
    async def _count() -> int:
      async with self._session_factory() as session:
        stmt = select(func.count()).select_from(VideoJob).where(VideoJob.status == status)
        return int((await session.execute(stmt)).scalar_one())

    return await guarded_store_call("count_by_status", _count)

  async def find_pending(self, limit: int) -> list[PendingJob]:
    async def _find() -> list[PendingJob]:
      async with self._session_factory() as session:
        rows = (await session.execute(pending_queue_query(limit))).all()
        return [PendingJob(job_id=job_id, user_id=user_id, created_at=created_at) for job_id, user_id, created_at in rows]

    return await guarded_store_call("find_pending", _find)

  async def processing_counts_by_user(self) -> dict[str, int]:
    async def _counts() -> dict[str, int]:
      async with self._session_factory() as session:
        stmt = select(VideoJob.user_id, func.count()).where(VideoJob.status == "processing").group_by(VideoJob.user_id)
        rows = (await session.execute(stmt)).all()
        return {str(user_id): int(count) for user_id, count in rows}

    return await guarded_store_call("processing_counts_by_user", _counts)

  async def claim_job(self, job_id: str, *, started_at: datetime, progress: int) -> JobRecord | None:
    async def _claim() -> JobRecord | None:
      async with self._session_factory() as session:
        stmt = update(VideoJob).where(VideoJob.job_id == job_id, VideoJob.status == "pending").values(status="processing", started_at=started_at, progress=progress, attempt=VideoJob.attempt + 1).returning(VideoJob)
        row = (await session.execute(stmt)).scalar_one_or_none()
        await session.commit()
        return self._model_to_record(row) if row is not None else None

    return await guarded_store_call("claim_job", _claim)

  async def update_progress(self, job_id: str, progress: int, *, video_title: str | None = None, attempt: int | None = None) -> bool:
    values: dict[str, Any] = {"progress": func.greatest(VideoJob.progress, progress)}
    if video_title is not None:
      values["video_title"] = video_title
    return await self._conditional_update("update_progress", job_id, ("processing",), values, attempt=attempt)

  async def complete_job(self, job_id: str, *, result: dict[str, Any], completed_at: datetime, attempt: int | None = None) -> bool:
    values = {"status": "completed", "progress": 100, "result": result, "error_message": None, "error_code": None, "completed_at": completed_at}
    return await self._conditional_update("complete_job", job_id, ("processing",), values, attempt=attempt)

  async def fail_job(self, job_id: str, *, error_message: str, error_code: str, completed_at: datetime, attempt: int | None = None) -> bool:
    values = {"status": "failed", "result": None, "error_message": error_message, "error_code": error_code, "completed_at": completed_at}
    return await self._conditional_update("fail_job", job_id, ("processing",), values, attempt=attempt)

  async def cancel_job(self, job_id: str, *, error_message: str, error_code: str, completed_at: datetime) -> bool:
    values = {"status": "cancelled", "result": None, "error_message": error_message, "error_code": error_code, "completed_at": completed_at}
    return await self._conditional_update("cancel_job", job_id, ("pending", "processing"), values)

  async def restart_job(self, job_id: str) -> bool:
    values = {"status": "pending", "progress": 0, "result": None, "error_message": None, "error_code": None, "started_at": None, "completed_at": None, "reclaim_count": 0}
    return await self._conditional_update("restart_job", job_id, ("failed", "cancelled"), values)

  async def mark_retried(self, job_id: str, new_job_id: str) -> bool:
    return await self._conditional_update("mark_retried", job_id, ("failed", "cancelled"), {"retried_as_job_id": new_job_id})

  async def find_stale(self, *, started_before: datetime, limit: int) -> list[JobRecord]:
    async def _find() -> list[JobRecord]:
      async with self._session_factory() as session:
        stmt = select(VideoJob).where(VideoJob.status == "processing", VideoJob.started_at < started_before).order_by(VideoJob.started_at.asc()).limit(limit)
        rows = (await session.execute(stmt)).scalars().all()
        return [self._model_to_record(row) for row in rows]

    return await guarded_store_call("find_stale", _find)

  async def reclaim_job(self, job_id: str) -> bool:
    values = {"status": "pending", "progress": 0, "started_at": None, "reclaim_count": VideoJob.reclaim_count + 1}
    return await self._conditional_update("reclaim_job", job_id, ("processing",), values)

  async def delete_terminal_before(self, statuses: Sequence[JobStatus], cutoff: datetime) -> list[PurgedJob]:
    # Only terminal statuses are ever eligible for deletion.
    eligible = [status for status in statuses if status in ("completed", "failed", "cancelled")]
    if not eligible:
      return []

    async def _delete() -> list[PurgedJob]:
      async with self._session_factory() as session:
        storage_key = VideoJob.result[("source", "storage_key")].astext
        stmt = delete(VideoJob).where(VideoJob.status.in_(eligible), VideoJob.completed_at.is_not(None), VideoJob.completed_at < cutoff).returning(VideoJob.job_id, VideoJob.user_id, storage_key)
        rows = (await session.execute(stmt)).all()
        await session.commit()
        return [PurgedJob(job_id=job_id, user_id=user_id, storage_key=key) for job_id, user_id, key in rows]

    return await guarded_store_call("delete_terminal_before", _delete)

  async def _conditional_update(self, operation_name: str, job_id: str, source_statuses: Sequence[JobStatus], values: dict[str, Any], *, attempt: int | None = None) -> bool:
    async def _update() -> bool:
      async with self._session_factory() as session:
        stmt = update(VideoJob).where(VideoJob.job_id == job_id, VideoJob.status.in_(list(source_statuses)))
        if attempt is not None:
          stmt = stmt.where(VideoJob.attempt == attempt)
        stmt = stmt.values(**values)
        result = await session.execute(stmt)
        await session.commit()
        return (result.rowcount or 0) == 1

    return await guarded_store_call(operation_name, _update)

  def _model_to_record(self, row: VideoJob, *, payload: dict[str, Any] | None = None) -> JobRecord:
    return JobRecord(
      job_id=row.job_id,
      user_id=row.user_id,
      job_type=row.job_type,
      status=row.status,
      payload=payload if payload is not None else row.payload,
      created_at=row.created_at,
      video_title=row.video_title,
      progress=int(row.progress),
      result=row.result,
      error_message=row.error_message,
      error_code=row.error_code,
      started_at=row.started_at,
      completed_at=row.completed_at,
      reclaim_count=int(row.reclaim_count),
      retried_as_job_id=row.retried_as_job_id,
      attempt=int(row.attempt),
    )

