"""Shared fixtures: in-memory job store, usage store and collaborator doubles."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.config import Settings, get_settings
from app.jobs.errors import VideoNotFoundError
from app.jobs.models import JobRecord, JobStatus, PendingJob, PurgedJob, redact_payload
from app.services.collaborators import Collaborators, StoredFile, VideoMetadata

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class InMemoryJobsRepo:
  """Dict-backed job store with the same conditional-update semantics as Postgres."""

  def __init__(self) -> None:
    self.jobs: dict[str, JobRecord] = {}
    self.progress_writes: list[tuple[str, int]] = []

  async def create_job(self, record: JobRecord) -> None:
    self.jobs[record.job_id] = replace(record)

  async def get_job(self, job_id: str) -> JobRecord | None:
    record = self.jobs.get(job_id)
    return replace(record) if record is not None else None

  async def list_for_user(self, user_id: str, *, limit: int) -> list[JobRecord]:
    owned = [record for record in self.jobs.values() if record.user_id == user_id]
    owned.sort(key=lambda record: record.created_at, reverse=True)
    return [replace(record, payload=redact_payload(record.payload)) for record in owned[:limit]]

  async def count_for_user(self, user_id: str, statuses: Sequence[JobStatus]) -> int:
    return sum(1 for record in self.jobs.values() if record.user_id == user_id and record.status in statuses)

  async def count_by_status(self, status: JobStatus) -> int:
    return sum(1 for record in self.jobs.values() if record.status == status)

  async def find_pending(self, limit: int) -> list[PendingJob]:
    pending = sorted((record for record in self.jobs.values() if record.status == "pending"), key=lambda record: record.created_at)
    return [PendingJob(job_id=record.job_id, user_id=record.user_id, created_at=record.created_at) for record in pending[:limit]]

  async def processing_counts_by_user(self) -> dict[str, int]:
    counts: dict[str, int] = {}
    for record in self.jobs.values():
      if record.status == "processing":
        counts[record.user_id] = counts.get(record.user_id, 0) + 1
    return counts

  async def claim_job(self, job_id: str, *, started_at: datetime, progress: int) -> JobRecord | None:
    record = self.jobs.get(job_id)
    if record is None or not self._update(job_id, ("pending",), status="processing", started_at=started_at, progress=progress, attempt=record.attempt + 1):
      return None
    return replace(self.jobs[job_id])

  async def update_progress(self, job_id: str, progress: int, *, video_title: str | None = None, attempt: int | None = None) -> bool:
    record = self.jobs.get(job_id)
    if record is None or record.status != "processing" or (attempt is not None and record.attempt != attempt):
      return False
    self.progress_writes.append((job_id, progress))
    changes: dict[str, Any] = {"progress": max(record.progress, progress)}
    if video_title is not None:
      changes["video_title"] = video_title
    self.jobs[job_id] = replace(record, **changes)
    return True

  async def complete_job(self, job_id: str, *, result: dict[str, Any], completed_at: datetime, attempt: int | None = None) -> bool:
    return self._update(job_id, ("processing",), attempt_guard=attempt, status="completed", progress=100, result=result, error_message=None, error_code=None, completed_at=completed_at)

  async def fail_job(self, job_id: str, *, error_message: str, error_code: str, completed_at: datetime, attempt: int | None = None) -> bool:
    return self._update(job_id, ("processing",), attempt_guard=attempt, status="failed", result=None, error_message=error_message, error_code=error_code, completed_at=completed_at)

  async def cancel_job(self, job_id: str, *, error_message: str, error_code: str, completed_at: datetime) -> bool:
    return self._update(job_id, ("pending", "processing"), status="cancelled", result=None, error_message=error_message, error_code=error_code, completed_at=completed_at)

  async def restart_job(self, job_id: str) -> bool:
    return self._update(job_id, ("failed", "cancelled"), status="pending", progress=0, result=None, error_message=None, error_code=None, started_at=None, completed_at=None, reclaim_count=0)

  async def mark_retried(self, job_id: str, new_job_id: str) -> bool:
    return self._update(job_id, ("failed", "cancelled"), retried_as_job_id=new_job_id)

  async def find_stale(self, *, started_before: datetime, limit: int) -> list[JobRecord]:
    stale = [record for record in self.jobs.values() if record.status == "processing" and record.started_at is not None and record.started_at < started_before]
    return [replace(record) for record in stale[:limit]]

  async def reclaim_job(self, job_id: str) -> bool:
    record = self.jobs.get(job_id)
    if record is None:
      return False
    return self._update(job_id, ("processing",), status="pending", progress=0, started_at=None, reclaim_count=record.reclaim_count + 1)

  async def delete_terminal_before(self, statuses: Sequence[JobStatus], cutoff: datetime) -> list[PurgedJob]:
    doomed = [
      record
      for record in self.jobs.values()
      if record.status in statuses and record.status in ("completed", "failed", "cancelled") and record.completed_at is not None and record.completed_at < cutoff
    ]
    for record in doomed:
      del self.jobs[record.job_id]
    return [PurgedJob(job_id=record.job_id, user_id=record.user_id, storage_key=((record.result or {}).get("source") or {}).get("storage_key")) for record in doomed]

  def _update(self, job_id: str, source_statuses: Sequence[JobStatus], *, attempt_guard: int | None = None, **changes: Any) -> bool:
    record = self.jobs.get(job_id)
    if record is None or record.status not in source_statuses:
      return False
    if attempt_guard is not None and record.attempt != attempt_guard:
      return False
    self.jobs[job_id] = replace(record, **changes)
    return True


class InMemoryUsageRepo:
  def __init__(self) -> None:
    self.events: list[tuple[str, str, str | None]] = []

  async def count_events(self, user_id: str, event_type: str) -> int:
    return sum(1 for owner, kind, _ in self.events if owner == user_id and kind == event_type)

  async def record_event(self, user_id: str, event_type: str, *, job_id: str | None = None) -> None:
    self.events.append((user_id, event_type, job_id))


def make_job(job_id: str, user_id: str, *, status: JobStatus = "pending", minutes: int = 0, job_type: str = "transcript", **overrides: Any) -> JobRecord:
  """Build a job row created ``minutes`` after the shared base time."""
  payload = overrides.pop("payload", {"job_type": "transcript", "transcript": f"Transcript for {job_id}", "language": "en", "tone": "engaging"})
  return JobRecord(job_id=job_id, user_id=user_id, job_type=job_type, status=status, payload=payload, created_at=BASE_TIME + timedelta(minutes=minutes), **overrides)


def build_collaborators() -> Collaborators:
  video_source = MagicMock()

  async def _metadata(url: str) -> VideoMetadata:
    if "missing" in url:
      raise VideoNotFoundError(f"YouTube video for {url} was not found.")
    return VideoMetadata(video_id="dQw4w9WgXcQ", title="Original Title", duration_label="3:33", description="Old description")

  video_source.fetch_video_metadata = AsyncMock(side_effect=_metadata)
  video_source.fetch_transcript = AsyncMock(return_value="hello world transcript")

  analysis = MagicMock()
  analysis.rewrite_title = AsyncMock(return_value={"recommended": "Better Title", "alternatives": [], "rationale": ""})
  analysis.rewrite_description = AsyncMock(return_value={"description": "Better description", "hashtags": ["#tips"]})
  analysis.extract_keywords = AsyncMock(return_value={"primary": ["tips"], "secondary": [], "tags": ["tips"]})
  analysis.generate_chapters = AsyncMock(return_value={"chapters": [{"timestamp": "0:00", "title": "Intro"}]})
  analysis.summarize = AsyncMock(return_value="A short summary.")
  analysis.generate_thumbnail_ideas = AsyncMock(return_value=[{"concept": "Big face", "text_overlay": "WOW", "visual_elements": []}])

  transcriber = MagicMock()
  transcriber.transcribe_file = AsyncMock(return_value="transcribed upload text")

  object_store = MagicMock()
  object_store.store_file = AsyncMock(return_value=StoredFile(key="uploads/u1/abc-clip.mp4", public_url="https://storage.example/uploads/u1/abc-clip.mp4"))
  object_store.delete_file = AsyncMock(return_value=None)
  return Collaborators(video_source=video_source, analysis=analysis, transcriber=transcriber, object_store=object_store)


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def settings(tmp_path) -> Settings:
  return replace(
    get_settings(),
    max_concurrent_jobs=3,
    max_jobs_per_user=5,
    max_total_queue_size=20,
    average_job_minutes=2,
    usage_limit=100,
    list_limit=50,
    job_timeout_seconds=5.0,
    max_upload_bytes=1024,
    stale_job_seconds=1800,
    max_reclaims=2,
    temp_dir=str(tmp_path),
  )


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepo:
  return InMemoryJobsRepo()


@pytest.fixture
def usage_repo() -> InMemoryUsageRepo:
  return InMemoryUsageRepo()


@pytest.fixture
def collaborators() -> Collaborators:
  return build_collaborators()
