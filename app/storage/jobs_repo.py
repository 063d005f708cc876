"""Storage interfaces for video jobs."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from app.jobs.models import JobRecord, JobStatus, PendingJob, PurgedJob


class JobsRepository(Protocol):
  """Repository contract for job persistence.

  Every state transition is a conditional update: it only applies while the row
  is still in the expected source status and reports whether a row changed.
  Writes made on behalf of an executor also carry the claim's ``attempt`` so a
  run that lost its claim can never touch a later run of the same job.
  """

  async def create_job(self, record: JobRecord) -> None:
    """Persist a new job row."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def list_for_user(self, user_id: str, *, limit: int) -> list[JobRecord]:
    """Return a user's jobs, most recent first, with uploaded bytes left out of the payload."""

  async def count_for_user(self, user_id: str, statuses: Sequence[JobStatus]) -> int:
    """Count a user's jobs in the given statuses."""

  async def count_by_status(self, status: JobStatus) -> int:
    """Count jobs in one status across all users."""

  async def find_pending(self, limit: int) -> list[PendingJob]:
    """Return the oldest pending jobs by creation time, without their payloads."""

  async def processing_counts_by_user(self) -> dict[str, int]:
    """Return processing row counts grouped by owner."""

  async def claim_job(self, job_id: str, *, started_at: datetime, progress: int) -> JobRecord | None:
    """Move a pending job to processing under a new attempt; return the claimed row or None if lost."""

  async def update_progress(self, job_id: str, progress: int, *, video_title: str | None = None, attempt: int | None = None) -> bool:
    """Raise progress on a processing job; never lowers it."""

  async def complete_job(self, job_id: str, *, result: dict[str, Any], completed_at: datetime, attempt: int | None = None) -> bool:
    """Mark a processing job completed."""

  async def fail_job(self, job_id: str, *, error_message: str, error_code: str, completed_at: datetime, attempt: int | None = None) -> bool:
    """Mark a processing job failed."""

  async def cancel_job(self, job_id: str, *, error_message: str, error_code: str, completed_at: datetime) -> bool:
    """Mark a pending or processing job cancelled."""

  async def restart_job(self, job_id: str) -> bool:
    """Reset a failed or cancelled job back to pending."""

  async def mark_retried(self, job_id: str, new_job_id: str) -> bool:
    """Record the replacement job id on the original row."""

  async def find_stale(self, *, started_before: datetime, limit: int) -> list[JobRecord]:
    """Return processing jobs that started before the cutoff."""

  async def reclaim_job(self, job_id: str) -> bool:
    """Return a stale processing job to pending and bump its reclaim counter."""

  async def delete_terminal_before(self, statuses: Sequence[JobStatus], cutoff: datetime) -> list[PurgedJob]:
    """Delete terminal rows completed before the cutoff; return what was removed."""

