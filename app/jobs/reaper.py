"""Background cleanup of old terminal jobs and recovery of stale processing rows."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.config import Settings
from app.jobs.errors import PipelineError
from app.jobs.models import PurgedJob
from app.services.collaborators import ObjectStore
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

# Upper bound on stale rows examined per sweep.
_STALE_SWEEP_LIMIT = 200


@dataclass(frozen=True)
class PurgeResult:
  completed: int
  failed: int
  stored_objects: int = 0


@dataclass(frozen=True)
class SweepResult:
  reclaimed: int
  failed: int


class JobReaper:
  """Deletes expired terminal rows and reclaims processing rows nobody is running.

  Pending and processing rows are never deleted. A processing row whose
  ``started_at`` is older than ``stale_job_seconds`` and which this process is
  not executing goes back to ``pending``; after ``max_reclaims`` reclaims it
  fails with ``STALE_JOB`` instead. Purged upload jobs also lose the object
  their pipeline stored.
  """

  def __init__(self, *, jobs_repo: JobsRepository, settings: Settings, is_in_flight: Callable[[str], bool], object_store: ObjectStore | None = None) -> None:
    self._jobs_repo = jobs_repo
    self._settings = settings
    self._is_in_flight = is_in_flight
    self._object_store = object_store

  async def purge(self, *, now: datetime | None = None) -> PurgeResult:
    now = now or datetime.now(UTC)
    completed_cutoff = now - timedelta(seconds=self._settings.completed_retention_seconds)
    failed_cutoff = now - timedelta(seconds=self._settings.failed_retention_seconds)
    completed = await self._jobs_repo.delete_terminal_before(("completed",), completed_cutoff)
    failed = await self._jobs_repo.delete_terminal_before(("failed", "cancelled"), failed_cutoff)
    stored_objects = await self._delete_stored_uploads([*completed, *failed])
    logger.info("Reaper removed %d completed and %d failed/cancelled jobs (%d stored uploads)", len(completed), len(failed), stored_objects)
    return PurgeResult(completed=len(completed), failed=len(failed), stored_objects=stored_objects)

  async def _delete_stored_uploads(self, purged: list[PurgedJob]) -> int:
    if self._object_store is None:
      return 0
    deleted = 0
    for job in purged:
      if not job.storage_key:
        continue
      try:
        await self._object_store.delete_file(job.user_id, job.storage_key)
      except PipelineError:
        logger.warning("Could not delete stored upload %s of purged job %s", job.storage_key, job.job_id, exc_info=True)
        continue
      deleted += 1
    return deleted

  async def sweep_stale(self, *, now: datetime | None = None) -> SweepResult:
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(seconds=self._settings.stale_job_seconds)
    stale = await self._jobs_repo.find_stale(started_before=cutoff, limit=_STALE_SWEEP_LIMIT)
    reclaimed = failed = 0
    for job in stale:
      if self._is_in_flight(job.job_id):
        continue
      if job.reclaim_count >= self._settings.max_reclaims:
        message = f"Job stalled in processing and was abandoned after {job.reclaim_count} reclaim(s)."
        if await self._jobs_repo.fail_job(job.job_id, error_message=message, error_code="STALE_JOB", completed_at=now):
          failed += 1
        continue
      if await self._jobs_repo.reclaim_job(job.job_id):
        reclaimed += 1
    if reclaimed or failed:
      logger.warning("Stale sweep reclaimed %d and failed %d processing jobs", reclaimed, failed)
    return SweepResult(reclaimed=reclaimed, failed=failed)

  async def run_once(self) -> tuple[SweepResult, PurgeResult]:
    sweep = await self.sweep_stale()
    purge = await self.purge()
    return sweep, purge

  async def run_periodically(self, stop_event: asyncio.Event) -> None:
    """Run a reaper pass every interval until ``stop_event`` is set."""
    interval = self._settings.reaper_interval_seconds
    while not stop_event.is_set():
      try:
        await asyncio.wait_for(stop_event.wait(), timeout=interval)
      except TimeoutError:
        try:
          await self.run_once()
        except Exception:  # noqa: BLE001
          logger.error("Reaper pass failed; retrying next interval", exc_info=True)
