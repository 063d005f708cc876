"""Job progress checkpoints and tracking."""

from __future__ import annotations

import logging

from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

# Checkpoints written while a job is processing. Values only ever increase.
CLAIMED = 10
METADATA_FETCHED = 20
TRANSCRIPT_FETCHED = 40
UPLOAD_STORED = 30
UPLOAD_TRANSCRIBED = 50
UPLOAD_SUMMARIZED = 60
TRANSCRIPT_SUMMARIZED = 40
TRANSCRIPT_ANALYZED = 70
ANALYSES_DONE = 80
FINALIZING = 90
COMPLETE = 100


class JobCancelledError(Exception):
  """Raised when a job stops being owned by its executor (cancelled or reclaimed)."""


class JobProgressTracker:
  """Writes monotonic progress checkpoints for one processing job.

  Each write is conditional on the row still being ``processing`` under the
  same claim ``attempt``. When the store reports that no row changed, the job
  was cancelled, reclaimed or claimed again elsewhere and the executor must stop
  without writing a terminal state.
  """

  def __init__(self, jobs_repo: JobsRepository, job_id: str, *, initial: int = CLAIMED, attempt: int | None = None) -> None:
    self._jobs_repo = jobs_repo
    self._job_id = job_id
    self._attempt = attempt
    self._current = initial

  @property
  def current(self) -> int:
    return self._current

  async def advance(self, progress: int, *, video_title: str | None = None) -> None:
    """Record a checkpoint; lower or equal values are ignored unless a title is attached."""
    if progress <= self._current and video_title is None:
      return
    target = max(progress, self._current)
    applied = await self._jobs_repo.update_progress(self._job_id, target, video_title=video_title, attempt=self._attempt)
    if not applied:
      raise JobCancelledError(f"Job {self._job_id} is no longer processing under this claim.")
    self._current = target
    logger.debug("Job %s progress %d", self._job_id, target)
