"""Executor that runs one claimed job to a terminal state."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import UTC, datetime
from typing import Any

import msgspec

from app.config import Settings
from app.jobs import progress as checkpoints
from app.jobs.dispatch import PipelineRegistry
from app.jobs.errors import JobError, PersistenceError, QuotaExceededError
from app.jobs.models import JobRecord, decode_payload
from app.jobs.progress import JobCancelledError, JobProgressTracker
from app.services.collaborators import Collaborators
from app.storage.jobs_repo import JobsRepository
from app.storage.usage_repo import ANALYSIS_COMPLETED, UsageRepository, usage_remaining

logger = logging.getLogger(__name__)


class JobExecutor:
  """Run a job's pipeline and write exactly one conditional terminal update."""

  def __init__(self, *, jobs_repo: JobsRepository, usage_repo: UsageRepository, collaborators: Collaborators, registry: PipelineRegistry, settings: Settings) -> None:
    self._jobs_repo = jobs_repo
    self._usage_repo = usage_repo
    self._collaborators = collaborators
    self._registry = registry
    self._settings = settings

  async def run(self, job: JobRecord) -> None:
    """Execute a job already claimed into ``processing``."""
    started = time.monotonic()
    tracker = JobProgressTracker(self._jobs_repo, job.job_id, initial=max(job.progress, checkpoints.CLAIMED), attempt=job.attempt)
    logger.info("Job %s (%s) started for user %s", job.job_id, job.job_type, job.user_id)
    try:
      payload = decode_payload(job.payload)
      pipeline_run = self._registry.run(job, payload, tracker, self._collaborators)
      timeout = self._settings.job_timeout_seconds
      result = await asyncio.wait_for(pipeline_run, timeout=timeout) if timeout else await pipeline_run
      await self._complete(job, tracker, result)
    except JobCancelledError:
      logger.info("Job %s is no longer processing; dropping its result.", job.job_id)
    except TimeoutError:
      logger.warning("Job %s exceeded %.0fs wall-clock timeout", job.job_id, self._settings.job_timeout_seconds)
      await self._fail(job, f"Job exceeded the {self._settings.job_timeout_seconds:.0f}s time limit.", "JOB_TIMEOUT")
    except msgspec.ValidationError as exc:
      await self._fail(job, f"Stored payload is invalid: {exc}", "VALIDATION_ERROR")
    except JobError as exc:
      logger.warning("Job %s failed with %s: %s", job.job_id, exc.code, exc.message)
      await self._fail(job, exc.message, exc.code)
    except Exception as exc:  # noqa: BLE001
      logger.error("Job %s failed unexpectedly: %s", job.job_id, exc, exc_info=True)
      await self._fail(job, str(exc) or type(exc).__name__, "PIPELINE_ERROR")
    finally:
      logger.info("Job %s finished in %.2fs", job.job_id, time.monotonic() - started)

  async def _complete(self, job: JobRecord, tracker: JobProgressTracker, result: dict[str, Any]) -> None:
    await tracker.advance(checkpoints.FINALIZING)
    remaining = await usage_remaining(self._usage_repo, job.user_id, usage_limit=self._settings.usage_limit)
    if remaining <= 0:
      raise QuotaExceededError("Usage limit reached before the analysis could be saved.", code="QUOTA_EXCEEDED")

    completed = await self._jobs_repo.complete_job(job.job_id, result=result, completed_at=datetime.now(UTC), attempt=job.attempt)
    if not completed:
      logger.info("Job %s left processing before completion; result discarded.", job.job_id)
      return
    await self._usage_repo.record_event(job.user_id, ANALYSIS_COMPLETED, job_id=job.job_id)
    logger.info("Job %s completed", job.job_id)

  async def _fail(self, job: JobRecord, message: str, code: str) -> None:
    try:
      failed = await self._jobs_repo.fail_job(job.job_id, error_message=message, error_code=code, completed_at=datetime.now(UTC), attempt=job.attempt)
    except PersistenceError:
      # The stale sweep recovers rows left in processing.
      logger.error("Could not record failure for job %s", job.job_id, exc_info=True)
      return
    if not failed:
      logger.info("Job %s left processing before its failure was recorded.", job.job_id)
