"""Registry mapping job types to their pipelines."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

from app.config import Settings
from app.jobs.errors import JobValidationError
from app.jobs.models import JobPayload, JobRecord, JobType
from app.jobs.pipelines import run_transcript_pipeline, run_upload_pipeline, run_youtube_pipeline
from app.jobs.progress import JobProgressTracker
from app.services.collaborators import Collaborators

Pipeline = Callable[[JobRecord, Any, JobProgressTracker, Collaborators], Awaitable[dict[str, Any]]]


class PipelineRegistry:
  """Resolve the pipeline for a job type."""

  def __init__(self, pipelines: dict[str, Pipeline]) -> None:
    self._pipelines = pipelines

  def resolve(self, job_type: JobType) -> Pipeline:
    pipeline = self._pipelines.get(job_type)
    if pipeline is None:
      raise JobValidationError(f"Unsupported job type: {job_type}")
    return pipeline

  async def run(self, job: JobRecord, payload: JobPayload, tracker: JobProgressTracker, collaborators: Collaborators) -> dict[str, Any]:
    return await self.resolve(job.job_type)(job, payload, tracker, collaborators)


def build_default_registry(settings: Settings) -> PipelineRegistry:
  return PipelineRegistry({"youtube": run_youtube_pipeline, "upload": partial(run_upload_pipeline, temp_dir=settings.temp_dir), "transcript": run_transcript_pipeline})
