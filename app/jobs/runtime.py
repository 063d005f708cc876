"""Process-wide wiring of the job store, scheduler, reaper and lifecycle service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from app.config import Settings
from app.jobs.dispatch import build_default_registry
from app.jobs.errors import PersistenceError
from app.jobs.reaper import JobReaper
from app.jobs.scheduler import JobScheduler
from app.jobs.worker import JobExecutor
from app.services.analysis import GeminiAnalysisService
from app.services.collaborators import Collaborators
from app.services.jobs import JobService
from app.services.storage_client import StorageClient, build_storage_client
from app.services.transcription import OpenAITranscriber
from app.services.youtube import YouTubeVideoSource
from app.storage.jobs_repo import JobsRepository
from app.storage.postgres_jobs_repo import PostgresJobsRepository
from app.storage.usage_repo import PostgresUsageRepository, UsageRepository

logger = logging.getLogger(__name__)


@dataclass
class JobRuntime:
  """Owns the background loops; started and stopped with the application lifespan."""

  settings: Settings
  service: JobService
  scheduler: JobScheduler
  reaper: JobReaper
  storage_client: StorageClient | None = None
  _stop_event: asyncio.Event = field(default_factory=asyncio.Event)
  _loops: list[asyncio.Task[None]] = field(default_factory=list)

  async def start(self) -> None:
    if self.storage_client is not None:
      await self.storage_client.ensure_bucket()
    try:
      sweep = await self.reaper.sweep_stale()
      logger.info("Startup stale sweep reclaimed=%d failed=%d", sweep.reclaimed, sweep.failed)
    except PersistenceError:
      logger.error("Startup stale sweep failed", exc_info=True)

    if not self.settings.scheduler_enabled:
      logger.info("Scheduler disabled; jobs will queue without being dispatched.")
      return
    self._stop_event.clear()
    self._loops = [
      asyncio.create_task(self.scheduler.run_periodically(self._stop_event), name="dispatch-loop"),
      asyncio.create_task(self.reaper.run_periodically(self._stop_event), name="reaper-loop"),
    ]
    logger.info("Scheduler started: interval=%.1fs max_concurrent=%d per_user=%d", self.settings.dispatch_interval_seconds, self.settings.max_concurrent_jobs, self.settings.max_jobs_per_user)

  async def stop(self) -> None:
    self._stop_event.set()
    if self._loops:
      await asyncio.gather(*self._loops, return_exceptions=True)
      self._loops = []
    await self.scheduler.shutdown()


def assemble_runtime(*, settings: Settings, jobs_repo: JobsRepository, usage_repo: UsageRepository, collaborators: Collaborators, storage_client: StorageClient | None = None) -> JobRuntime:
  """Wire a runtime from explicit collaborators."""
  executor = JobExecutor(jobs_repo=jobs_repo, usage_repo=usage_repo, collaborators=collaborators, registry=build_default_registry(settings), settings=settings)
  scheduler = JobScheduler(jobs_repo=jobs_repo, executor=executor, settings=settings)
  reaper = JobReaper(jobs_repo=jobs_repo, settings=settings, is_in_flight=scheduler.is_in_flight, object_store=collaborators.object_store)
  service = JobService(jobs_repo=jobs_repo, usage_repo=usage_repo, video_source=collaborators.video_source, settings=settings, dispatcher=scheduler)
  return JobRuntime(settings=settings, service=service, scheduler=scheduler, reaper=reaper, storage_client=storage_client)


def build_job_runtime(settings: Settings) -> JobRuntime:
  """Wire the production runtime backed by Postgres and the real collaborators."""
  storage_client = build_storage_client(settings)
  collaborators = Collaborators(
    video_source=YouTubeVideoSource(settings),
    analysis=GeminiAnalysisService(settings),
    transcriber=OpenAITranscriber(settings),
    object_store=storage_client,
  )
  return assemble_runtime(settings=settings, jobs_repo=PostgresJobsRepository(), usage_repo=PostgresUsageRepository(), collaborators=collaborators, storage_client=storage_client)
