"""Periodic dispatcher that admits pending jobs under concurrency and fairness limits."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter, deque
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

from app.config import Settings
from app.jobs import progress as checkpoints
from app.jobs.errors import PersistenceError
from app.jobs.models import JobRecord, PendingJob
from app.jobs.worker import JobExecutor
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


@dataclass
class SchedulerMetrics:
  """In-process snapshot of dispatcher activity."""

  ticks: int = 0
  skipped_ticks: int = 0
  queue_depth: int = 0
  processing: int = 0
  in_flight: int = 0
  admitted_last_tick: int = 0
  admitted_total: int = 0
  high_queue_warnings: int = 0
  last_tick_at: datetime | None = None

  def snapshot(self) -> dict[str, Any]:
    data = asdict(self)
    data["last_tick_at"] = self.last_tick_at.isoformat() if self.last_tick_at else None
    return data


def select_fair_batch(pending: Iterable[PendingJob], processing_by_user: Mapping[str, int], *, per_user_limit: int, slots: int) -> list[PendingJob]:
  """Pick jobs round-robin across users, one per user per round.

  Users are visited in order of their oldest pending job and each user's jobs
  stay FIFO. A user is skipped once their processing plus admitted jobs reach
  ``per_user_limit``; selection stops when ``slots`` is exhausted or a full
  round admits nothing.
  """
  queues: dict[str, deque[PendingJob]] = {}
  for job in sorted(pending, key=lambda item: item.created_at):
    queues.setdefault(job.user_id, deque()).append(job)

  admitted: Counter[str] = Counter()
  selected: list[PendingJob] = []
  while slots > 0:
    progressed = False
    for user_id, queue in queues.items():
      if slots <= 0:
        break
      if not queue or processing_by_user.get(user_id, 0) + admitted[user_id] >= per_user_limit:
        continue
      selected.append(queue.popleft())
      admitted[user_id] += 1
      slots -= 1
      progressed = True
    if not progressed:
      break
  return selected


class JobScheduler:
  """Owns the dispatch lock, the in-flight claims and executor tasks for this process.

  An in-flight entry maps a job id to the claim attempt this process is running.
  A finished task only drops the entry while it still holds that attempt, so a
  run that was cancelled and then superseded by a restart never clears the
  newer run's token.
  """

  def __init__(self, *, jobs_repo: JobsRepository, executor: JobExecutor, settings: Settings) -> None:
    self._jobs_repo = jobs_repo
    self._executor = executor
    self._settings = settings
    self._lock = asyncio.Lock()
    self._in_flight: dict[str, int] = {}
    self._tasks: set[asyncio.Task[None]] = set()
    self.metrics = SchedulerMetrics()

  @property
  def in_flight(self) -> frozenset[str]:
    return frozenset(self._in_flight)

  def is_in_flight(self, job_id: str) -> bool:
    return job_id in self._in_flight

  def release(self, job_id: str) -> None:
    """Drop the in-flight token for a job, e.g. after it was cancelled."""
    self._in_flight.pop(job_id, None)

  async def tick(self) -> list[str]:
    """Run one dispatch pass and return the ids of the jobs it started."""
    if self._lock.locked():
      self.metrics.skipped_ticks += 1
      return []

    async with self._lock:
      max_concurrent = self._settings.max_concurrent_jobs
      if len(self._in_flight) >= max_concurrent:
        self.metrics.skipped_ticks += 1
        return []
      try:
        return await self._dispatch(max_concurrent)
      except PersistenceError:
        logger.error("Dispatch tick aborted by a job store failure", exc_info=True)
        return []

  async def _dispatch(self, max_concurrent: int) -> list[str]:
    pending = await self._jobs_repo.find_pending(self._settings.dispatch_batch_size)
    processing_by_user = await self._jobs_repo.processing_counts_by_user()
    processing_total = sum(processing_by_user.values())

    if len(pending) > self._settings.queue_depth_warning:
      self.metrics.high_queue_warnings += 1
      logger.warning("High queue depth: %d pending jobs (processing=%d)", len(pending), processing_total)

    slots = max_concurrent - max(len(self._in_flight), processing_total)
    selected = select_fair_batch(pending, processing_by_user, per_user_limit=self._settings.max_jobs_per_user, slots=slots) if slots > 0 else []

    started: list[str] = []
    for job in selected:
      claimed = await self._jobs_repo.claim_job(job.job_id, started_at=datetime.now(UTC), progress=checkpoints.CLAIMED)
      if claimed is None:
        logger.debug("Job %s was claimed elsewhere; skipping", job.job_id)
        continue
      self._launch(claimed)
      started.append(claimed.job_id)

    self._record_tick(queue_depth=len(pending) - len(started), processing=processing_total + len(started), admitted=len(started))
    return started

  def _record_tick(self, *, queue_depth: int, processing: int, admitted: int) -> None:
    metrics = self.metrics
    metrics.ticks += 1
    metrics.queue_depth = queue_depth
    metrics.processing = processing
    metrics.in_flight = len(self._in_flight)
    metrics.admitted_last_tick = admitted
    metrics.admitted_total += admitted
    metrics.last_tick_at = datetime.now(UTC)
    logger.debug("Dispatch tick: queue_depth=%d processing=%d admitted=%d", queue_depth, processing, admitted)

  def _launch(self, job: JobRecord) -> None:
    self._in_flight[job.job_id] = job.attempt
    task = asyncio.create_task(self._run_job(job), name=f"job-{job.job_id}")
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)

  async def _run_job(self, job: JobRecord) -> None:
    try:
      await self._executor.run(job)
    except Exception:  # noqa: BLE001
      logger.error("Executor crashed for job %s", job.job_id, exc_info=True)
    finally:
      if self._in_flight.get(job.job_id) == job.attempt:
        del self._in_flight[job.job_id]

  def request_tick(self) -> None:
    """Schedule a best-effort tick without waiting for it."""
    task = asyncio.create_task(self._safe_tick(), name="dispatch-tick")
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)

  async def _safe_tick(self) -> None:
    try:
      await self.tick()
    except Exception:  # noqa: BLE001
      logger.error("Immediate dispatch tick failed", exc_info=True)

  async def run_periodically(self, stop_event: asyncio.Event) -> None:
    """Tick every dispatch interval until ``stop_event`` is set."""
    interval = self._settings.dispatch_interval_seconds
    while not stop_event.is_set():
      await self._safe_tick()
      try:
        await asyncio.wait_for(stop_event.wait(), timeout=interval)
      except TimeoutError:
        continue

  async def wait_idle(self) -> None:
    """Wait until every executor and pending tick task has finished."""
    while self._tasks:
      await asyncio.gather(*list(self._tasks), return_exceptions=True)

  async def shutdown(self, *, grace_seconds: float = 5.0) -> None:
    """Give running jobs a grace period, then cancel them; stale rows are reclaimed on next start."""
    if not self._tasks:
      return
    _, still_running = await asyncio.wait(list(self._tasks), timeout=grace_seconds)
    for task in still_running:
      task.cancel()
    if still_running:
      logger.warning("Cancelled %d running job(s) at shutdown", len(still_running))
      await asyncio.gather(*still_running, return_exceptions=True)
