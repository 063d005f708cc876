"""Admission control and lifecycle operations for video jobs."""

from __future__ import annotations

import copy
import logging
import math
from datetime import UTC, datetime
from typing import Any, Protocol

import msgspec

from app.config import Settings
from app.jobs.errors import JobNotFoundError, JobStateConflictError, JobValidationError, QuotaExceededError, UnauthorizedJobAccessError
from app.jobs.models import ACTIVE_STATUSES, CANCELLED_MESSAGE, RESTARTABLE_STATUSES, JobPayload, JobRecord, JobType, JobView, SubmitResult, TranscriptJobPayload, UploadJobPayload, YoutubeJobPayload, decode_payload, encode_payload
from app.services.collaborators import VideoSource
from app.storage.jobs_repo import JobsRepository
from app.storage.usage_repo import UsageRepository, usage_remaining
from app.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

_JOB_TYPES: frozenset[str] = frozenset({"youtube", "upload", "transcript"})


class DispatchHandle(Protocol):
  """The slice of the scheduler that lifecycle operations poke."""

  def request_tick(self) -> None: ...

  def release(self, job_id: str) -> None: ...


def estimate_wait_minutes(queue_position: int, *, max_concurrent_jobs: int, average_job_minutes: int) -> int:
  return math.ceil(queue_position / max_concurrent_jobs) * average_job_minutes


def parse_payload(job_type: str, payload: dict[str, Any] | None, *, max_upload_bytes: int) -> JobPayload:
  """Decode a submitted payload into the struct for its job type, rejecting mismatches."""
  if job_type not in _JOB_TYPES:
    raise JobValidationError(f"Unsupported job type: {job_type}")
  if not payload:
    raise JobValidationError("Payload must not be empty.")
  declared = payload.get("job_type", job_type)
  if declared != job_type:
    raise JobValidationError(f"Payload declares job type '{declared}' but the job type is '{job_type}'.")

  try:
    decoded = decode_payload({**payload, "job_type": job_type})
  except msgspec.ValidationError as exc:
    raise JobValidationError(f"Invalid {job_type} payload: {exc}") from exc

  if isinstance(decoded, YoutubeJobPayload) and not decoded.url.strip():
    raise JobValidationError("A YouTube URL is required.")
  if isinstance(decoded, TranscriptJobPayload) and not decoded.transcript.strip():
    raise JobValidationError("Transcript text must not be blank.")
  if isinstance(decoded, UploadJobPayload):
    if not decoded.content:
      raise JobValidationError("Uploaded file is empty.")
    if len(decoded.content) > max_upload_bytes:
      raise JobValidationError(f"Uploaded file exceeds the {max_upload_bytes} byte limit.")
  return decoded


class JobService:
  """Entry point for submit, status, list, cancel, retry and restart."""

  def __init__(self, *, jobs_repo: JobsRepository, usage_repo: UsageRepository, video_source: VideoSource, settings: Settings, dispatcher: DispatchHandle | None = None) -> None:
    self._jobs_repo = jobs_repo
    self._usage_repo = usage_repo
    self._video_source = video_source
    self._settings = settings
    self._dispatcher = dispatcher

  async def submit(self, user_id: str, job_type: JobType, payload: dict[str, Any] | None) -> SubmitResult:
    """Validate, quota-check and enqueue a new job."""
    decoded = parse_payload(job_type, payload, max_upload_bytes=self._settings.max_upload_bytes)
    await self._ensure_queue_capacity(user_id)
    remaining = await usage_remaining(self._usage_repo, user_id, usage_limit=self._settings.usage_limit)
    if remaining <= 0:
      raise QuotaExceededError(f"Usage limit of {self._settings.usage_limit} analyses reached.", code="USAGE_LIMIT_REACHED")

    video_title: str | None = None
    if isinstance(decoded, YoutubeJobPayload):
      # Resolve eagerly so bad URLs fail the request instead of a queued job.
      metadata = await self._video_source.fetch_video_metadata(decoded.url)
      video_title = metadata.title or None
    elif isinstance(decoded, UploadJobPayload):
      video_title = decoded.file_name

    pending_before = await self._jobs_repo.count_for_user(user_id, ("pending",))
    record = JobRecord(
      job_id=generate_job_id(),
      user_id=user_id,
      job_type=job_type,
      status="pending",
      payload=encode_payload(decoded),
      created_at=datetime.now(UTC),
      video_title=video_title,
      progress=0,
    )
    await self._jobs_repo.create_job(record)

    queue_position = pending_before + 1
    estimated = estimate_wait_minutes(queue_position, max_concurrent_jobs=self._settings.max_concurrent_jobs, average_job_minutes=self._settings.average_job_minutes)
    logger.info("Job %s (%s) queued for user %s at position %d", record.job_id, job_type, user_id, queue_position)
    self._trigger_dispatch()
    return SubmitResult(job_id=record.job_id, queue_position=queue_position, estimated_wait_minutes=estimated)

  async def get_status(self, job_id: str, requester_id: str) -> JobView:
    return JobView.from_record(await self._load_owned(job_id, requester_id))

  async def list_for_user(self, user_id: str) -> list[JobView]:
    records = await self._jobs_repo.list_for_user(user_id, limit=self._settings.list_limit)
    return [JobView.from_record(record) for record in records]

  async def cancel(self, job_id: str, requester_id: str) -> bool:
    """Cancel a pending or processing job; returns False when nothing changed."""
    await self._load_owned(job_id, requester_id)
    cancelled = await self._jobs_repo.cancel_job(job_id, error_message=CANCELLED_MESSAGE, error_code="CANCELLED", completed_at=datetime.now(UTC))
    if cancelled:
      logger.info("Job %s cancelled by user %s", job_id, requester_id)
      if self._dispatcher is not None:
        self._dispatcher.release(job_id)
    return cancelled

  async def retry(self, job_id: str, requester_id: str) -> str:
    """Enqueue a copy of a failed or cancelled job under a new id."""
    original = await self._load_restartable(job_id, requester_id, action="retried")
    await self._ensure_queue_capacity(requester_id)

    replacement = JobRecord(
      job_id=generate_job_id(),
      user_id=original.user_id,
      job_type=original.job_type,
      status="pending",
      payload=copy.deepcopy(original.payload),
      created_at=datetime.now(UTC),
      video_title=original.video_title,
      progress=0,
    )
    await self._jobs_repo.create_job(replacement)
    await self._jobs_repo.mark_retried(original.job_id, replacement.job_id)
    logger.info("Job %s retried as %s", original.job_id, replacement.job_id)
    self._trigger_dispatch()
    return replacement.job_id

  async def restart(self, job_id: str, requester_id: str) -> bool:
    """Reset a failed or cancelled job back to pending under the same id."""
    await self._load_restartable(job_id, requester_id, action="restarted")
    await self._ensure_queue_capacity(requester_id)
    restarted = await self._jobs_repo.restart_job(job_id)
    if restarted:
      logger.info("Job %s restarted", job_id)
      self._trigger_dispatch()
    return restarted

  async def _load_owned(self, job_id: str, requester_id: str) -> JobRecord:
    record = await self._jobs_repo.get_job(job_id)
    if record is None:
      raise JobNotFoundError("Job not found.")
    if record.user_id != requester_id:
      raise UnauthorizedJobAccessError("You do not have access to this job.")
    return record

  async def _load_restartable(self, job_id: str, requester_id: str, *, action: str) -> JobRecord:
    record = await self._load_owned(job_id, requester_id)
    if record.status not in RESTARTABLE_STATUSES:
      raise JobStateConflictError(f"Only failed or cancelled jobs can be {action}; job is {record.status}.")
    return record

  async def _ensure_queue_capacity(self, user_id: str) -> None:
    active = await self._jobs_repo.count_for_user(user_id, ACTIVE_STATUSES)
    if active >= self._settings.max_total_queue_size:
      raise QuotaExceededError(f"Queue limit of {self._settings.max_total_queue_size} active jobs reached.", code="QUEUE_FULL")

  def _trigger_dispatch(self) -> None:
    if self._dispatcher is None:
      return
    try:
      self._dispatcher.request_tick()
    except RuntimeError:
      logger.warning("Immediate dispatch could not be scheduled", exc_info=True)
