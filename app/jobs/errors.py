"""Error taxonomy for the video job queue.

Every error carries a stable machine-readable ``code`` (persisted on failed rows
and returned to API callers) and the HTTP status the API layer maps it to.
"""

from __future__ import annotations


class JobError(Exception):
  """Base class for job queue errors."""

  code = "JOB_ERROR"
  http_status = 500

  def __init__(self, message: str, *, code: str | None = None) -> None:
    super().__init__(message)
    self.message = message
    if code is not None:
      self.code = code


class JobValidationError(JobError):
  """Payload is missing, malformed, or inconsistent with the job type."""

  code = "VALIDATION_ERROR"
  http_status = 422


class QuotaExceededError(JobError):
  """The caller hit the active-queue bound or the usage ceiling."""

  code = "QUEUE_FULL"
  http_status = 429


class UnauthorizedJobAccessError(JobError):
  """The requester does not own the job."""

  code = "FORBIDDEN"
  http_status = 403


class JobNotFoundError(JobError):
  code = "JOB_NOT_FOUND"
  http_status = 404


class JobStateConflictError(JobError):
  """The job is not in a state that allows the requested transition."""

  code = "INVALID_STATE"
  http_status = 409


class SourceError(JobError):
  """The video source could not be resolved or has no usable content."""

  code = "INVALID_SOURCE"
  http_status = 422


class VideoNotFoundError(SourceError):
  code = "VIDEO_NOT_FOUND"


class TranscriptUnavailableError(SourceError):
  code = "TRANSCRIPT_UNAVAILABLE"


class PipelineError(JobError):
  """An external analysis, storage, or transcription step failed."""

  code = "PIPELINE_ERROR"
  http_status = 502


class PersistenceError(JobError):
  """The job store could not complete an operation."""

  code = "PERSISTENCE_ERROR"
  http_status = 503
