"""Domain models for video optimization jobs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

import msgspec

JobStatus = Literal["pending", "processing", "completed", "failed", "cancelled"]
JobType = Literal["youtube", "upload", "transcript"]

ACTIVE_STATUSES: tuple[JobStatus, ...] = ("pending", "processing")
TERMINAL_STATUSES: tuple[JobStatus, ...] = ("completed", "failed", "cancelled")
RESTARTABLE_STATUSES: tuple[JobStatus, ...] = ("failed", "cancelled")

CANCELLED_MESSAGE = "Job cancelled by user"


class YoutubeJobPayload(msgspec.Struct, tag_field="job_type", tag="youtube", forbid_unknown_fields=True):
  url: str
  language: str = "en"
  tone: str = "engaging"


class UploadJobPayload(msgspec.Struct, tag_field="job_type", tag="upload", forbid_unknown_fields=True):
  """Raw media uploaded by the caller; ``content`` travels as base64 in JSON."""

  file_name: str
  content_type: str
  content: bytes
  language: str = "en"


class TranscriptJobPayload(msgspec.Struct, tag_field="job_type", tag="transcript", forbid_unknown_fields=True):
  transcript: str
  language: str = "en"
  tone: str = "engaging"


JobPayload = YoutubeJobPayload | UploadJobPayload | TranscriptJobPayload


def decode_payload(raw: dict[str, Any]) -> JobPayload:
  """Convert a stored or submitted payload mapping into its tagged payload struct."""
  return msgspec.convert(raw, type=JobPayload)


def encode_payload(payload: JobPayload) -> dict[str, Any]:
  """Return the JSON-safe mapping persisted in the payload column."""
  return msgspec.to_builtins(payload)


def redact_payload(raw: dict[str, Any]) -> dict[str, Any]:
  """Strip uploaded bytes so views never echo file content back."""
  if raw.get("job_type") != "upload":
    return dict(raw)
  return {key: value for key, value in raw.items() if key != "content"}


@dataclass
class JobRecord:
  """Represents a persisted video optimization job."""

  job_id: str
  user_id: str
  job_type: JobType
  status: JobStatus
  payload: dict[str, Any]
  created_at: datetime
  video_title: str | None = None
  progress: int = 0
  result: dict[str, Any] | None = None
  error_message: str | None = None
  error_code: str | None = None
  started_at: datetime | None = None
  completed_at: datetime | None = None
  reclaim_count: int = 0
  retried_as_job_id: str | None = None
  attempt: int = 0

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class PendingJob:
  """Queue entry read by the dispatcher; the full row comes back from the claim."""

  job_id: str
  user_id: str
  created_at: datetime


@dataclass(frozen=True)
class PurgedJob:
  """Row removed by retention cleanup, with the uploaded object it still references."""

  job_id: str
  user_id: str
  storage_key: str | None = None


@dataclass(frozen=True)
class JobView:
  """Caller-facing projection of a job row."""

  job_id: str
  job_type: JobType
  status: JobStatus
  progress: int
  video_title: str | None
  payload: dict[str, Any]
  result: dict[str, Any] | None
  error_message: str | None
  error_code: str | None
  created_at: datetime
  started_at: datetime | None
  completed_at: datetime | None
  retried_as_job_id: str | None

  @classmethod
  def from_record(cls, record: JobRecord) -> JobView:
    return cls(
      job_id=record.job_id,
      job_type=record.job_type,
      status=record.status,
      progress=record.progress,
      video_title=record.video_title,
      payload=redact_payload(record.payload),
      result=record.result,
      error_message=record.error_message,
      error_code=record.error_code,
      created_at=record.created_at,
      started_at=record.started_at,
      completed_at=record.completed_at,
      retried_as_job_id=record.retried_as_job_id,
    )


@dataclass(frozen=True)
class SubmitResult:
  job_id: str
  queue_position: int
  estimated_wait_minutes: int
