from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

from app.jobs.models import JobStatus, JobType, JobView, SubmitResult


class JobCreateRequest(BaseModel):
  """Request payload for queueing a video job."""

  job_type: JobType
  payload: dict[str, Any] = Field(default_factory=dict, description="Job-type-specific payload (url, transcript, ...).")
  model_config = ConfigDict(extra="forbid")


class JobCreateResponse(BaseModel):
  """Response payload for job submission."""

  job_id: StrictStr
  queue_position: StrictInt = Field(ge=1, description="1-based position among the caller's pending jobs.")
  estimated_wait_minutes: StrictInt = Field(ge=0)

  @classmethod
  def from_result(cls, result: SubmitResult) -> JobCreateResponse:
    return cls(job_id=result.job_id, queue_position=result.queue_position, estimated_wait_minutes=result.estimated_wait_minutes)


class JobStatusResponse(BaseModel):
  """Status payload for a video job."""

  job_id: StrictStr
  job_type: JobType
  status: JobStatus
  progress: StrictInt = Field(ge=0, le=100)
  video_title: StrictStr | None = None
  payload: dict[str, Any] = Field(default_factory=dict, description="Submitted payload; uploaded file bytes are omitted.")
  result: dict[str, Any] | None = None
  error_message: StrictStr | None = None
  error_code: StrictStr | None = None
  created_at: datetime
  started_at: datetime | None = None
  completed_at: datetime | None = None
  retried_as_job_id: StrictStr | None = None

  @classmethod
  def from_view(cls, view: JobView) -> JobStatusResponse:
    return cls(
      job_id=view.job_id,
      job_type=view.job_type,
      status=view.status,
      progress=view.progress,
      video_title=view.video_title,
      payload=view.payload,
      result=view.result,
      error_message=view.error_message,
      error_code=view.error_code,
      created_at=view.created_at,
      started_at=view.started_at,
      completed_at=view.completed_at,
      retried_as_job_id=view.retried_as_job_id,
    )


class JobCancelResponse(BaseModel):
  cancelled: bool


class JobRetryResponse(BaseModel):
  new_job_id: StrictStr


class JobRestartResponse(BaseModel):
  restarted: bool


class SchedulerMetricsResponse(BaseModel):
  """Dispatcher snapshot for operators."""

  ticks: StrictInt
  skipped_ticks: StrictInt
  queue_depth: StrictInt
  processing: StrictInt
  in_flight: StrictInt
  admitted_last_tick: StrictInt
  admitted_total: StrictInt
  high_queue_warnings: StrictInt
  last_tick_at: StrictStr | None = None
