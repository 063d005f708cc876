import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from app.api.deps import get_current_user_id, get_job_service, get_scheduler
from app.api.models import JobCancelResponse, JobCreateRequest, JobCreateResponse, JobRestartResponse, JobRetryResponse, JobStatusResponse, SchedulerMetricsResponse
from app.config import Settings, get_settings
from app.jobs.scheduler import JobScheduler
from app.services.jobs import JobService

router = APIRouter()
logger = logging.getLogger("app.api.routes.jobs")

CurrentUser = Annotated[str, Depends(get_current_user_id)]
Service = Annotated[JobService, Depends(get_job_service)]


@router.post("", response_model=JobCreateResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_job(request: JobCreateRequest, user_id: CurrentUser, service: Service) -> JobCreateResponse:
  """Queue a YouTube or transcript analysis job."""
  result = await service.submit(user_id, request.job_type, request.payload)
  return JobCreateResponse.from_result(result)


@router.post("/upload", response_model=JobCreateResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_upload_job(  # noqa: B008
  user_id: CurrentUser,
  service: Service,
  file: UploadFile = File(...),  # noqa: B008
  language: str = Form("en"),
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> JobCreateResponse:
  """Queue an analysis job for an uploaded audio or video file."""
  # Read one byte past the limit so oversize uploads are rejected by validation.
  content = await file.read(settings.max_upload_bytes + 1)
  payload = {"file_name": file.filename or "upload", "content_type": file.content_type or "application/octet-stream", "content": content, "language": language}
  result = await service.submit(user_id, "upload", payload)
  return JobCreateResponse.from_result(result)


@router.get("", response_model=list[JobStatusResponse])
async def list_jobs(user_id: CurrentUser, service: Service) -> list[JobStatusResponse]:
  """List the caller's most recent jobs."""
  views = await service.list_for_user(user_id)
  return [JobStatusResponse.from_view(view) for view in views]


@router.get("/metrics/scheduler", response_model=SchedulerMetricsResponse)
async def scheduler_metrics(_: CurrentUser, scheduler: Annotated[JobScheduler, Depends(get_scheduler)]) -> SchedulerMetricsResponse:
  """Return the dispatcher's in-process metrics snapshot."""
  return SchedulerMetricsResponse(**scheduler.metrics.snapshot())


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(job_id: str, user_id: CurrentUser, service: Service) -> JobStatusResponse:
  """Fetch the status and result of a job."""
  return JobStatusResponse.from_view(await service.get_status(job_id, user_id))


@router.post("/{job_id}/cancel", response_model=JobCancelResponse)
async def cancel_job(job_id: str, user_id: CurrentUser, service: Service) -> JobCancelResponse:
  """Cancel a pending or processing job."""
  return JobCancelResponse(cancelled=await service.cancel(job_id, user_id))


@router.post("/{job_id}/retry", response_model=JobRetryResponse, status_code=status.HTTP_202_ACCEPTED)
async def retry_job(job_id: str, user_id: CurrentUser, service: Service) -> JobRetryResponse:
  """Queue a copy of a failed or cancelled job under a new id."""
  return JobRetryResponse(new_job_id=await service.retry(job_id, user_id))


@router.post("/{job_id}/restart", response_model=JobRestartResponse)
async def restart_job(job_id: str, user_id: CurrentUser, service: Service) -> JobRestartResponse:
  """Reset a failed or cancelled job back to the queue."""
  return JobRestartResponse(restarted=await service.restart(job_id, user_id))
