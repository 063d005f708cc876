"""Shared FastAPI dependencies for caller identity and the job runtime."""

from __future__ import annotations

from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from app.jobs.runtime import JobRuntime
from app.jobs.scheduler import JobScheduler
from app.services.jobs import JobService


async def get_current_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
  """Return the caller id forwarded by the authenticating gateway."""
  user_id = (x_user_id or "").strip()
  if not user_id:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header.")
  return user_id


def get_job_runtime(request: Request) -> JobRuntime:
  runtime = getattr(request.app.state, "job_runtime", None)
  if runtime is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Job runtime is not initialized.")
  return runtime


def get_job_service(request: Request) -> JobService:
  return get_job_runtime(request).service


def get_scheduler(request: Request) -> JobScheduler:
  return get_job_runtime(request).scheduler
