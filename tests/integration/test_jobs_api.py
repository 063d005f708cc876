"""HTTP contract tests for the jobs router using in-memory stores."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import MagicMock

import pytest
from conftest import InMemoryJobsRepo, InMemoryUsageRepo, build_collaborators, make_job
from fastapi.testclient import TestClient

from app.api.deps import get_job_service, get_scheduler
from app.config import get_settings
from app.jobs.scheduler import JobScheduler
from app.main import app
from app.services.jobs import JobService

OWNER = {"X-User-Id": "u1"}


@pytest.fixture
def api(settings):
  jobs_repo = InMemoryJobsRepo()
  usage_repo = InMemoryUsageRepo()
  settings = replace(settings, max_total_queue_size=3)
  service = JobService(jobs_repo=jobs_repo, usage_repo=usage_repo, video_source=build_collaborators().video_source, settings=settings)
  scheduler = JobScheduler(jobs_repo=jobs_repo, executor=MagicMock(), settings=settings)
  app.dependency_overrides[get_job_service] = lambda: service
  app.dependency_overrides[get_scheduler] = lambda: scheduler
  app.dependency_overrides[get_settings] = lambda: settings
  try:
    yield TestClient(app), jobs_repo
  finally:
    app.dependency_overrides.clear()


def test_submit_and_poll_a_job(api) -> None:
  client, _ = api

  response = client.post("/v1/jobs", json={"job_type": "youtube", "payload": {"url": "https://youtu.be/dQw4w9WgXcQ"}}, headers=OWNER)

  assert response.status_code == 202
  body = response.json()
  assert body["queue_position"] == 1
  assert body["estimated_wait_minutes"] == 2
  assert response.headers["x-request-id"]

  status_response = client.get(f"/v1/jobs/{body['job_id']}", headers=OWNER)
  assert status_response.status_code == 200
  status_body = status_response.json()
  assert status_body["status"] == "pending"
  assert status_body["progress"] == 0
  assert status_body["video_title"] == "Original Title"


def test_missing_caller_identity_is_rejected(api) -> None:
  client, _ = api
  response = client.get("/v1/jobs")
  assert response.status_code == 401


def test_foreign_and_unknown_jobs(api) -> None:
  client, jobs_repo = api
  jobs_repo.jobs["j1"] = make_job("j1", "someone-else")

  forbidden = client.get("/v1/jobs/j1", headers=OWNER)
  missing = client.get("/v1/jobs/unknown", headers=OWNER)

  assert forbidden.status_code == 403
  assert forbidden.json()["detail"]["error"] == "FORBIDDEN"
  assert missing.status_code == 404
  assert missing.json()["detail"]["error"] == "JOB_NOT_FOUND"


def test_cancel_twice_then_retry_and_restart(api) -> None:
  client, jobs_repo = api
  jobs_repo.jobs["j1"] = make_job("j1", "u1")

  first = client.post("/v1/jobs/j1/cancel", headers=OWNER)
  second = client.post("/v1/jobs/j1/cancel", headers=OWNER)
  assert first.json() == {"cancelled": True}
  assert second.json() == {"cancelled": False}

  retried = client.post("/v1/jobs/j1/retry", headers=OWNER)
  assert retried.status_code == 202
  new_job_id = retried.json()["new_job_id"]
  assert jobs_repo.jobs[new_job_id].status == "pending"

  restarted = client.post("/v1/jobs/j1/restart", headers=OWNER)
  assert restarted.json() == {"restarted": True}
  assert jobs_repo.jobs["j1"].status == "pending"


def test_retry_of_a_pending_job_conflicts(api) -> None:
  client, jobs_repo = api
  jobs_repo.jobs["j1"] = make_job("j1", "u1")

  response = client.post("/v1/jobs/j1/retry", headers=OWNER)

  assert response.status_code == 409
  assert response.json()["detail"]["error"] == "INVALID_STATE"


def test_full_queue_returns_429(api) -> None:
  client, _ = api
  for _ in range(3):
    assert client.post("/v1/jobs", json={"job_type": "transcript", "payload": {"transcript": "words"}}, headers=OWNER).status_code == 202

  response = client.post("/v1/jobs", json={"job_type": "transcript", "payload": {"transcript": "more"}}, headers=OWNER)

  assert response.status_code == 429
  assert response.json()["detail"]["error"] == "QUEUE_FULL"


def test_invalid_payloads_return_422(api) -> None:
  client, jobs_repo = api

  unknown_type = client.post("/v1/jobs", json={"job_type": "podcast", "payload": {}}, headers=OWNER)
  blank = client.post("/v1/jobs", json={"job_type": "transcript", "payload": {"transcript": "  "}}, headers=OWNER)

  assert unknown_type.status_code == 422
  assert blank.status_code == 422
  assert blank.json()["detail"]["error"] == "VALIDATION_ERROR"
  assert jobs_repo.jobs == {}


def test_upload_is_queued_and_redacted(api) -> None:
  client, jobs_repo = api

  response = client.post("/v1/jobs/upload", files={"file": ("clip.mp4", b"video-bytes", "video/mp4")}, data={"language": "en"}, headers=OWNER)

  assert response.status_code == 202
  job_id = response.json()["job_id"]
  assert jobs_repo.jobs[job_id].job_type == "upload"
  listed = client.get("/v1/jobs", headers=OWNER).json()
  assert listed[0]["payload"] == {"job_type": "upload", "file_name": "clip.mp4", "content_type": "video/mp4", "language": "en"}


def test_oversize_upload_is_rejected(api) -> None:
  client, jobs_repo = api

  response = client.post("/v1/jobs/upload", files={"file": ("big.mp4", b"x" * 2048, "video/mp4")}, headers=OWNER)

  assert response.status_code == 422
  assert jobs_repo.jobs == {}


def test_scheduler_metrics_snapshot(api) -> None:
  client, _ = api
  response = client.get("/v1/jobs/metrics/scheduler", headers=OWNER)
  assert response.status_code == 200
  assert response.json()["ticks"] == 0


def test_health() -> None:
  response = TestClient(app).get("/health")
  assert response.status_code == 200
  assert response.json()["status"] == "ok"
