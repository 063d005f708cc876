from __future__ import annotations

import pytest
from conftest import InMemoryJobsRepo, make_job

from app.jobs.progress import JobCancelledError, JobProgressTracker


@pytest.mark.anyio
async def test_tracker_only_moves_forward(jobs_repo: InMemoryJobsRepo) -> None:
  await jobs_repo.create_job(make_job("j1", "u1", status="processing", progress=10))
  tracker = JobProgressTracker(jobs_repo, "j1")

  await tracker.advance(40)
  await tracker.advance(20)

  assert tracker.current == 40
  assert jobs_repo.jobs["j1"].progress == 40
  assert jobs_repo.progress_writes == [("j1", 40)]


@pytest.mark.anyio
async def test_tracker_writes_a_title_at_the_current_checkpoint(jobs_repo: InMemoryJobsRepo) -> None:
  await jobs_repo.create_job(make_job("j1", "u1", status="processing", progress=20))
  tracker = JobProgressTracker(jobs_repo, "j1", initial=20)

  await tracker.advance(20, video_title="Resolved")

  assert jobs_repo.jobs["j1"].video_title == "Resolved"
  assert jobs_repo.jobs["j1"].progress == 20


@pytest.mark.anyio
async def test_tracker_raises_once_the_job_left_processing(jobs_repo: InMemoryJobsRepo) -> None:
  await jobs_repo.create_job(make_job("j1", "u1", status="cancelled", progress=30))
  tracker = JobProgressTracker(jobs_repo, "j1")

  with pytest.raises(JobCancelledError):
    await tracker.advance(50)

  assert jobs_repo.jobs["j1"].progress == 30
  assert tracker.current == 10


@pytest.mark.anyio
async def test_tracker_from_a_superseded_claim_is_refused(jobs_repo: InMemoryJobsRepo) -> None:
  await jobs_repo.create_job(make_job("j1", "u1", status="processing", progress=10, attempt=2))
  tracker = JobProgressTracker(jobs_repo, "j1", attempt=1)

  with pytest.raises(JobCancelledError):
    await tracker.advance(40)

  assert jobs_repo.jobs["j1"].progress == 10
  assert jobs_repo.progress_writes == []
