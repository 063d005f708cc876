"""SQL shape of the hot job-store reads, compiled for Postgres."""

from __future__ import annotations

import pytest
from conftest import InMemoryJobsRepo, make_job
from sqlalchemy.dialects import postgresql

from app.jobs.models import PendingJob, UploadJobPayload, encode_payload
from app.storage.postgres_jobs_repo import pending_queue_query, user_listing_query


def _sql(statement) -> str:
  return str(statement.compile(dialect=postgresql.dialect()))


def test_pending_queue_query_never_reads_payloads() -> None:
  sql = _sql(pending_queue_query(50))

  assert "video_jobs.job_id, video_jobs.user_id, video_jobs.created_at" in sql
  assert "payload" not in sql
  assert "result" not in sql
  assert "ORDER BY video_jobs.created_at ASC, video_jobs.job_id ASC" in sql


def test_user_listing_strips_upload_bytes_in_the_database() -> None:
  sql = _sql(user_listing_query("u1", 50))

  assert "video_jobs.payload - CAST(" in sql
  assert sql.count("video_jobs.payload") == 1
  assert "listed_payload" in sql


@pytest.mark.anyio
async def test_store_hands_the_dispatcher_slim_pending_entries(jobs_repo: InMemoryJobsRepo) -> None:
  upload = encode_payload(UploadJobPayload(file_name="clip.mp4", content_type="video/mp4", content=b"video-bytes"))
  await jobs_repo.create_job(make_job("up", "u1", job_type="upload", payload=upload))

  pending = await jobs_repo.find_pending(10)
  listed = await jobs_repo.list_for_user("u1", limit=10)

  assert pending == [PendingJob(job_id="up", user_id="u1", created_at=jobs_repo.jobs["up"].created_at)]
  assert "content" not in listed[0].payload
  assert "content" in jobs_repo.jobs["up"].payload
