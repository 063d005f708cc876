"""Type-specific analysis pipelines executed for one claimed job."""

from __future__ import annotations

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Any

from starlette.concurrency import run_in_threadpool

from app.jobs import progress as checkpoints
from app.jobs.models import JobRecord, TranscriptJobPayload, UploadJobPayload, YoutubeJobPayload
from app.jobs.progress import JobProgressTracker
from app.services.collaborators import AnalysisContext, AnalysisService, Collaborators

logger = logging.getLogger(__name__)


async def run_core_analyses(analysis: AnalysisService, context: AnalysisContext) -> dict[str, Any]:
  """Run the four core analyses concurrently; any failure fails the whole set."""
  title, description, keywords, chapters = await asyncio.gather(
    analysis.rewrite_title(context),
    analysis.rewrite_description(context),
    analysis.extract_keywords(context),
    analysis.generate_chapters(context),
  )
  return {"title": title, "description": description, "keywords": keywords, "chapters": chapters.get("chapters", [])}


async def best_effort_thumbnail_ideas(analysis: AnalysisService, context: AnalysisContext, *, job_id: str) -> list[dict[str, Any]]:
  """Thumbnail ideas are optional; a failure is logged and yields no ideas."""
  try:
    return await analysis.generate_thumbnail_ideas(context)
  except Exception as exc:  # noqa: BLE001
    logger.warning("Thumbnail ideas failed for job %s: %s", job_id, exc)
    return []


async def run_youtube_pipeline(job: JobRecord, payload: YoutubeJobPayload, tracker: JobProgressTracker, collaborators: Collaborators) -> dict[str, Any]:
  source = collaborators.video_source
  metadata = await source.fetch_video_metadata(payload.url)
  await tracker.advance(checkpoints.METADATA_FETCHED, video_title=metadata.title or None)

  transcript = await source.fetch_transcript(payload.url, language=payload.language)
  await tracker.advance(checkpoints.TRANSCRIPT_FETCHED)

  context = AnalysisContext(
    transcript=transcript,
    language=payload.language,
    tone=payload.tone,
    title=metadata.title,
    description=metadata.description,
    duration_label=metadata.duration_label,
  )
  analyses = await run_core_analyses(collaborators.analysis, context)
  await tracker.advance(checkpoints.ANALYSES_DONE)

  thumbnail_ideas = await best_effort_thumbnail_ideas(collaborators.analysis, context, job_id=job.job_id)
  source_info = {"video_id": metadata.video_id, "title": metadata.title, "duration": metadata.duration_label, "url": payload.url}
  return {"source": source_info, **analyses, "thumbnail_ideas": thumbnail_ideas}


def _write_temp_file(data: bytes, *, suffix: str, temp_dir: str) -> Path:
  with tempfile.NamedTemporaryFile(mode="wb", suffix=suffix, prefix="tubeboost-", dir=temp_dir, delete=False) as handle:
    handle.write(data)
    return Path(handle.name)


async def run_upload_pipeline(job: JobRecord, payload: UploadJobPayload, tracker: JobProgressTracker, collaborators: Collaborators, *, temp_dir: str) -> dict[str, Any]:
  stored = await collaborators.object_store.store_file(job.user_id, payload.content, payload.content_type, payload.file_name)
  await tracker.advance(checkpoints.UPLOAD_STORED)

  temp_path = await run_in_threadpool(_write_temp_file, payload.content, suffix=Path(payload.file_name).suffix, temp_dir=temp_dir)
  try:
    transcript = await collaborators.transcriber.transcribe_file(temp_path, language=payload.language)
    await tracker.advance(checkpoints.UPLOAD_TRANSCRIBED)

    context = AnalysisContext(transcript=transcript, language=payload.language, title=job.video_title)
    summary = await collaborators.analysis.summarize(context)
    await tracker.advance(checkpoints.UPLOAD_SUMMARIZED)

    analyses = await run_core_analyses(collaborators.analysis, context)
    await tracker.advance(checkpoints.ANALYSES_DONE)
  finally:
    temp_path.unlink(missing_ok=True)

  thumbnail_ideas = await best_effort_thumbnail_ideas(collaborators.analysis, context, job_id=job.job_id)
  source_info = {"file_name": payload.file_name, "content_type": payload.content_type, "storage_key": stored.key, "url": stored.public_url}
  return {"source": source_info, "summary": summary, **analyses, "thumbnail_ideas": thumbnail_ideas}


async def run_transcript_pipeline(job: JobRecord, payload: TranscriptJobPayload, tracker: JobProgressTracker, collaborators: Collaborators) -> dict[str, Any]:
  context = AnalysisContext(transcript=payload.transcript, language=payload.language, tone=payload.tone, title=job.video_title)
  summary = await collaborators.analysis.summarize(context)
  await tracker.advance(checkpoints.TRANSCRIPT_SUMMARIZED)

  analyses = await run_core_analyses(collaborators.analysis, context)
  await tracker.advance(checkpoints.TRANSCRIPT_ANALYZED)

  thumbnail_ideas = await best_effort_thumbnail_ideas(collaborators.analysis, context, job_id=job.job_id)
  await tracker.advance(checkpoints.ANALYSES_DONE)
  return {"source": {"characters": len(payload.transcript)}, "summary": summary, **analyses, "thumbnail_ideas": thumbnail_ideas}
