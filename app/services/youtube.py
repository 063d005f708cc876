"""YouTube metadata and transcript access."""

from __future__ import annotations

import logging
import re

import httpx
from starlette.concurrency import run_in_threadpool
from youtube_transcript_api import CouldNotRetrieveTranscript, YouTubeTranscriptApi

from app.config import Settings
from app.jobs.errors import PipelineError, SourceError, TranscriptUnavailableError, VideoNotFoundError
from app.services.collaborators import VideoMetadata

logger = logging.getLogger(__name__)

_VIDEO_ID_RE = re.compile(r"(?:v=|/)([0-9A-Za-z_-]{11})(?:[?&/]|$)")
_BARE_ID_RE = re.compile(r"^[0-9A-Za-z_-]{11}$")
_DURATION_RE = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


def extract_video_id(url: str) -> str:
  """Return the 11-character video id from a watch, short, embed or youtu.be URL."""
  candidate = (url or "").strip()
  if _BARE_ID_RE.match(candidate):
    return candidate
  match = _VIDEO_ID_RE.search(candidate)
  if match is None:
    raise SourceError(f"Could not extract a YouTube video id from '{candidate}'.")
  return match.group(1)


def format_duration(iso_duration: str | None) -> str | None:
  """Convert an ISO-8601 duration such as PT1H2M3S into 1:02:03."""
  if not iso_duration:
    return None
  match = _DURATION_RE.match(iso_duration)
  if match is None:
    return None
  days, hours, minutes, seconds = (int(part) if part else 0 for part in match.groups())
  hours += days * 24
  if hours:
    return f"{hours}:{minutes:02d}:{seconds:02d}"
  return f"{minutes}:{seconds:02d}"


class YouTubeVideoSource:
  """Resolve videos through the YouTube Data API and fetch captions with youtube-transcript-api."""

  def __init__(self, settings: Settings, *, http_client: httpx.AsyncClient | None = None, transcript_api: YouTubeTranscriptApi | None = None) -> None:
    self._api_key = settings.youtube_api_key
    self._base_url = settings.youtube_api_base_url.rstrip("/")
    self._http_client = http_client
    self._transcript_api = transcript_api or YouTubeTranscriptApi()

  async def fetch_video_metadata(self, url: str) -> VideoMetadata:
    video_id = extract_video_id(url)
    if not self._api_key:
      raise PipelineError("YouTube API key is not configured.")

    params = {"part": "snippet,contentDetails,statistics", "id": video_id, "key": self._api_key}
    try:
      if self._http_client is not None:
        response = await self._http_client.get(f"{self._base_url}/videos", params=params)
      else:
        async with httpx.AsyncClient(timeout=10.0) as client:
          response = await client.get(f"{self._base_url}/videos", params=params)
      response.raise_for_status()
    except httpx.HTTPError as exc:
      logger.warning("YouTube metadata lookup failed for %s: %s", video_id, exc)
      raise SourceError(f"Failed to resolve YouTube video {video_id}.") from exc

    items = response.json().get("items") or []
    if not items:
      raise VideoNotFoundError(f"YouTube video {video_id} was not found.")

    snippet = items[0].get("snippet") or {}
    content_details = items[0].get("contentDetails") or {}
    return VideoMetadata(
      video_id=video_id,
      title=str(snippet.get("title") or ""),
      duration_label=format_duration(content_details.get("duration")),
      description=str(snippet.get("description") or ""),
      tags=[str(tag) for tag in snippet.get("tags") or []],
    )

  async def fetch_transcript(self, url: str, *, language: str = "en") -> str:
    video_id = extract_video_id(url)
    languages = [language] if language == "en" else [language, "en"]
    try:
      fetched = await run_in_threadpool(self._transcript_api.fetch, video_id, languages=languages)
    except CouldNotRetrieveTranscript as exc:
      raise TranscriptUnavailableError(f"No transcript available for video {video_id}.") from exc

    text = " ".join(snippet.text.strip() for snippet in fetched if snippet.text.strip())
    if not text:
      raise TranscriptUnavailableError(f"Transcript for video {video_id} is empty.")
    return text
