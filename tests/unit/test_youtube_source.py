from __future__ import annotations

from dataclasses import replace
from types import SimpleNamespace

import httpx
import pytest
from youtube_transcript_api import TranscriptsDisabled

from app.jobs.errors import PipelineError, SourceError, TranscriptUnavailableError, VideoNotFoundError
from app.services.youtube import YouTubeVideoSource, extract_video_id, format_duration

WATCH_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


class FakeTranscriptApi:
  def __init__(self, snippets=None, error: Exception | None = None) -> None:
    self._snippets = snippets or []
    self._error = error
    self.calls: list[tuple[str, list[str]]] = []

  def fetch(self, video_id: str, languages: list[str]):
    self.calls.append((video_id, languages))
    if self._error is not None:
      raise self._error
    return [SimpleNamespace(text=text) for text in self._snippets]


def _source(settings, handler, transcript_api=None) -> YouTubeVideoSource:
  client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
  return YouTubeVideoSource(replace(settings, youtube_api_key="test-key"), http_client=client, transcript_api=transcript_api or FakeTranscriptApi())


@pytest.mark.parametrize(
  "url",
  [
    WATCH_URL,
    "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42s",
    "https://youtu.be/dQw4w9WgXcQ",
    "https://www.youtube.com/shorts/dQw4w9WgXcQ",
    "https://www.youtube.com/embed/dQw4w9WgXcQ?rel=0",
    "dQw4w9WgXcQ",
  ],
)
def test_extract_video_id_accepts_common_url_shapes(url: str) -> None:
  assert extract_video_id(url) == "dQw4w9WgXcQ"


def test_extract_video_id_rejects_garbage() -> None:
  with pytest.raises(SourceError) as excinfo:
    extract_video_id("https://example.com/watch")
  assert excinfo.value.code == "INVALID_SOURCE"


def test_format_duration() -> None:
  assert format_duration("PT4M13S") == "4:13"
  assert format_duration("PT1H2M3S") == "1:02:03"
  assert format_duration("P1DT1H") == "25:00:00"
  assert format_duration(None) is None
  assert format_duration("garbage") is None


@pytest.mark.anyio
async def test_metadata_is_read_from_the_data_api(settings) -> None:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    item = {"snippet": {"title": "Never Gonna", "description": "Classic", "tags": ["music"]}, "contentDetails": {"duration": "PT3M33S"}}
    return httpx.Response(200, json={"items": [item]})

  metadata = await _source(settings, handler).fetch_video_metadata(WATCH_URL)

  assert metadata.video_id == "dQw4w9WgXcQ"
  assert metadata.title == "Never Gonna"
  assert metadata.duration_label == "3:33"
  assert metadata.tags == ["music"]
  assert seen[0].url.params["id"] == "dQw4w9WgXcQ"
  assert seen[0].url.params["key"] == "test-key"


@pytest.mark.anyio
async def test_unknown_video_is_not_found(settings) -> None:
  source = _source(settings, lambda request: httpx.Response(200, json={"items": []}))

  with pytest.raises(VideoNotFoundError):
    await source.fetch_video_metadata(WATCH_URL)


@pytest.mark.anyio
async def test_api_errors_surface_as_source_errors(settings) -> None:
  source = _source(settings, lambda request: httpx.Response(500, json={"error": "backend"}))

  with pytest.raises(SourceError):
    await source.fetch_video_metadata(WATCH_URL)


@pytest.mark.anyio
async def test_missing_api_key_is_a_server_side_pipeline_error(settings) -> None:
  source = YouTubeVideoSource(replace(settings, youtube_api_key=None), transcript_api=FakeTranscriptApi())

  with pytest.raises(PipelineError) as exc_info:
    await source.fetch_video_metadata(WATCH_URL)
  assert exc_info.value.code == "PIPELINE_ERROR"
  assert exc_info.value.http_status >= 500


@pytest.mark.anyio
async def test_transcript_snippets_are_joined(settings) -> None:
  api = FakeTranscriptApi(snippets=["hello ", "", "world"])
  source = _source(settings, lambda request: httpx.Response(200, json={}), transcript_api=api)

  text = await source.fetch_transcript(WATCH_URL, language="de")

  assert text == "hello world"
  assert api.calls == [("dQw4w9WgXcQ", ["de", "en"])]


@pytest.mark.anyio
async def test_disabled_transcripts_are_unavailable(settings) -> None:
  api = FakeTranscriptApi(error=TranscriptsDisabled("dQw4w9WgXcQ"))
  source = _source(settings, lambda request: httpx.Response(200, json={}), transcript_api=api)

  with pytest.raises(TranscriptUnavailableError) as excinfo:
    await source.fetch_transcript(WATCH_URL)

  assert excinfo.value.code == "TRANSCRIPT_UNAVAILABLE"


@pytest.mark.anyio
async def test_empty_transcript_is_unavailable(settings) -> None:
  source = _source(settings, lambda request: httpx.Response(200, json={}), transcript_api=FakeTranscriptApi(snippets=["  "]))

  with pytest.raises(TranscriptUnavailableError):
    await source.fetch_transcript(WATCH_URL)
