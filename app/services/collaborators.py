"""Narrow interfaces for the external services a job pipeline depends on."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol


@dataclass(frozen=True)
class VideoMetadata:
  video_id: str
  title: str
  duration_label: str | None = None
  description: str = ""
  tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class StoredFile:
  key: str
  public_url: str


@dataclass(frozen=True)
class AnalysisContext:
  """Inputs shared by every analysis call for one job."""

  transcript: str
  language: str = "en"
  tone: str = "engaging"
  title: str | None = None
  description: str | None = None
  duration_label: str | None = None


class VideoSource(Protocol):
  """Resolves video URLs into metadata and transcript text.

  Failures raise SourceError subclasses (VIDEO_NOT_FOUND, INVALID_SOURCE, TRANSCRIPT_UNAVAILABLE).
  """

  async def fetch_video_metadata(self, url: str) -> VideoMetadata: ...

  async def fetch_transcript(self, url: str, *, language: str = "en") -> str: ...


class AnalysisService(Protocol):
  """Generative analysis over a transcript."""

  async def rewrite_title(self, context: AnalysisContext) -> dict[str, Any]: ...

  async def rewrite_description(self, context: AnalysisContext) -> dict[str, Any]: ...

  async def extract_keywords(self, context: AnalysisContext) -> dict[str, Any]: ...

  async def generate_chapters(self, context: AnalysisContext) -> dict[str, Any]: ...

  async def summarize(self, context: AnalysisContext) -> str: ...

  async def generate_thumbnail_ideas(self, context: AnalysisContext) -> list[dict[str, Any]]: ...


class Transcriber(Protocol):
  async def transcribe_file(self, path: Path, *, language: str | None = None) -> str: ...


class ObjectStore(Protocol):
  async def store_file(self, owner_id: str, data: bytes, content_type: str, file_name: str) -> StoredFile: ...

  async def delete_file(self, owner_id: str, key: str) -> None: ...


@dataclass(frozen=True)
class Collaborators:
  """Bundle of collaborator implementations wired into the executor."""

  video_source: VideoSource
  analysis: AnalysisService
  transcriber: Transcriber
  object_store: ObjectStore
