"""Speech-to-text for uploaded media using the OpenAI audio API."""

from __future__ import annotations

import logging
from pathlib import Path

from openai import AsyncOpenAI, OpenAIError

from app.config import Settings
from app.jobs.errors import PipelineError, TranscriptUnavailableError

logger = logging.getLogger(__name__)


class OpenAITranscriber:
  def __init__(self, settings: Settings, *, client: AsyncOpenAI | None = None) -> None:
    if client is None:
      if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY environment variable is required")
      client = AsyncOpenAI(api_key=settings.openai_api_key)
    self._client = client
    self._model = settings.transcription_model

  async def transcribe_file(self, path: Path, *, language: str | None = None) -> str:
    """Transcribe an audio or video file on local disk and return plain text."""
    kwargs = {"language": language} if language else {}
    try:
      with path.open("rb") as handle:
        transcription = await self._client.audio.transcriptions.create(model=self._model, file=handle, **kwargs)
    except OpenAIError as exc:
      logger.warning("Transcription failed for %s: %s", path.name, exc)
      raise PipelineError("Audio transcription failed.") from exc

    text = (transcription.text or "").strip()
    if not text:
      raise TranscriptUnavailableError("Uploaded media produced an empty transcript.")
    return text
