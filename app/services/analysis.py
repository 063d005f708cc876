"""Gemini-backed video analysis using the google-genai SDK."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, TypeVar

from google import genai
from pydantic import BaseModel, Field, ValidationError

from app.config import Settings
from app.jobs.errors import PipelineError
from app.services.collaborators import AnalysisContext

logger = logging.getLogger(__name__)

# Transcripts beyond this many characters are truncated before prompting.
_MAX_TRANSCRIPT_CHARS = 60_000


M = TypeVar("M", bound=BaseModel)


class TitleSuggestions(BaseModel):
  recommended: str
  alternatives: list[str] = Field(default_factory=list)
  rationale: str = ""


class DescriptionRewrite(BaseModel):
  description: str
  hashtags: list[str] = Field(default_factory=list)


class KeywordSet(BaseModel):
  primary: list[str] = Field(default_factory=list)
  secondary: list[str] = Field(default_factory=list)
  tags: list[str] = Field(default_factory=list)


class Chapter(BaseModel):
  timestamp: str
  title: str


class ChapterList(BaseModel):
  chapters: list[Chapter] = Field(default_factory=list)


class ThumbnailIdea(BaseModel):
  concept: str
  text_overlay: str = ""
  visual_elements: list[str] = Field(default_factory=list)


class ThumbnailIdeas(BaseModel):
  ideas: list[ThumbnailIdea] = Field(default_factory=list)


class Summary(BaseModel):
  summary: str


def _context_block(context: AnalysisContext) -> str:
  lines = [f"Language: {context.language}", f"Tone: {context.tone}"]
  if context.title:
    lines.append(f"Current title: {context.title}")
  if context.duration_label:
    lines.append(f"Duration: {context.duration_label}")
  if context.description:
    lines.append(f"Current description:\n{context.description}")
  lines.append(f"Transcript:\n{context.transcript[:_MAX_TRANSCRIPT_CHARS]}")
  return "\n".join(lines)


class GeminiAnalysisService:
  """Runs each analysis as one structured-output Gemini call."""

  def __init__(self, settings: Settings, *, client: genai.Client | None = None) -> None:
    if client is None:
      if not settings.gemini_api_key:
        raise ValueError("GEMINI_API_KEY environment variable is required")
      client = genai.Client(api_key=settings.gemini_api_key)
    self._client = client
    self._model = settings.gemini_model

  async def rewrite_title(self, context: AnalysisContext) -> dict[str, Any]:
    prompt = "Write a click-worthy but accurate YouTube title (max 70 characters) for this video, plus up to four alternatives."
    return (await self._generate("rewrite_title", prompt, context, TitleSuggestions)).model_dump()

  async def rewrite_description(self, context: AnalysisContext) -> dict[str, Any]:
    prompt = "Rewrite the YouTube description for search visibility: a strong two-line hook, a short summary, and relevant hashtags."
    return (await self._generate("rewrite_description", prompt, context, DescriptionRewrite)).model_dump()

  async def extract_keywords(self, context: AnalysisContext) -> dict[str, Any]:
    prompt = "Extract primary and secondary search keywords and up to 15 YouTube tags for this video."
    return (await self._generate("extract_keywords", prompt, context, KeywordSet)).model_dump()

  async def generate_chapters(self, context: AnalysisContext) -> dict[str, Any]:
    prompt = "Segment the video into chapters. The first chapter must start at 0:00; use m:ss or h:mm:ss timestamps."
    return (await self._generate("generate_chapters", prompt, context, ChapterList)).model_dump()

  async def summarize(self, context: AnalysisContext) -> str:
    prompt = "Summarize the video content in one paragraph of at most 120 words."
    return (await self._generate("summarize", prompt, context, Summary)).summary

  async def generate_thumbnail_ideas(self, context: AnalysisContext) -> list[dict[str, Any]]:
    prompt = "Propose three thumbnail concepts with a short text overlay and key visual elements."
    ideas = await self._generate("generate_thumbnail_ideas", prompt, context, ThumbnailIdeas)
    return [idea.model_dump() for idea in ideas.ideas]

  async def _generate(self, operation: str, instruction: str, context: AnalysisContext, schema: type[M]) -> M:
    contents = f"{instruction}\n\n{_context_block(context)}"
    config = {"response_mime_type": "application/json", "response_schema": schema}
    try:
      response = await _with_backoff(self._client.aio.models.generate_content, model=self._model, contents=contents, config=config)
    except Exception as exc:
      logger.warning("Gemini %s call failed: %s", operation, exc)
      raise PipelineError(f"Analysis step '{operation}' failed.") from exc

    try:
      return schema.model_validate_json(response.text or "")
    except ValidationError as exc:
      raise PipelineError(f"Analysis step '{operation}' returned invalid JSON.") from exc


async def _with_backoff(func, *args, **kwargs):
  """Retry rate-limited Gemini calls with exponential backoff."""
  retries = 3
  base_delay = 1
  for attempt in range(retries):
    try:
      return await func(*args, **kwargs)
    except Exception as e:
      message = str(e)
      if ("429" not in message and "Too Many Requests" not in message and "RESOURCE_EXHAUSTED" not in message) or attempt == retries - 1:
        raise
      delay = base_delay * (2**attempt) + random.uniform(0, 1)
      logger.warning("Gemini rate limited, retrying in %.1fs (attempt %d/%d)", delay, attempt + 1, retries)
      await asyncio.sleep(delay)
  return await func(*args, **kwargs)
