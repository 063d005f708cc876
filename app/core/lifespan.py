import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from app.config import get_settings
from app.core.database import dispose_engine
from app.core.logging import initialize_logging
from app.jobs.runtime import build_job_runtime


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, wire the job runtime and run the dispatcher and reaper loops."""
  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")
  initialize_logging(settings)
  logger.info("Starting job engine env=%s database=%s", settings.environment, _redact_dsn(settings.pg_dsn))

  runtime = build_job_runtime(settings)
  app.state.job_runtime = runtime
  await runtime.start()
  try:
    yield
  finally:
    await runtime.stop()
    await dispose_engine()
    logger.info("Job engine stopped.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{parsed.username}@{host}{port}" if parsed.username else f"{host}{port}"
  database = parsed.path.lstrip("/")
  return f"{parsed.scheme}://{netloc}/{database}" if database else f"{parsed.scheme}://{netloc}"
