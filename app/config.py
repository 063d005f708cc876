"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[1] / ".env", override=False)

_ENV_PREFIX = "TUBEBOOST_"


@dataclass(frozen=True)
class Settings:
  """Typed settings for the TubeBoost job engine."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  # Queue and scheduler limits.
  max_concurrent_jobs: int
  max_jobs_per_user: int
  max_total_queue_size: int
  average_job_minutes: int
  dispatch_interval_seconds: float
  dispatch_batch_size: int
  queue_depth_warning: int
  job_timeout_seconds: float | None
  usage_limit: int
  list_limit: int
  max_upload_bytes: int
  scheduler_enabled: bool
  # Reaper and stale-job recovery.
  reaper_interval_seconds: float
  completed_retention_seconds: int
  failed_retention_seconds: int
  stale_job_seconds: int
  max_reclaims: int
  # External collaborators.
  youtube_api_key: str | None
  youtube_api_base_url: str
  gemini_api_key: str | None
  gemini_model: str
  openai_api_key: str | None
  transcription_model: str
  storage_bucket: str
  gcs_storage_host: str | None
  gcp_project_id: str | None
  temp_dir: str


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _env(name: str) -> str | None:
  return os.getenv(f"{_ENV_PREFIX}{name}")


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: int, *, allow_zero: bool = False) -> int:
  value = int(_env(name) or str(default))
  if value < 0 or (value == 0 and not allow_zero):
    qualifier = "zero or a positive" if allow_zero else "a positive"
    raise ValueError(f"{_ENV_PREFIX}{name} must be {qualifier} integer.")
  return value


def _positive_float(name: str, default: float) -> float:
  value = float(_env(name) or str(default))
  if value <= 0:
    raise ValueError(f"{_ENV_PREFIX}{name} must be a positive number.")
  return value


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
  if "*" in origins:
    raise ValueError(f"{_ENV_PREFIX}ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _database_dsn() -> str | None:
  # DATABASE_URL is honored for platform-provided connection strings.
  return _optional_str(_env("PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  max_concurrent_jobs = _positive_int("MAX_CONCURRENT_JOBS", 3)
  max_jobs_per_user = _positive_int("MAX_JOBS_PER_USER", 5)
  max_total_queue_size = _positive_int("MAX_TOTAL_QUEUE_SIZE", 20)
  if max_total_queue_size < max_jobs_per_user:
    raise ValueError(f"{_ENV_PREFIX}MAX_TOTAL_QUEUE_SIZE must be at least {_ENV_PREFIX}MAX_JOBS_PER_USER.")

  # A zero timeout disables the per-run wall clock.
  raw_timeout = float(_env("JOB_TIMEOUT_SECONDS") or "900")
  if raw_timeout < 0:
    raise ValueError(f"{_ENV_PREFIX}JOB_TIMEOUT_SECONDS must be zero or a positive number.")

  completed_retention_seconds = _positive_int("COMPLETED_RETENTION_SECONDS", 3600)
  failed_retention_seconds = _positive_int("FAILED_RETENTION_SECONDS", 86400)

  return Settings(
    environment=(_env("ENV") or "development").lower(),
    debug=_parse_bool(_env("DEBUG")),
    allowed_origins=_parse_origins(_env("ALLOWED_ORIGINS")),
    log_max_bytes=_positive_int("LOG_MAX_BYTES", 5242880),
    log_backup_count=_positive_int("LOG_BACKUP_COUNT", 10, allow_zero=True),
    log_http_4xx=_parse_bool(_env("LOG_HTTP_4XX")),
    pg_dsn=_database_dsn(),
    pg_connect_timeout=_positive_int("PG_CONNECT_TIMEOUT", 5),
    max_concurrent_jobs=max_concurrent_jobs,
    max_jobs_per_user=max_jobs_per_user,
    max_total_queue_size=max_total_queue_size,
    average_job_minutes=_positive_int("AVERAGE_JOB_MINUTES", 2),
    dispatch_interval_seconds=_positive_float("DISPATCH_INTERVAL_SECONDS", 5.0),
    dispatch_batch_size=_positive_int("DISPATCH_BATCH_SIZE", 50),
    queue_depth_warning=_positive_int("QUEUE_DEPTH_WARNING", 20),
    job_timeout_seconds=raw_timeout or None,
    usage_limit=_positive_int("USAGE_LIMIT", 100),
    list_limit=_positive_int("LIST_LIMIT", 50),
    max_upload_bytes=_positive_int("MAX_UPLOAD_BYTES", 100 * 1024 * 1024),
    scheduler_enabled=_parse_bool(_env("SCHEDULER_ENABLED"), default=True),
    reaper_interval_seconds=_positive_float("REAPER_INTERVAL_SECONDS", 3600.0),
    completed_retention_seconds=completed_retention_seconds,
    failed_retention_seconds=failed_retention_seconds,
    stale_job_seconds=_positive_int("STALE_JOB_SECONDS", 1800),
    max_reclaims=_positive_int("MAX_RECLAIMS", 2, allow_zero=True),
    youtube_api_key=_optional_str(os.getenv("YOUTUBE_API_KEY")),
    youtube_api_base_url=(_env("YOUTUBE_API_BASE_URL") or "https://www.googleapis.com/youtube/v3").strip(),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    gemini_model=(_env("GEMINI_MODEL") or "gemini-2.5-flash").strip(),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    transcription_model=(_env("TRANSCRIPTION_MODEL") or "whisper-1").strip(),
    storage_bucket=(_env("STORAGE_BUCKET") or "tubeboost-uploads").strip(),
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    gcp_project_id=_optional_str(os.getenv("GCP_PROJECT_ID")),
    temp_dir=_optional_str(_env("TEMP_DIR")) or tempfile.gettempdir(),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring the full web-runtime configuration."""
  pg_connect_timeout = _positive_int("PG_CONNECT_TIMEOUT", 5)
  return DatabaseSettings(debug=_parse_bool(_env("DEBUG")), pg_dsn=_database_dsn(), pg_connect_timeout=pg_connect_timeout)
