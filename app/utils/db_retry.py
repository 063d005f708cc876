"""Job store retry helpers with retryable vs non-retryable error classification."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError

from app.jobs.errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE_SQLSTATES = {"40001": "serialization_conflict", "40P01": "deadlock"}
_CONNECTIVITY_PATTERNS = ("connection", "timeout", "reset", "network", "broken pipe", "lost connection")


@dataclass(frozen=True)
class DBFailureClassification:
  """Classification result for a database failure."""

  retryable: bool
  category: str
  sqlstate: str | None


def _extract_sqlstate(exc: Exception) -> str | None:
  """Extract the Postgres SQLSTATE from a SQLAlchemy exception."""
  if not isinstance(exc, DBAPIError) or exc.orig is None:
    return None
  # asyncpg exposes sqlstate, psycopg exposes pgcode
  for attribute in ("sqlstate", "pgcode"):
    value = getattr(exc.orig, attribute, None)
    if value:
      return str(value)
  return None


def classify_db_failure(exc: Exception) -> DBFailureClassification:
  """
  Classify a database failure as retryable or not.

  Retryable: serialization failures (40001), deadlocks (40P01) and dropped
  connections. Everything else, integrity violations (23xxx) and schema
  errors (42xxx) included, fails fast.
  """
  sqlstate = _extract_sqlstate(exc)
  if sqlstate in _RETRYABLE_SQLSTATES:
    return DBFailureClassification(retryable=True, category=_RETRYABLE_SQLSTATES[sqlstate], sqlstate=sqlstate)
  if isinstance(exc, IntegrityError) or (sqlstate and sqlstate.startswith("23")):
    return DBFailureClassification(retryable=False, category="integrity_error", sqlstate=sqlstate)
  if sqlstate and sqlstate.startswith("42"):
    return DBFailureClassification(retryable=False, category="schema_error", sqlstate=sqlstate)
  if isinstance(exc, OperationalError):
    error_msg = str(exc).lower()
    if any(pattern in error_msg for pattern in _CONNECTIVITY_PATTERNS):
      return DBFailureClassification(retryable=True, category="connectivity_error", sqlstate=sqlstate)
    return DBFailureClassification(retryable=False, category="operational_error_unknown", sqlstate=sqlstate)
  return DBFailureClassification(retryable=False, category="unknown_error", sqlstate=sqlstate)


async def execute_with_retry(*, operation_name: str, func: Callable[[], Awaitable[T]], max_attempts: int = 2, initial_backoff_ms: int = 100, max_backoff_ms: int = 2000) -> T:
  """
  Execute a database operation, retrying transient failures with jittered backoff.

  Args:
    operation_name: Name used in log lines (e.g. "claim_job")
    func: Async callable to execute; it must be safe to run again
    max_attempts: Total attempts including the first one

  Raises:
    The original exception if non-retryable or attempts are exhausted
  """
  attempt = 0
  while True:
    attempt += 1
    try:
      result = await func()
    except SQLAlchemyError as exc:
      classification = classify_db_failure(exc)
      logger.warning(
        "DB operation failed: operation=%s, attempt=%d/%d, category=%s, sqlstate=%s, retryable=%s",
        operation_name,
        attempt,
        max_attempts,
        classification.category,
        classification.sqlstate or "none",
        classification.retryable,
        exc_info=not classification.retryable,
      )
      if not classification.retryable or attempt >= max_attempts:
        raise

      backoff_ms = min(initial_backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
      backoff_ms += random.uniform(-0.25 * backoff_ms, 0.25 * backoff_ms)
      await asyncio.sleep(backoff_ms / 1000.0)
      continue

    if attempt > 1:
      logger.info("DB operation succeeded after retry: operation=%s, attempt=%d/%d", operation_name, attempt, max_attempts)
    return result


async def guarded_store_call(operation_name: str, func: Callable[[], Awaitable[T]]) -> T:
  """Run one job store operation, surfacing database failures as PersistenceError."""
  try:
    return await execute_with_retry(operation_name=operation_name, func=func)
  except SQLAlchemyError as exc:
    raise PersistenceError(f"Job store operation '{operation_name}' failed.") from exc
