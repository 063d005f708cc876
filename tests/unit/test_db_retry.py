"""Unit tests for job store retry classification and wrapping."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.jobs.errors import PersistenceError
from app.utils.db_retry import classify_db_failure, execute_with_retry, guarded_store_call


def _connection_reset() -> OperationalError:
  return OperationalError("SELECT 1", {}, Exception("connection reset by peer"))


def test_dropped_connections_are_retryable() -> None:
  classification = classify_db_failure(_connection_reset())
  assert classification.retryable is True
  assert classification.category == "connectivity_error"


def test_integrity_errors_fail_fast() -> None:
  classification = classify_db_failure(IntegrityError("INSERT", {}, Exception("duplicate key")))
  assert classification.retryable is False
  assert classification.category == "integrity_error"


@pytest.mark.anyio
async def test_transient_failure_is_retried_once() -> None:
  calls = 0

  async def _flaky() -> str:
    nonlocal calls
    calls += 1
    if calls == 1:
      raise _connection_reset()
    return "ok"

  assert await execute_with_retry(operation_name="claim_job", func=_flaky, initial_backoff_ms=1) == "ok"
  assert calls == 2


@pytest.mark.anyio
async def test_guarded_call_wraps_database_errors() -> None:
  calls = 0

  async def _broken() -> None:
    nonlocal calls
    calls += 1
    raise IntegrityError("INSERT", {}, Exception("duplicate key"))

  with pytest.raises(PersistenceError) as excinfo:
    await guarded_store_call("create_job", _broken)

  assert calls == 1
  assert excinfo.value.code == "PERSISTENCE_ERROR"
  assert isinstance(excinfo.value.__cause__, IntegrityError)
