"""Usage accounting for completed analyses."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import func, select

from app.core.database import get_session_factory
from app.schema.jobs import UsageEvent
from app.utils.db_retry import guarded_store_call

ANALYSIS_COMPLETED = "analysis_completed"


class UsageRepository(Protocol):
  """Repository contract for per-user usage accounting."""

  async def count_events(self, user_id: str, event_type: str) -> int:
    """Count recorded usage events of one type for a user."""

  async def record_event(self, user_id: str, event_type: str, *, job_id: str | None = None) -> None:
    """Append one usage event."""


class PostgresUsageRepository(UsageRepository):
  """Persist usage events to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def count_events(self, user_id: str, event_type: str) -> int:
    async def _count() -> int:
      async with self._session_factory() as session:
        stmt = select(func.count()).select_from(UsageEvent).where(UsageEvent.user_id == user_id, UsageEvent.event_type == event_type)
        return int((await session.execute(stmt)).scalar_one())

    return await guarded_store_call("count_usage_events", _count)

  async def record_event(self, user_id: str, event_type: str, *, job_id: str | None = None) -> None:
    async def _insert() -> None:
      async with self._session_factory() as session:
        session.add(UsageEvent(user_id=user_id, event_type=event_type, job_id=job_id))
        await session.commit()

    await guarded_store_call("record_usage_event", _insert)


async def usage_remaining(repo: UsageRepository, user_id: str, *, usage_limit: int) -> int:
  """Return how many analyses the user may still complete before hitting the ceiling."""
  used = await repo.count_events(user_id, ANALYSIS_COMPLETED)
  return max(usage_limit - used, 0)
