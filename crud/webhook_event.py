"""
Record of Stripe webhook events already applied.

Stripe delivers at least once; ``record`` returns False for an event id that
was seen before so the reconciler can skip it. ``release`` drops a claimed id
again when applying the event failed, so a resend is not mistaken for a
duplicate.
"""

from functools import lru_cache
from typing import Protocol, Set

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import settings, STORAGE_MEMORY
from database import AsyncSessionLocal
from database_models import ProcessedWebhookEvent


class WebhookEventLog(Protocol):
    async def record(self, event_id: str, event_type: str) -> bool:
        ...

    async def release(self, event_id: str) -> None:
        ...


class InMemoryWebhookEventLog:
    def __init__(self) -> None:
        self._seen: Set[str] = set()

    async def record(self, event_id: str, event_type: str) -> bool:
        if event_id in self._seen:
            return False
        self._seen.add(event_id)
        return True

    async def release(self, event_id: str) -> None:
        self._seen.discard(event_id)


class SqlWebhookEventLog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def record(self, event_id: str, event_type: str) -> bool:
        async with self._session_factory() as session:
            session.add(ProcessedWebhookEvent(event_id=event_id, event_type=event_type))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
        return True

    async def release(self, event_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(ProcessedWebhookEvent).where(ProcessedWebhookEvent.event_id == event_id))
            await session.commit()


@lru_cache(maxsize=1)
def get_webhook_event_log() -> WebhookEventLog:
    if settings.storage_backend == STORAGE_MEMORY:
        return InMemoryWebhookEventLog()
    return SqlWebhookEventLog(AsyncSessionLocal)
