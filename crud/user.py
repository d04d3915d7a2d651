"""
User stores for identity lookups.

Handlers only see the ``UserStore`` interface; the concrete backend is picked
once from settings by ``get_user_store``.
"""

import logging
from functools import lru_cache
from typing import Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import settings, STORAGE_MEMORY
from database import AsyncSessionLocal
from database_models import User as UserRow
from models.user import SubscriptionStatus, User

logger = logging.getLogger(__name__)


class UserStore(Protocol):
    """Get/put-by-key persistence for users. Keys are normalized emails."""

    async def get(self, email: str) -> Optional[User]:
        ...

    async def put(self, user: User) -> User:
        ...

    async def get_by_customer_id(self, customer_id: str) -> Optional[User]:
        ...


class InMemoryUserStore:
    """
    Process-lifetime map of email -> User.
    Unsynchronized: concurrent first logins for the same email may race.
    """

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}

    async def get(self, email: str) -> Optional[User]:
        return self._users.get(email)

    async def put(self, user: User) -> User:
        self._users[user.email] = user
        return user

    async def get_by_customer_id(self, customer_id: str) -> Optional[User]:
        for user in self._users.values():
            if user.stripe_customer_id == customer_id:
                return user
        return None

    def __len__(self) -> int:
        return len(self._users)


def _to_model(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        subscription_status=SubscriptionStatus(row.subscription_status),
        stripe_customer_id=row.stripe_customer_id,
        created_at=row.created_at,
    )


class SqlUserStore:
    """
    UserStore backed by the ``users`` table.
    Each call runs in its own session so it can be used outside a request.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, email: str) -> Optional[User]:
        async with self._session_factory() as session:
            result = await session.execute(select(UserRow).where(UserRow.email == email))
            row = result.scalar_one_or_none()
            return _to_model(row) if row else None

    async def put(self, user: User) -> User:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(UserRow, user.id)
                if row is None:
                    row = UserRow(id=user.id, email=user.email, created_at=user.created_at)
                    session.add(row)
                row.name = user.name
                row.subscription_status = user.subscription_status.value
                row.stripe_customer_id = user.stripe_customer_id
        return user

    async def get_by_customer_id(self, customer_id: str) -> Optional[User]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserRow).where(UserRow.stripe_customer_id == customer_id)
            )
            row = result.scalars().first()
            return _to_model(row) if row else None


@lru_cache(maxsize=1)
def get_user_store() -> UserStore:
    """Resolve the configured store once per process."""
    if settings.storage_backend == STORAGE_MEMORY:
        logger.warning("Using in-memory user store. Users are lost on restart.")
        return InMemoryUserStore()
    return SqlUserStore(AsyncSessionLocal)
