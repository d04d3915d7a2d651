"""
Identity Service - resolves users by email on login
"""

import logging
import re
from typing import Optional

from fastapi import Depends

from backend.utils.errors import ValidationError
from crud.user import UserStore, get_user_store
from models.user import SubscriptionStatus, User

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def normalize_email(email: Optional[str]) -> str:
    """Trim and lowercase an email, raising ValidationError if it is missing or malformed."""
    if not email or not email.strip():
        raise ValidationError("Email required")
    normalized = email.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError("Invalid email format")
    return normalized


class IdentityService:

    def __init__(self, store: UserStore):
        self.store = store

    async def resolve_or_create_user(self, email: str, name: Optional[str] = None) -> User:
        """
        Return the user for ``email``, creating a free-tier record on first sight.

        Repeated calls with the same email return the same identity. The name
        is only recorded at creation; later calls never rename.
        """
        key = normalize_email(email)
        user = await self.store.get(key)
        if user is not None:
            return user

        user = User(email=key, name=name, subscription_status=SubscriptionStatus.FREE)
        await self.store.put(user)
        logger.info(f"Created user {user.id} for {key}")
        return user

    async def find_user(self, email: str) -> Optional[User]:
        return await self.store.get(normalize_email(email))

    async def find_by_customer_id(self, customer_id: str) -> Optional[User]:
        return await self.store.get_by_customer_id(customer_id)

    async def set_subscription_status(
        self,
        user: User,
        status: SubscriptionStatus,
        stripe_customer_id: Optional[str] = None,
    ) -> User:
        updates = {"subscription_status": status}
        if stripe_customer_id:
            updates["stripe_customer_id"] = stripe_customer_id
        updated = user.model_copy(update=updates)
        await self.store.put(updated)
        logger.info(f"User {user.id} subscription {user.subscription_status.value} -> {status.value}")
        return updated


def get_identity_service(store: UserStore = Depends(get_user_store)) -> IdentityService:
    return IdentityService(store)
