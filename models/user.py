from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionStatus(str, Enum):
    FREE = "free"
    PRO_MONTHLY = "pro_monthly"
    PRO_LIFETIME = "pro_lifetime"


def _new_user_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(BaseModel):
    """Identity record. Serialized with the client's camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    id: str = Field(default_factory=_new_user_id, alias="_id")
    email: str
    name: Optional[str] = None
    subscription_status: SubscriptionStatus = Field(
        default=SubscriptionStatus.FREE, alias="subscriptionStatus"
    )
    stripe_customer_id: Optional[str] = Field(default=None, alias="stripeCustomerId")
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")

    @property
    def is_pro(self) -> bool:
        return self.subscription_status in (SubscriptionStatus.PRO_MONTHLY, SubscriptionStatus.PRO_LIFETIME)

    def to_public(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude={"stripe_customer_id"})
