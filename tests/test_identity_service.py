"""
Unit tests for user resolution and the user stores
"""
import pytest

from backend.utils.errors import ValidationError
from crud.user import InMemoryUserStore, SqlUserStore
from crud.webhook_event import SqlWebhookEventLog
from models.user import SubscriptionStatus, User
from services.identity_service import IdentityService, normalize_email


@pytest.mark.asyncio
async def test_resolve_or_create_is_idempotent():
    store = InMemoryUserStore()
    identity = IdentityService(store)

    first = await identity.resolve_or_create_user("ann@example.com", "Ann")
    second = await identity.resolve_or_create_user("ann@example.com", "Someone Else")

    assert first.id == second.id
    assert second.name == "Ann"
    assert len(store) == 1


@pytest.mark.asyncio
async def test_new_users_start_free():
    identity = IdentityService(InMemoryUserStore())
    user = await identity.resolve_or_create_user("new@example.com")

    assert user.subscription_status == SubscriptionStatus.FREE
    assert user.name is None
    assert user.created_at is not None
    assert user.is_pro is False


@pytest.mark.asyncio
async def test_email_is_normalized_before_lookup():
    store = InMemoryUserStore()
    identity = IdentityService(store)

    first = await identity.resolve_or_create_user("  Ann@Example.COM ")
    second = await identity.resolve_or_create_user("ann@example.com")

    assert first.id == second.id
    assert first.email == "ann@example.com"


@pytest.mark.parametrize("email", [None, "", "   ", "not-an-email", "a@b"])
def test_invalid_emails_are_rejected(email):
    with pytest.raises(ValidationError):
        normalize_email(email)


def test_public_json_uses_client_keys():
    user = User(email="ann@example.com", name="Ann", stripe_customer_id="cus_1")
    public = user.to_public()

    assert set(public) == {"_id", "email", "name", "subscriptionStatus", "createdAt"}
    assert public["subscriptionStatus"] == "free"


@pytest.mark.asyncio
async def test_sql_store_round_trip(session_factory):
    store = SqlUserStore(session_factory)
    identity = IdentityService(store)

    created = await identity.resolve_or_create_user("ann@example.com", "Ann")
    again = await identity.resolve_or_create_user("ann@example.com")
    assert again.id == created.id

    upgraded = await identity.set_subscription_status(created, SubscriptionStatus.PRO_MONTHLY, stripe_customer_id="cus_9")
    by_customer = await store.get_by_customer_id("cus_9")

    assert by_customer.id == created.id
    assert by_customer.subscription_status == SubscriptionStatus.PRO_MONTHLY
    assert upgraded.stripe_customer_id == "cus_9"
    assert await store.get("missing@example.com") is None


@pytest.mark.asyncio
async def test_sql_webhook_log_detects_redelivery(session_factory):
    log = SqlWebhookEventLog(session_factory)

    assert await log.record("evt_1", "checkout.session.completed") is True
    assert await log.record("evt_1", "checkout.session.completed") is False
    assert await log.record("evt_2", "invoice.payment_failed") is True


@pytest.mark.asyncio
async def test_sql_webhook_log_release_allows_new_record(session_factory):
    log = SqlWebhookEventLog(session_factory)

    assert await log.record("evt_1", "checkout.session.completed") is True
    await log.release("evt_1")

    assert await log.record("evt_1", "checkout.session.completed") is True
