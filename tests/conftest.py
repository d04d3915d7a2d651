"""
Pytest configuration and fixtures for testing
"""
import hashlib
import hmac
import json
import os
import time

# Configure the app before anything imports config.settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["IDENTITY_BACKEND"] = "memory"
os.environ.pop("STORAGE_BACKEND", None)
os.environ["RATE_LIMIT_PER_MINUTE"] = "0"
os.environ["ADMIN_PASSWORD"] = "garden-test-password"
os.environ.pop("STRIPE_SECRET_KEY", None)
os.environ.pop("STRIPE_WEBHOOK_SECRET", None)
os.environ.pop("REDIS_URL", None)

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from services.billing_service import BillingService, GatewaySession, StripeGateway

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
MONTHLY_PRICE = "price_monthly_test"
LIFETIME_PRICE = "price_lifetime_test"
WEBHOOK_SECRET = "whsec_test_secret"


class FakeStripeGateway(StripeGateway):
    """
    Records checkout params instead of calling Stripe. Webhook verification
    is inherited, so signatures are checked by the real SDK.
    """

    def __init__(self):
        super().__init__("sk_test_fake")
        self.calls = []

    def create_checkout_session(self, params):
        self.calls.append(params)
        return GatewaySession(id=f"cs_test_{len(self.calls)}", url=f"https://checkout.stripe.test/{len(self.calls)}")


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, data_object: dict, event_id: str = "evt_test_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": data_object},
    }).encode("utf-8")


@pytest.fixture
def gateway():
    return FakeStripeGateway()


@pytest.fixture
def billing(gateway):
    return BillingService(
        gateway=gateway,
        monthly_price_id=MONTHLY_PRICE,
        lifetime_price_id=LIFETIME_PRICE,
        public_url="https://gardengrid.test",
    )


@pytest.fixture
async def test_engine():
    """
    Isolated in-memory SQLite engine per test. StaticPool keeps the single
    connection so every session sees the same database.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        # Import models to ensure they're registered with Base
        import database_models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
