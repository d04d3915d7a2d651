"""
HTTP tests for login, admin verify, checkout and the Stripe webhook
"""
import pytest
from fastapi.testclient import TestClient

from config.settings import settings
from crud.user import InMemoryUserStore, get_user_store
from crud.webhook_event import InMemoryWebhookEventLog, get_webhook_event_log
from main import app
from models.user import SubscriptionStatus, User
from services.billing_service import get_billing_service
from tests.conftest import LIFETIME_PRICE, MONTHLY_PRICE, WEBHOOK_SECRET, make_event, sign_payload


@pytest.fixture
def user_store():
    return InMemoryUserStore()


@pytest.fixture
def client(billing, user_store, monkeypatch):
    """FastAPI TestClient with in-memory stores and a fake Stripe gateway"""
    monkeypatch.setattr(settings, "stripe_webhook_secret", WEBHOOK_SECRET)
    event_log = InMemoryWebhookEventLog()
    app.dependency_overrides[get_billing_service] = lambda: billing
    app.dependency_overrides[get_user_store] = lambda: user_store
    app.dependency_overrides[get_webhook_event_log] = lambda: event_log

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def unconfigured_client(user_store):
    app.dependency_overrides[get_billing_service] = lambda: None
    app.dependency_overrides[get_user_store] = lambda: user_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def post_webhook(client, payload, header=None):
    headers = {"content-type": "application/json"}
    if header is not None:
        headers["stripe-signature"] = header
    return client.post("/api/webhooks/stripe", content=payload, headers=headers)


# Login

def test_login_creates_then_returns_same_user(client, user_store):
    first = client.post("/api/auth/login", json={"email": "ann@example.com", "name": "Ann"})
    second = client.post("/api/auth/login", json={"email": "ann@example.com"})

    assert first.status_code == 200
    body = first.json()
    assert body["email"] == "ann@example.com"
    assert body["name"] == "Ann"
    assert body["subscriptionStatus"] == "free"
    assert second.json()["_id"] == body["_id"]
    assert len(user_store) == 1


def test_login_without_email_is_400(client):
    response = client.post("/api/auth/login", json={"name": "Ann"})
    assert response.status_code == 400
    assert response.json() == {"error": "Email required"}


def test_login_with_malformed_body_is_400(client):
    response = client.post("/api/auth/login", content=b"{not json", headers={"content-type": "application/json"})
    assert response.status_code == 400
    assert "error" in response.json()


# Admin verify

def test_admin_verify_wrong_password_is_401(client):
    response = client.post("/api/admin/verify", json={"password": "wrong"})

    assert response.status_code == 401
    assert response.json()["valid"] is False
    assert "set-cookie" not in response.headers
    assert "token" not in response.json()


def test_admin_verify_get_variant(client):
    assert client.get("/api/admin/verify", params={"key": "garden-test-password"}).json() == {"valid": True}
    assert client.get("/api/admin/verify").status_code == 401


def test_admin_verify_correct_password(client):
    response = client.post("/api/admin/verify", json={"password": "garden-test-password"})
    assert response.status_code == 200
    assert response.json() == {"valid": True}


def test_admin_verify_without_configured_password_is_500(client, monkeypatch):
    monkeypatch.setattr(settings, "admin_password", None)
    response = client.post("/api/admin/verify", json={"password": "anything"})
    assert response.status_code == 500
    assert "error" in response.json()


# Checkout

def test_checkout_monthly_with_trial(client, gateway):
    response = client.post("/api/checkout", json={"priceId": MONTHLY_PRICE, "trialDays": 7})

    assert response.status_code == 200
    assert response.json() == {"sessionId": "cs_test_1", "url": "https://checkout.stripe.test/1"}
    assert gateway.calls[0]["subscription_data"]["trial_period_days"] == 7


def test_checkout_lifetime_ignores_trial(client, gateway):
    response = client.post("/api/checkout", json={"priceId": LIFETIME_PRICE, "trialDays": 7})

    assert response.status_code == 200
    assert gateway.calls[0]["mode"] == "payment"
    assert "subscription_data" not in gateway.calls[0]


def test_checkout_invalid_price_is_400(client, gateway):
    response = client.post("/api/checkout", json={"priceId": "price_bogus"})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid price ID"}
    assert gateway.calls == []


def test_checkout_when_payments_unconfigured_is_500(unconfigured_client):
    response = unconfigured_client.post("/api/checkout", json={"priceId": MONTHLY_PRICE})
    assert response.status_code == 500
    assert response.json() == {"error": "Payments not configured"}


# Webhook

def test_webhook_subscription_deleted_is_acknowledged(client, user_store):
    payload = make_event("customer.subscription.deleted", {"id": "sub_1", "customer": "cus_nobody"})

    response = post_webhook(client, payload, sign_payload(payload))

    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_webhook_checkout_completed_upgrades_user(client, user_store):
    client.post("/api/auth/login", json={"email": "ann@example.com"})
    payload = make_event(
        "checkout.session.completed",
        {"id": "cs_1", "customer": "cus_1", "metadata": {"price_id": LIFETIME_PRICE, "email": "ann@example.com"}},
    )

    response = post_webhook(client, payload, sign_payload(payload))

    assert response.json() == {"received": True}
    login = client.post("/api/auth/login", json={"email": "ann@example.com"})
    assert login.json()["subscriptionStatus"] == SubscriptionStatus.PRO_LIFETIME.value


def test_webhook_bad_signature_is_400(client, user_store):
    payload = make_event("checkout.session.completed", {"metadata": {"price_id": MONTHLY_PRICE, "email": "a@example.com"}})

    response = post_webhook(client, payload, sign_payload(payload, "whsec_wrong"))

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid signature"}
    assert len(user_store) == 0


def test_webhook_missing_signature_is_400(client):
    response = post_webhook(client, make_event("customer.created", {}))
    assert response.status_code == 400
    assert response.json() == {"error": "Missing signature or secret"}


def test_webhook_missing_secret_is_400(client, monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", None)
    payload = make_event("customer.created", {})
    assert post_webhook(client, payload, sign_payload(payload)).status_code == 400


def test_webhook_when_stripe_unconfigured_is_500(unconfigured_client):
    payload = make_event("customer.created", {})
    response = post_webhook(unconfigured_client, payload, sign_payload(payload))
    assert response.status_code == 500


def test_health_reports_billing_flag(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "billing": False}
