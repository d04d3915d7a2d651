"""
Tests for the per-IP token bucket middleware (in-memory mode)
"""
from fastapi import FastAPI
from fastapi.testclient import TestClient

from utils.rate_limit import RateLimiterMiddleware


def build_client(limit):
    app = FastAPI()
    app.add_middleware(RateLimiterMiddleware, requests_per_minute=limit)

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    @app.post("/api/webhooks/stripe")
    async def stripe_webhook():
        return {"received": True}

    @app.post("/api/admin/verify")
    async def admin_verify():
        return {"valid": True}

    return TestClient(app)


def test_requests_over_capacity_get_429():
    client = build_client(2)

    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 200
    response = client.get("/ping")

    assert response.status_code == 429
    assert "error" in response.json()


def test_buckets_are_per_forwarded_ip():
    client = build_client(1)

    assert client.get("/ping", headers={"x-forwarded-for": "10.0.0.1"}).status_code == 200
    assert client.get("/ping", headers={"x-forwarded-for": "10.0.0.2"}).status_code == 200
    assert client.get("/ping", headers={"x-forwarded-for": "10.0.0.1"}).status_code == 429


def test_zero_limit_disables_middleware():
    client = build_client(0)
    for _ in range(5):
        assert client.get("/ping").status_code == 200


def test_stripe_webhooks_are_never_limited():
    client = build_client(2)

    statuses = [client.post("/api/webhooks/stripe").status_code for _ in range(5)]

    assert statuses == [200] * 5


def test_admin_verify_is_never_limited():
    client = build_client(1)

    statuses = [client.post("/api/admin/verify").status_code for _ in range(3)]

    assert statuses == [200] * 3


def test_exempt_paths_do_not_spend_tokens():
    client = build_client(1)

    client.post("/api/webhooks/stripe")

    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 429
