"""Shared fixtures for the HTTP integration tests.

Requests go through the real app, the real BillingProvider and real webhook
signature verification. Only the Stripe subscription endpoints are replaced
by an in-memory fake.
"""

import hashlib
import hmac
import json
import time
from unittest.mock import patch

import pytest
import stripe
from fastapi.testclient import TestClient
from jose import jwt

from subscription_sync.main import create_app
from subscription_sync.repositories.idempotency_store import reset_idempotency_store
from subscription_sync.repositories.profile_store import get_profile_store, reset_profile_store
from subscription_sync.services.auth import reset_token_verifier
from subscription_sync.services.billing_provider import reset_billing_provider

WEBHOOK_SECRET = "whsec_integration"
JWT_SECRET = "integration-jwt-secret"
PROFILE_ID = "profile-1"
DAY = 24 * 60 * 60


class FakeStripeSubscriptions:
    """In-memory subscriptions served through stripe.Subscription.retrieve/modify."""

    def __init__(self):
        self.subscriptions = {}
        self.retrieve_calls = 0
        self.fail_with = None

    def add(
        self,
        subscription_id="sub_123",
        status="active",
        period_end=None,
        customer="cus_123",
        cancel_at_period_end=False,
        canceled_at=None,
        profile_id=PROFILE_ID,
    ):
        period_end = period_end or int(time.time()) + 30 * DAY
        self.subscriptions[subscription_id] = {
            "id": subscription_id,
            "object": "subscription",
            "status": status,
            "customer": customer,
            "cancel_at_period_end": cancel_at_period_end,
            "canceled_at": canceled_at,
            "trial_start": None,
            "trial_end": None,
            "metadata": {"profileId": profile_id} if profile_id else {},
            "items": {
                "object": "list",
                "data": [
                    {
                        "id": "si_1",
                        "current_period_start": period_end - 30 * DAY,
                        "current_period_end": period_end,
                        "price": {
                            "id": "price_1",
                            "unit_amount": 1800,
                            "currency": "usd",
                            "recurring": {"interval": "month"},
                        },
                    }
                ],
            },
        }
        return self.subscriptions[subscription_id]

    def update(self, subscription_id="sub_123", period_end=None, **fields):
        subscription = self.subscriptions[subscription_id]
        subscription.update(fields)
        if period_end is not None:
            item = subscription["items"]["data"][0]
            item["current_period_end"] = period_end
            item["current_period_start"] = period_end - 30 * DAY
        return subscription

    def retrieve(self, subscription_id, **params):
        self.retrieve_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        if subscription_id not in self.subscriptions:
            raise stripe.InvalidRequestError(
                f"No such subscription: '{subscription_id}'", "id", code="resource_missing"
            )
        return dict(self.subscriptions[subscription_id])

    def modify(self, subscription_id, cancel_at_period_end=False, **params):
        if subscription_id not in self.subscriptions:
            raise stripe.InvalidRequestError(
                f"No such subscription: '{subscription_id}'", "id", code="resource_missing"
            )
        return dict(self.update(subscription_id, cancel_at_period_end=cancel_at_period_end))


@pytest.fixture(autouse=True)
def environment(monkeypatch):
    """Configure secrets and start every test from empty global state."""
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_integration")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("AUTH_JWT_SECRET", JWT_SECRET)
    monkeypatch.delenv("CRON_SECRET", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)

    def reset():
        reset_billing_provider()
        reset_token_verifier()
        reset_idempotency_store()
        reset_profile_store()

    reset()
    yield
    reset()


@pytest.fixture
def profile_store():
    store = get_profile_store()
    store.create_profile(PROFILE_ID)
    return store


@pytest.fixture
def fake_stripe():
    fake = FakeStripeSubscriptions()
    with patch.object(stripe.Subscription, "retrieve", side_effect=fake.retrieve), patch.object(
        stripe.Subscription, "modify", side_effect=fake.modify
    ):
        yield fake


@pytest.fixture
def client():
    """Create test client."""
    app = create_app()
    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Build an Authorization header for a profile."""

    def build(profile_id=PROFILE_ID, email="owner@example.com"):
        token = jwt.encode(
            {"sub": profile_id, "email": email, "aud": "authenticated", "exp": int(time.time()) + 3600},
            JWT_SECRET,
            algorithm="HS256",
        )
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture
def send_event(client):
    """Sign and deliver a provider event to the webhook endpoint."""

    def send(event_type, data_object, event_id="evt_1", secret=WEBHOOK_SECRET):
        payload = json.dumps(
            {"id": event_id, "object": "event", "type": event_type, "data": {"object": data_object}}
        )
        timestamp = int(time.time())
        digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
        return client.post(
            "/api/stripe/webhook",
            content=payload,
            headers={"Stripe-Signature": f"t={timestamp},v1={digest}", "Content-Type": "application/json"},
        )

    return send
