"""Smoke tests for the HTTP surface.

Quick validation of status codes, error bodies and authentication.
"""

import time
from unittest.mock import patch

import stripe

from subscription_sync.models.profile import CanonicalStatus

PROFILE_ID = "profile-1"


def link_profile(store, status=CanonicalStatus.PRO, period_end=None):
    store.apply_sync(
        PROFILE_ID,
        {
            "provider_customer_id": "cus_123",
            "provider_subscription_id": "sub_123",
            "canonical_status": status,
            "is_public": status == CanonicalStatus.PRO,
            "current_period_end": period_end,
        },
    )


class TestServiceEndpoints:
    """Test root and health."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "subscription-sync"

    def test_health_reports_configuration(self, client, profile_store):
        """Test health shows which integrations are configured."""
        data = client.get("/health").json()
        assert data["billing"] == "configured"
        assert data["webhooks"] == "configured"
        assert data["idempotency_backend"] == "memory"
        assert data["profiles"] == "1"

    def test_request_id_is_echoed(self, client):
        """Test an inbound correlation id is returned."""
        response = client.get("/health", headers={"X-Request-ID": "req-abc"})
        assert response.headers["X-Request-ID"] == "req-abc"

    def test_request_id_is_generated(self, client):
        response = client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 32


class TestWebhookEndpoint:
    """Test POST/GET /api/stripe/webhook."""

    def test_readiness(self, client):
        response = client.get("/api/stripe/webhook")
        assert response.status_code == 200
        assert response.json() == {"message": "Stripe webhook endpoint is ready"}

    def test_valid_event_is_acknowledged(self, send_event, fake_stripe, profile_store):
        fake_stripe.add()
        response = send_event("customer.subscription.updated", {"id": "sub_123", "customer": "cus_123"})
        assert response.status_code == 200
        assert response.json() == {"received": True}

    def test_bad_signature_is_rejected(self, send_event, fake_stripe, profile_store):
        """Test a payload signed with the wrong secret is a 400 and nothing changes."""
        fake_stripe.add()

        response = send_event("customer.subscription.updated", {"id": "sub_123"}, secret="whsec_wrong")

        assert response.status_code == 400
        assert response.json()["error"] == "signature_invalid"
        assert response.json()["retryable"] is False
        assert fake_stripe.retrieve_calls == 0
        assert profile_store.get(PROFILE_ID).version == 0

    def test_missing_signature_header(self, client):
        response = client.post("/api/stripe/webhook", content=b"{}")
        assert response.status_code == 400

    def test_irrelevant_event_type(self, send_event, fake_stripe):
        response = send_event("customer.created", {"id": "cus_123"})
        assert response.status_code == 200
        assert fake_stripe.retrieve_calls == 0

    def test_provider_outage_returns_retryable_error(self, send_event, fake_stripe, profile_store):
        """Test a transient fetch failure asks the provider to redeliver."""
        fake_stripe.fail_with = stripe.APIConnectionError("connection reset")

        response = send_event("customer.subscription.updated", {"id": "sub_123"})

        assert response.status_code == 502
        assert response.json()["retryable"] is True

    def test_webhook_without_secret_is_unavailable(self, send_event, monkeypatch):
        monkeypatch.delenv("STRIPE_WEBHOOK_SECRET")
        response = send_event("customer.subscription.updated", {"id": "sub_123"})
        assert response.status_code == 503


class TestSubscriptionEndpoints:
    """Test the authenticated owner endpoints."""

    def test_missing_token(self, client, profile_store):
        response = client.post("/api/subscription/sync")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"

    def test_invalid_token(self, client, profile_store):
        response = client.post("/api/subscription/sync", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_billing_not_configured(self, client, auth_headers, profile_store, monkeypatch):
        """Test every billing endpoint is a 503 without a provider key."""
        monkeypatch.delenv("STRIPE_SECRET_KEY")
        response = client.post("/api/subscription/cancel", headers=auth_headers())
        assert response.status_code == 503
        assert response.json()["error"] == "not_configured"

    def test_sync(self, client, auth_headers, fake_stripe, profile_store):
        fake_stripe.add(status="active")
        link_profile(profile_store, CanonicalStatus.CANCELED)

        response = client.post("/api/subscription/sync", headers=auth_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Subscription synced successfully"
        assert data["subscription_status"] == "pro"
        assert data["is_public"] is True

    def test_sync_unknown_subscription(self, client, auth_headers, fake_stripe, profile_store):
        """Test a stored id the provider does not know is a non-retryable 404."""
        link_profile(profile_store)
        response = client.post("/api/subscription/sync", headers=auth_headers())
        assert response.status_code == 404
        assert response.json()["error"] == "resource_missing"

    def test_unknown_profile(self, client, auth_headers, fake_stripe, profile_store):
        response = client.post("/api/subscription/cancel", headers=auth_headers(profile_id="someone-else"))
        assert response.status_code == 404
        assert response.json()["error"] == "profile_not_found"

    def test_cancel_without_subscription(self, client, auth_headers, fake_stripe, profile_store):
        response = client.post("/api/subscription/cancel", headers=auth_headers())
        assert response.status_code == 404
        assert response.json()["error"] == "no_subscription"

    def test_reactivate_ended_subscription(self, client, auth_headers, fake_stripe, profile_store):
        """Test reactivating an ended subscription is a 409."""
        fake_stripe.add(status="canceled")
        link_profile(profile_store, CanonicalStatus.CANCELED)

        response = client.post("/api/subscription/reactivate", headers=auth_headers())

        assert response.status_code == 409
        assert response.json()["error"] == "invalid_subscription_state"

    def test_details_without_subscription(self, client, auth_headers, profile_store):
        response = client.get("/api/subscription/details", headers=auth_headers())
        assert response.status_code == 404
        assert "No active subscription found" in response.json()["message"]

    def test_details(self, client, auth_headers, fake_stripe, profile_store):
        """Test the detail view combines subscription, customer and invoice."""
        fake_stripe.add(cancel_at_period_end=True, period_end=int(time.time()) + 5 * 24 * 60 * 60 - 60)
        link_profile(profile_store)

        with_customer = {"id": "cus_123", "email": "owner@example.com", "name": "Owner"}
        open_invoices = {"object": "list", "data": []}
        with patch.object(stripe.Customer, "retrieve", return_value=with_customer), patch.object(
            stripe.Invoice, "list", return_value=open_invoices
        ):
            response = client.get("/api/subscription/details", headers=auth_headers())

        assert response.status_code == 200
        detail = response.json()["subscription"]
        assert detail["formatted_amount"] == "$18.00"
        assert detail["days_until_cancellation"] == 5
        assert detail["customer_email"] == "owner@example.com"
        assert detail["next_billing_amount"] is None

    def test_checkout_session(self, client, auth_headers, profile_store):
        """Test checkout stamps the profile id and returns the hosted URL."""
        session = {"id": "cs_test_1", "url": "https://checkout.stripe.com/c/pay/cs_test_1"}
        with patch.object(stripe.checkout.Session, "create", return_value=session) as create:
            response = client.post("/api/subscription/checkout-session", headers=auth_headers())

        assert response.status_code == 200
        assert response.json() == {"session_id": "cs_test_1", "url": "https://checkout.stripe.com/c/pay/cs_test_1"}
        params = create.call_args.kwargs
        assert params["mode"] == "subscription"
        assert params["metadata"] == {"profileId": PROFILE_ID}
        assert params["subscription_data"]["metadata"] == {"profileId": PROFILE_ID}
        assert params["customer_email"] == "owner@example.com"

    def test_checkout_when_already_pro(self, client, auth_headers, profile_store):
        link_profile(profile_store)
        response = client.post("/api/subscription/checkout-session", headers=auth_headers())
        assert response.status_code == 409

    def test_portal_requires_customer(self, client, auth_headers, profile_store):
        response = client.post("/api/subscription/portal-session", headers=auth_headers())
        assert response.status_code == 404


class TestJobEndpoints:
    """Test the cron-driven endpoints."""

    def test_cron_secret_required_when_configured(self, client, monkeypatch):
        """Test jobs reject callers without the configured secret."""
        monkeypatch.setenv("CRON_SECRET", "cron-secret")

        assert client.post("/api/jobs/expiry-sweep").status_code == 401
        assert client.post("/api/jobs/expiry-sweep", headers={"Authorization": "Bearer wrong"}).status_code == 401

        response = client.post("/api/jobs/expiry-sweep", headers={"Authorization": "Bearer cron-secret"})
        assert response.status_code == 200

    def test_sweep_with_nothing_to_do(self, client, profile_store):
        response = client.post("/api/jobs/expiry-sweep")
        assert response.status_code == 200
        assert response.json()["message"] == "Updated 0 expired subscriptions"
        assert response.json()["updated"] == 0

    def test_sweep_preview(self, client, profile_store):
        link_profile(profile_store, period_end=None)
        data = client.get("/api/jobs/expiry-sweep").json()
        assert data["total"] == 1
        assert data["active"] == 1

    def test_idempotency_cleanup(self, client):
        response = client.post("/api/jobs/idempotency-cleanup")
        assert response.status_code == 200
        assert response.json() == {"purged": 0}
