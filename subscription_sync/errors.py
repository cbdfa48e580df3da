"""Error taxonomy for the subscription synchronizer.

Every failure that can cross a service boundary is a ``SyncError`` subclass.
Each class carries the HTTP status it maps to, whether the caller may retry,
and a stable machine-readable code. The mapping to HTTP responses happens in
exactly one place (``main.create_app``).
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for subscription synchronization errors."""

    code = "sync_error"
    http_status = 500
    retryable = False
    default_message = "An error occurred while processing your subscription"

    def __init__(self, message: Optional[str] = None, **context):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.context = context

    def to_dict(self) -> dict:
        """Render as the structured error body returned to clients."""
        return {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


class SignatureInvalid(SyncError):
    """Inbound event signature could not be verified. Never retried."""

    code = "signature_invalid"
    http_status = 400
    default_message = "Webhook signature verification failed"


class Unauthenticated(SyncError):
    """Bearer token missing, malformed, expired or not signed by the auth provider."""

    code = "unauthenticated"
    http_status = 401
    default_message = "Unauthorized"


class NotConfigured(SyncError):
    """Billing integration is absent from this deployment."""

    code = "not_configured"
    http_status = 503
    default_message = "Payment system is unavailable. Please contact support."


class ResourceMissing(SyncError):
    """The provider no longer knows the referenced id. Needs manual remediation."""

    code = "resource_missing"
    http_status = 404
    default_message = "Subscription not found at the billing provider. Please contact support."


class ProfileNotFound(SyncError):
    """No profile exists for the given id."""

    code = "profile_not_found"
    http_status = 404
    default_message = "Profile not found"


class NoSubscription(SyncError):
    """The profile has no provider subscription linked to it."""

    code = "no_subscription"
    http_status = 404
    default_message = "No active subscription found"


class InvalidSubscriptionState(SyncError):
    """The requested action does not apply to the record's current state."""

    code = "invalid_subscription_state"
    http_status = 409
    default_message = "This action is not available for the current subscription"


class ProviderTransient(SyncError):
    """Timeout, rate limit or 5xx from the billing provider. Safe to retry."""

    code = "provider_unavailable"
    http_status = 502
    retryable = True
    default_message = "The billing provider is temporarily unavailable. Please retry."


class DatastoreError(SyncError):
    """Profile datastore read or write failed. Safe to retry."""

    code = "datastore_error"
    http_status = 500
    retryable = True
    default_message = "Could not update your subscription. Please retry."


class UnhandledEventType(SyncError):
    """Inbound event type outside the relevant set.

    Raised internally for logging only; the receiver acknowledges these
    events so they never cause redelivery loops.
    """

    code = "unhandled_event_type"
    http_status = 200
    default_message = "Event type ignored"
