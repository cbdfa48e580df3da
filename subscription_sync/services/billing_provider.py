"""Billing provider client - thin wrapper over the Stripe SDK.

Converts Stripe objects into the application's snapshot models and Stripe
exceptions into the ``SyncError`` taxonomy. Nothing else in the package
imports ``stripe`` directly.
"""

import json
import threading
from collections.abc import Mapping
from typing import Any, Callable, Optional

import stripe

from subscription_sync.config import get_config
from subscription_sync.errors import (
    NotConfigured,
    ProviderTransient,
    ResourceMissing,
    SignatureInvalid,
    SyncError,
)
from subscription_sync.logging_config import get_logger
from subscription_sync.models.events import InboundEvent
from subscription_sync.models.settings import PlanSettings
from subscription_sync.models.snapshot import (
    CustomerSummary,
    InvoiceSummary,
    ProviderStatus,
    ProviderSubscriptionSnapshot,
)
from subscription_sync.state_logger import mask_id
from subscription_sync.utils.time_utils import from_epoch_seconds, utc_now

logger = get_logger(__name__)

METADATA_PROFILE_KEYS = ("profileId", "profile_id")

EMAIL_DISCOVERY_LIMIT = 5
CHECKOUT_DISCOVERY_LIMIT = 10

# Preference order when a customer has several subscriptions
_DISCOVERY_PREFERENCE = (
    ProviderStatus.ACTIVE.value,
    ProviderStatus.TRIALING.value,
    ProviderStatus.PAST_DUE.value,
    ProviderStatus.UNPAID.value,
    ProviderStatus.CANCELED.value,
)


def get_field(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or a plain dict.

    Subscriptions carry an ``items`` field, which attribute access would
    confuse with ``dict.items``; mapping access is tried first.
    """
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(key, default)
    getter = getattr(obj, "get", None)
    if callable(getter):
        return getter(key, default)
    return getattr(obj, key, default)


def ref_id(value: Any) -> Optional[str]:
    """Id of a reference that may be expanded into an object."""
    if value is None or isinstance(value, str):
        return value
    return get_field(value, "id")


def metadata_profile_id(obj: Any) -> Optional[str]:
    metadata = get_field(obj, "metadata") or {}
    for key in METADATA_PROFILE_KEYS:
        value = get_field(metadata, key)
        if value:
            return value
    return None


def snapshot_from_stripe(subscription: Any) -> ProviderSubscriptionSnapshot:
    """Build a snapshot from a Stripe subscription object or its dict form.

    The period comes from the first subscription item; the root-level period
    fields are not read.
    """
    items = get_field(subscription, "items")
    item_list = get_field(items, "data") or []
    first_item = item_list[0] if item_list else None
    price = get_field(first_item, "price")
    recurring = get_field(price, "recurring")

    return ProviderSubscriptionSnapshot(
        id=get_field(subscription, "id"),
        status=get_field(subscription, "status") or "",
        customer_id=ref_id(get_field(subscription, "customer")),
        current_period_start=from_epoch_seconds(get_field(first_item, "current_period_start")),
        current_period_end=from_epoch_seconds(get_field(first_item, "current_period_end")),
        cancel_at_period_end=bool(get_field(subscription, "cancel_at_period_end", False)),
        canceled_at=from_epoch_seconds(get_field(subscription, "canceled_at")),
        trial_start=from_epoch_seconds(get_field(subscription, "trial_start")),
        trial_end=from_epoch_seconds(get_field(subscription, "trial_end")),
        price_id=get_field(price, "id"),
        unit_amount=get_field(price, "unit_amount"),
        currency=get_field(price, "currency"),
        interval=get_field(recurring, "interval"),
        metadata_profile_id=metadata_profile_id(subscription),
        fetched_at=utc_now(),
    )


class BillingProvider:
    """Stripe access for one API key.

    Network retries inside the SDK are disabled; retrying is left to webhook
    redelivery and to the user.
    """

    def __init__(self, api_key: str, webhook_secret: Optional[str] = None, timeout_seconds: float = 10.0):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.timeout_seconds = timeout_seconds

        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout_seconds)

    # ------------------------------------------------------------------
    # Error translation
    # ------------------------------------------------------------------

    @staticmethod
    def _translate(exc: stripe.StripeError, operation: str) -> SyncError:
        """Map a Stripe exception to the error taxonomy."""
        if isinstance(exc, stripe.InvalidRequestError) and getattr(exc, "code", None) == "resource_missing":
            return ResourceMissing(operation=operation)
        if isinstance(exc, stripe.AuthenticationError):
            return NotConfigured(operation=operation)
        if isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)):
            return ProviderTransient(operation=operation)
        return ProviderTransient(
            "The billing provider rejected the request. Please retry or contact support.",
            operation=operation,
        )

    def _call(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, api_key=self.api_key, **kwargs)
        except stripe.StripeError as e:
            error = self._translate(e, operation)
            logger.warning(
                "provider_call_failed",
                operation=operation,
                error_type=type(e).__name__,
                stripe_code=getattr(e, "code", None),
                http_status=getattr(e, "http_status", None),
                mapped_to=error.code,
            )
            raise error from e

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def construct_event(self, payload: bytes, signature: Optional[str]) -> InboundEvent:
        """Verify a webhook delivery and parse it.

        Raises:
            NotConfigured: If no webhook secret is configured
            SignatureInvalid: If the signature header is missing or does not match
        """
        if not self.webhook_secret:
            raise NotConfigured("Webhook secret is not configured")
        if not signature:
            raise SignatureInvalid("Missing Stripe-Signature header")

        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise SignatureInvalid() from e
        except ValueError as e:
            raise SignatureInvalid("Webhook payload is not valid JSON") from e

        body = json.loads(payload)
        return InboundEvent(
            event_id=body["id"],
            type=body["type"],
            payload=(body.get("data") or {}).get("object") or {},
            received_at=utc_now(),
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def retrieve_subscription(self, subscription_id: str) -> ProviderSubscriptionSnapshot:
        subscription = self._call("retrieve_subscription", stripe.Subscription.retrieve, subscription_id)
        snapshot = snapshot_from_stripe(subscription)
        logger.debug(
            "subscription_fetched",
            subscription_id=mask_id(subscription_id),
            status=snapshot.status,
            cancel_at_period_end=snapshot.cancel_at_period_end,
        )
        return snapshot

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> ProviderSubscriptionSnapshot:
        """Schedule or unschedule cancellation; returns the provider's updated view."""
        subscription = self._call(
            "set_cancel_at_period_end",
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=cancel,
        )
        logger.info(
            "provider_cancel_flag_set",
            subscription_id=mask_id(subscription_id),
            cancel_at_period_end=cancel,
        )
        return snapshot_from_stripe(subscription)

    def find_subscription_for_customer(self, customer_id: str) -> Optional[ProviderSubscriptionSnapshot]:
        """Most relevant subscription of a customer, or None if it has none."""
        result = self._call(
            "list_subscriptions",
            stripe.Subscription.list,
            customer=customer_id,
            status="all",
            limit=10,
        )
        subscriptions = list(get_field(result, "data") or [])
        if not subscriptions:
            return None

        def rank(subscription: Any) -> int:
            status = get_field(subscription, "status")
            if status in _DISCOVERY_PREFERENCE:
                return _DISCOVERY_PREFERENCE.index(status)
            return len(_DISCOVERY_PREFERENCE)

        # The list is newest first; min keeps the first of equal rank
        return snapshot_from_stripe(min(subscriptions, key=rank))

    def find_customer_ids_by_email(self, email: str) -> list[str]:
        """Ids of customers registered with this e-mail, newest first.

        Checkout without a stored customer creates a new customer each time,
        so one e-mail can map to several.
        """
        result = self._call(
            "list_customers",
            stripe.Customer.list,
            email=email,
            limit=EMAIL_DISCOVERY_LIMIT,
        )
        return [get_field(c, "id") for c in get_field(result, "data") or [] if get_field(c, "id")]

    def find_subscription_in_paid_checkouts(self, email: str) -> Optional[ProviderSubscriptionSnapshot]:
        """Active subscription from a recent paid checkout made with this e-mail."""
        result = self._call(
            "list_checkout_sessions",
            stripe.checkout.Session.list,
            limit=CHECKOUT_DISCOVERY_LIMIT,
        )
        for session in get_field(result, "data") or []:
            details = get_field(session, "customer_details")
            subscription_id = ref_id(get_field(session, "subscription"))
            if (
                get_field(details, "email") != email
                or get_field(session, "payment_status") != "paid"
                or not subscription_id
            ):
                continue
            try:
                snapshot = self.retrieve_subscription(subscription_id)
            except ResourceMissing:
                logger.info("checkout_subscription_missing", subscription_id=mask_id(subscription_id))
                continue
            if snapshot.status == ProviderStatus.ACTIVE.value:
                return snapshot
        return None

    # ------------------------------------------------------------------
    # Customers and invoices
    # ------------------------------------------------------------------

    def retrieve_customer(self, customer_id: str) -> CustomerSummary:
        customer = self._call("retrieve_customer", stripe.Customer.retrieve, customer_id)
        if get_field(customer, "deleted", False):
            return CustomerSummary(id=customer_id, deleted=True)
        return CustomerSummary(
            id=get_field(customer, "id") or customer_id,
            email=get_field(customer, "email"),
            name=get_field(customer, "name"),
        )

    def latest_open_invoice(self, customer_id: str, subscription_id: str) -> Optional[InvoiceSummary]:
        result = self._call(
            "list_invoices",
            stripe.Invoice.list,
            customer=customer_id,
            subscription=subscription_id,
            status="open",
            limit=1,
        )
        invoices = get_field(result, "data") or []
        if not invoices:
            return None
        invoice = invoices[0]
        return InvoiceSummary(
            id=get_field(invoice, "id"),
            amount_due=get_field(invoice, "amount_due") or 0,
            currency=get_field(invoice, "currency"),
            period_end=from_epoch_seconds(get_field(invoice, "period_end")),
        )

    # ------------------------------------------------------------------
    # Checkout and portal
    # ------------------------------------------------------------------

    def create_checkout_session(
        self,
        profile_id: str,
        plan: PlanSettings,
        success_url: str,
        cancel_url: str,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> tuple[str, Optional[str]]:
        """Create a subscription-mode checkout session.

        The profile id is stamped on the session and on the subscription it
        creates, so every later event can be attributed.

        Returns:
            (session id, hosted checkout URL)
        """
        if plan.price_id:
            line_item = {"price": plan.price_id, "quantity": 1}
        else:
            line_item = {
                "price_data": {
                    "currency": plan.currency,
                    "product_data": {"name": plan.product_name, "description": plan.description},
                    "unit_amount": plan.amount,
                    "recurring": {"interval": plan.interval},
                },
                "quantity": 1,
            }

        params: dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [line_item],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {"profileId": profile_id},
            "subscription_data": {"metadata": {"profileId": profile_id}},
            "allow_promotion_codes": False,
            "billing_address_collection": "auto",
        }
        if customer_id:
            params["customer"] = customer_id
        elif customer_email:
            params["customer_email"] = customer_email

        session = self._call("create_checkout_session", stripe.checkout.Session.create, **params)
        logger.info("checkout_session_created", profile_id=profile_id, session_id=mask_id(get_field(session, "id")))
        return get_field(session, "id"), get_field(session, "url")

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        session = self._call(
            "create_portal_session",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        return get_field(session, "url")


# Global provider instance
_provider_instance: Optional[BillingProvider] = None
_provider_lock = threading.Lock()


def get_billing_provider() -> BillingProvider:
    """Get global billing provider (singleton).

    Raises:
        NotConfigured: If STRIPE_SECRET_KEY is not set
    """
    global _provider_instance
    if _provider_instance is None:
        with _provider_lock:
            if _provider_instance is None:
                config = get_config()
                if not config.stripe_secret_key:
                    logger.error("billing_not_configured", missing="STRIPE_SECRET_KEY")
                    raise NotConfigured()
                _provider_instance = BillingProvider(
                    api_key=config.stripe_secret_key,
                    webhook_secret=config.stripe_webhook_secret,
                    timeout_seconds=config.provider_timeout_seconds,
                )
    return _provider_instance


def reset_billing_provider() -> None:
    global _provider_instance
    with _provider_lock:
        _provider_instance = None
