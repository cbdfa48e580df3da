"""Subscription detail projector - read-only billing view for the dashboard."""

from datetime import datetime
from typing import Optional

from subscription_sync.errors import NoSubscription, SyncError
from subscription_sync.logging_config import get_logger
from subscription_sync.models.api_response import SubscriptionDetail
from subscription_sync.models.profile import CanonicalStatus
from subscription_sync.models.snapshot import (
    CustomerSummary,
    InvoiceSummary,
    ProviderStatus,
    ProviderSubscriptionSnapshot,
)
from subscription_sync.repositories.profile_store import ProfileStore
from subscription_sync.services.billing_provider import BillingProvider
from subscription_sync.utils.money import format_amount
from subscription_sync.utils.time_utils import days_until, utc_now

logger = get_logger(__name__)

UNLINKED_PRO_MESSAGE = (
    "Your account shows Premium status but is not connected to a billing subscription. "
    "Please use \"Sync subscription\" to connect your account."
)
NO_SUBSCRIPTION_MESSAGE = (
    "No active subscription found. If you recently paid for a subscription, please contact support."
)


def project(
    snapshot: ProviderSubscriptionSnapshot,
    customer: CustomerSummary,
    invoice: Optional[InvoiceSummary],
    now: Optional[datetime] = None,
) -> SubscriptionDetail:
    """Compose the display model from provider data.

    Pure; no I/O. ``days_until_cancellation`` is only set while a
    cancellation is scheduled.
    """
    now = now or utc_now()
    amount = snapshot.unit_amount or 0
    currency = snapshot.currency or "usd"
    renewal_days = days_until(snapshot.current_period_end, now)

    next_billing_amount = invoice.amount_due if invoice else None
    next_billing_currency = (invoice.currency if invoice else None) or currency

    return SubscriptionDetail(
        id=snapshot.id,
        status=snapshot.status,
        current_period_start=snapshot.current_period_start,
        current_period_end=snapshot.current_period_end,
        amount=amount,
        currency=currency,
        interval=snapshot.interval or "month",
        formatted_amount=format_amount(amount, currency),
        cancel_at_period_end=snapshot.cancel_at_period_end,
        canceled_at=snapshot.canceled_at,
        customer_email="" if customer.deleted else (customer.email or ""),
        customer_name=None if customer.deleted else customer.name,
        next_billing_date=invoice.period_end if invoice else None,
        next_billing_amount=next_billing_amount,
        formatted_next_billing_amount=format_amount(next_billing_amount, next_billing_currency),
        trial_start=snapshot.trial_start,
        trial_end=snapshot.trial_end,
        is_active=snapshot.status == ProviderStatus.ACTIVE.value,
        is_trialing=snapshot.status == ProviderStatus.TRIALING.value,
        is_canceled=snapshot.status == ProviderStatus.CANCELED.value,
        is_past_due=snapshot.status == ProviderStatus.PAST_DUE.value,
        is_unpaid=snapshot.status == ProviderStatus.UNPAID.value,
        days_until_renewal=renewal_days,
        days_until_cancellation=renewal_days if snapshot.cancel_at_period_end else None,
    )


class DetailProjector:
    """Fetches subscription, customer and open invoice for one profile."""

    def __init__(self, provider: BillingProvider, profile_store: ProfileStore):
        self.provider = provider
        self.profile_store = profile_store

    def get_details(self, profile_id: str, now: Optional[datetime] = None) -> SubscriptionDetail:
        """Build the detail view.

        Raises:
            ProfileNotFound: Unknown profile
            NoSubscription: Profile has no linked provider subscription
            ResourceMissing: Provider no longer knows the subscription or customer
            ProviderTransient: Provider unavailable
        """
        record = self.profile_store.get(profile_id)
        if not record.provider_customer_id or not record.provider_subscription_id:
            if record.canonical_status == CanonicalStatus.PRO:
                raise NoSubscription(UNLINKED_PRO_MESSAGE)
            raise NoSubscription(NO_SUBSCRIPTION_MESSAGE)

        snapshot = self.provider.retrieve_subscription(record.provider_subscription_id)
        customer = self.provider.retrieve_customer(record.provider_customer_id)

        try:
            invoice = self.provider.latest_open_invoice(record.provider_customer_id, record.provider_subscription_id)
        except SyncError as e:
            logger.info("open_invoice_unavailable", profile_id=profile_id, error=e.code)
            invoice = None

        return project(snapshot, customer, invoice, now)
