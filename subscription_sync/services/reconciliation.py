"""User-triggered reconciliation: manual sync, cancel and reactivate.

Each action ends by pushing a provider snapshot through the resolver and the
synchronizer, exactly like a webhook would. Cancel and reactivate never set
the canonical status themselves.
"""

from typing import Optional

from subscription_sync.errors import InvalidSubscriptionState, NoSubscription
from subscription_sync.logging_config import get_logger
from subscription_sync.models.api_response import SubscriptionStatusResponse
from subscription_sync.models.profile import CanonicalStatus, SubscriptionRecord
from subscription_sync.models.snapshot import ProviderSubscriptionSnapshot
from subscription_sync.repositories.profile_store import ProfileStore
from subscription_sync.services.auth import Principal
from subscription_sync.services.billing_provider import BillingProvider
from subscription_sync.services.resolver import ENTITLED_STATUSES
from subscription_sync.services.synchronizer import ProfileSynchronizer
from subscription_sync.state_logger import mask_id

logger = get_logger(__name__)

SYNC_MESSAGE = "Subscription synced successfully"
CANCEL_MESSAGE = "Your subscription has been canceled and will end at the end of your current billing period."
REACTIVATE_MESSAGE = "Your subscription has been reactivated successfully."


class ReconciliationService:
    """Re-derives a profile's subscription state from the provider on demand."""

    def __init__(
        self,
        provider: BillingProvider,
        synchronizer: ProfileSynchronizer,
        profile_store: ProfileStore,
    ):
        self.provider = provider
        self.synchronizer = synchronizer
        self.profile_store = profile_store

    def sync(self, principal: Principal) -> SubscriptionStatusResponse:
        """Refetch the caller's subscription and store the derived state.

        A profile without a stored subscription id is matched through its
        stored customer id, or else the caller's e-mail.

        Raises:
            ProfileNotFound: Unknown profile
            NoSubscription: Provider has no subscription for this caller
            ResourceMissing: Stored subscription id is unknown to the provider
            ProviderTransient: Provider unavailable
        """
        record = self.profile_store.get(principal.profile_id)

        if record.provider_subscription_id:
            snapshot = self.provider.retrieve_subscription(record.provider_subscription_id)
        else:
            snapshot = self._discover(record, principal.email)
            if snapshot is None:
                logger.info("manual_sync_no_subscription", profile_id=record.profile_id)
                raise NoSubscription()

        outcome = self.synchronizer.apply_snapshot(record.profile_id, snapshot, reason="manual_sync")
        logger.info(
            "manual_sync_completed",
            profile_id=record.profile_id,
            status=outcome.record.canonical_status.value,
            changed=outcome.changed,
        )
        return SubscriptionStatusResponse.from_record(outcome.record, SYNC_MESSAGE)

    def cancel(self, principal: Principal) -> SubscriptionStatusResponse:
        """Schedule cancellation at the end of the current period.

        Entitlement continues through the grace period; the resolver decides.
        """
        record = self._require_subscription(principal.profile_id)
        if record.canonical_status != CanonicalStatus.PRO:
            raise InvalidSubscriptionState("There is no active subscription to cancel")

        snapshot = self.provider.set_cancel_at_period_end(record.provider_subscription_id, True)
        outcome = self.synchronizer.apply_snapshot(record.profile_id, snapshot, reason="user_cancel")
        logger.info(
            "subscription_cancel_requested",
            profile_id=record.profile_id,
            subscription_id=mask_id(record.provider_subscription_id),
            current_period_end=str(outcome.record.current_period_end),
        )
        return SubscriptionStatusResponse.from_record(outcome.record, CANCEL_MESSAGE)

    def reactivate(self, principal: Principal) -> SubscriptionStatusResponse:
        """Undo a scheduled cancellation.

        Only possible while the record is still pro (active or in grace). An
        ended subscription needs a new checkout.
        """
        record = self._require_subscription(principal.profile_id)
        if record.canonical_status != CanonicalStatus.PRO:
            raise InvalidSubscriptionState(
                "This subscription has ended and cannot be reactivated. Please subscribe again."
            )

        snapshot = self.provider.set_cancel_at_period_end(record.provider_subscription_id, False)
        outcome = self.synchronizer.apply_snapshot(record.profile_id, snapshot, reason="user_reactivate")
        logger.info(
            "subscription_reactivated",
            profile_id=record.profile_id,
            subscription_id=mask_id(record.provider_subscription_id),
        )
        return SubscriptionStatusResponse.from_record(outcome.record, REACTIVATE_MESSAGE)

    def _require_subscription(self, profile_id: str) -> SubscriptionRecord:
        record = self.profile_store.get(profile_id)
        if not record.has_provider_subscription:
            raise NoSubscription()
        return record

    def _discover(self, record: SubscriptionRecord, email: Optional[str]) -> Optional[ProviderSubscriptionSnapshot]:
        if record.provider_customer_id:
            snapshot = self.provider.find_subscription_for_customer(record.provider_customer_id)
        elif email:
            snapshot = self._discover_by_email(email)
        else:
            snapshot = None

        if snapshot is not None:
            logger.info(
                "manual_sync_discovered_subscription",
                profile_id=record.profile_id,
                subscription_id=mask_id(snapshot.id),
                customer_id=mask_id(snapshot.customer_id),
            )
        return snapshot

    def _discover_by_email(self, email: str) -> Optional[ProviderSubscriptionSnapshot]:
        """First entitled subscription across the e-mail's customers.

        Falls back to recent paid checkouts, then to the first non-entitled
        subscription found so the profile still gets linked.
        """
        first_found = None
        for customer_id in self.provider.find_customer_ids_by_email(email):
            snapshot = self.provider.find_subscription_for_customer(customer_id)
            if snapshot is None:
                continue
            if snapshot.status in ENTITLED_STATUSES:
                return snapshot
            first_found = first_found or snapshot

        return self.provider.find_subscription_in_paid_checkouts(email) or first_found
