"""Webhook receiver - verifies, deduplicates and applies provider events.

Per delivery:
    received -> signature verified -> irrelevant: ack
                                   -> relevant: dedup checked -> snapshot fetched
                                      -> resolved -> synchronized -> ack

The embedded event payload is only used to find the subscription and its
owner. State is always derived from a freshly fetched snapshot, so an old or
reordered event can never roll a record back.
"""

from typing import Any, Optional

from subscription_sync.errors import ResourceMissing, UnhandledEventType
from subscription_sync.logging_config import bind_context, get_logger
from subscription_sync.models.api_response import WebhookAck
from subscription_sync.models.events import (
    INVOICE_EVENT_TYPES,
    SUBSCRIPTION_EVENT_TYPES,
    EventType,
    InboundEvent,
)
from subscription_sync.repositories.idempotency_store import IdempotencyStore
from subscription_sync.repositories.profile_store import ProfileStore
from subscription_sync.services.billing_provider import (
    BillingProvider,
    get_field,
    metadata_profile_id,
    ref_id,
)
from subscription_sync.services.synchronizer import ProfileSynchronizer
from subscription_sync.state_logger import mask_id

logger = get_logger(__name__)


def invoice_subscription_id(invoice: Any) -> Optional[str]:
    """Subscription an invoice belongs to, across provider API versions."""
    subscription_id = ref_id(get_field(invoice, "subscription"))
    if subscription_id:
        return subscription_id
    details = get_field(get_field(invoice, "parent"), "subscription_details")
    return ref_id(get_field(details, "subscription"))


class WebhookReceiver:
    """Processes one webhook delivery at a time; safe to run concurrently."""

    def __init__(
        self,
        provider: BillingProvider,
        idempotency_store: IdempotencyStore,
        synchronizer: ProfileSynchronizer,
        profile_store: ProfileStore,
    ):
        self.provider = provider
        self.idempotency_store = idempotency_store
        self.synchronizer = synchronizer
        self.profile_store = profile_store

    def handle(self, payload: bytes, signature: Optional[str]) -> WebhookAck:
        """Handle one delivery.

        Raises:
            SignatureInvalid: Signature missing or wrong; nothing is recorded
            SyncError: Processing failed; the idempotency marker is released so
                the provider's redelivery retries the event
        """
        event = self.provider.construct_event(payload, signature)
        bind_context(event_id=event.event_id, event_type=event.type)
        logger.info("webhook_event_received")

        if not event.is_relevant:
            ignored = UnhandledEventType(event_type=event.type)
            logger.info("webhook_event_ignored", reason=ignored.code)
            return WebhookAck()

        if self.idempotency_store.already_processed(event.event_id):
            logger.info("webhook_event_duplicate")
            return WebhookAck()

        if not self.idempotency_store.begin_processing(event.event_id, now=event.received_at):
            logger.info("webhook_event_duplicate", claimed_concurrently=True)
            return WebhookAck()

        try:
            self._dispatch(event)
        except Exception as exc:
            self.idempotency_store.abort_processing(event.event_id)
            logger.error(
                "webhook_event_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                marker_released=True,
            )
            raise

        logger.info("webhook_event_processed")
        return WebhookAck()

    def _dispatch(self, event: InboundEvent) -> None:
        obj = event.payload

        if event.type == EventType.CHECKOUT_SESSION_COMPLETED.value:
            if get_field(obj, "mode") != "subscription":
                logger.info("checkout_session_ignored", mode=get_field(obj, "mode"))
                return
            self._sync_subscription(
                event,
                subscription_id=ref_id(get_field(obj, "subscription")),
                profile_hint=metadata_profile_id(obj) or get_field(obj, "client_reference_id"),
                customer_hint=ref_id(get_field(obj, "customer")),
            )
        elif event.type in SUBSCRIPTION_EVENT_TYPES:
            self._sync_subscription(
                event,
                subscription_id=get_field(obj, "id"),
                profile_hint=metadata_profile_id(obj),
                customer_hint=ref_id(get_field(obj, "customer")),
            )
        elif event.type in INVOICE_EVENT_TYPES:
            self._sync_subscription(
                event,
                subscription_id=invoice_subscription_id(obj),
                profile_hint=None,
                customer_hint=ref_id(get_field(obj, "customer")),
            )

    def _sync_subscription(
        self,
        event: InboundEvent,
        subscription_id: Optional[str],
        profile_hint: Optional[str],
        customer_hint: Optional[str],
    ) -> None:
        if not subscription_id:
            logger.info("webhook_event_without_subscription")
            return

        try:
            snapshot = self.provider.retrieve_subscription(subscription_id)
        except ResourceMissing:
            # Redelivery cannot bring the subscription back
            logger.warning("webhook_subscription_missing", subscription_id=mask_id(subscription_id))
            return

        profile_id = self._resolve_profile(
            profile_hint or snapshot.metadata_profile_id,
            subscription_id,
            snapshot.customer_id or customer_hint,
        )
        if profile_id is None:
            logger.warning(
                "webhook_profile_unresolved",
                subscription_id=mask_id(subscription_id),
                customer_id=mask_id(snapshot.customer_id or customer_hint),
            )
            return

        bind_context(profile_id=profile_id)
        self.synchronizer.apply_snapshot(profile_id, snapshot, reason=event.type)

    def _resolve_profile(
        self,
        profile_hint: Optional[str],
        subscription_id: str,
        customer_id: Optional[str],
    ) -> Optional[str]:
        """Owner of a subscription: metadata id, then stored subscription id, then customer id."""
        if profile_hint and profile_hint in self.profile_store:
            return profile_hint
        if profile_hint:
            logger.warning("webhook_metadata_profile_unknown", profile_hint=profile_hint)

        record = self.profile_store.find_by_provider_subscription_id(subscription_id)
        if record is None and customer_id:
            record = self.profile_store.find_by_provider_customer_id(customer_id)
        return record.profile_id if record else None
