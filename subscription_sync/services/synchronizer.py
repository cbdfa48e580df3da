"""Profile synchronizer - the single writer of subscription records.

Takes a resolved status plus the provider fields that accompany it and
persists them in one atomic store write.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple, Optional

from subscription_sync.logging_config import get_logger
from subscription_sync.models.profile import CanonicalStatus, SubscriptionRecord
from subscription_sync.models.snapshot import ProviderSubscriptionSnapshot, ResolvedStatus
from subscription_sync.repositories.profile_store import ProfileStore, get_profile_store
from subscription_sync.services.resolver import resolve
from subscription_sync.state_logger import (
    log_cancel_flag_change,
    log_stale_write_discarded,
    log_status_change,
    log_visibility_change,
    mask_id,
)
from subscription_sync.utils.time_utils import utc_now

logger = get_logger(__name__)


class ProviderIds(NamedTuple):
    """Provider references to store. None keeps the stored value."""

    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None


@dataclass
class SyncOutcome:
    """Result of one synchronizer call."""

    record: SubscriptionRecord
    applied: bool
    changed: bool
    previous: Optional[SubscriptionRecord] = None


class ProfileSynchronizer:
    """Writes resolved subscription state to the profile store."""

    def __init__(self, store: Optional[ProfileStore] = None):
        self.store = store or get_profile_store()

    def _next_canceled_at(
        self,
        current: SubscriptionRecord,
        resolved: ResolvedStatus,
        now: datetime,
    ) -> Optional[datetime]:
        if resolved.canonical_status != CanonicalStatus.CANCELED:
            return None
        if current.canonical_status == CanonicalStatus.CANCELED and current.canceled_at:
            return current.canceled_at
        return resolved.canceled_at or now

    def apply(
        self,
        profile_id: str,
        provider_ids: ProviderIds,
        resolved: ResolvedStatus,
        period_end: Optional[datetime],
        cancel_flag: bool,
        fetched_at: Optional[datetime] = None,
        reason: Optional[str] = None,
    ) -> SyncOutcome:
        """Persist a resolved state for one profile.

        Args:
            profile_id: Profile to update
            provider_ids: Customer/subscription ids to link
            resolved: Output of the resolver
            period_end: Authoritative end of the current period
            cancel_flag: Provider's cancel-at-period-end flag
            fetched_at: Fetch time of the snapshot behind ``resolved``
            reason: Trigger, used for logging

        Returns:
            SyncOutcome; ``applied`` is False when a newer snapshot was already stored

        Raises:
            ProfileNotFound: If the profile does not exist
            DatastoreError: If the write fails
        """
        now = utc_now()

        with self.store.transaction():
            current = self.store.get(profile_id)

            changes = {
                "canonical_status": resolved.canonical_status,
                "is_public": resolved.is_public,
                "current_period_end": period_end,
                "cancel_at_period_end": cancel_flag,
                "canceled_at": self._next_canceled_at(current, resolved, now),
            }
            if provider_ids.customer_id:
                changes["provider_customer_id"] = provider_ids.customer_id
            if provider_ids.subscription_id:
                changes["provider_subscription_id"] = provider_ids.subscription_id

            record, applied, changed = self.store.apply_sync(profile_id, changes, fetched_at=fetched_at)

        if not applied:
            log_stale_write_discarded(profile_id, fetched_at, current.synced_at, reason=reason)
            return SyncOutcome(record=record, applied=False, changed=False, previous=current)

        if changed:
            self._log_transitions(current, record, reason)
        else:
            logger.debug("subscription_sync_noop", profile_id=profile_id, reason=reason)

        return SyncOutcome(record=record, applied=True, changed=changed, previous=current)

    def apply_snapshot(
        self,
        profile_id: str,
        snapshot: ProviderSubscriptionSnapshot,
        now: Optional[datetime] = None,
        reason: Optional[str] = None,
    ) -> SyncOutcome:
        """Resolve a snapshot and persist the result."""
        resolved = resolve(snapshot, now)
        return self.apply(
            profile_id,
            ProviderIds(customer_id=snapshot.customer_id, subscription_id=snapshot.id),
            resolved,
            period_end=snapshot.current_period_end,
            cancel_flag=snapshot.cancel_at_period_end,
            fetched_at=snapshot.fetched_at,
            reason=reason,
        )

    def _log_transitions(self, old: SubscriptionRecord, new: SubscriptionRecord, reason: Optional[str]) -> None:
        context = {
            "subscription_id": mask_id(new.provider_subscription_id),
            "version": new.version,
        }
        if old.canonical_status != new.canonical_status:
            log_status_change(
                new.profile_id, old.canonical_status.value, new.canonical_status.value, reason=reason, **context
            )
        if old.is_public != new.is_public:
            log_visibility_change(new.profile_id, old.is_public, new.is_public, reason=reason, **context)
        if old.cancel_at_period_end != new.cancel_at_period_end:
            log_cancel_flag_change(
                new.profile_id, old.cancel_at_period_end, new.cancel_at_period_end, reason=reason, **context
            )

        logger.info(
            "subscription_synced",
            profile_id=new.profile_id,
            status=new.canonical_status.value,
            is_public=new.is_public,
            cancel_at_period_end=new.cancel_at_period_end,
            current_period_end=new.current_period_end.isoformat() if new.current_period_end else None,
            reason=reason,
            **context,
        )


# Global synchronizer instance
_synchronizer_instance: Optional[ProfileSynchronizer] = None
_synchronizer_lock = threading.Lock()


def get_synchronizer() -> ProfileSynchronizer:
    """Get global synchronizer instance (singleton)."""
    global _synchronizer_instance
    if _synchronizer_instance is None:
        with _synchronizer_lock:
            if _synchronizer_instance is None:
                _synchronizer_instance = ProfileSynchronizer()
    return _synchronizer_instance
