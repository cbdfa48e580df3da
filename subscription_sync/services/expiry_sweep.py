"""Expiry sweep - demotes pro records whose paid period has ended.

Catches subscriptions whose final webhook was lost. Each row is handled on
its own, so a failure only leaves that row for the next run.
"""

from datetime import datetime, timezone
from typing import Optional

from subscription_sync.errors import ResourceMissing, SyncError
from subscription_sync.logging_config import get_logger
from subscription_sync.models.api_response import SweepPreviewEntry, SweepPreviewResponse, SweepResponse
from subscription_sync.models.profile import CanonicalStatus, SubscriptionRecord
from subscription_sync.models.snapshot import ProviderStatus, ProviderSubscriptionSnapshot
from subscription_sync.repositories.profile_store import ProfileStore
from subscription_sync.services.billing_provider import BillingProvider
from subscription_sync.services.synchronizer import ProfileSynchronizer
from subscription_sync.utils.time_utils import days_until, ensure_aware, utc_now

logger = get_logger(__name__)

# Never-synced records; older than any real provider fetch
LOCAL_SNAPSHOT_TIME = datetime(1970, 1, 1, tzinfo=timezone.utc)


def expired_snapshot(record: SubscriptionRecord) -> ProviderSubscriptionSnapshot:
    """Locally reasoned snapshot for a record whose period is over.

    It carries the fetch time of the record's last provider snapshot, so any
    snapshot actually fetched from the provider since then supersedes it.
    """
    return ProviderSubscriptionSnapshot(
        id=record.provider_subscription_id or "",
        status=ProviderStatus.CANCELED.value,
        customer_id=record.provider_customer_id,
        current_period_end=record.current_period_end,
        cancel_at_period_end=record.cancel_at_period_end,
        fetched_at=ensure_aware(record.synced_at) or LOCAL_SNAPSHOT_TIME,
    )


class ExpirySweep:
    """Scheduled job over every expired pro record."""

    def __init__(
        self,
        synchronizer: ProfileSynchronizer,
        profile_store: ProfileStore,
        provider: Optional[BillingProvider] = None,
        refetch_from_provider: bool = True,
    ):
        self.synchronizer = synchronizer
        self.profile_store = profile_store
        self.provider = provider
        self.refetch_from_provider = refetch_from_provider

    def _snapshot_for(self, record: SubscriptionRecord) -> ProviderSubscriptionSnapshot:
        if self.provider is None or not self.refetch_from_provider or not record.provider_subscription_id:
            return expired_snapshot(record)
        try:
            return self.provider.retrieve_subscription(record.provider_subscription_id)
        except ResourceMissing:
            logger.warning("expiry_sweep_subscription_missing", profile_id=record.profile_id)
            return expired_snapshot(record)

    def run(self, now: Optional[datetime] = None) -> SweepResponse:
        """Demote every pro record with current_period_end < now.

        Returns:
            SweepResponse with demoted and failed profile ids
        """
        now = ensure_aware(now) or utc_now()
        candidates = self.profile_store.get_expired_entitlements(now)
        logger.info(
            "expiry_sweep_started",
            candidates=len(candidates),
            refetch=self.refetch_from_provider and self.provider is not None,
        )

        demoted: list[str] = []
        failed: list[str] = []

        for record in candidates:
            try:
                snapshot = self._snapshot_for(record)
                outcome = self.synchronizer.apply_snapshot(record.profile_id, snapshot, now=now, reason="expiry_sweep")
            except SyncError as e:
                failed.append(record.profile_id)
                logger.warning(
                    "expiry_sweep_row_failed",
                    profile_id=record.profile_id,
                    error=e.code,
                    retryable=e.retryable,
                )
                continue

            if outcome.record.canonical_status != CanonicalStatus.PRO:
                demoted.append(record.profile_id)
            else:
                logger.info(
                    "expiry_sweep_row_renewed",
                    profile_id=record.profile_id,
                    current_period_end=str(outcome.record.current_period_end),
                )

        logger.info(
            "expiry_sweep_completed",
            checked=len(candidates),
            demoted=len(demoted),
            failed=len(failed),
        )
        return SweepResponse(
            message=f"Updated {len(demoted)} expired subscriptions",
            updated=len(demoted),
            demoted_profile_ids=demoted,
            failed_profile_ids=failed,
            checked=len(candidates),
        )

    def preview(self, now: Optional[datetime] = None) -> SweepPreviewResponse:
        """Read-only listing of pro records and how close they are to expiry."""
        now = ensure_aware(now) or utc_now()
        entries = []
        for record in self.profile_store.get_by_status(CanonicalStatus.PRO):
            end = ensure_aware(record.current_period_end)
            expired = end is not None and end < now
            entries.append(
                SweepPreviewEntry(
                    profile_id=record.profile_id,
                    status="expired" if expired else "active",
                    days_until_expiry=None if expired else days_until(end, now),
                    subscription_end=end,
                )
            )

        expired_count = sum(1 for e in entries if e.status == "expired")
        return SweepPreviewResponse(
            profiles=entries,
            total=len(entries),
            expired=expired_count,
            active=len(entries) - expired_count,
        )
