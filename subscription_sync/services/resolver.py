"""Subscription state resolver.

Derives the internal canonical status from a provider snapshot. Every code
path that writes a subscription record (webhooks, manual sync, cancel,
reactivate, expiry sweep) goes through ``resolve``.
"""

from datetime import datetime
from typing import Optional

from subscription_sync.models.profile import CanonicalStatus
from subscription_sync.models.snapshot import ProviderStatus, ProviderSubscriptionSnapshot, ResolvedStatus
from subscription_sync.utils.time_utils import ensure_aware, utc_now

ENTITLED_STATUSES = frozenset({ProviderStatus.ACTIVE.value, ProviderStatus.TRIALING.value})
DELINQUENT_STATUSES = frozenset({ProviderStatus.PAST_DUE.value, ProviderStatus.UNPAID.value})


def in_grace_period(snapshot: ProviderSubscriptionSnapshot, now: datetime) -> bool:
    """A canceled subscription keeps entitlement until its scheduled period end."""
    return (
        snapshot.status == ProviderStatus.CANCELED.value
        and snapshot.cancel_at_period_end
        and snapshot.current_period_end is not None
        and ensure_aware(snapshot.current_period_end) > ensure_aware(now)
    )


def resolve(snapshot: ProviderSubscriptionSnapshot, now: Optional[datetime] = None) -> ResolvedStatus:
    """Map a provider snapshot to (canonical_status, is_public, canceled_at).

    Args:
        snapshot: Latest provider view of the subscription
        now: Reference time; defaults to the current time

    Returns:
        ResolvedStatus. ``is_public`` is always ``canonical_status == pro``.

    Examples:
        active / trialing              -> pro, public
        canceled, in grace period      -> pro, public
        canceled, period over          -> canceled, canceled_at from provider
        past_due / unpaid              -> canceled
        incomplete, paused, unknown    -> free
    """
    now = now or utc_now()
    status = snapshot.status

    if status in ENTITLED_STATUSES or in_grace_period(snapshot, now):
        return ResolvedStatus(canonical_status=CanonicalStatus.PRO, is_public=True)

    if status == ProviderStatus.CANCELED.value or status in DELINQUENT_STATUSES:
        return ResolvedStatus(
            canonical_status=CanonicalStatus.CANCELED,
            is_public=False,
            canceled_at=snapshot.canceled_at,
        )

    return ResolvedStatus(canonical_status=CanonicalStatus.FREE, is_public=False)
