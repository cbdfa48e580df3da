"""State change logging for subscription records.

Tracks transitions with before/after values for debugging and auditing.
"""

from typing import Any, Optional

from subscription_sync.logging_config import get_logger

logger = get_logger(__name__)


def mask_id(value: Optional[str], keep: int = 14) -> Optional[str]:
    """Shorten a provider id for logging."""
    if value is None:
        return None
    return value if len(value) <= keep else value[:keep] + "..."


def log_status_change(
    profile_id: str,
    old_status: Any,
    new_status: Any,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log canonical status change.

    Args:
        profile_id: Owning profile
        old_status: Previous canonical status
        new_status: New canonical status
        reason: What triggered the change (webhook event type, sync, sweep, ...)
        **extra_context: Additional context (subscription_id, version, ...)
    """
    logger.info(
        "subscription_status_changed",
        profile_id=profile_id,
        old_status=str(old_status),
        new_status=str(new_status),
        reason=reason,
        **extra_context,
    )


def log_visibility_change(
    profile_id: str,
    old_value: bool,
    new_value: bool,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    logger.info(
        "profile_visibility_changed",
        profile_id=profile_id,
        old_is_public=old_value,
        new_is_public=new_value,
        reason=reason,
        **extra_context,
    )


def log_cancel_flag_change(
    profile_id: str,
    old_value: bool,
    new_value: bool,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    logger.info(
        "cancel_at_period_end_changed",
        profile_id=profile_id,
        old_value=old_value,
        new_value=new_value,
        reason=reason,
        **extra_context,
    )


def log_stale_write_discarded(
    profile_id: str,
    snapshot_fetched_at: Any,
    record_synced_at: Any,
    reason: Optional[str] = None,
) -> None:
    """Log a synchronization skipped because a newer snapshot was already applied."""
    logger.warning(
        "stale_snapshot_discarded",
        profile_id=profile_id,
        snapshot_fetched_at=str(snapshot_fetched_at),
        record_synced_at=str(record_synced_at),
        reason=reason,
    )
