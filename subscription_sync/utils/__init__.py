"""Utility functions and helpers for the synchronizer."""

from subscription_sync.utils.money import format_amount, minor_to_major
from subscription_sync.utils.time_utils import (
    days_until,
    ensure_aware,
    from_epoch_seconds,
    utc_now,
)

__all__ = [
    # Time
    "utc_now",
    "from_epoch_seconds",
    "ensure_aware",
    "days_until",
    # Money
    "format_amount",
    "minor_to_major",
]
