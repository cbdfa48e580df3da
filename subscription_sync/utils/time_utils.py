"""Timestamp helpers.

The billing provider reports times as Unix seconds; everything inside the
application uses timezone-aware UTC datetimes.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def from_epoch_seconds(value: Any) -> Optional[datetime]:
    """Convert provider Unix seconds to an aware UTC datetime.

    Args:
        value: Seconds since epoch (int, float or numeric string), or None

    Returns:
        datetime in UTC, or None if value is None/empty

    Raises:
        ValueError: If value is not numeric
    """
    if value is None or value == "":
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def days_until(target: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole days from now until target, rounded up and never negative.

    Examples:
        >>> now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        >>> days_until(now + timedelta(days=5), now)
        5
        >>> days_until(now + timedelta(days=4, hours=1), now)
        5
        >>> days_until(now - timedelta(days=1), now)
        0
    """
    if target is None:
        return None
    remaining = (ensure_aware(target) - ensure_aware(now)).total_seconds()
    return max(0, math.ceil(remaining / SECONDS_PER_DAY))
