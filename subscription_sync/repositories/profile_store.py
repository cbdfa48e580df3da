"""Profile store - in-memory storage for subscription records.

Stands in for the application's profile table. Every mutation of a record's
subscription fields goes through ``apply_sync``, which replaces the whole
record under the store lock so no reader can observe a partial write.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from subscription_sync.errors import DatastoreError, ProfileNotFound
from subscription_sync.models.profile import CanonicalStatus, SubscriptionRecord
from subscription_sync.utils.time_utils import ensure_aware, utc_now

# Fields that make up the derived subscription state
SYNC_FIELDS = (
    "provider_customer_id",
    "provider_subscription_id",
    "canonical_status",
    "is_public",
    "current_period_end",
    "cancel_at_period_end",
    "canceled_at",
)


class ProfileNotFoundError(ProfileNotFound):
    """Raised when a profile is not found in the store."""

    pass


class ProfileStore:
    """In-memory storage for subscription records keyed by profile id.

    Thread-safe. ``apply_sync`` is a compare-and-apply: a write derived from a
    snapshot fetched earlier than the one already applied is discarded.
    """

    def __init__(self):
        """Initialize profile store with empty storage."""
        self._records: Dict[str, SubscriptionRecord] = {}
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the store lock across a read-then-write sequence."""
        with self._lock:
            yield

    def create_profile(self, profile_id: str) -> SubscriptionRecord:
        """Create the subscription record for a new profile (free, no provider ids).

        Raises:
            ValueError: If the profile already exists
        """
        with self._lock:
            if profile_id in self._records:
                raise ValueError(f"Profile '{profile_id}' already exists")
            record = SubscriptionRecord(profile_id=profile_id)
            self._records[profile_id] = record
            return record

    def upsert(self, record: SubscriptionRecord) -> None:
        """Insert or replace a record as-is (seeding and migrations)."""
        with self._lock:
            self._records[record.profile_id] = record

    def get(self, profile_id: str) -> SubscriptionRecord:
        """Get record by profile id.

        Raises:
            ProfileNotFoundError: If profile_id not found
        """
        with self._lock:
            record = self._records.get(profile_id)
            if record is None:
                raise ProfileNotFoundError(f"Profile not found: {profile_id}")
            return record

    def find(self, profile_id: str) -> Optional[SubscriptionRecord]:
        with self._lock:
            return self._records.get(profile_id)

    def find_by_provider_subscription_id(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        with self._lock:
            for record in self._records.values():
                if record.provider_subscription_id == subscription_id:
                    return record
            return None

    def find_by_provider_customer_id(self, customer_id: str) -> Optional[SubscriptionRecord]:
        with self._lock:
            for record in self._records.values():
                if record.provider_customer_id == customer_id:
                    return record
            return None

    def get_by_status(self, status: CanonicalStatus) -> List[SubscriptionRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.canonical_status == status]

    def get_expired_entitlements(self, now: datetime) -> List[SubscriptionRecord]:
        """Get pro records whose paid period ended before now.

        Args:
            now: Reference time

        Returns:
            Records with canonical_status == pro and current_period_end < now
        """
        now = ensure_aware(now)
        with self._lock:
            return [
                r
                for r in self._records.values()
                if r.canonical_status == CanonicalStatus.PRO
                and r.current_period_end is not None
                and ensure_aware(r.current_period_end) < now
            ]

    def apply_sync(
        self,
        profile_id: str,
        changes: Dict[str, Any],
        fetched_at: Optional[datetime] = None,
    ) -> Tuple[SubscriptionRecord, bool, bool]:
        """Atomically replace the subscription fields of one record.

        Args:
            profile_id: Profile to update
            changes: New values for fields in SYNC_FIELDS
            fetched_at: Fetch time of the snapshot the values were derived from

        Returns:
            (record after the call, whether the write was applied,
            whether any subscription field changed)

        Raises:
            ProfileNotFoundError: If profile_id not found
            DatastoreError: If the resulting record would be inconsistent
        """
        unknown = set(changes) - set(SYNC_FIELDS)
        if unknown:
            raise DatastoreError(f"Refusing to write non-subscription fields: {sorted(unknown)}")

        fetched_at = ensure_aware(fetched_at)

        with self._lock:
            current = self.get(profile_id)

            if (
                fetched_at is not None
                and current.synced_at is not None
                and fetched_at < ensure_aware(current.synced_at)
            ):
                return current, False, False

            merged = current.model_dump()
            merged.update(changes)
            if fetched_at is not None:
                merged["synced_at"] = fetched_at

            changed = any(merged[field] != getattr(current, field) for field in SYNC_FIELDS)
            if changed:
                merged["version"] = current.version + 1
                merged["updated_at"] = utc_now()

            try:
                updated = SubscriptionRecord.model_validate(merged)
            except ValidationError as e:
                raise DatastoreError(f"Rejected inconsistent write for profile {profile_id}: {e}")

            self._records[profile_id] = updated
            return updated, True, changed

    def get_all(self) -> List[SubscriptionRecord]:
        with self._lock:
            return list(self._records.values())

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def clear(self) -> None:
        """Clear all records.

        Warning: This removes all data. Use with caution.
        """
        with self._lock:
            self._records.clear()

    def get_statistics(self) -> Dict[str, int]:
        """Counts per canonical status plus visibility and scheduled cancellations."""
        with self._lock:
            records = list(self._records.values())
            return {
                "total_profiles": len(records),
                "free": sum(1 for r in records if r.canonical_status == CanonicalStatus.FREE),
                "pro": sum(1 for r in records if r.canonical_status == CanonicalStatus.PRO),
                "canceled": sum(1 for r in records if r.canonical_status == CanonicalStatus.CANCELED),
                "public": sum(1 for r in records if r.is_public),
                "cancel_scheduled": sum(1 for r in records if r.cancel_at_period_end),
            }

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, profile_id: str) -> bool:
        with self._lock:
            return profile_id in self._records

    def __repr__(self) -> str:
        return f"ProfileStore(profiles={self.count()})"


# Global store instance
_store_instance: Optional[ProfileStore] = None
_store_lock = threading.Lock()


def get_profile_store() -> ProfileStore:
    """Get global profile store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = ProfileStore()
    return _store_instance


def reset_profile_store() -> None:
    """Clear the global profile store.

    Warning: This removes all profile data. Use with caution.
    """
    get_profile_store().clear()
