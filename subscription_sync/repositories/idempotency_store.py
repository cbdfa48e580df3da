"""Processed-event markers for at-most-once webhook handling.

A marker is claimed before an event's side effects run and removed again if
processing fails, so the provider's redelivery retries the event. Markers
that outlive the retention window are purged.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, Optional

import redis

from subscription_sync.config import ConfigurationError, get_config
from subscription_sync.errors import DatastoreError
from subscription_sync.logging_config import get_logger
from subscription_sync.utils.time_utils import ensure_aware, utc_now

logger = get_logger(__name__)

DEFAULT_RETENTION = timedelta(hours=24)


class IdempotencyStore(ABC):
    """Marker storage keyed by provider event id."""

    def __init__(self, retention: timedelta = DEFAULT_RETENTION):
        self.retention = retention

    @abstractmethod
    def already_processed(self, event_id: str) -> bool:
        """True if a live marker exists for event_id."""

    @abstractmethod
    def begin_processing(self, event_id: str, now: Optional[datetime] = None) -> bool:
        """Claim event_id.

        Returns:
            True if this caller now owns the event, False if it was already claimed
        """

    @abstractmethod
    def abort_processing(self, event_id: str) -> None:
        """Release a claim so the event is processed again on redelivery."""

    @abstractmethod
    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Purge markers older than the retention window.

        Returns:
            Number of markers removed
        """


class InMemoryIdempotencyStore(IdempotencyStore):
    """Process-local markers. Only correct with a single worker process."""

    def __init__(self, retention: timedelta = DEFAULT_RETENTION):
        super().__init__(retention)
        self._markers: Dict[str, datetime] = {}
        self._lock = threading.RLock()

    def _is_live(self, started_at: datetime, now: datetime) -> bool:
        return now - started_at < self.retention

    def already_processed(self, event_id: str) -> bool:
        with self._lock:
            started_at = self._markers.get(event_id)
            return started_at is not None and self._is_live(started_at, utc_now())

    def begin_processing(self, event_id: str, now: Optional[datetime] = None) -> bool:
        now = ensure_aware(now) or utc_now()
        with self._lock:
            started_at = self._markers.get(event_id)
            if started_at is not None and self._is_live(started_at, now):
                return False
            self._markers[event_id] = now
            return True

    def abort_processing(self, event_id: str) -> None:
        with self._lock:
            self._markers.pop(event_id, None)

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        now = ensure_aware(now) or utc_now()
        with self._lock:
            expired = [
                event_id
                for event_id, started_at in self._markers.items()
                if not self._is_live(started_at, now)
            ]
            for event_id in expired:
                del self._markers[event_id]
        if expired:
            logger.info("idempotency_markers_purged", count=len(expired))
        return len(expired)

    def count(self) -> int:
        with self._lock:
            return len(self._markers)

    def clear(self) -> None:
        with self._lock:
            self._markers.clear()


class RedisIdempotencyStore(IdempotencyStore):
    """Markers shared across processes, stored as Redis keys with a TTL.

    The claim is a single ``SET NX EX`` so two workers receiving the same
    delivery cannot both win. Expiry is left to Redis.
    """

    def __init__(
        self,
        client: redis.Redis,
        retention: timedelta = DEFAULT_RETENTION,
        key_prefix: str = "billing:event:",
    ):
        super().__init__(retention)
        self._client = client
        self._key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, retention: timedelta = DEFAULT_RETENTION, key_prefix: str = "billing:event:"):
        client = redis.Redis.from_url(url, decode_responses=True)
        return cls(client, retention=retention, key_prefix=key_prefix)

    def _key(self, event_id: str) -> str:
        return f"{self._key_prefix}{event_id}"

    def already_processed(self, event_id: str) -> bool:
        try:
            return bool(self._client.exists(self._key(event_id)))
        except redis.RedisError as e:
            raise DatastoreError(f"Idempotency lookup failed: {e}")

    def begin_processing(self, event_id: str, now: Optional[datetime] = None) -> bool:
        now = ensure_aware(now) or utc_now()
        try:
            claimed = self._client.set(
                self._key(event_id),
                now.isoformat(),
                nx=True,
                ex=int(self.retention.total_seconds()),
            )
        except redis.RedisError as e:
            raise DatastoreError(f"Idempotency claim failed: {e}")
        return bool(claimed)

    def abort_processing(self, event_id: str) -> None:
        try:
            self._client.delete(self._key(event_id))
        except redis.RedisError as e:
            raise DatastoreError(f"Idempotency release failed: {e}")

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        # Keys expire through their TTL
        return 0


# Global store instance
_store_instance: Optional[IdempotencyStore] = None
_store_lock = threading.Lock()


def build_idempotency_store() -> IdempotencyStore:
    """Create the store selected by ``idempotency.backend``.

    Raises:
        ConfigurationError: If the backend is unknown or redis has no URL
    """
    config = get_config()
    settings = config.idempotency
    retention = timedelta(hours=settings.retention_hours)

    if settings.backend == "memory":
        logger.info("idempotency_store_selected", backend="memory", retention_hours=settings.retention_hours)
        return InMemoryIdempotencyStore(retention=retention)

    if settings.backend == "redis":
        if not config.redis_url:
            raise ConfigurationError("idempotency.backend is 'redis' but no redis_url or REDIS_URL is set")
        logger.info("idempotency_store_selected", backend="redis", retention_hours=settings.retention_hours)
        return RedisIdempotencyStore.from_url(config.redis_url, retention=retention, key_prefix=settings.key_prefix)

    raise ConfigurationError(f"Unknown idempotency backend: {settings.backend}")


def get_idempotency_store() -> IdempotencyStore:
    """Get global idempotency store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = build_idempotency_store()
    return _store_instance


def reset_idempotency_store() -> None:
    """Drop the global instance so the next call rebuilds it from config."""
    global _store_instance
    with _store_lock:
        _store_instance = None
