"""Tests for the processed-event marker stores."""

from datetime import datetime, timedelta, timezone
from threading import Thread
from unittest.mock import MagicMock, patch

import pytest
import redis

from subscription_sync.config import ConfigurationError
from subscription_sync.errors import DatastoreError
from subscription_sync.repositories.idempotency_store import (
    InMemoryIdempotencyStore,
    RedisIdempotencyStore,
    build_idempotency_store,
)

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    store = InMemoryIdempotencyStore(retention=timedelta(hours=24))
    yield store
    store.clear()


@pytest.fixture
def redis_client():
    return MagicMock(spec=redis.Redis)


@pytest.fixture
def redis_store(redis_client):
    return RedisIdempotencyStore(redis_client, retention=timedelta(hours=24), key_prefix="test:event:")


class TestInMemoryIdempotencyStore:
    """Test the single-process store."""

    def test_unknown_event_is_not_processed(self, store):
        """Test a fresh event id has no marker."""
        assert store.already_processed("evt_1") is False

    def test_begin_processing_claims_once(self, store):
        """Test only the first claim succeeds."""
        assert store.begin_processing("evt_1") is True
        assert store.begin_processing("evt_1") is False
        assert store.already_processed("evt_1") is True

    def test_abort_releases_claim(self, store):
        """Test an aborted event can be claimed again."""
        store.begin_processing("evt_1")
        store.abort_processing("evt_1")
        assert store.already_processed("evt_1") is False
        assert store.begin_processing("evt_1") is True

    def test_abort_unknown_event_is_harmless(self, store):
        """Test aborting an unclaimed id does not raise."""
        store.abort_processing("evt_never_seen")

    def test_sweep_purges_only_old_markers(self, store):
        """Test markers older than the retention window are removed."""
        store.begin_processing("evt_old", now=NOW - timedelta(hours=25))
        store.begin_processing("evt_recent", now=NOW - timedelta(hours=1))

        purged = store.sweep_expired(now=NOW)

        assert purged == 1
        assert store.count() == 1

    def test_expired_marker_can_be_reclaimed(self, store):
        """Test a marker past retention no longer blocks a claim."""
        store.begin_processing("evt_1", now=NOW - timedelta(hours=25))
        assert store.begin_processing("evt_1", now=NOW) is True

    def test_concurrent_claims_have_single_winner(self, store):
        """Test that exactly one of many concurrent claims wins."""
        results = []

        def claim():
            results.append(store.begin_processing("evt_race"))

        threads = [Thread(target=claim) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1


class TestRedisIdempotencyStore:
    """Test the shared store against a mocked client."""

    def test_claim_uses_set_nx_with_ttl(self, redis_store, redis_client):
        """Test the claim is a single SET NX EX."""
        redis_client.set.return_value = True

        assert redis_store.begin_processing("evt_1", now=NOW) is True
        redis_client.set.assert_called_once_with(
            "test:event:evt_1", NOW.isoformat(), nx=True, ex=24 * 60 * 60
        )

    def test_claim_lost_returns_false(self, redis_store, redis_client):
        """Test SET NX returning None means someone else owns the event."""
        redis_client.set.return_value = None
        assert redis_store.begin_processing("evt_1") is False

    def test_already_processed_checks_key(self, redis_store, redis_client):
        """Test existence lookup."""
        redis_client.exists.return_value = 1
        assert redis_store.already_processed("evt_1") is True
        redis_client.exists.assert_called_once_with("test:event:evt_1")

    def test_abort_deletes_key(self, redis_store, redis_client):
        """Test abort removes the marker."""
        redis_store.abort_processing("evt_1")
        redis_client.delete.assert_called_once_with("test:event:evt_1")

    def test_sweep_is_noop(self, redis_store, redis_client):
        """Test expiry is left to Redis TTLs."""
        assert redis_store.sweep_expired() == 0
        redis_client.scan_iter.assert_not_called()

    def test_redis_errors_become_datastore_errors(self, redis_store, redis_client):
        """Test connection failures are retryable datastore errors."""
        redis_client.set.side_effect = redis.ConnectionError("down")
        with pytest.raises(DatastoreError) as exc_info:
            redis_store.begin_processing("evt_1")
        assert exc_info.value.retryable is True


class TestBuildIdempotencyStore:
    """Test backend selection from configuration."""

    def _config(self, backend, redis_url=None):
        config = MagicMock()
        config.idempotency.backend = backend
        config.idempotency.retention_hours = 12
        config.idempotency.key_prefix = "billing:event:"
        config.redis_url = redis_url
        return config

    def test_memory_backend(self):
        """Test the memory backend is built with the configured retention."""
        with patch("subscription_sync.repositories.idempotency_store.get_config", return_value=self._config("memory")):
            store = build_idempotency_store()
        assert isinstance(store, InMemoryIdempotencyStore)
        assert store.retention == timedelta(hours=12)

    def test_redis_backend(self):
        """Test the redis backend connects through from_url."""
        config = self._config("redis", redis_url="redis://localhost:6379/0")
        with patch("subscription_sync.repositories.idempotency_store.get_config", return_value=config), patch(
            "subscription_sync.repositories.idempotency_store.redis.Redis.from_url"
        ) as from_url:
            store = build_idempotency_store()
        assert isinstance(store, RedisIdempotencyStore)
        from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)

    def test_redis_backend_without_url_fails(self):
        """Test redis without a URL is a configuration error."""
        with patch("subscription_sync.repositories.idempotency_store.get_config", return_value=self._config("redis")):
            with pytest.raises(ConfigurationError):
                build_idempotency_store()

    def test_unknown_backend_fails(self):
        """Test unknown backends are rejected."""
        with patch("subscription_sync.repositories.idempotency_store.get_config", return_value=self._config("dynamo")):
            with pytest.raises(ConfigurationError):
                build_idempotency_store()
