"""Tests for structured logging functionality.

Tests logging configuration, context binding and redaction.
"""

import os

import pytest
import structlog

from subscription_sync.logging_config import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    redact_sensitive,
    unbind_context,
)
from subscription_sync.middleware import ContextMiddleware


@pytest.fixture(scope="module")
def setup_logging():
    """Configure logging for all tests in this module."""
    log_level = os.getenv("LOG_LEVEL", "INFO")
    log_format = os.getenv("LOG_FORMAT", "console")
    json_mode = log_format.lower() == "json"

    configure_logging(log_level=log_level, json_format=json_mode)
    yield


@pytest.fixture(autouse=True)
def cleanup_context():
    """Ensure context is cleared before and after each test."""
    clear_context()
    yield
    clear_context()


class TestBasicLogging:
    """Test basic logging at different levels."""

    def test_info_logging(self, setup_logging):
        logger = get_logger("test.basic")
        logger.info("application_started", version="0.1.0")

    def test_warning_logging(self, setup_logging):
        logger = get_logger("test.basic")
        logger.warning("cron_secret_not_configured")

    def test_exception_logging(self, setup_logging):
        """Test logging with exception info."""
        logger = get_logger("test.basic")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.exception("unexpected_failure")


class TestContextBinding:
    """Test contextvars binding."""

    def test_bind_and_unbind(self, setup_logging):
        """Test bound values are visible until unbound."""
        bind_context(request_id="req-1", profile_id="profile-1")
        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1", "profile_id": "profile-1"}

        unbind_context("profile_id")
        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1"}

    def test_clear_context(self, setup_logging):
        bind_context(event_id="evt_1")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}


class TestRedaction:
    """Test credential redaction."""

    def test_sensitive_keys_are_redacted(self):
        """Test secrets never reach the renderer."""
        event = {
            "event": "request",
            "authorization": "Bearer abc",
            "stripe_signature": "t=1,v1=abc",
            "api_key": "sk_live_123",
            "profile_id": "profile-1",
        }

        result = redact_sensitive(None, "info", event)

        assert result["authorization"] == "[redacted]"
        assert result["stripe_signature"] == "[redacted]"
        assert result["api_key"] == "[redacted]"
        assert result["profile_id"] == "profile-1"

    def test_none_values_are_left_alone(self):
        result = redact_sensitive(None, "info", {"event": "x", "token": None})
        assert result["token"] is None


class TestRouteFamily:
    @pytest.mark.parametrize(
        "path,family",
        [
            ("/api/stripe/webhook", "webhook"),
            ("/api/subscription/cancel", "subscription"),
            ("/api/jobs/expiry-sweep", "jobs"),
            ("/api/unknown/thing", None),
            ("/health", None),
            ("/", None),
        ],
    )
    def test_family_of(self, path, family):
        assert ContextMiddleware.family_of(path) == family
