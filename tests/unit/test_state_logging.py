"""Tests for state change logging functionality."""

from unittest.mock import patch

from subscription_sync.models.profile import CanonicalStatus
from subscription_sync.state_logger import (
    log_cancel_flag_change,
    log_stale_write_discarded,
    log_status_change,
    log_visibility_change,
    mask_id,
)


class TestMaskId:
    """Test provider id shortening."""

    def test_short_id_is_kept(self):
        assert mask_id("sub_123") == "sub_123"

    def test_long_id_is_shortened(self):
        assert mask_id("sub_1PqRsTuVwXyZ0123456789") == "sub_1PqRsTuVwX..."

    def test_none(self):
        assert mask_id(None) is None


class TestTransitionLogging:
    """Test each transition emits one structured event."""

    def test_status_change(self):
        """Test status transitions log both ends and the trigger."""
        with patch("subscription_sync.state_logger.logger") as logger:
            log_status_change(
                "profile-1",
                CanonicalStatus.PRO.value,
                CanonicalStatus.CANCELED.value,
                reason="customer.subscription.deleted",
                version=4,
            )

        logger.info.assert_called_once_with(
            "subscription_status_changed",
            profile_id="profile-1",
            old_status="pro",
            new_status="canceled",
            reason="customer.subscription.deleted",
            version=4,
        )

    def test_visibility_change(self):
        with patch("subscription_sync.state_logger.logger") as logger:
            log_visibility_change("profile-1", True, False, reason="expiry_sweep")

        args, kwargs = logger.info.call_args
        assert args == ("profile_visibility_changed",)
        assert kwargs["old_is_public"] is True
        assert kwargs["new_is_public"] is False

    def test_cancel_flag_change(self):
        """Test cancellation scheduling is logged."""
        with patch("subscription_sync.state_logger.logger") as logger:
            log_cancel_flag_change("profile-1", False, True, reason="user_cancel")

        args, kwargs = logger.info.call_args
        assert args == ("cancel_at_period_end_changed",)
        assert kwargs["new_value"] is True

    def test_stale_write_is_a_warning(self):
        """Test discarded stale snapshots are logged at warning level."""
        with patch("subscription_sync.state_logger.logger") as logger:
            log_stale_write_discarded("profile-1", "2026-10-17T11:00:00", "2026-10-17T12:00:00")

        logger.warning.assert_called_once()
        logger.info.assert_not_called()
