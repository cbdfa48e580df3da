"""Tests for configuration loading and management."""

import pytest

from subscription_sync.config import Config, ConfigurationError


@pytest.fixture
def config():
    """Create a Config instance for testing."""
    return Config()


class TestConfigurationLoading:
    """Test basic configuration loading."""

    def test_config_loads_successfully(self, config):
        """Test that configuration loads without errors."""
        assert config is not None
        assert config.config_path.exists()

    def test_config_path_is_set(self, config):
        """Test that config path points at billing.yaml."""
        assert str(config.config_path).endswith("billing.yaml")

    def test_plan_is_loaded(self, config):
        """Test the single paid plan."""
        assert config.plan.amount == 1800
        assert config.plan.currency == "usd"
        assert config.plan.interval == "month"

    def test_idempotency_defaults(self, config):
        assert config.idempotency.backend == "memory"
        assert config.idempotency.retention_hours == 24

    def test_auth_audience(self, config):
        assert config.auth.jwt_algorithm == "HS256"
        assert config.auth.jwt_audience == "authenticated"


class TestEnvironmentOverrides:
    """Test values read from the environment."""

    def test_secrets_come_from_environment(self, config, monkeypatch):
        """Test secrets are only read from environment variables."""
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_123")
        monkeypatch.setenv("CRON_SECRET", "cron")

        assert config.stripe_secret_key == "sk_test_123"
        assert config.stripe_webhook_secret == "whsec_123"
        assert config.cron_secret == "cron"

    def test_empty_secret_is_missing(self, config, monkeypatch):
        """Test an empty variable counts as unset."""
        monkeypatch.setenv("STRIPE_SECRET_KEY", "")
        assert config.stripe_secret_key is None

    def test_app_base_url_override(self, config, monkeypatch):
        """Test APP_BASE_URL wins and loses its trailing slash."""
        monkeypatch.setenv("APP_BASE_URL", "https://menu.example.com/")
        assert config.app_base_url == "https://menu.example.com"

    def test_redis_url_override(self, config, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
        assert config.redis_url == "redis://cache:6379/1"


class TestConfigurationErrors:
    """Test invalid configuration files."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            Config(str(tmp_path / "missing.yaml"))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "billing.yaml"
        path.write_text("")
        with pytest.raises(ConfigurationError):
            Config(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "billing.yaml"
        path.write_text("plan: [unclosed")
        with pytest.raises(ConfigurationError):
            Config(str(path))

    def test_validation_error(self, tmp_path):
        """Test a non-positive timeout is rejected."""
        path = tmp_path / "billing.yaml"
        path.write_text("provider:\n  timeout_seconds: 0\n")
        with pytest.raises(ConfigurationError):
            Config(str(path))

    def test_config_path_env(self, tmp_path, monkeypatch):
        """Test CONFIG_PATH selects the file."""
        path = tmp_path / "custom.yaml"
        path.write_text("plan:\n  amount: 2500\n")
        monkeypatch.setenv("CONFIG_PATH", str(path))

        config = Config()

        assert config.config_path == path
        assert config.plan.amount == 2500
