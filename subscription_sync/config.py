"""Configuration management - loads billing.yaml and environment variables."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from subscription_sync.models import BillingConfig

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "billing.yaml"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class Config:
    """Application configuration loader and manager.

    Loads billing.yaml and provides validated access to:
    - Plan and redirect settings
    - Idempotency store settings
    - Provider, auth and sweep settings

    Secrets (API keys, webhook secret, JWT secret, cron secret) are read from
    the environment only. A missing secret is not a load error; the component
    that needs it raises NotConfigured at request time.
    """

    def __init__(self, config_path: Optional[str] = None):
        """Load and validate the configuration file.

        Args:
            config_path: Explicit file; otherwise CONFIG_PATH, otherwise the
                bundled config/billing.yaml
        """
        self._config_path = Path(config_path or os.getenv("CONFIG_PATH") or DEFAULT_CONFIG_PATH)
        self._billing_config: Optional[BillingConfig] = None
        self._load_config()

    def _load_config(self) -> None:
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/billing.yaml or set CONFIG_PATH environment variable"
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}")

        if not raw_config:
            raise ConfigurationError(f"Configuration file is empty: {self._config_path}")

        try:
            self._billing_config = BillingConfig(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}")

    @property
    def billing(self) -> BillingConfig:
        """Get validated billing configuration."""
        if self._billing_config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._billing_config

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def plan(self):
        return self.billing.plan

    @property
    def idempotency(self):
        return self.billing.idempotency

    @property
    def sweep(self):
        return self.billing.sweep

    @property
    def auth(self):
        return self.billing.auth

    @property
    def provider_timeout_seconds(self) -> float:
        return self.billing.provider.timeout_seconds

    @property
    def app_base_url(self) -> str:
        """Public base URL, APP_BASE_URL overrides the file value."""
        return (os.getenv("APP_BASE_URL") or self.billing.app.base_url).rstrip("/")

    @property
    def redis_url(self) -> Optional[str]:
        """Redis URL for the idempotency store, REDIS_URL overrides the file value."""
        return os.getenv("REDIS_URL") or self.billing.idempotency.redis_url

    @property
    def stripe_secret_key(self) -> Optional[str]:
        return os.getenv("STRIPE_SECRET_KEY") or None

    @property
    def stripe_webhook_secret(self) -> Optional[str]:
        return os.getenv("STRIPE_WEBHOOK_SECRET") or None

    @property
    def auth_jwt_secret(self) -> Optional[str]:
        return os.getenv("AUTH_JWT_SECRET") or None

    @property
    def cron_secret(self) -> Optional[str]:
        return os.getenv("CRON_SECRET") or None

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton).

    Args:
        config_path: Optional path to configuration file (only used on first call)

    Returns:
        Config instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(config_path)
    return _config_instance


def reload_config() -> None:
    """Reload global configuration from disk."""
    global _config_instance
    if _config_instance:
        _config_instance.reload()
    else:
        _config_instance = Config()
