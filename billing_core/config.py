"""Configuration management - loads billing.yaml and environment variables."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from billing_core.errors import ConfigurationError
from billing_core.models import BillingSettings, CatalogProduct


class Config:
    """Application configuration loader and manager.

    Loads billing.yaml and provides validated access to:
    - Database URL (DATABASE_URL overrides the file)
    - Scheduler and invoice numbering settings
    - Pub/Sub configuration
    - Seed catalog
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to billing.yaml. If not provided, uses CONFIG_PATH env var
                        or defaults to ./config/billing.yaml
        """
        self._config_path = self._resolve_config_path(config_path)
        self._settings: Optional[BillingSettings] = None
        self._load_config()

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        if config_path:
            return Path(config_path)

        env_path = os.getenv("CONFIG_PATH")
        if env_path:
            return Path(env_path)

        return Path("config/billing.yaml")

    def _load_config(self) -> None:
        """Load and validate billing.yaml configuration."""
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/billing.yaml or set CONFIG_PATH environment variable"
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}") from e

        if not raw_config:
            raise ConfigurationError(f"Configuration file is empty: {self._config_path}")
        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self._config_path}")

        try:
            settings = BillingSettings(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

        database_url = os.getenv("DATABASE_URL")
        if database_url:
            settings.database.url = database_url

        self._settings = settings

    @classmethod
    def from_settings(cls, settings: BillingSettings) -> "Config":
        """Build a Config from already validated settings (no file involved)."""
        config = cls.__new__(cls)
        config._config_path = Path("<memory>")
        config._settings = settings
        return config

    @property
    def settings(self) -> BillingSettings:
        """Get validated settings."""
        if self._settings is None:
            raise ConfigurationError("Configuration not loaded")
        return self._settings

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def database_url(self) -> str:
        return self.settings.database.url

    @property
    def scheduler(self):
        """Get scheduler settings (SchedulerSettings)."""
        return self.settings.scheduler

    @property
    def invoice_prefix(self) -> str:
        return self.settings.invoices.prefix

    @property
    def pubsub_enabled(self) -> bool:
        return self.settings.pubsub.enabled

    @property
    def pubsub_project_id(self) -> str:
        return self.settings.pubsub.project_id

    @property
    def pubsub_topic(self) -> str:
        return self.settings.pubsub.topic

    @property
    def catalog(self) -> list[CatalogProduct]:
        return self.settings.catalog

    def get_catalog_product(self, product_id: int) -> Optional[CatalogProduct]:
        """Get a seed product definition by ID, None if not in the catalog."""
        for product in self.settings.catalog:
            if product.id == product_id:
                return product
        return None

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton).

    Args:
        config_path: Optional path to configuration file (only used on first call)
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


def reset_config() -> None:
    """Drop the global instance so the next get_config() reads the file again."""
    global _config_instance
    _config_instance = None
