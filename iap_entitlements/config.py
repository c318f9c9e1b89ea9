"""Configuration management - loads store.yaml and environment variables."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from iap_entitlements.models import Product, StoreSettings


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class Config:
    """Application configuration loader and manager.

    Loads store.yaml and provides validated access to:
    - Product ids loaded into the catalog at startup
    - Ledger persistence settings
    - Entitlement policy
    - The local gateway's catalog
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to store.yaml file. If not provided, uses STORE_CONFIG_PATH
                        env var or defaults to ./config/store.yaml
        """
        self._config_path = self._resolve_config_path(config_path)
        self._settings: Optional[StoreSettings] = None
        self._load_config()

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        """Resolve configuration file path from argument, env var, or default."""
        if config_path:
            return Path(config_path)

        env_path = os.getenv("STORE_CONFIG_PATH")
        if env_path:
            return Path(env_path)

        return Path("config/store.yaml")

    def _load_config(self) -> None:
        """Load and validate store.yaml configuration."""
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/store.yaml or set STORE_CONFIG_PATH environment variable"
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}") from e

        if not raw_config:
            raise ConfigurationError(f"Configuration file is empty: {self._config_path}")

        try:
            self._settings = StoreSettings(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e
        except TypeError as e:
            raise ConfigurationError(f"Configuration must be a mapping: {e}") from e

    @property
    def settings(self) -> StoreSettings:
        """Get validated store settings."""
        if self._settings is None:
            raise ConfigurationError("Configuration not loaded")
        return self._settings

    @property
    def config_path(self) -> Path:
        """Get path to configuration file."""
        return self._config_path

    @property
    def product_ids(self) -> list[str]:
        """Product ids loaded into the catalog at startup."""
        return list(self.settings.product_ids)

    @property
    def ledger_path(self) -> Optional[Path]:
        """Ledger file path, resolved relative to the configuration file.

        STORE_LEDGER_PATH overrides the configured path.

        Returns:
            Path to the JSON ledger, or None for an in-memory ledger
        """
        raw = os.getenv("STORE_LEDGER_PATH") or self.settings.ledger.path
        if raw is None:
            return None
        path = Path(raw)
        if not path.is_absolute():
            path = self._config_path.parent / path
        return path

    @property
    def fixed_term_period(self) -> str:
        """ISO 8601 term of fixed-term products (e.g., "P1Y")."""
        return self.settings.entitlements.fixed_term_period

    @property
    def local_catalog(self) -> list[Product]:
        """Products served by the local store gateway."""
        return list(self.settings.local_catalog)

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


def reset_config() -> None:
    """Drop the global configuration instance (useful for testing)."""
    global _config_instance
    _config_instance = None
