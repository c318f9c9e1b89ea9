"""Tests for configuration loading and management."""

from decimal import Decimal
from pathlib import Path

import pytest

from iap_entitlements.config import (
    Config,
    ConfigurationError,
    get_config,
    reload_config,
    reset_config,
)
from iap_entitlements.models import ProductCategory

DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config" / "store.yaml"


@pytest.fixture
def config():
    """Create a Config instance from the shipped store.yaml."""
    return Config(str(DEFAULT_CONFIG))


@pytest.fixture(autouse=True)
def clean_singleton():
    """Reset the global config before and after each test."""
    reset_config()
    yield
    reset_config()


def write_config(tmp_path, text):
    path = tmp_path / "store.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestConfigurationLoading:
    """Test basic configuration loading."""

    def test_config_loads_successfully(self, config):
        assert config.config_path.exists()
        assert config.settings is not None

    def test_product_ids(self, config):
        assert "nonconsumable.lifetime" in config.product_ids
        assert len(config.product_ids) == 4

    def test_local_catalog_matches_product_ids(self, config):
        """Test every configured product id has a local catalog entry."""
        catalog_ids = {p.id for p in config.local_catalog}
        assert set(config.product_ids) == catalog_ids

    def test_local_catalog_categories(self, config):
        """Test the shipped catalog covers all four ownership categories."""
        categories = {p.ownership for p in config.local_catalog}
        assert categories == set(ProductCategory)

    def test_prices_are_decimal(self, config):
        for product in config.local_catalog:
            assert isinstance(product.price, Decimal)

    def test_fixed_term_period(self, config):
        assert config.fixed_term_period == "P1Y"

    def test_ledger_path_resolves_against_config_dir(self, config):
        assert config.ledger_path == DEFAULT_CONFIG.parent / "../data/ledger.json"


class TestConfigurationDefaults:
    """Test defaults for omitted sections."""

    def test_minimal_config(self, tmp_path):
        path = write_config(tmp_path, "product_ids: [a.b]\n")
        config = Config(str(path))
        assert config.product_ids == ["a.b"]
        assert config.ledger_path is None
        assert config.fixed_term_period == "P1Y"
        assert config.local_catalog == []

    def test_absolute_ledger_path(self, tmp_path):
        ledger = tmp_path / "ledger.json"
        path = write_config(tmp_path, f"product_ids: []\nledger:\n  path: {ledger}\n")
        assert Config(str(path)).ledger_path == ledger

    def test_ledger_path_env_override(self, tmp_path, monkeypatch):
        override = tmp_path / "other.json"
        monkeypatch.setenv("STORE_LEDGER_PATH", str(override))
        path = write_config(tmp_path, "product_ids: []\nledger:\n  path: ledger.json\n")
        assert Config(str(path)).ledger_path == override


class TestConfigurationErrors:
    """Test invalid configuration handling."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            Config(str(tmp_path / "missing.yaml"))
        assert "not found" in str(exc_info.value)

    def test_empty_file(self, tmp_path):
        path = write_config(tmp_path, "")
        with pytest.raises(ConfigurationError) as exc_info:
            Config(str(path))
        assert "empty" in str(exc_info.value)

    def test_invalid_yaml(self, tmp_path):
        path = write_config(tmp_path, "product_ids: [unclosed\n")
        with pytest.raises(ConfigurationError) as exc_info:
            Config(str(path))
        assert "YAML" in str(exc_info.value)

    def test_invalid_period(self, tmp_path):
        path = write_config(tmp_path, "entitlements:\n  fixed_term_period: yearly\n")
        with pytest.raises(ConfigurationError) as exc_info:
            Config(str(path))
        assert "validation failed" in str(exc_info.value)

    def test_duplicate_product_ids(self, tmp_path):
        path = write_config(tmp_path, "product_ids: [a.b, c.d, a.b]\n")
        with pytest.raises(ConfigurationError) as exc_info:
            Config(str(path))
        assert "a.b" in str(exc_info.value)

    def test_not_a_mapping(self, tmp_path):
        path = write_config(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            Config(str(path))


class TestGlobalConfig:
    """Test the configuration singleton."""

    def test_singleton(self):
        first = get_config(str(DEFAULT_CONFIG))
        second = get_config()
        assert first is second

    def test_env_var_path(self, tmp_path, monkeypatch):
        path = write_config(tmp_path, "product_ids: [env.product]\n")
        monkeypatch.setenv("STORE_CONFIG_PATH", str(path))
        assert get_config().product_ids == ["env.product"]

    def test_reload_picks_up_changes(self, tmp_path):
        path = write_config(tmp_path, "product_ids: [one]\n")
        config = get_config(str(path))
        path.write_text("product_ids: [one, two]\n", encoding="utf-8")
        reload_config()
        assert config.product_ids == ["one", "two"]
