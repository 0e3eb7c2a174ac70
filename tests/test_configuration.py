"""Tests for sync configuration schema and loading."""

import json

import pytest
import yaml

from offline_sync.config import (
    AppSettings,
    ConfigLoader,
    ConfigurationError,
    SyncConfig,
    SyncSettings,
    load_config_from_env,
)


def create_test_config_data():
    """Create test configuration data."""
    return {
        "enabled": True,
        "max_retries": 3,
        "retry_delays_seconds": [2, 4, 8],
        "auto_sync_interval_seconds": 10,
        "conflict_strategy": "merge",
        "entity_routes": {"order": "/orders", "invoice": "/billing/invoices"}
    }


class TestSyncConfig:
    """Test schema defaults and validation."""

    def test_defaults(self):
        config = SyncConfig()

        assert config.enabled is True
        assert config.max_retries == 5
        assert config.retry_delays_seconds == [1.0, 5.0, 15.0, 60.0, 300.0]
        assert config.auto_sync_interval_seconds == 30.0
        assert config.fail_fast_on_permanent is False
        assert config.conflict_strategy == "latest_wins"

    def test_known_routes(self):
        config = SyncConfig()

        assert config.route_for("publicQuote") == "/public-quotes"
        assert config.route_for("publicContact") == "/public-contacts"
        assert config.route_for("user") == "/users"

    def test_unknown_entity_route_pluralized(self):
        assert SyncConfig().route_for("invoice") == "/invoices"

    @pytest.mark.parametrize("delays", [[], [-1, 5], [5, 1]])
    def test_invalid_backoff_table(self, delays):
        with pytest.raises(ValueError):
            SyncConfig(retry_delays_seconds=delays)

    def test_invalid_max_retries(self):
        with pytest.raises(ValueError):
            SyncConfig(max_retries=0)

    def test_route_must_be_absolute(self):
        with pytest.raises(ValueError):
            SyncConfig(entity_routes={"order": "orders"})


class TestConfigLoader:
    """Test file, dict and settings sources."""

    def setup_method(self):
        """Set up test fixtures."""
        self.loader = ConfigLoader()

    def test_load_yaml_file(self, tmp_path):
        config_file = tmp_path / "offline_sync.yaml"
        config_file.write_text(yaml.safe_dump(create_test_config_data()))

        config = self.loader.load_from_file(config_file)

        assert config.max_retries == 3
        assert config.route_for("invoice") == "/billing/invoices"

    def test_load_json_file(self, tmp_path):
        config_file = tmp_path / "offline_sync.json"
        config_file.write_text(json.dumps(create_test_config_data()))

        config = self.loader.load_from_file(config_file)

        assert config.retry_delays_seconds == [2.0, 4.0, 8.0]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            self.loader.load_from_file(tmp_path / "missing.yaml")

    def test_unsupported_format(self, tmp_path):
        config_file = tmp_path / "offline_sync.toml"
        config_file.write_text("max_retries = 3")

        with pytest.raises(ConfigurationError, match="Unsupported"):
            self.loader.load_from_file(config_file)

    def test_invalid_values_wrapped(self):
        with pytest.raises(ConfigurationError):
            self.loader.load_from_dict({"retry_delays_seconds": []})

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("OFFLINE_SYNC_ENABLED", "false")
        monkeypatch.setenv("OFFLINE_SYNC_MAX_RETRIES", "7")

        config = self.loader.load_from_dict(create_test_config_data())

        assert config.enabled is False
        assert config.max_retries == 7

    def test_save_and_reload(self, tmp_path):
        original = self.loader.load_from_dict(create_test_config_data())
        config_file = tmp_path / "saved.yaml"

        self.loader.save_to_file(original, config_file)

        assert self.loader.load_from_file(config_file) == original

    def test_load_from_settings(self):
        settings = AppSettings(sync=SyncSettings(max_retries=2, fail_fast_on_permanent=True))

        config = self.loader.load_from_settings(settings)

        assert config.max_retries == 2
        assert config.fail_fast_on_permanent is True

    def test_load_config_from_env_file(self, tmp_path, monkeypatch):
        config_file = tmp_path / "custom.json"
        config_file.write_text(json.dumps({"max_retries": 9}))
        monkeypatch.setenv("OFFLINE_SYNC_CONFIG_FILE", str(config_file))

        assert load_config_from_env().max_retries == 9
