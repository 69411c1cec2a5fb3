"""Unit tests for kiosk_lite.core.config_loader and config_manager."""

from pathlib import Path

import pytest

from kiosk_lite.cache import ResourceName
from kiosk_lite.core.config_loader import (
    Config,
    ConfigurationError,
    load_config_file,
)
from kiosk_lite.core.config_manager import ConfigManager, parse_env_file, redact_config

pytestmark = [pytest.mark.unit, pytest.mark.fast]


class TestConfigFromDict:
    def test_defaults(self) -> None:
        cfg = Config.from_dict({})

        assert cfg.ttl_seconds == 300
        assert cfg.lock_stale_ms == 15_000
        assert cfg.fetch_timeout_seconds == 10.0
        assert cfg.data_dir == "./data"
        assert cfg.server_bind == "127.0.0.1"
        assert cfg.server_port == 5055
        assert cfg.timezone == "America/Toronto"
        assert cfg.google_scopes == ["https://www.googleapis.com/auth/tasks.readonly"]
        assert cfg.has_oauth_credentials is False

    def test_numeric_strings_are_coerced(self) -> None:
        cfg = Config.from_dict(
            {"ttl_seconds": "120", "lock_stale_ms": "5000", "fetch_timeout_seconds": "2.5", "server_port": "8081"}
        )

        assert cfg.ttl_seconds == 120
        assert cfg.lock_stale_ms == 5000
        assert cfg.fetch_timeout_seconds == 2.5
        assert cfg.server_port == 8081

    def test_unparsable_number_falls_back_to_default(self) -> None:
        assert Config.from_dict({"ttl_seconds": "soon"}).ttl_seconds == 300

    def test_per_resource_ttl_overrides(self) -> None:
        cfg = Config.from_dict({"ttl_seconds": 300, "tasks_ttl_seconds": "900"})

        assert cfg.ttl_for(ResourceName.CALENDAR) == 300
        assert cfg.ttl_for(ResourceName.TASKS) == 900
        assert cfg.ttl_map() == {ResourceName.CALENDAR: 300, ResourceName.TASKS: 900}

    def test_lock_threshold_at_ttl_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            Config.from_dict({"ttl_seconds": 15, "lock_stale_ms": 15_000})

    def test_lock_threshold_checked_against_each_resource(self) -> None:
        with pytest.raises(ConfigurationError):
            Config.from_dict({"calendar_ttl_seconds": 10, "lock_stale_ms": 15_000})

    def test_non_positive_ttl_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            Config.from_dict({"ttl_seconds": 0})

    def test_port_out_of_range_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            Config.from_dict({"server_port": 70000})

    def test_scopes_split_on_commas_and_spaces(self) -> None:
        cfg = Config.from_dict({"google_scopes": "a, b c"})

        assert cfg.google_scopes == ["a", "b", "c"]

    def test_bool_coercion(self) -> None:
        assert Config.from_dict({"debug_logging": "yes"}).debug_logging is True
        assert Config.from_dict({"debug_logging": "0"}).debug_logging is False

    def test_oauth_credentials_flag(self) -> None:
        cfg = Config.from_dict({"google_client_id": "id", "google_client_secret": "secret"})

        assert cfg.has_oauth_credentials is True

    def test_configuration_error_is_value_error(self) -> None:
        assert issubclass(ConfigurationError, ValueError)


class TestConfigFile:
    def test_missing_file_gives_empty_mapping(self, tmp_path: Path) -> None:
        assert load_config_file(tmp_path / "absent.yaml") == {}

    def test_yaml_values_loaded(self, tmp_path: Path) -> None:
        path = tmp_path / "kiosk.yaml"
        path.write_text("ttl_seconds: 600\nics_url: https://example.com/cal.ics\n", encoding="utf-8")

        cfg = Config.from_dict(load_config_file(path))

        assert cfg.ttl_seconds == 600
        assert cfg.ics_url == "https://example.com/cal.ics"

    def test_non_mapping_file_is_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "kiosk.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_config_file(path)


class TestConfigManager:
    def test_parse_env_file_strips_quotes_and_comments(self, tmp_path: Path) -> None:
        env = tmp_path / ".env"
        env.write_text('# comment\nICS_URL="https://example.com/a.ics"\nPORT=6000\nbroken\n', encoding="utf-8")

        assert parse_env_file(env) == {"ICS_URL": "https://example.com/a.ics", "PORT": "6000"}

    def test_env_file_does_not_override_environment(self, tmp_path: Path, monkeypatch) -> None:
        env = tmp_path / ".env"
        env.write_text("PORT=6000\nTIMEZONE=Europe/Paris\n", encoding="utf-8")
        monkeypatch.setenv("PORT", "7000")
        # Let monkeypatch restore TIMEZONE after load_env_file sets it
        monkeypatch.setenv("TIMEZONE", "")
        monkeypatch.delenv("TIMEZONE")

        manager = ConfigManager(env_file_path=env)
        loaded = manager.load_env_file()

        assert loaded == ["TIMEZONE"]
        cfg = manager.load_full_config()
        assert cfg.server_port == 7000
        assert cfg.timezone == "Europe/Paris"

    def test_environment_overrides_yaml(self, tmp_path: Path, monkeypatch) -> None:
        path = tmp_path / "kiosk.yaml"
        path.write_text("ttl_seconds: 600\nserver_port: 5000\n", encoding="utf-8")
        monkeypatch.setenv("CACHE_TTL_SECONDS", "120")

        cfg = ConfigManager(env_file_path=tmp_path / ".env", config_path=path).load_full_config()

        assert cfg.ttl_seconds == 120
        assert cfg.server_port == 5000

    def test_overrides_win_and_none_is_ignored(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("PORT", "7000")
        manager = ConfigManager(env_file_path=tmp_path / ".env")

        assert manager.load_full_config({"server_port": 8000}).server_port == 8000
        assert manager.load_full_config({"server_port": None}).server_port == 7000

    def test_redact_config_masks_secrets(self) -> None:
        redacted = redact_config({"admin_token": "s3cret", "google_client_secret": "", "ics_url": "u"})

        assert redacted == {"admin_token": "<redacted>", "google_client_secret": "", "ics_url": "u"}
