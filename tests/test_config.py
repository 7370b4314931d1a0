"""Tests for configuration loading."""

import pytest

from sheetmirror.config import Config, load_config


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self):
        config = load_config()

        assert isinstance(config, Config)
        assert config.google.sheet_range == "Sheet1"
        assert config.airtable.view == "Grid view"
        assert config.airtable.max_records == 1000
        assert config.watch.ttl_seconds == 86000
        assert config.sync.fanout_include_origin is True
        assert config.sync.fanout_mode == "http"

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")

        assert config.service.port == 8080

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "service:\n"
            "  port: 9000\n"
            "  public_url: https://mirror.example.com\n"
            "google:\n"
            "  credentials_file: /etc/sheetmirror/sa.json\n"
            "airtable:\n"
            "  typecast: true\n"
            "sync:\n"
            "  fanout_include_origin: false\n"
            "  fanout_mode: local\n"
        )

        config = load_config(path)

        assert config.service.port == 9000
        assert config.service.notification_url == "https://mirror.example.com/notifications"
        assert config.service.refresh_url == "https://mirror.example.com/refresh"
        assert config.google.credentials_file == "/etc/sheetmirror/sa.json"
        assert config.google.sheet_range == "Sheet1"
        assert config.airtable.typecast is True
        assert config.airtable.view == "Grid view"
        assert config.sync.fanout_include_origin is False
        assert config.sync.fanout_mode == "local"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert load_config(path).registry.db_path == "~/.sheetmirror/registry.db"

    def test_env_overrides(self, tmp_path, monkeypatch):
        """Test environment variables win over the file."""
        path = tmp_path / "config.yaml"
        path.write_text("service:\n  port: 9000\n")
        monkeypatch.setenv("SHEETMIRROR_PORT", "9100")
        monkeypatch.setenv("SHEETMIRROR_PUBLIC_URL", "https://env.example.com")
        monkeypatch.setenv("SHEETMIRROR_FANOUT_INCLUDE_ORIGIN", "no")
        monkeypatch.setenv("SHEETMIRROR_WATCH_TTL_SECONDS", "600")
        monkeypatch.setenv("SHEETMIRROR_HTTP_TIMEOUT", "5")

        config = load_config(path)

        assert config.service.port == 9100
        assert config.service.public_url == "https://env.example.com"
        assert config.sync.fanout_include_origin is False
        assert config.watch.ttl_seconds == 600
        assert config.http.timeout_seconds == 5.0

    def test_renew_margin_covers_two_intervals(self):
        """Test a channel just outside the margin survives until the next pass."""
        watch = load_config().watch

        assert watch.renew_margin_seconds >= 2 * watch.renew_interval_minutes * 60

    def test_renew_margin_not_above_interval(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("watch:\n  renew_margin_seconds: 3600\n  renew_interval_minutes: 60\n")

        with pytest.raises(ValueError, match="renew_margin_seconds"):
            load_config(path)

    def test_renew_margin_ignored_when_renewal_disabled(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("watch:\n  renew_margin_seconds: 60\n  renew_enabled: false\n")

        assert load_config(path).watch.renew_enabled is False

    def test_unknown_fanout_mode(self, monkeypatch):
        monkeypatch.setenv("SHEETMIRROR_FANOUT_MODE", "carrier-pigeon")

        with pytest.raises(ValueError, match="fanout_mode"):
            load_config()
