"""Tests for settings loading."""
import pytest
from pydantic import ValidationError

from chagourtee.config import AppSettings, RealtimeSettings, get_config, load_config, set_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("CHAGOURTEE_SETTINGS", raising=False)
    monkeypatch.delenv("CHAGOURTEE_DB_PATH", raising=False)
    monkeypatch.delenv("CHAGOURTEE_BOOTSTRAP_SECRET", raising=False)
    yield
    set_config(None)


class TestDefaults:

    def test_defaults_without_file(self, tmp_path):
        settings = load_config(tmp_path / "missing.yaml")

        assert settings.server.port == 3000
        assert settings.sessions.cookie_name == "chagourtee_sid"
        assert settings.sessions.ttl_days == 7
        assert settings.sessions.bootstrap_secret is None
        assert settings.realtime.unauthorized_close_code == 4001
        assert settings.realtime.kick_close_code == 4003
        assert settings.client.heartbeat_interval == 30.0
        assert settings.client.max_reconnect_attempts == 5

    def test_close_codes_must_be_application_range(self):
        with pytest.raises(ValidationError):
            RealtimeSettings(unauthorized_close_code=1008)


class TestYamlLoading:

    def test_values_from_yaml(self, tmp_path):
        path = tmp_path / "chagourtee.settings.yaml"
        path.write_text(
            "server:\n"
            "  port: 8080\n"
            "logging:\n"
            "  level: debug\n"
            "client:\n"
            "  reconnect_base_delay: 1.5\n"
            "  max_reconnect_attempts: 2\n"
        )

        settings = load_config(path)

        assert settings.server.port == 8080
        assert settings.logging.level == "debug"
        assert settings.client.reconnect_base_delay == 1.5
        assert settings.client.max_reconnect_attempts == 2
        # untouched sections keep defaults
        assert settings.database.path == "data/chagourtee.db"

    def test_settings_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("sessions:\n  cookie_name: other_sid\n")
        monkeypatch.setenv("CHAGOURTEE_SETTINGS", str(path))

        assert load_config().sessions.cookie_name == "other_sid"

    def test_db_path_env_override(self, tmp_path, monkeypatch):
        path = tmp_path / "chagourtee.settings.yaml"
        path.write_text("database:\n  path: from_yaml.db\n")
        monkeypatch.setenv("CHAGOURTEE_DB_PATH", ":memory:")

        assert load_config(path).database.path == ":memory:"

    def test_bootstrap_secret_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CHAGOURTEE_BOOTSTRAP_SECRET", "s3cret")

        settings = load_config(tmp_path / "missing.yaml")

        assert settings.sessions.bootstrap_secret == "s3cret"
        assert settings.sessions.cookie_name == "chagourtee_sid"

    def test_empty_yaml_is_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(path) == AppSettings()


class TestCachedConfig:

    def test_set_config_replaces_cache(self):
        custom = AppSettings(server={"port": 9999})
        set_config(custom)

        assert get_config() is custom
