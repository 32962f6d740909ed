"""Tests for configuration loading."""
import logging
from pathlib import Path

import pytest

from opencode_bridge.config import BridgeConfig, load_config, load_config_from_env
from opencode_bridge.errors import ConfigError


class TestLoadFromEnv:

    def test_defaults(self) -> None:
        config = load_config_from_env({})
        assert isinstance(config, BridgeConfig)
        assert config.agent.base_url == "http://127.0.0.1:4096"
        assert config.sessions.idle_timeout_minutes == 30
        assert config.sessions.reap_interval_seconds == 300.0
        assert config.sessions.projects_dir == Path.home() / "projects"
        assert config.sessions.default_project == config.sessions.projects_dir
        assert config.telegram.bot_token == ""
        assert config.http.enabled is True
        assert config.http.port == 8080
        assert config.log_level == "INFO"

    def test_overrides(self, tmp_path: Path) -> None:
        config = load_config_from_env({
            "OPENCODE_SERVER_URL": "http://agent:4096/",
            "PROJECTS_DIR": str(tmp_path),
            "DEFAULT_PROJECT_PATH": str(tmp_path / "alpha"),
            "SESSION_IDLE_TIMEOUT_MINUTES": "5",
            "TELEGRAM_BOT_TOKEN": "123:abc",
            "TELEGRAM_ALLOWED_USERS": "11, 22,",
            "BRIDGE_API_ENABLED": "no",
            "BRIDGE_PORT": "9000",
            "BRIDGE_DB_PATH": str(tmp_path / "b.db"),
            "LOG_LEVEL": "debug",
        })
        assert config.agent.base_url == "http://agent:4096"
        assert config.sessions.projects_dir == tmp_path
        assert config.sessions.default_project == tmp_path / "alpha"
        assert config.sessions.idle_timeout_minutes == 5
        assert config.telegram.allowed_users == (11, 22)
        assert config.http.enabled is False
        assert config.http.port == 9000
        assert config.db_path == tmp_path / "b.db"
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize("env", [
        {"OPENCODE_SERVER_URL": "agent:4096"},
        {"SESSION_IDLE_TIMEOUT_MINUTES": "0"},
        {"SESSION_IDLE_TIMEOUT_MINUTES": "soon"},
        {"TELEGRAM_ALLOWED_USERS": "alice"},
        {"BRIDGE_PORT": "http"},
    ])
    def test_invalid(self, env: dict) -> None:
        with pytest.raises(ConfigError):
            load_config_from_env(env)

    def test_unrecognised_bool_uses_default(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            config = load_config_from_env({"BRIDGE_API_ENABLED": "maybe"})
        assert config.http.enabled is True
        assert "Unrecognised boolean value" in caplog.text

    def test_open_bot_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            load_config_from_env({"TELEGRAM_BOT_TOKEN": "123:abc"})
        assert "TELEGRAM_ALLOWED_USERS is empty" in caplog.text


class TestLoadConfigFile:

    def test_yaml_overlaid_by_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "bridge.yaml"
        config_file.write_text(
            "OPENCODE_SERVER_URL: http://yaml:1\n"
            "BRIDGE_PORT: 7000\n"
            "TELEGRAM_BOT_TOKEN:\n"
        )
        monkeypatch.delenv("OPENCODE_SERVER_URL", raising=False)
        monkeypatch.setenv("BRIDGE_PORT", "7001")

        config = load_config(config_file)
        assert config.agent.base_url == "http://yaml:1"
        assert config.http.port == 7001
        assert config.telegram.bot_token == ""

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "absent.yaml")

    def test_non_mapping(self, tmp_path: Path) -> None:
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(config_file)
