"""Tests for gateway configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from session_gateway.config import (
    DEFAULT_CHAT_URL,
    DEFAULT_TERMINAL_URL,
    BackendConfig,
    GatewayConfig,
    load_config,
)
from session_gateway.exceptions import ConfigurationError

ENV_VARS = [
    "CHAT_SERVER_URL",
    "TERMINAL_SERVER_URL",
    "SESSION_GATEWAY_HOST",
    "SESSION_GATEWAY_PORT",
    "SESSION_GATEWAY_TIMEOUT",
    "SESSION_GATEWAY_TRANSCRIPT_DIR",
    "SESSION_GATEWAY_LOG_LEVEL",
    "SESSION_GATEWAY_JSON_LOGS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Run every test without gateway variables from the outer environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Tests for default configuration."""

    def test_defaults(self) -> None:
        """Nothing set still yields a usable config."""
        config = load_config()
        assert config.chat.base_url == DEFAULT_CHAT_URL
        assert config.terminal.base_url == DEFAULT_TERMINAL_URL
        assert config.port == 3001
        assert config.transcript_dir is None
        assert set(config.backends) == {"chat", "terminal"}

    def test_backend_conventions(self) -> None:
        """Chat is driven with GET, terminal with POST."""
        config = GatewayConfig()
        assert config.chat.capture_method == "GET"
        assert config.chat.kill_method == "GET"
        assert config.terminal.capture_method == "POST"
        assert config.terminal.kill_method == "POST"


class TestFromEnv:
    """Tests for GatewayConfig.from_env."""

    def test_backend_urls(self, monkeypatch) -> None:
        monkeypatch.setenv("CHAT_SERVER_URL", "http://chat.local:9000/")
        monkeypatch.setenv("TERMINAL_SERVER_URL", "https://term.local")
        config = GatewayConfig.from_env()
        assert config.chat.base_url == "http://chat.local:9000"
        assert config.terminal.base_url == "https://term.local"

    def test_gateway_settings(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("SESSION_GATEWAY_HOST", "0.0.0.0")
        monkeypatch.setenv("SESSION_GATEWAY_PORT", "8080")
        monkeypatch.setenv("SESSION_GATEWAY_TIMEOUT", "2.5")
        monkeypatch.setenv("SESSION_GATEWAY_TRANSCRIPT_DIR", str(tmp_path))
        monkeypatch.setenv("SESSION_GATEWAY_LOG_LEVEL", "debug")
        monkeypatch.setenv("SESSION_GATEWAY_JSON_LOGS", "false")

        config = GatewayConfig.from_env()
        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.request_timeout == 2.5
        assert config.chat.timeout == 2.5
        assert config.terminal.timeout == 2.5
        assert config.transcript_dir == tmp_path
        assert config.log_level == "DEBUG"
        assert config.json_logs is False

    def test_invalid_port(self, monkeypatch) -> None:
        monkeypatch.setenv("SESSION_GATEWAY_PORT", "eighty")
        with pytest.raises(ConfigurationError) as exc_info:
            GatewayConfig.from_env()
        assert exc_info.value.key == "SESSION_GATEWAY_PORT"

    def test_invalid_timeout(self, monkeypatch) -> None:
        monkeypatch.setenv("SESSION_GATEWAY_TIMEOUT", "-1")
        with pytest.raises(ConfigurationError):
            GatewayConfig.from_env()

    def test_invalid_url(self, monkeypatch) -> None:
        monkeypatch.setenv("CHAT_SERVER_URL", "localhost:4002")
        with pytest.raises(ConfigurationError) as exc_info:
            GatewayConfig.from_env()
        assert exc_info.value.key == "chat.url"


class TestFromFile:
    """Tests for YAML configuration files."""

    def test_missing_file_gives_defaults(self, tmp_path) -> None:
        assert GatewayConfig.from_file(tmp_path / "absent.yaml") == GatewayConfig()

    def test_reads_gateway_section(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "gateway:\n"
            "  port: 4000\n"
            "  request_timeout: 3\n"
            "  transcript_dir: /var/lib/gateway\n"
            "  json_logs: false\n"
            "  backends:\n"
            "    terminal:\n"
            "      url: http://term.local:5001\n"
        )
        config = GatewayConfig.from_file(path)
        assert config.port == 4000
        assert config.request_timeout == 3.0
        assert config.transcript_dir == Path("/var/lib/gateway")
        assert config.json_logs is False
        assert config.terminal.base_url == "http://term.local:5001"
        assert config.terminal.timeout == 3.0
        assert config.chat.base_url == DEFAULT_CHAT_URL

    def test_env_overrides_file(self, tmp_path, monkeypatch) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("gateway:\n  port: 4000\n  backends:\n    chat:\n      url: http://a:1\n")
        monkeypatch.setenv("CHAT_SERVER_URL", "http://b:2")

        config = load_config(path)
        assert config.port == 4000
        assert config.chat.base_url == "http://b:2"
        assert config.chat.capture_method == "GET"

    def test_invalid_yaml(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("gateway: [unclosed\n")
        with pytest.raises(ConfigurationError):
            GatewayConfig.from_file(path)

    def test_section_must_be_mapping(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("gateway: 5\n")
        with pytest.raises(ConfigurationError):
            GatewayConfig.from_file(path)


class TestBackendConfig:
    def test_trailing_slash_stripped(self) -> None:
        assert BackendConfig("chat", "http://x:1/").base_url == "http://x:1"

    def test_stream_path_default(self) -> None:
        assert BackendConfig("chat", "http://x:1").stream_path == "/stream"
