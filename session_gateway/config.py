"""
Gateway configuration.

Backend locations come from the environment, optionally layered over
a YAML settings file:

```yaml
gateway:
  host: 127.0.0.1
  port: 3001
  request_timeout: 10
  transcript_dir: ~/.session-gateway/transcripts
  log_level: INFO
  json_logs: true
  backends:
    chat:
      url: http://localhost:4002
    terminal:
      url: http://localhost:4001
```

Missing values fall back to local defaults; startup never fails
because something is unset.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from .exceptions import ConfigurationError

CHAT_BACKEND = "chat"
TERMINAL_BACKEND = "terminal"

DEFAULT_CHAT_URL = "http://localhost:4002"
DEFAULT_TERMINAL_URL = "http://localhost:4001"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3001
DEFAULT_TIMEOUT = 10.0


@dataclass
class BackendConfig:
    """Where a backend lives and how its endpoints are called.

    The chat backend answers capture and kill requests on GET while
    the terminal backend expects POST.
    """

    name: str
    base_url: str
    timeout: float = DEFAULT_TIMEOUT
    capture_method: str = "POST"
    kill_method: str = "POST"
    stream_path: str = "/stream"

    def __post_init__(self) -> None:
        self.base_url = _validate_url(f"{self.name}.url", self.base_url)


def _validate_url(key: str, value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(key, "must be an http(s) URL", value)
    return value.rstrip("/")


def _parse_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(key, "must be an integer", str(value)) from None


def _parse_float(key: str, value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(key, "must be a number", str(value)) from None
    if result <= 0:
        raise ConfigurationError(key, "must be positive", str(value))
    return result


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def default_chat_backend(url: str = DEFAULT_CHAT_URL, timeout: float = DEFAULT_TIMEOUT) -> BackendConfig:
    return BackendConfig(
        name=CHAT_BACKEND,
        base_url=url,
        timeout=timeout,
        capture_method="GET",
        kill_method="GET",
    )


def default_terminal_backend(
    url: str = DEFAULT_TERMINAL_URL, timeout: float = DEFAULT_TIMEOUT
) -> BackendConfig:
    return BackendConfig(name=TERMINAL_BACKEND, base_url=url, timeout=timeout)


@dataclass
class GatewayConfig:
    """Configuration for the session gateway.

    Attributes:
        host: Interface the gateway listens on
        port: Port the gateway listens on
        chat: Chat backend location
        terminal: Terminal backend location
        request_timeout: Seconds before a backend call counts as unreachable
        transcript_dir: Where finished messages are persisted; disabled if None
        log_level: Logging level name
        json_logs: Emit structured JSON log lines
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    chat: BackendConfig = field(default_factory=default_chat_backend)
    terminal: BackendConfig = field(default_factory=default_terminal_backend)
    request_timeout: float = DEFAULT_TIMEOUT
    transcript_dir: Path | None = None
    log_level: str = "INFO"
    json_logs: bool = True

    @property
    def backends(self) -> dict[str, BackendConfig]:
        return {CHAT_BACKEND: self.chat, TERMINAL_BACKEND: self.terminal}

    @classmethod
    def from_env(cls, base: GatewayConfig | None = None) -> GatewayConfig:
        """Create config from environment variables.

        Args:
            base: Values to use where a variable is unset (defaults if None)
        """
        config = base or cls()
        env = os.environ

        timeout = config.request_timeout
        if "SESSION_GATEWAY_TIMEOUT" in env:
            timeout = _parse_float("SESSION_GATEWAY_TIMEOUT", env["SESSION_GATEWAY_TIMEOUT"])

        chat_url = env.get("CHAT_SERVER_URL", config.chat.base_url)
        terminal_url = env.get("TERMINAL_SERVER_URL", config.terminal.base_url)

        transcript_dir = config.transcript_dir
        if env.get("SESSION_GATEWAY_TRANSCRIPT_DIR"):
            transcript_dir = Path(env["SESSION_GATEWAY_TRANSCRIPT_DIR"]).expanduser()

        port = config.port
        if "SESSION_GATEWAY_PORT" in env:
            port = _parse_int("SESSION_GATEWAY_PORT", env["SESSION_GATEWAY_PORT"])

        json_logs = config.json_logs
        if "SESSION_GATEWAY_JSON_LOGS" in env:
            json_logs = _parse_bool(env["SESSION_GATEWAY_JSON_LOGS"])

        return replace(
            config,
            host=env.get("SESSION_GATEWAY_HOST", config.host),
            port=port,
            chat=replace(config.chat, base_url=chat_url, timeout=timeout),
            terminal=replace(config.terminal, base_url=terminal_url, timeout=timeout),
            request_timeout=timeout,
            transcript_dir=transcript_dir,
            log_level=env.get("SESSION_GATEWAY_LOG_LEVEL", config.log_level).upper(),
            json_logs=json_logs,
        )

    @classmethod
    def from_file(cls, path: Path) -> GatewayConfig:
        """Create config from the ``gateway`` section of a YAML file.

        A missing file yields the defaults.
        """
        if not path.exists():
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(str(path), f"invalid YAML: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(str(path), "must contain a mapping")
        section = data.get("gateway") or {}
        if not isinstance(section, dict):
            raise ConfigurationError("gateway", "must be a mapping")

        timeout = DEFAULT_TIMEOUT
        if "request_timeout" in section:
            timeout = _parse_float("gateway.request_timeout", section["request_timeout"])

        backends = section.get("backends") or {}
        chat_section = backends.get(CHAT_BACKEND) or {}
        terminal_section = backends.get(TERMINAL_BACKEND) or {}

        transcript_dir = section.get("transcript_dir")

        return cls(
            host=section.get("host", DEFAULT_HOST),
            port=_parse_int("gateway.port", section.get("port", DEFAULT_PORT)),
            chat=default_chat_backend(chat_section.get("url", DEFAULT_CHAT_URL), timeout),
            terminal=default_terminal_backend(
                terminal_section.get("url", DEFAULT_TERMINAL_URL), timeout
            ),
            request_timeout=timeout,
            transcript_dir=Path(transcript_dir).expanduser() if transcript_dir else None,
            log_level=str(section.get("log_level", "INFO")).upper(),
            json_logs=_parse_bool(section.get("json_logs", True)),
        )


def load_config(path: Path | None = None) -> GatewayConfig:
    """Load configuration: environment over file over defaults."""
    base = GatewayConfig.from_file(path) if path is not None else GatewayConfig()
    return GatewayConfig.from_env(base)
