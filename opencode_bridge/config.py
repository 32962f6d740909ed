"""Bridge configuration."""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

import yaml

from opencode_bridge.errors import ConfigError

logger = logging.getLogger(__name__)

_RECOGNISED_BOOL_VALUES = frozenset(
    ("1", "true", "yes", "0", "false", "no")
)


@dataclass(frozen=True)
class AgentServerConfig:
    """Where the OpenCode server listens and how long to wait on it."""

    base_url: str = "http://127.0.0.1:4096"
    request_timeout: float = 30.0


@dataclass(frozen=True)
class SessionConfig:
    """Session lifecycle settings.

    ``idle_timeout_minutes``: sessions with no activity for this long are
        persisted and evicted by the reaper.
    ``reap_interval_seconds``: how often the reaper sweeps the registry.
    ``projects_dir``: root directory that ``/projects`` and ``/switch`` use.
    ``default_project_path``: working directory for new sessions.
    """

    idle_timeout_minutes: int = 30
    reap_interval_seconds: float = 300.0
    projects_dir: Path = field(default_factory=lambda: Path.home() / "projects")
    default_project_path: Optional[Path] = None

    @property
    def default_project(self) -> Path:
        return self.default_project_path or self.projects_dir


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str = ""
    allowed_users: tuple[int, ...] = ()
    poll_timeout: int = 30


@dataclass(frozen=True)
class HttpConfig:
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass(frozen=True)
class BridgeConfig:
    agent: AgentServerConfig = field(default_factory=AgentServerConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)
    db_path: Path = field(default_factory=lambda: Path("data/bridge.db"))
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    log_level: str = "INFO"


def _parse_bool(value: str, default: bool) -> bool:
    """Parse a boolean setting with explicit default.

    Recognises ``true/1/yes`` and ``false/0/no`` (case-insensitive).
    Returns *default* when the value is empty or unset and logs a warning
    for unrecognised values.
    """
    if not value:
        return default
    normalised = value.lower()
    if normalised not in _RECOGNISED_BOOL_VALUES:
        logger.warning(
            "Unrecognised boolean value %r, using default %s. "
            "Expected one of: true/1/yes or false/0/no.",
            value,
            default,
        )
        return default
    return normalised in ("1", "true", "yes")


def _parse_number(env: Mapping[str, str], key: str, default: str, kind: type) -> float:
    raw = env.get(key, default) or default
    try:
        return kind(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None


def _parse_user_ids(value: str) -> tuple[int, ...]:
    ids = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            ids.append(int(item))
        except ValueError:
            raise ConfigError(
                f"TELEGRAM_ALLOWED_USERS must be comma-separated user ids, got {item!r}"
            ) from None
    return tuple(ids)


def load_config_from_env(env: Optional[Mapping[str, str]] = None) -> BridgeConfig:
    """Build a BridgeConfig from environment variables (or any mapping)."""
    if env is None:
        env = os.environ

    base_url = env.get("OPENCODE_SERVER_URL", "http://127.0.0.1:4096").rstrip("/")
    if not base_url.startswith(("http://", "https://")):
        raise ConfigError(f"OPENCODE_SERVER_URL must be an http(s) URL, got {base_url!r}")

    projects_dir = Path(env.get("PROJECTS_DIR") or Path.home() / "projects").expanduser()
    default_project_raw = env.get("DEFAULT_PROJECT_PATH")
    default_project = Path(default_project_raw).expanduser() if default_project_raw else None

    idle_timeout = int(_parse_number(env, "SESSION_IDLE_TIMEOUT_MINUTES", "30", int))
    if idle_timeout <= 0:
        raise ConfigError("SESSION_IDLE_TIMEOUT_MINUTES must be positive")

    bot_token = env.get("TELEGRAM_BOT_TOKEN", "")
    allowed_users = _parse_user_ids(env.get("TELEGRAM_ALLOWED_USERS", ""))
    if bot_token and not allowed_users:
        logger.warning(
            "TELEGRAM_ALLOWED_USERS is empty -- any Telegram user can drive "
            "the agent. Set it to a comma-separated list of user ids."
        )

    return BridgeConfig(
        agent=AgentServerConfig(
            base_url=base_url,
            request_timeout=_parse_number(env, "OPENCODE_REQUEST_TIMEOUT", "30", float),
        ),
        sessions=SessionConfig(
            idle_timeout_minutes=idle_timeout,
            reap_interval_seconds=_parse_number(env, "SESSION_REAP_INTERVAL_SECONDS", "300", float),
            projects_dir=projects_dir,
            default_project_path=default_project,
        ),
        db_path=Path(env.get("BRIDGE_DB_PATH", "data/bridge.db")),
        telegram=TelegramConfig(
            bot_token=bot_token,
            allowed_users=allowed_users,
            poll_timeout=int(_parse_number(env, "TELEGRAM_POLL_TIMEOUT", "30", int)),
        ),
        http=HttpConfig(
            enabled=_parse_bool(env.get("BRIDGE_API_ENABLED", ""), default=True),
            host=env.get("BRIDGE_HOST", "127.0.0.1"),
            port=int(_parse_number(env, "BRIDGE_PORT", "8080", int)),
        ),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )


def load_config(config_file: Optional[Path] = None) -> BridgeConfig:
    """Load configuration from an optional YAML file overlaid by the environment.

    The YAML file uses the same keys as the environment variables, e.g.::

        OPENCODE_SERVER_URL: http://127.0.0.1:4096
        PROJECTS_DIR: ~/code

    Values set in the environment win over values from the file.
    """
    merged: dict[str, str] = {}
    if config_file is not None:
        if not config_file.exists():
            raise ConfigError(f"Config file not found: {config_file}")
        with open(config_file) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {config_file} must contain a mapping")
        merged.update({str(k): "" if v is None else str(v) for k, v in data.items()})
    merged.update(os.environ)
    return load_config_from_env(merged)
