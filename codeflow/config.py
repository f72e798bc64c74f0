"""Configuration loading for codeflow."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class UserConfig:
    """Identity used by the CLI. An empty user_id means guest."""

    user_id: str = ""
    display_name: str = ""


@dataclass
class StorageConfig:
    db_path: str = "~/.codeflow/local.db"


@dataclass
class RemoteConfig:
    """Connection to the remote commit and history store."""

    url: str = ""  # Empty disables the remote tier
    timeout_seconds: float = 30.0
    max_retries: int = 3
    backoff_seconds: float = 1.0

    @property
    def configured(self) -> bool:
        return bool(self.url)


@dataclass
class ServerConfig:
    """Configuration for the reference remote server."""

    host: str = "127.0.0.1"
    port: int = 8765
    db_path: str = "~/.codeflow/remote.db"
    allowed_users: list[str] = field(default_factory=list)
    """Users allowed to read and write. Empty allows everyone."""


@dataclass
class Config:
    user: UserConfig = field(default_factory=UserConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with CODEFLOW_ prefix."""
    return os.environ.get(f"CODEFLOW_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # User overrides
    if user_id := _get_env("USER_ID"):
        config.user.user_id = user_id
    if display_name := _get_env("DISPLAY_NAME"):
        config.user.display_name = display_name

    # Storage overrides
    if db_path := _get_env("DB_PATH"):
        config.storage.db_path = db_path

    # Remote overrides
    if url := _get_env("REMOTE_URL"):
        config.remote.url = url
    if timeout := _get_env("REMOTE_TIMEOUT"):
        config.remote.timeout_seconds = float(timeout)
    if retries := _get_env("REMOTE_MAX_RETRIES"):
        config.remote.max_retries = int(retries)
    if backoff := _get_env("REMOTE_BACKOFF"):
        config.remote.backoff_seconds = float(backoff)

    # Server overrides
    if host := _get_env("SERVER_HOST"):
        config.server.host = host
    if port := _get_env("SERVER_PORT"):
        config.server.port = int(port)
    if server_db := _get_env("SERVER_DB_PATH"):
        config.server.db_path = server_db
    if allowed := _get_env("SERVER_ALLOWED_USERS"):
        config.server.allowed_users = [u.strip() for u in allowed.split(",") if u.strip()]

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse user config
            if "user" in data:
                user_data = data["user"]
                config.user = UserConfig(
                    user_id=str(user_data.get("user_id", config.user.user_id) or ""),
                    display_name=user_data.get(
                        "display_name", config.user.display_name
                    ),
                )

            # Parse storage config
            if "storage" in data:
                config.storage = StorageConfig(
                    db_path=data["storage"].get("db_path", config.storage.db_path)
                )

            # Parse remote config
            if "remote" in data:
                remote_data = data["remote"]
                config.remote = RemoteConfig(
                    url=remote_data.get("url", config.remote.url) or "",
                    timeout_seconds=remote_data.get(
                        "timeout_seconds", config.remote.timeout_seconds
                    ),
                    max_retries=remote_data.get(
                        "max_retries", config.remote.max_retries
                    ),
                    backoff_seconds=remote_data.get(
                        "backoff_seconds", config.remote.backoff_seconds
                    ),
                )

            # Parse server config
            if "server" in data:
                server_data = data["server"]
                config.server = ServerConfig(
                    host=server_data.get("host", config.server.host),
                    port=server_data.get("port", config.server.port),
                    db_path=server_data.get("db_path", config.server.db_path),
                    allowed_users=[
                        str(u) for u in server_data.get("allowed_users", [])
                    ],
                )

    # Apply environment variable overrides
    return _apply_env_overrides(config)
