"""Configuration utilities for backupagent CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
from pathlib import Path

from backupagent.core.config import ServerConfig, UploadConfig


class ConfigError(Exception):
    """Configuration is missing or invalid."""


def get_config_dir() -> Path:
    """Get the configuration directory for backupagent.

    Returns:
        Path to ~/.backupagent or equivalent.
    """
    return Path.home() / ".backupagent"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_server_config(config: dict[str, str]) -> ServerConfig:
    """Build the server configuration from saved settings.

    Raises:
        ConfigError: If the server URL or token is missing.
    """
    if not config.get("server_url") or not config.get("auth_token"):
        raise ConfigError("Not configured. Run 'backupagent configure' first.")
    return ServerConfig(
        server_url=config["server_url"],
        token=config["auth_token"],
        user_id=config.get("user_id", ""),
    )


def get_upload_config(
    config: dict[str, str],
    chunk_size: int | None = None,
    max_retries: int | None = None,
    addon_type: str | None = None,
) -> UploadConfig:
    """Build upload settings from saved settings and command-line overrides.

    Raises:
        ConfigError: If a value is invalid.
    """
    kwargs: dict[str, int | str] = {}
    try:
        if chunk_size is not None:
            kwargs["chunk_size"] = chunk_size
        elif config.get("chunk_size"):
            kwargs["chunk_size"] = int(config["chunk_size"])
        if max_retries is not None:
            kwargs["max_retries"] = max_retries
        if addon_type:
            kwargs["addon_type"] = addon_type
        return UploadConfig(**kwargs)  # type: ignore[arg-type]
    except ValueError as e:
        raise ConfigError(str(e)) from e
