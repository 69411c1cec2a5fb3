"""Configuration management for the kiosk_lite server."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config_loader import Config, load_config_file

logger = logging.getLogger(__name__)


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
        - Handles KEY=VALUE format with optional whitespace
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return result

    for raw_line in content.splitlines():
        line = raw_line.strip()

        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")

        if key:
            result[key] = val

    return result


# Environment variable -> config key
ENV_KEYS: dict[str, str] = {
    "PORT": "server_port",
    "BIND_ADDRESS": "server_bind",
    "ICS_URL": "ics_url",
    "CACHE_TTL_SECONDS": "ttl_seconds",
    "CALENDAR_TTL_SECONDS": "calendar_ttl_seconds",
    "TASKS_TTL_SECONDS": "tasks_ttl_seconds",
    "LOCK_STALE_MS": "lock_stale_ms",
    "FETCH_TIMEOUT_SECONDS": "fetch_timeout_seconds",
    "TIMEZONE": "timezone",
    "DATA_DIR": "data_dir",
    "SECRETS_DIR": "secrets_dir",
    "ADMIN_TOKEN": "admin_token",
    "GOOGLE_CLIENT_ID": "google_client_id",
    "GOOGLE_CLIENT_SECRET": "google_client_secret",
    "GOOGLE_REDIRECT_URI": "google_redirect_uri",
    "GOOGLE_SCOPES": "google_scopes",
    "KIOSK_LOG_LEVEL": "log_level",
    "KIOSK_DEBUG": "debug_logging",
}

SECRET_KEYS = frozenset({"admin_token", "google_client_secret"})


class ConfigManager:
    """Manages application configuration from a YAML file, environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None, config_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
            config_path: Optional YAML config file; environment values override it
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"
        self.config_path = config_path

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        parsed = parse_env_file(self.env_file_path)

        set_keys = []
        for key, val in parsed.items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build a raw configuration mapping from recognised environment variables."""
        cfg: dict[str, Any] = {}
        for env_key, cfg_key in ENV_KEYS.items():
            value = os.environ.get(env_key)
            if value is not None and value != "":
                cfg[cfg_key] = value
        return cfg

    def load_raw_config(self) -> dict[str, Any]:
        """Merge file values with environment values (environment wins)."""
        self.load_env_file()

        raw: dict[str, Any] = {}
        if self.config_path is not None:
            raw.update(load_config_file(self.config_path))
        raw.update(self.build_config_from_env())
        return raw

    def load_full_config(self, overrides: dict[str, Any] | None = None) -> Config:
        """Load .env, YAML and environment, apply ``overrides`` and validate.

        Raises:
            ConfigurationError: if the merged configuration is invalid
        """
        raw = self.load_raw_config()
        if overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None})

        config = Config.from_dict(raw)
        logger.debug("Resolved configuration: %s", redact_config(raw))
        return config


def redact_config(raw: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``raw`` with secret values masked, for logging."""
    return {k: ("<redacted>" if k in SECRET_KEYS and v else v) for k, v in raw.items()}
