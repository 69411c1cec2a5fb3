"""kiosk_lite.core.config_loader

Typed configuration for kiosk_lite.

- `Config.from_dict()` coerces raw values (env strings, YAML scalars) and
  applies defaults.
- `load_config_file()` reads an optional YAML file.
- Invalid combinations raise `ConfigurationError` at startup rather than
  surfacing later as confusing cache behaviour.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from kiosk_lite.cache.models import ResourceName

logger = logging.getLogger(__name__)

DEFAULT_GOOGLE_SCOPE = "https://www.googleapis.com/auth/tasks.readonly"
DEFAULT_REDIRECT_URI = "http://127.0.0.1:5555/oauth2callback"


class ConfigurationError(ValueError):
    """Configuration values are missing, malformed or mutually inconsistent."""


@dataclass
class Config:
    """Typed configuration for kiosk_lite.

    Fields:
        ttl_seconds: data TTL shared by both resources
        calendar_ttl_seconds / tasks_ttl_seconds: optional per-resource overrides
        lock_stale_ms: age at which a refresh lock marker is presumed abandoned;
            must be below every resource TTL
        fetch_timeout_seconds: upper bound on a single upstream fetch
        data_dir: directory for cached blobs and lock markers
        server_bind / server_port: HTTP listener
        timezone: IANA timezone used to render event and task times
        ics_url: calendar feed URL (calendar refresh disabled when empty)
        secrets_dir: directory for the OAuth token file
        admin_token: bearer token for POST /api/admin/refresh from non-loopback clients
        google_*: OAuth client settings (tasks refresh disabled without id and secret)
        log_level: root logging level name
        debug_logging: enable DEBUG for kiosk_lite modules
    """

    ttl_seconds: int = 300
    calendar_ttl_seconds: int | None = None
    tasks_ttl_seconds: int | None = None
    lock_stale_ms: int = 15_000
    fetch_timeout_seconds: float = 10.0
    data_dir: str = "./data"
    server_bind: str = "127.0.0.1"
    server_port: int = 5055
    timezone: str = "America/Toronto"
    ics_url: str = ""
    secrets_dir: str = "./secrets"
    admin_token: str = "change_me"
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = DEFAULT_REDIRECT_URI
    google_scopes: list[str] = field(default_factory=lambda: [DEFAULT_GOOGLE_SCOPE])
    log_level: str = "INFO"
    debug_logging: bool = False

    @property
    def has_oauth_credentials(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    def ttl_for(self, resource: ResourceName) -> int:
        """TTL in seconds for ``resource``, honouring per-resource overrides."""
        override = {
            ResourceName.CALENDAR: self.calendar_ttl_seconds,
            ResourceName.TASKS: self.tasks_ttl_seconds,
        }[ResourceName(resource)]
        return override if override is not None else self.ttl_seconds

    def ttl_map(self) -> dict[ResourceName, int]:
        return {r: self.ttl_for(r) for r in ResourceName}

    def validate(self) -> None:
        """Check cross-field constraints.

        Raises:
            ConfigurationError: when a constraint is violated
        """
        if self.lock_stale_ms <= 0:
            raise ConfigurationError("lock_stale_ms must be positive")
        if self.fetch_timeout_seconds <= 0:
            raise ConfigurationError("fetch_timeout_seconds must be positive")
        for resource, ttl in self.ttl_map().items():
            if ttl <= 0:
                raise ConfigurationError(f"TTL for {resource.value} must be positive")
            if self.lock_stale_ms >= ttl * 1000:
                raise ConfigurationError(
                    f"lock_stale_ms ({self.lock_stale_ms}) must be strictly less than the "
                    f"{resource.value} TTL ({ttl * 1000} ms)"
                )
        if not 0 < self.server_port < 65536:
            raise ConfigurationError(f"server_port {self.server_port} out of range")

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create a validated Config from a plain mapping.

        Numeric strings are coerced; unparsable numbers fall back to the default
        with a warning; unknown keys are ignored.

        Raises:
            ConfigurationError: if the resulting configuration is inconsistent
        """
        if data is None:
            data = {}

        defaults = cls()

        def _coerce_optional_int(key: str) -> int | None:
            raw = data.get(key)
            if raw is None or raw == "":
                return None
            try:
                return int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; ignoring", key, raw)
                return None

        def _coerce_int(key: str, default: int) -> int:
            value = _coerce_optional_int(key)
            return default if value is None else value

        def _coerce_float(key: str, default: float) -> float:
            raw = data.get(key)
            if raw is None or raw == "":
                return default
            try:
                return float(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not a number; using default %r", key, raw, default)
                return default

        def _coerce_str(key: str, default: str) -> str:
            raw = data.get(key)
            return default if raw is None else str(raw)

        def _coerce_bool(key: str, default: bool) -> bool:
            raw = data.get(key)
            if raw is None:
                return default
            if isinstance(raw, bool):
                return raw
            return str(raw).strip().lower() in ("1", "true", "yes", "on")

        scopes_raw = data.get("google_scopes")
        if scopes_raw is None or scopes_raw == "":
            scopes = list(defaults.google_scopes)
        elif isinstance(scopes_raw, (list, tuple)):
            scopes = [str(s) for s in scopes_raw]
        else:
            scopes = [s for s in str(scopes_raw).replace(",", " ").split() if s]

        cfg = cls(
            ttl_seconds=_coerce_int("ttl_seconds", defaults.ttl_seconds),
            calendar_ttl_seconds=_coerce_optional_int("calendar_ttl_seconds"),
            tasks_ttl_seconds=_coerce_optional_int("tasks_ttl_seconds"),
            lock_stale_ms=_coerce_int("lock_stale_ms", defaults.lock_stale_ms),
            fetch_timeout_seconds=_coerce_float("fetch_timeout_seconds", defaults.fetch_timeout_seconds),
            data_dir=_coerce_str("data_dir", defaults.data_dir),
            server_bind=_coerce_str("server_bind", defaults.server_bind),
            server_port=_coerce_int("server_port", defaults.server_port),
            timezone=_coerce_str("timezone", defaults.timezone),
            ics_url=_coerce_str("ics_url", defaults.ics_url).strip(),
            secrets_dir=_coerce_str("secrets_dir", defaults.secrets_dir),
            admin_token=_coerce_str("admin_token", defaults.admin_token),
            google_client_id=_coerce_str("google_client_id", defaults.google_client_id),
            google_client_secret=_coerce_str("google_client_secret", defaults.google_client_secret),
            google_redirect_uri=_coerce_str("google_redirect_uri", defaults.google_redirect_uri),
            google_scopes=scopes,
            log_level=_coerce_str("log_level", defaults.log_level).upper(),
            debug_logging=_coerce_bool("debug_logging", defaults.debug_logging),
        )
        cfg.validate()
        return cfg


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML (or JSON, which is valid YAML) mapping from ``path``.

    Returns:
        The mapping, or an empty dict if the file does not exist.

    Raises:
        ConfigurationError: if the file is not a mapping at top level.
    """
    p = Path(path)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return {}

    loaded = yaml.safe_load(p.read_text(encoding="utf-8"))
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Config file {p} must contain a mapping at top level")
    logger.info("Loaded configuration from %s", p)
    return loaded

