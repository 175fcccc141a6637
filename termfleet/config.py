"""Runtime configuration for Termfleet.

Everything is read from ``TERMFLEET_*`` environment variables once, at
startup, and validated in one pass so a misconfigured deployment reports
every problem at the same time.

Usage::

    from termfleet.config import load_settings
    settings = load_settings()          # raises ConfigError when invalid
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_SPACESHIP_API_URL = "https://spaceship.dev/api/v1"

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """Raised when the environment does not describe a usable deployment."""


@dataclass(frozen=True)
class Settings:
    """Validated configuration consumed by the server and the reconciler.

    Durations are in seconds.
    """

    base_domain: str
    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = "development"
    check_interval: float = 20.0
    probe_timeout: float = 10.0
    probe_concurrency: int = 32
    probe_verify_tls: bool = False
    spaceship_api_key: str = ""
    spaceship_api_secret: str = ""
    spaceship_api_url: str = DEFAULT_SPACESHIP_API_URL
    dns_ttl: int = 600
    release_dns_on_prune: bool = False
    db_path: str = "./data/termfleet.db"
    log_level: str = "INFO"
    log_dir: str = ""

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from *environ* (default: ``os.environ``)."""
    env = os.environ if environ is None else environ
    errors: list[str] = []

    def _int(key: str, default: int) -> int:
        raw = env.get(key, "").strip()
        if not raw:
            return default
        try:
            value = int(raw)
        except ValueError:
            errors.append(f"{key} must be an integer (got {raw!r})")
            return default
        if value <= 0:
            errors.append(f"{key} must be positive (got {value})")
            return default
        return value

    def _bool(key: str, default: bool) -> bool:
        raw = env.get(key, "").strip().lower()
        if not raw:
            return default
        if raw in _TRUTHY:
            return True
        if raw in _FALSY:
            return False
        errors.append(f"{key} must be a boolean (got {raw!r})")
        return default

    environment = env.get("TERMFLEET_ENV", "development").strip() or "development"
    base_domain = env.get("TERMFLEET_BASE_DOMAIN", "").strip().strip(".").lower()
    api_key = env.get("TERMFLEET_SPACESHIP_API_KEY", "")
    api_secret = env.get("TERMFLEET_SPACESHIP_API_SECRET", "")
    log_level = env.get("TERMFLEET_LOG_LEVEL", "INFO").strip().upper() or "INFO"

    if not base_domain:
        errors.append("TERMFLEET_BASE_DOMAIN is required")
    if environment == "production":
        if not api_key:
            errors.append("TERMFLEET_SPACESHIP_API_KEY is required in production")
        if not api_secret:
            errors.append("TERMFLEET_SPACESHIP_API_SECRET is required in production")
    if log_level not in _LOG_LEVELS:
        errors.append(f"TERMFLEET_LOG_LEVEL must be one of {sorted(_LOG_LEVELS)} (got {log_level!r})")
        log_level = "INFO"

    settings = Settings(
        base_domain=base_domain,
        host=env.get("TERMFLEET_HOST", "0.0.0.0"),
        port=_int("TERMFLEET_PORT", 3000),
        environment=environment,
        check_interval=_int("TERMFLEET_WORKSTATION_CHECK_INTERVAL", 20_000) / 1000,
        probe_timeout=_int("TERMFLEET_HEALTH_CHECK_TIMEOUT", 10_000) / 1000,
        probe_concurrency=_int("TERMFLEET_PROBE_CONCURRENCY", 32),
        # Workstations in development usually serve self-signed certificates
        probe_verify_tls=_bool("TERMFLEET_PROBE_VERIFY_TLS", environment != "development"),
        spaceship_api_key=api_key,
        spaceship_api_secret=api_secret,
        spaceship_api_url=env.get("TERMFLEET_SPACESHIP_API_URL", DEFAULT_SPACESHIP_API_URL).rstrip("/"),
        dns_ttl=_int("TERMFLEET_DNS_TTL", 600),
        release_dns_on_prune=_bool("TERMFLEET_DNS_RELEASE_ON_PRUNE", False),
        db_path=env.get("TERMFLEET_DB_PATH", "./data/termfleet.db"),
        log_level=log_level,
        log_dir=env.get("TERMFLEET_LOG_DIR", ""),
    )

    if errors:
        raise ConfigError("Configuration validation failed:\n" + "\n".join(errors))
    return settings


def log_level_value(settings: Settings) -> int:
    """Return the numeric :mod:`logging` level for *settings*."""
    return getattr(logging, settings.log_level, logging.INFO)
