"""
Centralized configuration for the clinic notification dispatch service.

- Plain dataclass loaded from OS env; a .env file in the working directory is parsed when present.
- Validation in __post_init__ (fail fast at startup, never mid-run).
- Immutable singleton via functools.lru_cache.
- Secrets never logged (masked).
"""

from __future__ import annotations

import functools
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional, cast
from urllib.parse import urlparse

from dotenv import load_dotenv

# ------------------------------------------------------------------------------
# Optional .env loader
# ------------------------------------------------------------------------------
def _maybe_load_dotenv(env_path: Path) -> None:
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=str(env_path), override=False)


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------
def _mask_secret(value: Optional[str]) -> str:
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "***"
    return value[:2] + "…" + value[-2:]


def _get_env_str(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    v = os.getenv(key, default)
    if required and (v is None or str(v).strip() == ""):
        raise ValueError(f"Missing required env var: {key}")
    return v


def _get_env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _get_env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"Env var {key} must be an integer")


def _get_env_float(key: str, default: float) -> float:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return float(v)
    except ValueError:
        raise ValueError(f"Env var {key} must be a number")


def _validate_choice(value: str, *, choices: tuple[str, ...], key: str) -> str:
    if value not in choices:
        raise ValueError(f"{key} must be one of {choices}, got {value!r}")
    return value


def _validate_url(value: Optional[str], *, key: str, allowed_schemes: tuple[str, ...]) -> Optional[str]:
    if value in (None, ""):
        return None
    parsed = urlparse(value)
    if parsed.scheme not in allowed_schemes or not parsed.netloc:
        raise ValueError(f"{key} must be a valid URL with scheme in {allowed_schemes}")
    return value


def _validate_database_url(value: str, *, key: str) -> str:
    if not value.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
        raise ValueError(f"{key} must start with postgresql+asyncpg:// or sqlite+aiosqlite://")
    return value


# ------------------------------------------------------------------------------
# Settings dataclass (immutable)
# ------------------------------------------------------------------------------
EnvName = Literal["local", "dev", "staging", "prod"]
WindowStrategy = Literal["next_day", "rolling"]

WINDOW_STRATEGIES: tuple[str, ...] = ("next_day", "rolling")


@dataclass(frozen=True)
class Settings:
    # Environment
    environment: EnvName = "local"
    debug: bool = False

    # Database
    database_url: str = field(default="")
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Messaging provider (YCloud WhatsApp API)
    ycloud_api_base_url: str = "https://api.ycloud.com/v2"
    provider_timeout_seconds: float = 15.0
    send_delay_seconds: float = 0.5
    template_language: str = "es"

    # Eligibility windows
    default_timezone: str = "America/Mexico_City"
    reminder_window_strategy: WindowStrategy = "next_day"
    survey_min_age_hours: int = 24
    survey_max_age_hours: int = 48
    upsell_max_lateness_hours: int = 48

    # Trigger surface
    trigger_secret: Optional[str] = None
    worker_interval_seconds: int = 3600

    # Observability
    log_level: str = "INFO"
    log_json: bool = True

    # Derived/computed flags (filled in __post_init__)
    is_prod: bool = field(init=False)
    is_local: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "environment",
            _validate_choice(self.environment, choices=("local", "dev", "staging", "prod"), key="ENVIRONMENT"),
        )
        object.__setattr__(
            self, "reminder_window_strategy",
            _validate_choice(self.reminder_window_strategy, choices=WINDOW_STRATEGIES, key="REMINDER_WINDOW_STRATEGY"),
        )

        object.__setattr__(self, "database_url", _validate_database_url(self.database_url, key="DATABASE_URL"))
        _validate_url(self.ycloud_api_base_url, key="YCLOUD_API_BASE_URL", allowed_schemes=("http", "https"))

        if self.provider_timeout_seconds <= 0:
            raise ValueError("PROVIDER_TIMEOUT_SECONDS must be > 0")
        if self.send_delay_seconds < 0:
            raise ValueError("SEND_DELAY_SECONDS must be >= 0")
        if self.survey_min_age_hours <= 0:
            raise ValueError("SURVEY_MIN_AGE_HOURS must be > 0")
        if self.survey_max_age_hours <= self.survey_min_age_hours:
            raise ValueError("SURVEY_MAX_AGE_HOURS must be > SURVEY_MIN_AGE_HOURS")
        if self.upsell_max_lateness_hours <= 0:
            raise ValueError("UPSELL_MAX_LATENESS_HOURS must be > 0")
        if self.worker_interval_seconds <= 0:
            raise ValueError("WORKER_INTERVAL_SECONDS must be > 0")

        if not re.fullmatch(r"(?i)DEBUG|INFO|WARNING|ERROR|CRITICAL", self.log_level.strip()):
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")

        object.__setattr__(self, "is_prod", self.environment == "prod")
        object.__setattr__(self, "is_local", self.environment == "local")

    # Safe dict (for debug prints without secrets)
    def safe_dict(self) -> dict:
        return {
            "environment": self.environment,
            "debug": self.debug,
            "database_url": "<masked>" if self.database_url else "<unset>",
            "database_pool_size": self.database_pool_size,
            "database_max_overflow": self.database_max_overflow,
            "ycloud_api_base_url": self.ycloud_api_base_url,
            "provider_timeout_seconds": self.provider_timeout_seconds,
            "send_delay_seconds": self.send_delay_seconds,
            "template_language": self.template_language,
            "default_timezone": self.default_timezone,
            "reminder_window_strategy": self.reminder_window_strategy,
            "survey_min_age_hours": self.survey_min_age_hours,
            "survey_max_age_hours": self.survey_max_age_hours,
            "upsell_max_lateness_hours": self.upsell_max_lateness_hours,
            "trigger_secret": _mask_secret(self.trigger_secret),
            "worker_interval_seconds": self.worker_interval_seconds,
            "log_level": self.log_level,
            "log_json": self.log_json,
        }


# ------------------------------------------------------------------------------
# Loader (singleton)
# ------------------------------------------------------------------------------
_logger = logging.getLogger(__name__)


def load_settings() -> Settings:
    """Build settings from the current environment (no caching)."""
    env_file = Path(os.getcwd()) / ".env"
    _maybe_load_dotenv(env_file)

    return Settings(
        environment=cast(EnvName, _get_env_str("ENVIRONMENT", "local") or "local"),
        debug=_get_env_bool("DEBUG", False),
        database_url=_get_env_str("DATABASE_URL", required=True) or "",
        database_pool_size=_get_env_int("DATABASE_POOL_SIZE", 5),
        database_max_overflow=_get_env_int("DATABASE_MAX_OVERFLOW", 10),
        ycloud_api_base_url=_get_env_str("YCLOUD_API_BASE_URL", "https://api.ycloud.com/v2") or "https://api.ycloud.com/v2",
        provider_timeout_seconds=_get_env_float("PROVIDER_TIMEOUT_SECONDS", 15.0),
        send_delay_seconds=_get_env_float("SEND_DELAY_SECONDS", 0.5),
        template_language=_get_env_str("TEMPLATE_LANGUAGE", "es") or "es",
        default_timezone=_get_env_str("DEFAULT_TIMEZONE", "America/Mexico_City") or "America/Mexico_City",
        reminder_window_strategy=cast(
            WindowStrategy, _get_env_str("REMINDER_WINDOW_STRATEGY", "next_day") or "next_day"
        ),
        survey_min_age_hours=_get_env_int("SURVEY_MIN_AGE_HOURS", 24),
        survey_max_age_hours=_get_env_int("SURVEY_MAX_AGE_HOURS", 48),
        upsell_max_lateness_hours=_get_env_int("UPSELL_MAX_LATENESS_HOURS", 48),
        trigger_secret=_get_env_str("TRIGGER_SECRET", None) or None,
        worker_interval_seconds=_get_env_int("WORKER_INTERVAL_SECONDS", 3600),
        log_level=_get_env_str("LOG_LEVEL", "INFO") or "INFO",
        log_json=_get_env_bool("LOG_JSON", True),
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = load_settings()
    _logger.info("Settings loaded", extra={"settings": settings.safe_dict()})
    return settings
