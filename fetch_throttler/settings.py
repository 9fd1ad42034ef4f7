"""
Throttler defaults from environment variables.

Usage:
    from fetch_throttler.settings import get_settings

    settings = get_settings()
    print(settings.scope, settings.max_concurrency)

Variables (all optional):
    FETCH_THROTTLER_SCOPE            global | domain | path
    FETCH_THROTTLER_MAX_CONCURRENCY  int >= 0
    FETCH_THROTTLER_INTERVAL_MS      int >= 0
    FETCH_THROTTLER_MAX_RETRY        int >= 0
    FETCH_THROTTLER_CAPACITY         int >= 0
    FETCH_THROTTLER_BASE_URL         origin for relative targets ("/items")
    FETCH_THROTTLER_LOG_LEVEL        CLI log level (default WARNING)
"""

from functools import lru_cache
from typing import Any, Dict, Optional
import os

from fetch_throttler.config import DefaultThrottleConfig, resolve_default_config
from fetch_throttler.exceptions import ThrottleConfigError


def _int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ThrottleConfigError(
            f"{name} must be an integer, got {raw!r}",
            code="invalid_env",
            details={"variable": name},
        ) from exc


LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def check_log_level(level: str, source: str = "FETCH_THROTTLER_LOG_LEVEL") -> str:
    """Normalize a logging level name; ThrottleConfigError if it is not one of LOG_LEVELS."""
    normalized = level.strip().upper()
    if normalized not in LOG_LEVELS:
        raise ThrottleConfigError(
            f"{source} must be one of {', '.join(LOG_LEVELS)}, got {level!r}",
            code="invalid_env",
            details={"variable": source},
        )
    return normalized


class Settings:
    """Throttler defaults loaded from environment variables."""

    def __init__(self) -> None:
        # Default pool parameters
        self.scope: Optional[str] = os.getenv("FETCH_THROTTLER_SCOPE")
        self.max_concurrency: Optional[int] = _int_env("FETCH_THROTTLER_MAX_CONCURRENCY")
        self.interval: Optional[int] = _int_env("FETCH_THROTTLER_INTERVAL_MS")
        self.max_retry: Optional[int] = _int_env("FETCH_THROTTLER_MAX_RETRY")
        self.capacity: Optional[int] = _int_env("FETCH_THROTTLER_CAPACITY")

        # Relative URL resolution
        self.base_url: Optional[str] = os.getenv("FETCH_THROTTLER_BASE_URL")

        # Logging
        self.log_level: str = os.getenv("FETCH_THROTTLER_LOG_LEVEL", "WARNING")

    def default_config(self) -> DefaultThrottleConfig:
        """Base configuration built from the variables that are set."""
        values: Dict[str, Any] = {
            "scope": self.scope,
            "max_concurrency": self.max_concurrency,
            "interval": self.interval,
            "max_retry": self.max_retry,
            "capacity": self.capacity,
        }
        return resolve_default_config({k: v for k, v in values.items() if v is not None})


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Clear settings cache. For testing only."""
    get_settings.cache_clear()
