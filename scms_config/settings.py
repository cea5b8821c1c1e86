"""
Runtime settings read from the environment.

Variables:
    SCMS_DATABASE_URL        database URL (falls back to DATABASE_URL)
    SCMS_API_URL             base URL of the job service, e.g. https://api.example.org/v1
    SCMS_WEBHOOK_URL         optional notification webhook
    SCMS_OCC_MAX_RETRIES     attempts per optimistic update (default 5)
    SCMS_OCC_RETRY_DELAY_MS  pause between attempts in milliseconds (default 100)
    SCMS_LOG_LEVEL           logging level name (default INFO)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_DATABASE_URL = "sqlite:///scms.db"
DEFAULT_OCC_MAX_RETRIES = 5
DEFAULT_OCC_RETRY_DELAY_MS = 100


def _int_setting(env: Mapping[str, str], key: str, default: int, minimum: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    api_url: str | None = None
    webhook_url: str | None = None
    occ_max_retries: int = DEFAULT_OCC_MAX_RETRIES
    occ_retry_delay_ms: int = DEFAULT_OCC_RETRY_DELAY_MS
    log_level: str = "INFO"

    @property
    def occ_retry_delay(self) -> float:
        """Retry delay in seconds, as the services take it."""
        return self.occ_retry_delay_ms / 1000.0

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """
        Build settings from ``env`` (default ``os.environ``).

        Raises:
            ValueError: a numeric variable is not an integer or is out of range.
        """
        env = os.environ if env is None else env
        return cls(
            database_url=(
                env.get("SCMS_DATABASE_URL")
                or env.get("DATABASE_URL")
                or DEFAULT_DATABASE_URL
            ),
            api_url=env.get("SCMS_API_URL") or None,
            webhook_url=env.get("SCMS_WEBHOOK_URL") or None,
            occ_max_retries=_int_setting(
                env, "SCMS_OCC_MAX_RETRIES", DEFAULT_OCC_MAX_RETRIES, minimum=1
            ),
            occ_retry_delay_ms=_int_setting(
                env, "SCMS_OCC_RETRY_DELAY_MS", DEFAULT_OCC_RETRY_DELAY_MS, minimum=0
            ),
            log_level=(env.get("SCMS_LOG_LEVEL") or "INFO").upper(),
        )
