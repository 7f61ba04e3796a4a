from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    cron_secret: str | None = None
    unlock_timezone: str = "UTC"
    whop_api_base: str = "https://api.whop.com/api/v2"
    notify_timeout_seconds: float = 10.0

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def unlock_tz(self) -> ZoneInfo:
        """Timezone whose midnight is the drip day boundary."""
        return ZoneInfo(self.unlock_timezone)


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")
    tz_raw = _getenv("UNLOCK_TIMEZONE", "UTC")
    timeout_raw = _getenv("NOTIFY_TIMEOUT_SECONDS", "10")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    try:
        ZoneInfo(tz_raw)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"UNLOCK_TIMEZONE must be an IANA timezone name (got {tz_raw!r})"
        ) from None

    try:
        notify_timeout = float(timeout_raw)
    except ValueError:
        raise ValueError(
            f"NOTIFY_TIMEOUT_SECONDS must be a number (got {timeout_raw!r})"
        ) from None
    if notify_timeout <= 0:
        raise ValueError(
            f"NOTIFY_TIMEOUT_SECONDS must be positive (got {timeout_raw!r})"
        )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv("LOG_JSON", "false").lower() in _TRUTHY,
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        cron_secret=_getenv("CRON_SECRET", "") or None,
        unlock_timezone=tz_raw,
        whop_api_base=_getenv("WHOP_API_BASE", "https://api.whop.com/api/v2").rstrip(
            "/"
        ),
        notify_timeout_seconds=notify_timeout,
    )


SETTINGS = load_settings()
