from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    # Blank values count as unset.
    return os.environ.get(name, default).strip()


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    database_url: str | None
    redis_url: str | None
    record_lock_ttl_seconds: int = 30
    record_lock_wait_seconds: float = 5.0

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    log_json_raw = _getenv("LOG_JSON", "false").lower()
    lock_ttl_raw = _getenv("RECORD_LOCK_TTL_SECONDS", "30")
    lock_wait_raw = _getenv("RECORD_LOCK_WAIT_SECONDS", "5")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        lock_ttl = int(lock_ttl_raw)
    except ValueError:
        raise ValueError(
            f"RECORD_LOCK_TTL_SECONDS must be an integer (got {lock_ttl_raw!r})"
        ) from None
    if lock_ttl <= 0:
        raise ValueError(f"RECORD_LOCK_TTL_SECONDS must be positive (got {lock_ttl})")

    try:
        lock_wait = float(lock_wait_raw)
    except ValueError:
        raise ValueError(
            f"RECORD_LOCK_WAIT_SECONDS must be a number (got {lock_wait_raw!r})"
        ) from None
    if lock_wait < 0:
        raise ValueError(
            f"RECORD_LOCK_WAIT_SECONDS must not be negative (got {lock_wait})"
        )

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json_raw in ("1", "true", "yes"),
        database_url=database_url,
        redis_url=redis_url,
        record_lock_ttl_seconds=lock_ttl,
        record_lock_wait_seconds=lock_wait,
    )


# Read once at import; tests monkeypatch this object.
SETTINGS = load_settings()
