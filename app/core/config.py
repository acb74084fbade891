from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("", "0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _parse_int(name: str, raw: str, *, minimum: int = 0) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    access_token_ttl_min: int = 60 * 24
    cors_origins: tuple[str, ...] = ("http://localhost:5173",)
    bootstrap_admin_username: str | None = None
    bootstrap_admin_password: str | None = None

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
    def has_bootstrap_admin(self) -> bool:
        return bool(self.bootstrap_admin_username and self.bootstrap_admin_password)


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _parse_int("PORT", _getenv("PORT", "8000"), minimum=1)
    ttl = _parse_int(
        "ACCESS_TOKEN_TTL_MIN", _getenv("ACCESS_TOKEN_TTL_MIN", "1440"), minimum=1
    )
    log_json = _parse_bool("LOG_JSON", _getenv("LOG_JSON", "false"))

    origins_raw = _getenv("CORS_ORIGINS", "http://localhost:5173")
    cors_origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip())

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json,
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        access_token_ttl_min=ttl,
        cors_origins=cors_origins,
        bootstrap_admin_username=_getenv("BOOTSTRAP_ADMIN_USERNAME", "") or None,
        bootstrap_admin_password=_getenv("BOOTSTRAP_ADMIN_PASSWORD", "") or None,
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
