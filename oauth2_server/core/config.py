from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    # Centralize env access so type casting and required vars live in one place
    return os.environ.get(name, default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive (got {value})")
    return value


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    # Key material: a filesystem path, a file:// URI or an inline PEM.
    # None means "generate an ephemeral key" (dev/test only).
    private_key: str | None
    private_key_passphrase: str | None
    public_key: str | None
    encryption_key: str | None
    access_token_ttl_sec: int
    refresh_token_ttl_sec: int
    auth_code_ttl_sec: int
    default_scope: str
    require_pkce: bool

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    private_key = _getenv("OAUTH_PRIVATE_KEY", "") or None
    public_key = _getenv("OAUTH_PUBLIC_KEY", "") or None
    encryption_key = _getenv("OAUTH_ENCRYPTION_KEY", "") or None

    # Ephemeral keys would invalidate every outstanding token on restart.
    if app_env_raw == "prod" and (private_key is None or encryption_key is None):
        raise ValueError("OAUTH_PRIVATE_KEY and OAUTH_ENCRYPTION_KEY are required in prod")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv_bool("LOG_JSON", False),
        private_key=private_key,
        private_key_passphrase=_getenv("OAUTH_PRIVATE_KEY_PASSPHRASE", "") or None,
        public_key=public_key,
        encryption_key=encryption_key,
        access_token_ttl_sec=_getenv_int("OAUTH_ACCESS_TOKEN_TTL_SEC", 3600),
        refresh_token_ttl_sec=_getenv_int("OAUTH_REFRESH_TOKEN_TTL_SEC", 30 * 24 * 3600),
        auth_code_ttl_sec=_getenv_int("OAUTH_AUTH_CODE_TTL_SEC", 600),
        default_scope=_getenv("OAUTH_DEFAULT_SCOPE", ""),
        require_pkce=_getenv_bool("OAUTH_REQUIRE_PKCE", False),
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
