from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

# Only used when NOTES_KEY is unset outside prod. Notes written with it are
# unreadable once a real key is configured.
_DEV_NOTES_KEY = "dev-only-notes-key"


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


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
    port: int
    database_url: str | None
    redis_url: str | None
    allowed_origins: tuple[str, ...] = ("http://localhost:3000",)

    # Notes encryption secret and early-access enrollment token
    notes_key: str = _DEV_NOTES_KEY
    early_access_token: str | None = None

    # Identity provider
    jwks_url: str | None = None
    token_issuer: str | None = None

    # Headless CMS serving quiz definitions
    content_api_root: str = "https://deliver.kontent.ai"
    content_api_key: str | None = None

    # HubSpot
    hubspot_api_root: str = "https://api.hubapi.com"
    hubspot_access_token: str | None = None
    hubspot_form_url_enroll: str | None = None
    hubspot_form_url_complete: str | None = None

    # Vimeo
    vimeo_api_root: str = "https://api.vimeo.com"
    vimeo_access_token: str | None = None

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
    port_raw = _getenv("PORT", "8000")

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

    notes_key = _getenv("NOTES_KEY", "")
    if not notes_key:
        if app_env_raw == "prod":
            raise ValueError("NOTES_KEY must be set when APP_ENV=prod")
        notes_key = _DEV_NOTES_KEY

    origins_raw = _getenv("ALLOWED_ORIGINS", "http://localhost:3000")
    allowed_origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip())

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv_bool("LOG_JSON", False),
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        allowed_origins=allowed_origins,
        notes_key=notes_key,
        early_access_token=_getenv("EARLY_ACCESS_TOKEN", "") or None,
        jwks_url=_getenv("JWKS_URL", "") or None,
        token_issuer=_getenv("TOKEN_ISSUER", "") or None,
        content_api_root=_getenv("CONTENT_API_ROOT", "https://deliver.kontent.ai"),
        content_api_key=_getenv("CONTENT_API_KEY", "") or None,
        hubspot_api_root=_getenv("HUBSPOT_API_ROOT", "https://api.hubapi.com"),
        hubspot_access_token=_getenv("HUBSPOT_ACCESS_TOKEN", "") or None,
        hubspot_form_url_enroll=_getenv("HUBSPOT_FORM_URL_ENROLL", "") or None,
        hubspot_form_url_complete=_getenv("HUBSPOT_FORM_URL_COMPLETE", "") or None,
        vimeo_api_root=_getenv("VIMEO_API_ROOT", "https://api.vimeo.com"),
        vimeo_access_token=_getenv("VIMEO_ACCESS_TOKEN", "") or None,
    )


SETTINGS = load_settings()
