"""Settings for the admission-control service.

Values come from the process environment. Outside of tests the file
``.env.<APP_ENV>`` at the repository root (development, testing, staging or
production) is loaded into the environment first; deployments that inject
variables directly simply ship no file.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

REPO_ROOT = Path(__file__).resolve().parents[2]

ENV_FILES = {
    name: f".env.{name}" for name in ("development", "testing", "staging", "production")
}


def _load_env_file() -> None:
    env_path = REPO_ROOT / ENV_FILES.get(APP_ENV, ENV_FILES["development"])
    if not env_path.is_file() or os.getenv("TESTING") == "true":
        return

    # Nested settings groups read os.environ, not env_file, so load it up front
    from dotenv import load_dotenv

    load_dotenv(env_path, override=True)


_load_env_file()


# Groups are built lazily through default_factory so each one reads the
# environment after _load_env_file has run. The ignores cover type checkers
# that treat BaseSettings fields as required constructor arguments.
def _app_group() -> "AppSettings":
    return AppSettings()  # type: ignore[call-arg]


def _cache_group() -> "CacheSettings":
    return CacheSettings()  # type: ignore[call-arg]


def _data_store_group() -> "DataStoreSettings":
    return DataStoreSettings()  # type: ignore[call-arg]


def _log_group() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Admission-control behaviour."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enforce the sliding-window rate limit in the request gate",
    )
    rate_limit_default_limit: int = Field(
        100,
        description="Requests allowed per window when a tenant has no override",
        ge=1,
    )
    rate_limit_default_window_seconds: int = Field(
        60,
        description="Window length in seconds when a tenant has no override",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers on responses",
    )
    rate_limit_sweep_probability: float = Field(
        0.01,
        description="Chance per check that the local store sweeps expired keys",
        ge=0.0,
        le=1.0,
    )

    ip_whitelist_enabled: bool = Field(
        True,
        description="Enforce the IP allow-list in the request gate",
    )
    allowed_ips: str | None = Field(
        None,
        description=(
            "Comma-separated global allow-list of exact addresses or CIDR blocks. "
            "Unset means every IP is allowed."
        ),
        validation_alias=AliasChoices("APP_ALLOWED_IPS", "SMS_WEBHOOK_ALLOWED_IPS"),
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
        populate_by_name=True,
    )


class CacheSettings(BaseSettings):
    """Shared counter/cache service reachable over its REST API."""

    url: str | None = Field(
        None,
        description="Base URL of the REST cache service",
    )
    token: str | None = Field(
        None,
        description="Bearer token for the REST cache service",
    )
    timeout_seconds: float = Field(
        2.0,
        description="Per-call timeout in seconds",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="UPSTASH_REDIS_REST_",
        case_sensitive=False,
    )

    @property
    def configured(self) -> bool:
        return bool(self.url and self.token)


class DataStoreSettings(BaseSettings):
    """Hosted relational data platform (REST surface)."""

    url: str | None = Field(
        None,
        description="Project URL of the data platform",
    )
    service_role_key: str | None = Field(
        None,
        description="Service-role credential used for RPC and table reads",
    )
    timeout_seconds: float = Field(
        3.0,
        description="Per-call timeout in seconds",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        case_sensitive=False,
    )

    @property
    def configured(self) -> bool:
        return bool(self.url and self.service_role_key)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10_485_760, description="Rotate log file after this size (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """All settings groups; malformed values fail at import time."""

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_app_group)
    cache: CacheSettings = Field(default_factory=_cache_group)
    data_store: DataStoreSettings = Field(default_factory=_data_store_group)
    log: LogSettings = Field(default_factory=_log_group)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
