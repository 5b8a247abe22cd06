# pyright: reportMissingImports=false

from __future__ import annotations

from functools import lru_cache
import json
from typing import Annotated, ClassVar, cast

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


_DEFAULT_ACCESS_TOKEN_SECRET = "dev-secret-change-me"


class Settings(BaseSettings):
    """Environment-driven settings with local dev defaults."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=None,
        case_sensitive=False,
        extra="ignore",
    )

    api_prefix: str = "/api"
    log_level: str = "INFO"
    log_requests: bool = False

    env: str = "dev"

    cors_allowed_origins: Annotated[list[str], NoDecode] = Field(default_factory=list)
    trusted_hosts: Annotated[list[str], NoDecode] = Field(default_factory=list)

    # Auth (JWT + server-side session) settings
    auth_access_token_secret: str = _DEFAULT_ACCESS_TOKEN_SECRET
    auth_access_token_ttl_days: int = 30

    # Prefer DATABASE_URL when provided; otherwise construct from POSTGRES_* vars.
    database_url: str | None = None
    postgres_db: str = "docsync"
    postgres_user: str = "docsync"
    postgres_password: str = "docsync"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout_seconds: float = 30.0
    db_connect_timeout_seconds: int = 2
    db_pool_recycle_seconds: int = 1800
    db_echo: bool = False

    sync_history_default_limit: int = 10
    sync_history_max_limit: int = 100
    sync_max_content_bytes: int = 50 * 1024 * 1024
    sync_strict_conflict_check: bool = False

    session_cleanup_hour_utc: int = 2

    # Per-client request limit on API_PREFIX routes (fixed window, shared via the database).
    rate_limit_enabled: bool = True
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 100
    rate_limit_trust_forwarded_for: bool = False

    @field_validator("cors_allowed_origins", "trusted_hosts", mode="before")
    @classmethod
    def _parse_listish_env(cls, v: object) -> list[str]:
        if v is None:
            return []
        if isinstance(v, list):
            v_list = cast(list[object], v)
            return [str(x).strip() for x in v_list if str(x).strip()]
        if isinstance(v, str):
            raw = v.strip()
            if raw == "":
                return []
            if raw.startswith("["):
                try:
                    parsed: object = cast(object, json.loads(raw))
                except ValueError:
                    parsed = None
                if isinstance(parsed, list):
                    parsed_list = cast(list[object], parsed)
                    return [str(x).strip() for x in parsed_list if str(x).strip()]
            parts: list[str] = []
            for chunk in raw.replace("\n", ",").replace("\t", ",").split(","):
                s = chunk.strip()
                if s:
                    parts.append(s)
            return parts
        return [str(v).strip()] if str(v).strip() else []

    @property
    def sqlalchemy_database_uri(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def auth_access_token_ttl_seconds(self) -> int:
        return self.auth_access_token_ttl_days * 24 * 60 * 60

    def is_prod_env(self) -> bool:
        return self.env.strip().lower() in ("prod", "production")

    @model_validator(mode="after")
    def _validate_prod_config(self) -> "Settings":
        if not self.is_prod_env():
            return self

        problems: list[str] = []

        if self.auth_access_token_secret.strip() in ("", _DEFAULT_ACCESS_TOKEN_SECRET):
            problems.append(
                f"AUTH_ACCESS_TOKEN_SECRET must be set in production (cannot use default {_DEFAULT_ACCESS_TOKEN_SECRET!r})."
            )
        if "*" in self.cors_allowed_origins:
            problems.append("CORS_ALLOWED_ORIGINS must list explicit origins in production.")

        if problems:
            details = "\n".join(f"- {p}" for p in problems)
            raise ValueError(
                f"Production settings validation failed (ENV={self.env!r}). Fix the following before starting the server:\n"
                + details
            )

        return self

    @model_validator(mode="after")
    def _validate_sync_limits(self) -> "Settings":
        if self.sync_history_max_limit <= 0:
            raise ValueError("SYNC_HISTORY_MAX_LIMIT must be > 0")
        if not 0 < self.sync_history_default_limit <= self.sync_history_max_limit:
            raise ValueError(
                "SYNC_HISTORY_DEFAULT_LIMIT must be between 1 and SYNC_HISTORY_MAX_LIMIT"
            )
        if self.sync_max_content_bytes <= 0:
            raise ValueError("SYNC_MAX_CONTENT_BYTES must be > 0")
        if self.auth_access_token_ttl_days <= 0:
            raise ValueError("AUTH_ACCESS_TOKEN_TTL_DAYS must be > 0")
        if not 0 <= self.session_cleanup_hour_utc <= 23:
            raise ValueError("SESSION_CLEANUP_HOUR_UTC must be between 0 and 23")
        if self.rate_limit_window_seconds <= 0:
            raise ValueError("RATE_LIMIT_WINDOW_SECONDS must be > 0")
        if self.rate_limit_max_requests <= 0:
            raise ValueError("RATE_LIMIT_MAX_REQUESTS must be > 0")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
