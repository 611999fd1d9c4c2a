# streampass/core/config.py
from __future__ import annotations

"""
# StreamPass · Centralized Configuration (Pydantic v2)

Single `settings` object with strongly-typed, environment-driven config.

## Goals
- Safe defaults for local/dev; explicit where prod needs secrets.
- Tunables for the playback decision engine (device-session idle TTL,
  cascade lock TTL, playback token TTL) live next to the infra DSNs.
- Optional external systems so imports never crash in dev.

## Usage
    from streampass.core.config import settings
"""

import logging
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)
load_dotenv()  # harmless in prod; convenient in dev


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────
class Settings(BaseSettings):
    """
    Global application settings sourced from environment.

    Notes:
        - `DATABASE_URL_OVERRIDE` wins over the composed Postgres DSN (handy for
          SQLite in tests or a managed DSN in prod).
        - `PLAYBACK_TOKEN_SECRET` must be set outside development.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # don't crash on unknown keys
    )

    # ── App meta ──────────────────────────────────────────────
    PROJECT_NAME: str = "StreamPass"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENV: Literal["development", "staging", "production"] = "development"

    # ── Database (PostgreSQL) ─────────────────────────────────
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: SecretStr = SecretStr("postgres")
    POSTGRES_DB: str = "streampass"
    DATABASE_URL_OVERRIDE: Optional[str] = None

    # ── Redis ─────────────────────────────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "streampass"

    # ── Rentals & device sessions ─────────────────────────────
    RENTAL_DEFAULT_MAX_DEVICES: int = Field(1, ge=1, le=50)
    DEVICE_SESSION_IDLE_TTL_SECONDS: int = Field(3600, ge=0, le=7 * 24 * 60 * 60)

    # ── Access cascade ────────────────────────────────────────
    CASCADE_LOCK_TIMEOUT_SECONDS: int = Field(60, ge=1, le=3600)

    # ── Playback tokens ───────────────────────────────────────
    PLAYBACK_TOKEN_SECRET: Optional[SecretStr] = None
    PLAYBACK_TOKEN_TTL_SECONDS: int = Field(1800, ge=60, le=24 * 60 * 60)

    # ── Repository implementations (dotted `module:Class`) ───
    CATALOG_REPOSITORY_IMPL: Optional[str] = None
    COMMERCE_REPOSITORY_IMPL: Optional[str] = None

    # ── Identity header (auth is external) ────────────────────
    VIEWER_ID_HEADER: str = "x-user-id"
    VIEWER_ROLE_HEADER: str = "x-user-role"

    # ── Validators / normalizers ──────────────────────────────
    @field_validator("REDIS_KEY_PREFIX", mode="before")
    @classmethod
    def _strip_prefix(cls, v: Optional[str]) -> str:
        s = (v or "streampass").strip().strip(":")
        return s or "streampass"

    # ── Derived / convenience properties ─────────────────────
    @property
    def is_development(self) -> bool:
        return self.ENV.lower() == "development"

    @property
    def DATABASE_URL(self) -> str:
        """Sync DSN."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD.get_secret_value()}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def ASYNC_DATABASE_URL(self) -> str:
        """Async SQLAlchemy DSN."""
        url = self.DATABASE_URL
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    def redis_key(self, *parts: object) -> str:
        """Namespaced Redis key, e.g. `streampass:rental:<id>:devices`."""
        return ":".join([self.REDIS_KEY_PREFIX, *(str(p) for p in parts)])


# Singleton instance
settings = Settings()
