"""
core/config.py
--------------
Centralised settings management using pydantic-settings.
All configuration is loaded from environment variables / .env file.
This is the single source of truth for application configuration.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── App ──────────────────────────────────────────────────────────────
    APP_NAME: str = "ProjectHub Backend"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # ── Database ─────────────────────────────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./projecthub.db"

    # ── Identity provider ────────────────────────────────────────────────
    # Session tokens are issued by the provider; we only verify them.
    IDENTITY_JWT_KEY: str = ""
    IDENTITY_JWT_ALGORITHMS: List[str] = ["RS256"]
    IDENTITY_JWT_ISSUER: Optional[str] = None

    # REST API used by the backfill sync (sync_identity.py)
    IDENTITY_API_URL: str = "https://api.clerk.com/v1"
    IDENTITY_API_KEY: str = ""

    # ── Webhooks ─────────────────────────────────────────────────────────
    WEBHOOK_SECRET: str = ""
    WEBHOOK_TOLERANCE_SECONDS: int = 300

    # ── Blob storage (S3-compatible) ─────────────────────────────────────
    STORAGE_BUCKET: str = "project-documents"
    STORAGE_ENDPOINT_URL: Optional[str] = None
    STORAGE_REGION: str = "us-east-1"
    STORAGE_ACCESS_KEY_ID: Optional[str] = None
    STORAGE_SECRET_ACCESS_KEY: Optional[str] = None
    SIGNED_URL_TTL_SECONDS: int = 3600
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024

    # ── View invalidation ────────────────────────────────────────────────
    # Endpoint notified with each stale path after a write; unset = no hook.
    VIEW_PURGE_URL: Optional[str] = None

    # ── CORS ─────────────────────────────────────────────────────────────
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    @field_validator("ALLOWED_ORIGINS", "IDENTITY_JWT_ALGORITHMS", mode="before")
    @classmethod
    def parse_list(cls, v):
        if isinstance(v, str):
            import json
            if v.lstrip().startswith("["):
                return json.loads(v)
            return [item.strip() for item in v.split(",") if item.strip()]
        return v


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings factory.
    Use this everywhere to avoid re-reading .env on every call.
    """
    return Settings()


settings = get_settings()
